"""Session-aware dependencies for customer-facing APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import Header, HTTPException, status


async def require_customer_session(
    user_id: UUID,
    session_user: str | None = Header(None, alias="X-Session-User"),
) -> UUID:
    """Resolve the customer from forwarded session headers; it must own the requested path."""

    if not session_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )

    try:
        session_user_id = UUID(session_user)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error

    if session_user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session user cannot read another customer's codes",
        )

    return session_user_id
