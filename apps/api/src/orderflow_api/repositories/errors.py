"""Errors raised when the store refuses a write."""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError


class BackendRejectionError(RuntimeError):
    """The backing store rejected a write (constraint violation, zero rows affected, ...).

    Carries the message/detail/hint triple the API hands back to the initiating user.
    """

    def __init__(self, message: str, *, detail: str | None = None, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.hint = hint

    def as_dict(self) -> dict[str, str | None]:
        return {"message": self.message, "detail": self.detail, "hint": self.hint}

    @classmethod
    def from_sqlalchemy(cls, exc: SQLAlchemyError, *, action: str) -> "BackendRejectionError":
        detail = None
        if isinstance(exc, DBAPIError) and exc.orig is not None:
            detail = str(exc.orig)
        hint = None
        if isinstance(exc, IntegrityError):
            hint = "The record conflicts with existing data; reload and try again."
        return cls(f"Could not {action}", detail=detail or str(exc), hint=hint)


__all__ = ["BackendRejectionError"]
