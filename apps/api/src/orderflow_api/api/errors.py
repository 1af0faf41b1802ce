"""Translate service exceptions into HTTP errors carrying message/detail/hint."""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException, status

from orderflow_api.repositories.errors import BackendRejectionError


def error_body(message: str, *, detail: str | None = None, hint: str | None = None) -> dict[str, str | None]:
    return {"message": message, "detail": detail, "hint": hint}


def raise_http(status_code: int, exc: Exception, *, hint: str | None = None) -> NoReturn:
    raise HTTPException(status_code=status_code, detail=error_body(str(exc), hint=hint)) from exc


def raise_backend(exc: BackendRejectionError) -> NoReturn:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.as_dict()) from exc


__all__ = ["error_body", "raise_backend", "raise_http"]
