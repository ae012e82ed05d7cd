"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Engine operations
return core.result.Result; routers turn failed results into these.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any

from core.result import ErrorKind, Result


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str = "", detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., a second default schedule)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class ServiceUnavailableError(APIException):
    """Backing store unavailable; the caller may retry later."""

    def __init__(self, detail: str = "Storage temporarily unavailable"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="PERSISTENCE_FAILURE"
        )


def raise_for_result(result: Result, resource: str = "Resource", identifier: str = "") -> None:
    """Raise the API exception matching a failed Result; no-op on success."""
    if result.ok:
        return
    if result.kind == ErrorKind.NOT_FOUND:
        if identifier:
            raise NotFoundError(resource, identifier)
        raise NotFoundError(resource, detail=result.message)
    if result.kind == ErrorKind.VALIDATION:
        raise ValidationError(result.message)
    if result.kind in (ErrorKind.CONFLICT, ErrorKind.ALREADY_DELIVERED):
        raise ConflictError(result.message)
    raise ServiceUnavailableError(result.message)
