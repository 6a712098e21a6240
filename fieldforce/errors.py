from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


class ValidationError(ApiError):
    """Malformed or missing request data (location fields, unknown action)."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(400, code, message, details)


class ConflictError(ApiError):
    """The requested transition contradicts the current duty state.

    Returned as 400 so the mobile client can treat it as state sync: the
    details carry the conflicting session.
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(400, code, message, details)


class NotFoundError(ApiError):
    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        status_code: int = 404,
    ):
        super().__init__(status_code, code, message, details)


class PersistenceError(ApiError):
    def __init__(self, message: str = "Failed to save attendance.", details: dict[str, Any] | None = None):
        super().__init__(500, "PERSISTENCE_ERROR", message, details)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": get_request_id(request),
    }
    if details:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content={"error": error})
