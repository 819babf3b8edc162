from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class ValidationError(ApiError):
    def __init__(self, message: str = "Request validation failed."):
        super().__init__(status_code=400, code="VALIDATION_ERROR", message=message)


class InvalidCredentials(ApiError):
    """Login failure; the message never reveals whether the account exists."""

    def __init__(self) -> None:
        super().__init__(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")


class InvalidCurrentPassword(ApiError):
    def __init__(self) -> None:
        super().__init__(
            status_code=401,
            code="INVALID_CURRENT_PASSWORD",
            message="Current password is incorrect.",
        )


class Unauthenticated(ApiError):
    def __init__(self, message: str = "Invalid or expired staff session."):
        super().__init__(status_code=401, code="UNAUTHENTICATED", message=message)


class Forbidden(ApiError):
    def __init__(self, message: str = "Insufficient permissions."):
        super().__init__(status_code=403, code="FORBIDDEN", message=message)


class NotFound(ApiError):
    def __init__(self, message: str = "Resource not found."):
        super().__init__(status_code=404, code="NOT_FOUND", message=message)


class Conflict(ApiError):
    def __init__(self, message: str):
        super().__init__(status_code=409, code="CONFLICT", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
