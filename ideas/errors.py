from __future__ import annotations


class AppError(Exception):
    """Base error carrying the HTTP status and label used in error bodies."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message, "status": self.status_code}


class Unauthenticated(AppError):
    status_code = 401
    error = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    error = "Forbidden"


class NotFound(AppError):
    status_code = 404
    error = "Not Found"


class InvalidStatus(AppError):
    status_code = 400
    error = "Invalid Status"


class ValidationError(AppError):
    status_code = 400
    error = "Validation Error"


class RateLimited(AppError):
    status_code = 429
    error = "Rate Limit Exceeded"


class DatabaseError(AppError):
    status_code = 500
    error = "Database Error"


class ServiceError(AppError):
    status_code = 500
    error = "AI Service Error"
