from typing import Optional


class ExpenseTrackerError(ValueError):
    """Base for failures reported to API clients as ``{"error": {code, message}}``."""

    code = "ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ExpenseTrackerError):
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class Unauthorized(ExpenseTrackerError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class InvalidCredentials(ExpenseTrackerError):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Invalid email or password"


class RateLimited(ExpenseTrackerError):
    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Too many login attempts, try again later"


class Duplicate(ExpenseTrackerError):
    code = "DUPLICATE"
    default_message = "Category already exists"


class Forbidden(ExpenseTrackerError):
    code = "FORBIDDEN"
    default_message = "Operation not allowed"


class NotFound(ExpenseTrackerError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class InvalidCategory(ExpenseTrackerError):
    code = "INVALID_CATEGORY"
    default_message = "Category not found"


class InvalidRequest(ExpenseTrackerError):
    code = "INVALID_REQUEST"
    default_message = "Missing required header"


def error_body(code: str, message: str) -> dict[str, dict[str, str]]:
    return {"error": {"code": code, "message": message}}
