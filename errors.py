"""
Domain errors. Each carries the HTTP status the API reports it with, so the
exception handlers in main.py only need to render the envelope.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error. Please try again later."

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid input"


class DuplicateEmail(AppError):
    status_code = 400
    default_message = "User already exists with this email"


class AlreadyVerified(AppError):
    status_code = 400
    default_message = "Account is already verified"


class InvalidOtp(AppError):
    status_code = 400
    default_message = "Invalid or expired OTP"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class RateLimited(AppError):
    status_code = 429
    default_message = "Please wait before requesting another OTP or maximum resend limit reached"


class InvalidCredentials(AppError):
    status_code = 401
    default_message = "Invalid email or password"


class UnverifiedAccount(AppError):
    status_code = 401
    default_message = "Please verify your email before logging in"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, extra={"requiresVerification": True})


class InvalidToken(AppError):
    status_code = 401
    default_message = "Invalid token"


class InternalError(AppError):
    status_code = 500


# Human messages keyed by the field path with list indexes and the request
# "body" prefix removed.
FIELD_MESSAGES = {
    "name": "Name must be at least 2 characters long",
    "email": "Please enter a valid email",
    "password": "Password must be at least 6 characters long",
    "phone": "Please enter a valid 10-digit phone number",
    "items": "Order items are required",
    "items.quantity": "Quantity must be at least 1",
    "items.price": "Item price must be a non-negative number",
    "shippingAddress": "Shipping address is required",
    "shippingAddress.pincode": "Please enter a valid 6-digit pincode",
    "shippingAddress.phone": "Please enter a valid 10-digit phone number",
}


def _field_path(loc) -> str:
    parts = [str(p) for p in loc if not isinstance(p, int)]
    if parts and parts[0] == "body":
        parts = parts[1:]
    return ".".join(parts)


def validation_error_from(exc) -> ValidationError:
    """Collapse a pydantic error list into one readable ValidationError."""
    messages = []
    for err in exc.errors():
        path = _field_path(err.get("loc", ()))
        message = FIELD_MESSAGES.get(path)
        if message is None:
            message = f"{path}: {err.get('msg')}" if path else err.get("msg")
        if message not in messages:
            messages.append(message)
    return ValidationError(", ".join(messages))
