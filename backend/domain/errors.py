"""
Domain exceptions for the storefront API.

Each class fixes its HTTP status; main.py renders them all through one
handler as {"success": false, "error": {"code", "message", "details"}},
where `code` is the class name without "Error", lower-cased
(NotFoundError -> "notfound").
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class: a message for the client plus optional structured details."""

    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict | None = None, headers: dict | None = None):
        super().__init__(status_code=self.http_status, detail=message, headers=headers)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """Input rejected by a service-level check (400)."""

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, details=details)


class UnauthorizedError(DomainError):
    """Missing, invalid or revoked session (401)."""

    http_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, details=details)


class PermissionDeniedError(DomainError):
    """Authenticated, but the wrong kind of session or a disabled feature (403)."""

    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, details=details)


class NotFoundError(DomainError):
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        super().__init__(f"{resource_type} not found: {identifier}", details=details)


class ConflictError(DomainError):
    """State conflict: duplicate email or key, order in the wrong status (409)."""

    http_status = status.HTTP_409_CONFLICT


class OutOfStockError(ConflictError):
    """Fewer unused keys than the quantity requested at checkout (409)."""

    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}",
            details={"productId": product_id, "available": available, "requested": requested},
        )


class RateLimitError(DomainError):
    http_status = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Rate limit exceeded", details: dict | None = None, headers: dict | None = None):
        super().__init__(message, details=details, headers=headers)


class PaymentProviderError(DomainError):
    """AbacatePay unreachable, misconfigured or answering with an error (502)."""

    http_status = status.HTTP_502_BAD_GATEWAY
