"""Typed errors raised by the storefront services.

Every error carries the HTTP status and the machine-readable code the REST
layer renders.
"""
from typing import Any, Optional


class StoreError(Exception):
    status_code = 400
    error_code = "BAD_REQUEST"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "errorCode": self.error_code,
            **self.details,
        }


# ── Validation ─────────────────────────────────────────────────────

class ValidationError(StoreError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class InvalidAddress(ValidationError):
    error_code = "INVALID_ADDRESS"

    def __init__(self, missing: list[str]):
        super().__init__(
            f"Shipping address is missing required fields: {', '.join(missing)}",
            {"missingFields": missing},
        )
        self.missing = missing


# ── Business rules ─────────────────────────────────────────────────

class EmptyCart(StoreError):
    status_code = 400
    error_code = "EMPTY_CART"

    def __init__(self, message: str = "Order must contain at least one item"):
        super().__init__(message)


class InsufficientStock(StoreError):
    """One or more order lines ask for more units than are available.

    ``items`` lists every failing line as
    ``{"productId", "variantId", "requested", "available"}``.
    """

    status_code = 400
    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, items: list[dict[str, Any]]):
        super().__init__("Insufficient stock for one or more items", {"items": items})
        self.items = items


class OutOfStock(StoreError):
    status_code = 409
    error_code = "OUT_OF_STOCK"

    def __init__(self, product_id, available: int, requested: int):
        super().__init__(
            f"Insufficient stock. Available: {available}",
            {"productId": str(product_id), "available": available, "requested": requested},
        )
        self.available = available


class InvalidCoupon(StoreError):
    status_code = 400
    error_code = "INVALID_COUPON"


class DuplicateDefaultAddress(StoreError):
    status_code = 409
    error_code = "DUPLICATE_DEFAULT_ADDRESS"


class InvalidStatusTransition(StoreError):
    status_code = 409
    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move order from '{current}' to '{requested}'",
            {"currentStatus": current, "requestedStatus": requested},
        )


# ── Access ─────────────────────────────────────────────────────────

class AuthenticationError(StoreError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class Forbidden(StoreError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(StoreError):
    status_code = 404
    error_code = "NOT_FOUND"


# ── Infrastructure ─────────────────────────────────────────────────

class DatabaseError(StoreError):
    status_code = 500
    error_code = "DATABASE_ERROR"


class PoolTimeoutError(DatabaseError):
    status_code = 503
    error_code = "POOL_TIMEOUT"
