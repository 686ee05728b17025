"""Custom exceptions for atelier."""

from enum import Enum


class AtelierError(Exception):
    """Base exception for all atelier errors."""

    pass


class InvalidStatusError(AtelierError):
    """Raised when a status string is not part of a known status set."""

    def __init__(self, value: str, kind: str = "order"):
        self.value = value
        self.kind = kind
        super().__init__(f"Unknown {kind} status: {value!r}")


class InvalidTransitionError(AtelierError):
    """Raised when a status change is not permitted from the current status."""

    def __init__(self, current: str, target: str, entity: str = "Order"):
        self.current = current
        self.target = target
        self.entity = entity
        super().__init__(f"{entity} cannot move from '{current}' to '{target}'")


class MissingShippingInfoError(AtelierError):
    """Raised when shipping an order without a tracking number or courier."""

    def __init__(self, order_id: str, missing: list[str]):
        self.order_id = order_id
        self.missing = missing
        super().__init__(
            f"Order {order_id} cannot be shipped without: {', '.join(missing)}"
        )


class PermissionDeniedError(AtelierError):
    """Raised when an actor is not allowed to perform an operation."""

    def __init__(self, actor_id: str, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"User {actor_id or '<anonymous>'} may not {action}")


class CouponRejection(str, Enum):
    """Why a coupon could not be applied."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    MIN_PURCHASE_NOT_MET = "min_purchase_not_met"


_REJECTION_MESSAGES = {
    CouponRejection.NOT_FOUND: "Coupon not found",
    CouponRejection.INACTIVE: "Coupon is no longer active",
    CouponRejection.EXPIRED: "Coupon expired",
    CouponRejection.MIN_PURCHASE_NOT_MET: "Cart does not meet minimum purchase",
}


class CouponRejectedError(AtelierError):
    """Raised when a coupon cannot be applied to the current cart."""

    def __init__(self, code: str, reason: CouponRejection, detail: str | None = None):
        self.code = code
        self.reason = reason
        msg = f"{_REJECTION_MESSAGES[reason]}: {code}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class PersistenceError(AtelierError):
    """Raised when a store cannot be read or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Storage failure at {path}: {reason}")


class InvalidSchemaVersionError(AtelierError):
    """Raised when a data file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )


class AdvisoryServiceUnavailableError(AtelierError):
    """Raised when the text generation service cannot produce a response."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Advisory service unavailable: {reason}")


class OrderNotFoundError(AtelierError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ProductNotFoundError(AtelierError):
    """Raised when a product ID doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class CouponNotFoundError(AtelierError):
    """Raised when a coupon ID doesn't exist."""

    def __init__(self, coupon_id: str):
        self.coupon_id = coupon_id
        super().__init__(f"Coupon not found: {coupon_id}")


class DuplicateCouponError(AtelierError):
    """Raised when creating a coupon whose code is already taken."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon code already exists: {code}")


class BespokeRequestNotFoundError(AtelierError):
    """Raised when a bespoke request ID doesn't exist."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Bespoke request not found: {request_id}")


class InvalidCartError(AtelierError):
    """Raised when cart contents cannot be checked out or modified."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid cart: {reason}")


class PricingError(AtelierError):
    """Raised when pricing input is invalid."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot compute price: {reason}")


class PaymentMethodUnavailableError(AtelierError):
    """Raised when the chosen payment method is disabled."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Payment method {method} is not available")


class NotCustomizableError(AtelierError):
    """Raised when requesting tailoring for a product that doesn't offer it."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not customizable")


class OutOfStockError(AtelierError):
    """Raised when an order asks for more units than are in stock."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Product {product_id}: requested {requested}, only {available} in stock"
        )


class InvalidCouponError(AtelierError):
    """Raised when a coupon definition cannot be stored."""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"Invalid coupon {code}: {reason}")
