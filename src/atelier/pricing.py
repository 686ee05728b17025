"""Checkout pricing: shipping, COD fee, prepaid and coupon discounts."""

import math
from datetime import datetime, timezone
from typing import Iterable

from .errors import CouponRejectedError, CouponRejection, PricingError
from .models import (
    CartItem,
    Coupon,
    DiscountType,
    PaymentMethod,
    PaymentSettings,
    PriceBreakdown,
    parse_timestamp,
)


def round_amount(value: float) -> int:
    """Round half up to a whole currency unit."""
    return math.floor(value + 0.5)


def cart_subtotal(items: Iterable[CartItem]) -> float:
    """Sum of price * quantity over all lines."""
    return sum(item.line_total for item in items)


def is_expired(coupon: Coupon, now: datetime) -> bool:
    if not coupon.expiry_date:
        return False
    return parse_timestamp(coupon.expiry_date) < now


def coupon_rejection(
    coupon: Coupon, subtotal: float, now: datetime | None = None
) -> CouponRejection | None:
    """Return why the coupon can't be used for this subtotal, or None."""
    now = now or datetime.now(timezone.utc)
    if not coupon.is_active:
        return CouponRejection.INACTIVE
    if is_expired(coupon, now):
        return CouponRejection.EXPIRED
    if coupon.min_purchase and subtotal < coupon.min_purchase:
        return CouponRejection.MIN_PURCHASE_NOT_MET
    return None


def validate_coupon(coupon: Coupon, subtotal: float, now: datetime | None = None) -> None:
    """
    Check that a coupon may be applied to a cart with the given subtotal.

    Raises:
        CouponRejectedError: If the coupon is inactive, expired, or the
            subtotal is below its minimum purchase.
    """
    reason = coupon_rejection(coupon, subtotal, now)
    if reason is None:
        return
    detail = None
    if reason == CouponRejection.EXPIRED:
        detail = f"expired {coupon.expiry_date}"
    elif reason == CouponRejection.MIN_PURCHASE_NOT_MET:
        detail = f"minimum {coupon.min_purchase}, cart {subtotal}"
    raise CouponRejectedError(coupon.code, reason, detail)


def apply_coupon(
    code: str,
    coupons: Iterable[Coupon],
    subtotal: float,
    now: datetime | None = None,
) -> Coupon:
    """
    Look up a coupon by code (case-insensitive) and validate it.

    Returns:
        The matching coupon. Nothing is reserved or persisted.

    Raises:
        CouponRejectedError: If no coupon matches or validation fails.
    """
    wanted = code.strip().upper()
    for coupon in coupons:
        if coupon.code.upper() == wanted:
            validate_coupon(coupon, subtotal, now)
            return coupon
    raise CouponRejectedError(wanted, CouponRejection.NOT_FOUND)


def coupon_discount(coupon: Coupon, subtotal: float) -> float:
    if coupon.discount_type == DiscountType.FIXED:
        return coupon.value
    return round_amount(subtotal * coupon.value / 100)


def compute_price(
    subtotal: float,
    payment_method: PaymentMethod,
    settings: PaymentSettings,
    coupon: Coupon | None = None,
    now: datetime | None = None,
) -> PriceBreakdown:
    """
    Derive the payable amounts for a checkout.

    Pure: the only time dependency is the coupon expiry check against now.
    A coupon that fails validation contributes no discount here; callers
    reject it earlier through apply_coupon.
    """
    if subtotal < 0:
        raise PricingError(f"subtotal must be non-negative, got {subtotal}")

    shipping_cost = 0 if subtotal >= settings.free_shipping_threshold else settings.shipping_charge

    cod_fee = 0
    if payment_method == PaymentMethod.COD and settings.cod_enabled:
        cod_fee = settings.cod_fee

    prepaid_discount = 0
    if payment_method == PaymentMethod.PREPAID:
        prepaid_discount = round_amount(subtotal * settings.prepaid_discount / 100)

    coupon_amount: float = 0
    if coupon is not None and coupon_rejection(coupon, subtotal, now) is None:
        coupon_amount = coupon_discount(coupon, subtotal)

    # Discount never exceeds what is being charged.
    gross = subtotal + shipping_cost + cod_fee
    prepaid_discount = min(prepaid_discount, gross)
    coupon_amount = max(0, min(coupon_amount, gross - prepaid_discount))
    discount = prepaid_discount + coupon_amount

    total = max(0, gross - discount)
    return PriceBreakdown(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        cod_fee=cod_fee,
        prepaid_discount=prepaid_discount,
        coupon_discount=coupon_amount,
        discount=discount,
        total=total,
    )
