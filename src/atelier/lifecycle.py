"""Order lifecycle: the status state machine, checkout, and the auto-ship sweep."""

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from .errors import (
    InvalidCartError,
    InvalidTransitionError,
    MissingShippingInfoError,
    PaymentMethodUnavailableError,
    PermissionDeniedError,
)
from .models import (
    Actor,
    AuditLog,
    CartItem,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentSettings,
    PaymentStatus,
    ShippingAddress,
    SweepResult,
    TimelineEntry,
    _generate_id,
    format_timestamp,
    parse_timestamp,
)
from .pricing import apply_coupon, cart_subtotal, compute_price
from .stores import CatalogStore, CouponStore, OrderStore, SettingsStore

logger = logging.getLogger(__name__)

S = OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PACKED, S.CANCELLED}),
    S.PACKED: frozenset({S.SHIPPED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset({S.RETURN_REQUESTED}),
    S.RETURN_REQUESTED: frozenset({S.RETURNED, S.DELIVERED}),
    S.RETURNED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# (from, to) pairs a customer may trigger on their own order
CUSTOMER_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset({
    (S.PENDING, S.CANCELLED),
    (S.CONFIRMED, S.CANCELLED),
    (S.PACKED, S.CANCELLED),
    (S.DELIVERED, S.RETURN_REQUESTED),
})

# Happy path the auto-ship sweep walks, one legal step at a time
SHIPPING_PATH: tuple[OrderStatus, ...] = (S.PENDING, S.CONFIRMED, S.PACKED, S.SHIPPED)

RESTOCKING_STATUSES = frozenset({S.CANCELLED, S.RETURNED})


def allowed_targets(status: OrderStatus) -> frozenset[OrderStatus]:
    return TRANSITIONS[status]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def _check_owner(order: Order, actor: Actor) -> None:
    if not actor.is_admin and actor.user_id != order.user_id:
        raise PermissionDeniedError(actor.user_id, f"access order {order.id}")


def apply_transition(
    order: Order,
    target: OrderStatus,
    actor: Actor,
    *,
    note: str | None = None,
    tracking_number: str | None = None,
    courier: str | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> tuple[Order, bool]:
    """
    Move an order to a new status.

    The input order is never modified. On success a copy is returned with
    exactly one new timeline entry appended. A request for the status the
    order already has is a no-op and returns (order, False).

    Raises:
        PermissionDeniedError: Customer acting on someone else's order, or
            asking for an admin-only change.
        InvalidTransitionError: Target not reachable from current status.
        MissingShippingInfoError: Shipping without tracking number or courier.
    """
    _check_owner(order, actor)

    current = order.status
    if target == current:
        return order, False

    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)

    if not actor.is_admin and (current, target) not in CUSTOMER_TRANSITIONS:
        raise PermissionDeniedError(
            actor.user_id, f"move order {order.id} to {target.value}"
        )

    if target == S.SHIPPED:
        missing = []
        if not (tracking_number and tracking_number.strip()):
            missing.append("tracking number")
        if not (courier and courier.strip()):
            missing.append("courier")
        if missing:
            raise MissingShippingInfoError(order.id, missing)

    moment = now or datetime.now(timezone.utc)
    updated = copy.deepcopy(order)
    updated.status = target
    updated.timeline.append(
        TimelineEntry(status=target, timestamp=format_timestamp(moment), note=note)
    )

    paid = updated.payment_status == PaymentStatus.PAID
    if target == S.SHIPPED:
        updated.tracking_number = tracking_number.strip()
        updated.courier = courier.strip()
    elif target == S.RETURN_REQUESTED:
        updated.return_reason = reason or note
    elif target == S.CANCELLED:
        updated.cancellation_reason = reason or note
        updated.refund_due = paid
    elif target == S.RETURNED:
        updated.refund_due = paid
    elif target == S.DELIVERED and current == S.SHIPPED:
        if updated.payment_method == PaymentMethod.COD:
            updated.payment_status = PaymentStatus.PAID

    return updated, True


def _next_shipping_step(status: OrderStatus) -> OrderStatus | None:
    if status not in SHIPPING_PATH or status == S.SHIPPED:
        return None
    return SHIPPING_PATH[SHIPPING_PATH.index(status) + 1]


class OrderLifecycle:
    """
    Checkout and status changes against the order store.

    All status changes go through transition(), which validates and writes
    inside a single locked read-modify-write.
    """

    def __init__(
        self,
        orders: OrderStore,
        catalog: CatalogStore | None = None,
        settings: SettingsStore | None = None,
        coupons: CouponStore | None = None,
    ):
        self.orders = orders
        self.catalog = catalog
        self.settings = settings
        self.coupons = coupons

    # --- Checkout ---

    def place_order(
        self,
        actor: Actor,
        items: Iterable[CartItem],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        coupon_code: str | None = None,
        now: datetime | None = None,
        payment_settings: PaymentSettings | None = None,
    ) -> Order:
        """
        Create a Pending order from cart contents.

        Items are deep-copied so later catalog or cart changes don't reach
        the order. Stock is taken from the catalog when one is attached.

        Raises:
            InvalidCartError: Empty cart or a line with quantity below 1.
            PaymentMethodUnavailableError: COD chosen while disabled.
            CouponRejectedError: Coupon missing, inactive, expired or unmet.
            OutOfStockError: Not enough stock for a line.
        """
        lines = [copy.deepcopy(item) for item in items]
        if not lines:
            raise InvalidCartError("cart is empty")
        for line in lines:
            if line.quantity < 1:
                raise InvalidCartError(f"quantity for {line.product_id} must be at least 1")

        settings = payment_settings
        if settings is None:
            settings = self.settings.get() if self.settings else PaymentSettings()
        if payment_method == PaymentMethod.COD and not settings.cod_enabled:
            raise PaymentMethodUnavailableError(payment_method.value)

        moment = now or datetime.now(timezone.utc)
        subtotal = cart_subtotal(lines)
        coupon = None
        if coupon_code:
            available = self.coupons.list() if self.coupons else []
            coupon = apply_coupon(coupon_code, available, subtotal, moment)

        price = compute_price(subtotal, payment_method, settings, coupon, moment)
        stamp = format_timestamp(moment)
        order = Order(
            id=_generate_id(),
            user_id=actor.user_id,
            user_name=actor.name,
            items=lines,
            subtotal=price.subtotal,
            shipping_cost=price.shipping_cost,
            cod_fee=price.cod_fee,
            discount=price.discount,
            total=price.total,
            status=S.PENDING,
            date=moment.date().isoformat(),
            timeline=[TimelineEntry(status=S.PENDING, timestamp=stamp, note="Order placed")],
            shipping_address=copy.deepcopy(shipping_address),
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            coupon_code=coupon.code if coupon else None,
            created_at=stamp,
            updated_at=stamp,
        )

        taken = self._stock_deltas(lines, sign=-1)
        if self.catalog and taken:
            self.catalog.adjust_stock(taken, strict=True)
        try:
            self.orders.create(order)
        except Exception:
            if self.catalog and taken:
                self.catalog.adjust_stock({k: -v for k, v in taken.items()})
            raise

        logger.info(
            "Order %s placed by %s: total %s (%s)",
            order.id, actor.user_id, order.total, payment_method.value,
        )
        return order

    @staticmethod
    def _stock_deltas(items: Iterable[CartItem], sign: int) -> dict[str, int]:
        deltas: dict[str, int] = {}
        for item in items:
            deltas[item.product_id] = deltas.get(item.product_id, 0) + sign * item.quantity
        return deltas

    # --- Transitions ---

    def transition(
        self,
        order_id: str,
        target: OrderStatus | str,
        actor: Actor,
        *,
        note: str | None = None,
        tracking_number: str | None = None,
        courier: str | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Order:
        """Validate and persist a status change. Repeating the current status is a no-op."""
        target = OrderStatus.parse(target)
        previous: list[OrderStatus] = []

        def mutate(current: Order) -> Order:
            previous.append(current.status)
            updated, changed = apply_transition(
                current,
                target,
                actor,
                note=note,
                tracking_number=tracking_number,
                courier=courier,
                reason=reason,
                now=now,
            )
            return updated if changed else current

        order = self.orders.update(order_id, mutate)
        changed = previous[0] != order.status
        if changed:
            logger.info(
                "Order %s: %s -> %s by %s",
                order_id, previous[0].value, order.status.value, actor.user_id,
            )

        # A repeat request finishes a restock that failed after the status write
        if order.status in RESTOCKING_STATUSES and not order.restocked and self.catalog:
            order = self._restock(order)

        if changed and actor.is_admin:
            self.orders.append_audit_log(AuditLog.record(
                "order_status_changed",
                actor,
                {"order_id": order_id, "from": previous[0].value, "to": order.status.value},
            ))
        return order

    def _restock(self, order: Order) -> Order:
        self.catalog.adjust_stock(self._stock_deltas(order.items, sign=1))

        def mark(current: Order) -> Order:
            updated = copy.deepcopy(current)
            updated.restocked = True
            return updated

        logger.info("Order %s: stock returned to catalog", order.id)
        return self.orders.update(order.id, mark)

    def cancel(self, order_id: str, actor: Actor, reason: str | None = None) -> Order:
        return self.transition(order_id, S.CANCELLED, actor, reason=reason, note=reason)

    def request_return(self, order_id: str, actor: Actor, reason: str) -> Order:
        return self.transition(order_id, S.RETURN_REQUESTED, actor, reason=reason, note=reason)

    def approve_return(self, order_id: str, actor: Actor, note: str | None = None) -> Order:
        return self.transition(order_id, S.RETURNED, actor, note=note or "Return approved")

    def reject_return(self, order_id: str, actor: Actor, note: str | None = None) -> Order:
        return self.transition(order_id, S.DELIVERED, actor, note=note or "Return rejected")

    def ship(
        self, order_id: str, actor: Actor, tracking_number: str, courier: str,
        note: str | None = None,
    ) -> Order:
        return self.transition(
            order_id, S.SHIPPED, actor,
            tracking_number=tracking_number, courier=courier, note=note,
        )

    def mark_payment(self, order_id: str, actor: Actor, status: PaymentStatus | str) -> Order:
        """Record a payment outcome. Admin only."""
        if not actor.is_admin:
            raise PermissionDeniedError(actor.user_id, "update payment status")
        status = PaymentStatus.parse(status)

        previous: list[PaymentStatus] = []

        def mutate(current: Order) -> Order:
            previous.append(current.payment_status)
            if current.payment_status == status:
                return current
            updated = copy.deepcopy(current)
            updated.payment_status = status
            return updated

        order = self.orders.update(order_id, mutate)
        if previous[0] == status:
            return order
        self.orders.append_audit_log(AuditLog.record(
            "payment_status_changed", actor, {"order_id": order_id, "status": status.value}
        ))
        return order

    # --- Queries ---

    def get(self, order_id: str, actor: Actor) -> Order:
        order = self.orders.get(order_id)
        _check_owner(order, actor)
        return order

    def list_for_user(self, actor: Actor) -> list[Order]:
        return self.orders.list_by_user(actor.user_id)

    def list_all(self, actor: Actor) -> list[Order]:
        if not actor.is_admin:
            raise PermissionDeniedError(actor.user_id, "list all orders")
        return self.orders.list_all()

    # --- Automation ---

    def auto_ship_sweep(
        self,
        after_days: int,
        actor: Actor,
        courier: str = "Atelier Express",
        now: datetime | None = None,
    ) -> SweepResult:
        """
        Ship orders that have waited longer than after_days.

        Each candidate walks Pending -> Confirmed -> Packed -> Shipped, one
        timeline entry per step. Every step re-reads the order inside the
        store lock, so overlapping sweeps never append duplicates.
        """
        if not actor.is_admin:
            raise PermissionDeniedError(actor.user_id, "run the auto-ship sweep")

        moment = now or datetime.now(timezone.utc)
        cutoff = moment - timedelta(days=after_days)
        result = SweepResult()

        for order in self.orders.list_all():
            if _next_shipping_step(order.status) is None:
                continue
            if parse_timestamp(order.created_at) > cutoff:
                continue
            tracking = f"AUTO-{order.id[:8].upper()}"
            note = f"Auto-advanced after {after_days} day(s)"

            def mutate(current: Order) -> Order:
                step = _next_shipping_step(current.status)
                if step is None:
                    return current
                updated, _ = apply_transition(
                    current, step, actor,
                    note=note, tracking_number=tracking, courier=courier, now=moment,
                )
                return updated

            while True:
                current = self.orders.update(order.id, mutate)
                if _next_shipping_step(current.status) is None:
                    break

            if current.status == S.SHIPPED and current.tracking_number == tracking:
                result.shipped.append(order.id)
            else:
                result.skipped[order.id] = f"status changed to {current.status.value}"
                logger.warning(
                    "Auto-ship skipped order %s: now %s", order.id, current.status.value
                )

        if result.shipped:
            self.orders.append_audit_log(AuditLog.record(
                "auto_ship_sweep", actor,
                {"after_days": after_days, "shipped": list(result.shipped)},
            ))
        logger.info(
            "Auto-ship sweep: %d shipped, %d skipped",
            len(result.shipped), len(result.skipped),
        )
        return result
