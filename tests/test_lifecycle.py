"""Tests for the order state machine, checkout and auto-ship sweep."""

from datetime import timedelta

import pytest

from atelier.errors import (
    CouponRejectedError,
    InvalidCartError,
    InvalidStatusError,
    InvalidTransitionError,
    MissingShippingInfoError,
    OrderNotFoundError,
    OutOfStockError,
    PaymentMethodUnavailableError,
    PermissionDeniedError,
    PersistenceError,
)
from atelier.lifecycle import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    allowed_targets,
    apply_transition,
    can_transition,
)
from atelier.models import (
    CartItem,
    OrderStatus,
    PaymentMethod,
    PaymentSettings,
    PaymentStatus,
)

from conftest import NOW, make_coupon, make_order

S = OrderStatus


class TestTransitionTable:
    def test_pending_targets(self):
        assert allowed_targets(S.PENDING) == {S.CONFIRMED, S.CANCELLED}

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(OrderStatus)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {S.RETURNED, S.CANCELLED}

    @pytest.mark.parametrize("current,target", [
        (S.PENDING, S.CONFIRMED),
        (S.CONFIRMED, S.PACKED),
        (S.PACKED, S.SHIPPED),
        (S.SHIPPED, S.DELIVERED),
        (S.DELIVERED, S.RETURN_REQUESTED),
        (S.RETURN_REQUESTED, S.RETURNED),
        (S.RETURN_REQUESTED, S.DELIVERED),
        (S.PACKED, S.CANCELLED),
    ])
    def test_legal(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (S.PENDING, S.DELIVERED),
        (S.PENDING, S.SHIPPED),
        (S.SHIPPED, S.CANCELLED),
        (S.DELIVERED, S.CANCELLED),
        (S.CANCELLED, S.PENDING),
        (S.RETURNED, S.DELIVERED),
    ])
    def test_illegal(self, current, target):
        assert not can_transition(current, target)

    def test_unknown_status_string(self):
        with pytest.raises(InvalidStatusError):
            OrderStatus.parse("Lost")


class TestApplyTransition:
    def test_pending_to_delivered_fails(self, admin):
        order = make_order(S.PENDING)
        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_transition(order, S.DELIVERED, admin)
        assert exc_info.value.current == "Pending"
        assert exc_info.value.target == "Delivered"

    def test_appends_exactly_one_entry(self, admin):
        order = make_order(S.PENDING)
        updated, changed = apply_transition(order, S.CONFIRMED, admin, note="ok", now=NOW)

        assert changed
        assert updated.status == S.CONFIRMED
        assert len(updated.timeline) == len(order.timeline) + 1
        assert updated.timeline[-1].status == S.CONFIRMED
        assert updated.timeline[-1].note == "ok"

    def test_input_not_modified(self, admin):
        order = make_order(S.PENDING)
        apply_transition(order, S.CONFIRMED, admin)
        assert order.status == S.PENDING
        assert len(order.timeline) == 1

    def test_same_status_is_noop(self, admin):
        order = make_order(S.CONFIRMED)
        updated, changed = apply_transition(order, S.CONFIRMED, admin)
        assert not changed
        assert updated is order

    def test_shipping_requires_tracking(self, admin):
        order = make_order(S.PACKED)
        with pytest.raises(MissingShippingInfoError) as exc_info:
            apply_transition(order, S.SHIPPED, admin, courier="BlueDart")
        assert exc_info.value.missing == ["tracking number"]

    def test_shipping_requires_courier(self, admin):
        order = make_order(S.PACKED)
        with pytest.raises(MissingShippingInfoError) as exc_info:
            apply_transition(order, S.SHIPPED, admin, tracking_number="  ")
        assert exc_info.value.missing == ["tracking number", "courier"]

    def test_shipping_with_info(self, admin):
        order = make_order(S.PACKED)
        updated, _ = apply_transition(
            order, S.SHIPPED, admin, tracking_number="BD123", courier="BlueDart"
        )
        assert updated.tracking_number == "BD123"
        assert updated.courier == "BlueDart"

    def test_customer_may_cancel_before_shipping(self, customer):
        order = make_order(S.PACKED)
        updated, _ = apply_transition(order, S.CANCELLED, customer, reason="Changed my mind")
        assert updated.status == S.CANCELLED
        assert updated.cancellation_reason == "Changed my mind"

    def test_customer_may_not_confirm(self, customer):
        with pytest.raises(PermissionDeniedError):
            apply_transition(make_order(S.PENDING), S.CONFIRMED, customer)

    def test_customer_may_not_touch_other_orders(self, other_customer):
        with pytest.raises(PermissionDeniedError):
            apply_transition(make_order(S.PENDING), S.CANCELLED, other_customer)

    def test_illegal_beats_permission(self, customer):
        with pytest.raises(InvalidTransitionError):
            apply_transition(make_order(S.SHIPPED), S.CANCELLED, customer)

    def test_cod_paid_on_delivery(self, admin):
        order = make_order(S.SHIPPED, payment_method=PaymentMethod.COD)
        updated, _ = apply_transition(order, S.DELIVERED, admin)
        assert updated.payment_status == PaymentStatus.PAID

    def test_prepaid_delivery_keeps_payment_status(self, admin):
        order = make_order(S.SHIPPED, payment_method=PaymentMethod.PREPAID)
        updated, _ = apply_transition(order, S.DELIVERED, admin)
        assert updated.payment_status == PaymentStatus.PENDING

    def test_paid_cancellation_flags_refund(self, admin):
        order = make_order(S.CONFIRMED, payment_status=PaymentStatus.PAID)
        updated, _ = apply_transition(order, S.CANCELLED, admin)
        assert updated.refund_due

    def test_unpaid_cancellation_no_refund(self, admin):
        updated, _ = apply_transition(make_order(S.CONFIRMED), S.CANCELLED, admin)
        assert not updated.refund_due


class TestPlaceOrder:
    def test_creates_pending_order(self, lifecycle, customer, address, saree):
        items = [CartItem.from_product(saree, "Free Size", 2)]
        order = lifecycle.place_order(customer, items, address, PaymentMethod.PREPAID, now=NOW)

        assert order.status == S.PENDING
        assert order.user_id == customer.user_id
        assert order.subtotal == 5000
        assert order.shipping_cost == 0
        assert order.discount == 250
        assert order.total == 4750
        assert order.date == "2025-06-15"
        assert [e.status for e in order.timeline] == [S.PENDING]
        assert lifecycle.orders.get(order.id).total == 4750

    def test_takes_stock(self, lifecycle, catalog, customer, address, saree):
        items = [CartItem.from_product(saree, "Free Size", 3)]
        lifecycle.place_order(customer, items, address, PaymentMethod.PREPAID)
        assert catalog.get(saree.id).stock == 7

    def test_out_of_stock(self, lifecycle, catalog, customer, address, frock):
        items = [CartItem.from_product(frock, "6Y", 4)]
        with pytest.raises(OutOfStockError):
            lifecycle.place_order(customer, items, address, PaymentMethod.PREPAID)
        assert catalog.get(frock.id).stock == 3
        assert lifecycle.orders.list_all() == []

    def test_items_are_snapshots(self, lifecycle, customer, address, saree):
        items = [CartItem.from_product(saree, "Free Size", 1)]
        order = lifecycle.place_order(customer, items, address, PaymentMethod.PREPAID)
        items[0].price = 1
        assert order.items[0].price == 2500

    def test_empty_cart(self, lifecycle, customer, address):
        with pytest.raises(InvalidCartError):
            lifecycle.place_order(customer, [], address, PaymentMethod.COD)

    def test_cod_disabled(self, lifecycle, settings_store, customer, address, saree):
        settings_store.set(PaymentSettings(cod_enabled=False))
        items = [CartItem.from_product(saree, "Free Size", 1)]
        with pytest.raises(PaymentMethodUnavailableError):
            lifecycle.place_order(customer, items, address, PaymentMethod.COD)

    def test_with_coupon(self, lifecycle, coupons, customer, address, saree):
        coupons.create(make_coupon(code="FLAT500", discount_type="fixed", value=500))
        items = [CartItem.from_product(saree, "Free Size", 1)]
        order = lifecycle.place_order(
            customer, items, address, PaymentMethod.COD, coupon_code="flat500", now=NOW
        )
        assert order.coupon_code == "FLAT500"
        assert order.total == 2500 + 99 + 50 - 500

    def test_rejected_coupon_places_nothing(self, lifecycle, coupons, catalog, customer, address, saree):
        coupons.create(make_coupon(code="BIG", min_purchase=10000))
        items = [CartItem.from_product(saree, "Free Size", 1)]
        with pytest.raises(CouponRejectedError):
            lifecycle.place_order(customer, items, address, PaymentMethod.COD, coupon_code="BIG")
        assert lifecycle.orders.list_all() == []
        assert catalog.get(saree.id).stock == 10


class TestTransition:
    def test_persists_and_audits(self, lifecycle, orders, admin):
        order = make_order(S.PENDING)
        orders.create(order)

        updated = lifecycle.transition(order.id, "Confirmed", admin)

        assert updated.status == S.CONFIRMED
        assert orders.get(order.id).status == S.CONFIRMED
        logs = orders.list_audit_logs()
        assert logs[0].event == "order_status_changed"
        assert logs[0].metadata == {"order_id": order.id, "from": "Pending", "to": "Confirmed"}

    def test_repeat_is_idempotent(self, lifecycle, orders, admin):
        order = make_order(S.PENDING)
        orders.create(order)

        lifecycle.transition(order.id, S.CONFIRMED, admin)
        again = lifecycle.transition(order.id, S.CONFIRMED, admin)

        assert len(again.timeline) == 2
        assert len(orders.list_audit_logs()) == 1

    def test_failed_transition_writes_nothing(self, lifecycle, orders, admin):
        order = make_order(S.PENDING)
        orders.create(order)

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(order.id, S.DELIVERED, admin)

        stored = orders.get(order.id)
        assert stored.status == S.PENDING
        assert len(stored.timeline) == 1

    def test_unknown_order(self, lifecycle, admin):
        with pytest.raises(OrderNotFoundError):
            lifecycle.transition("missing", S.CONFIRMED, admin)

    def test_customer_cancel_restocks_without_audit(
        self, lifecycle, orders, catalog, customer, address, saree
    ):
        items = [CartItem.from_product(saree, "Free Size", 2)]
        order = lifecycle.place_order(customer, items, address, PaymentMethod.PREPAID)

        cancelled = lifecycle.cancel(order.id, customer, reason="Wrong colour")

        assert cancelled.status == S.CANCELLED
        assert cancelled.cancellation_reason == "Wrong colour"
        assert catalog.get(saree.id).stock == 10
        assert orders.get(order.id).restocked
        assert orders.list_audit_logs() == []

    def test_cancel_retry_finishes_failed_restock(
        self, lifecycle, orders, catalog, customer, address, saree, monkeypatch
    ):
        items = [CartItem.from_product(saree, "Free Size", 2)]
        order = lifecycle.place_order(customer, items, address, PaymentMethod.PREPAID)
        assert catalog.get(saree.id).stock == 8

        real_adjust = catalog.adjust_stock
        calls = []

        def flaky_adjust(adjustments, strict=False):
            calls.append(adjustments)
            if len(calls) == 1:
                raise PersistenceError("products.json", "disk full")
            return real_adjust(adjustments, strict)

        monkeypatch.setattr(catalog, "adjust_stock", flaky_adjust)

        with pytest.raises(PersistenceError):
            lifecycle.cancel(order.id, customer)
        stored = orders.get(order.id)
        assert stored.status == S.CANCELLED
        assert not stored.restocked
        assert catalog.get(saree.id).stock == 8

        retried = lifecycle.cancel(order.id, customer)

        assert retried.restocked
        assert len(retried.timeline) == 2
        assert catalog.get(saree.id).stock == 10

        lifecycle.cancel(order.id, customer)
        assert catalog.get(saree.id).stock == 10
        assert len(calls) == 2

    def test_return_flow(self, lifecycle, orders, catalog, customer, admin, saree):
        order = make_order(
            S.DELIVERED, product_id=saree.id, quantity=1, payment_status=PaymentStatus.PAID
        )
        orders.create(order)

        requested = lifecycle.request_return(order.id, customer, "Too long")
        assert requested.status == S.RETURN_REQUESTED
        assert requested.return_reason == "Too long"

        returned = lifecycle.approve_return(order.id, admin)
        assert returned.status == S.RETURNED
        assert returned.refund_due
        assert catalog.get(saree.id).stock == 11
        assert [e.status for e in returned.timeline] == [
            S.DELIVERED, S.RETURN_REQUESTED, S.RETURNED
        ]

    def test_return_rejection(self, lifecycle, orders, customer, admin):
        order = make_order(S.DELIVERED)
        orders.create(order)
        lifecycle.request_return(order.id, customer, "Too long")

        rejected = lifecycle.reject_return(order.id, admin)

        assert rejected.status == S.DELIVERED
        assert rejected.timeline[-1].note == "Return rejected"
        assert rejected.return_reason == "Too long"

    def test_customer_cannot_approve_return(self, lifecycle, orders, customer):
        order = make_order(S.RETURN_REQUESTED)
        orders.create(order)
        with pytest.raises(PermissionDeniedError):
            lifecycle.approve_return(order.id, customer)

    def test_ship(self, lifecycle, orders, admin):
        order = make_order(S.PACKED)
        orders.create(order)
        shipped = lifecycle.ship(order.id, admin, tracking_number="DL99", courier="Delhivery")
        assert shipped.status == S.SHIPPED
        assert orders.get(order.id).tracking_number == "DL99"

    def test_mark_payment(self, lifecycle, orders, admin, customer):
        order = make_order(S.CONFIRMED)
        orders.create(order)

        with pytest.raises(PermissionDeniedError):
            lifecycle.mark_payment(order.id, customer, "Paid")

        updated = lifecycle.mark_payment(order.id, admin, "Paid")
        assert updated.payment_status == PaymentStatus.PAID
        assert orders.list_audit_logs()[0].event == "payment_status_changed"

    def test_mark_payment_repeat_not_audited(self, lifecycle, orders, admin):
        order = make_order(S.CONFIRMED)
        orders.create(order)

        lifecycle.mark_payment(order.id, admin, "Paid")
        again = lifecycle.mark_payment(order.id, admin, PaymentStatus.PAID)

        assert again.payment_status == PaymentStatus.PAID
        assert len(orders.list_audit_logs()) == 1


class TestQueries:
    def test_customer_sees_own_orders(self, lifecycle, orders, customer, other_customer):
        mine = make_order(user_id=customer.user_id)
        theirs = make_order(user_id=other_customer.user_id)
        orders.create(mine)
        orders.create(theirs)

        assert [o.id for o in lifecycle.list_for_user(customer)] == [mine.id]
        assert lifecycle.get(mine.id, customer).id == mine.id
        with pytest.raises(PermissionDeniedError):
            lifecycle.get(theirs.id, customer)

    def test_list_all_is_admin_only(self, lifecycle, orders, customer, admin):
        orders.create(make_order())
        with pytest.raises(PermissionDeniedError):
            lifecycle.list_all(customer)
        assert len(lifecycle.list_all(admin)) == 1


class TestAutoShipSweep:
    def test_walks_each_step(self, lifecycle, orders, admin):
        old = make_order(S.PENDING, created_at=NOW - timedelta(days=5))
        orders.create(old)

        result = lifecycle.auto_ship_sweep(3, admin, now=NOW)

        assert result.shipped == [old.id]
        shipped = orders.get(old.id)
        assert shipped.status == S.SHIPPED
        assert [e.status for e in shipped.timeline] == [
            S.PENDING, S.CONFIRMED, S.PACKED, S.SHIPPED
        ]
        assert shipped.tracking_number == f"AUTO-{old.id[:8].upper()}"
        assert shipped.courier == "Atelier Express"

    def test_recent_orders_untouched(self, lifecycle, orders, admin):
        recent = make_order(S.CONFIRMED, created_at=NOW - timedelta(days=1))
        orders.create(recent)

        result = lifecycle.auto_ship_sweep(3, admin, now=NOW)

        assert result.shipped == []
        assert orders.get(recent.id).status == S.CONFIRMED

    def test_ignores_orders_past_shipping(self, lifecycle, orders, admin):
        for status in (S.SHIPPED, S.DELIVERED, S.CANCELLED):
            orders.create(make_order(status, created_at=NOW - timedelta(days=10)))

        result = lifecycle.auto_ship_sweep(3, admin, now=NOW)

        assert result.shipped == []
        assert result.skipped == {}

    def test_second_run_adds_nothing(self, lifecycle, orders, admin):
        old = make_order(S.PACKED, created_at=NOW - timedelta(days=4))
        orders.create(old)

        lifecycle.auto_ship_sweep(3, admin, now=NOW)
        second = lifecycle.auto_ship_sweep(3, admin, now=NOW)

        assert second.shipped == []
        assert len(orders.get(old.id).timeline) == 2

    def test_order_moved_mid_sweep_is_skipped(self, lifecycle, orders, admin, monkeypatch):
        old = make_order(S.PENDING, created_at=NOW - timedelta(days=5))
        orders.create(old)
        real_update = orders.update

        def update_then_cancel(order_id, mutate):
            updated = real_update(order_id, mutate)
            if updated.status == S.CONFIRMED:
                # another writer cancels between sweep steps
                real_update(
                    order_id, lambda current: apply_transition(current, S.CANCELLED, admin)[0]
                )
            return updated

        monkeypatch.setattr(orders, "update", update_then_cancel)

        result = lifecycle.auto_ship_sweep(3, admin, now=NOW)

        assert result.shipped == []
        assert result.skipped == {old.id: "status changed to Cancelled"}
        stored = orders.get(old.id)
        assert [e.status for e in stored.timeline] == [S.PENDING, S.CONFIRMED, S.CANCELLED]
        assert stored.tracking_number is None

    def test_audited(self, lifecycle, orders, admin):
        orders.create(make_order(S.PENDING, created_at=NOW - timedelta(days=4)))
        lifecycle.auto_ship_sweep(3, admin, now=NOW)
        assert orders.list_audit_logs()[0].event == "auto_ship_sweep"

    def test_admin_only(self, lifecycle, customer):
        with pytest.raises(PermissionDeniedError):
            lifecycle.auto_ship_sweep(3, customer, now=NOW)
