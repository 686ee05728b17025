"""Tests for bespoke tailoring requests."""

import pytest

from atelier.bespoke import advance_request, submit_request
from atelier.errors import (
    BespokeRequestNotFoundError,
    InvalidTransitionError,
    NotCustomizableError,
    PermissionDeniedError,
)
from atelier.models import BespokeStatus, Measurements, MeasurementUnit


@pytest.fixture
def request_(bespoke_store, customer, saree):
    return submit_request(
        bespoke_store,
        customer,
        saree,
        Measurements(bust=86, waist=70, unit=MeasurementUnit.CM),
        notes="Boat neck blouse",
        email="meera@example.com",
    )


class TestSubmit:
    def test_creates_pending(self, bespoke_store, request_, customer, saree):
        assert request_.status == BespokeStatus.PENDING
        assert request_.product_name == saree.name
        assert request_.user_email == "meera@example.com"
        assert bespoke_store.list_by_user(customer.user_id)[0].id == request_.id

    def test_not_customizable(self, bespoke_store, customer, frock):
        with pytest.raises(NotCustomizableError):
            submit_request(bespoke_store, customer, frock, Measurements())


class TestAdvance:
    def test_full_progression(self, bespoke_store, orders, request_, admin):
        advance_request(bespoke_store, request_.id, "Consulted", admin, audit=orders)
        done = advance_request(bespoke_store, request_.id, BespokeStatus.FULFILLED, admin, audit=orders)

        assert done.status == BespokeStatus.FULFILLED
        events = [e.metadata["to"] for e in orders.list_audit_logs()]
        assert sorted(events) == ["Consulted", "Fulfilled"]

    def test_cannot_skip(self, bespoke_store, request_, admin):
        with pytest.raises(InvalidTransitionError) as exc_info:
            advance_request(bespoke_store, request_.id, "Fulfilled", admin)
        assert exc_info.value.entity == "Bespoke request"

    def test_repeat_is_noop(self, bespoke_store, orders, request_, admin):
        advance_request(bespoke_store, request_.id, "Pending", admin, audit=orders)
        assert orders.list_audit_logs() == []

    def test_admin_only(self, bespoke_store, request_, customer):
        with pytest.raises(PermissionDeniedError):
            advance_request(bespoke_store, request_.id, "Consulted", customer)

    def test_unknown_request(self, bespoke_store, admin):
        with pytest.raises(BespokeRequestNotFoundError):
            advance_request(bespoke_store, "missing", "Consulted", admin)
