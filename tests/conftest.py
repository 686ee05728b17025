"""Pytest fixtures for atelier tests."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from atelier.lifecycle import OrderLifecycle
from atelier.models import (
    Actor,
    CartItem,
    Coupon,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentSettings,
    PaymentStatus,
    Product,
    Role,
    ShippingAddress,
    TimelineEntry,
    _generate_id,
    format_timestamp,
)
from atelier.stores import BespokeStore, CatalogStore, CouponStore, OrderStore, SettingsStore

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_dir(temp_dir, monkeypatch):
    """Point the default data directory at a fresh temp dir."""
    path = temp_dir / "data"
    monkeypatch.setattr("atelier.storage.DATA_DIR", path)
    return path


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", name="Asha Admin", role=Role.ADMIN)


@pytest.fixture
def customer():
    return Actor(user_id="cust-1", name="Meera", role=Role.CUSTOMER)


@pytest.fixture
def other_customer():
    return Actor(user_id="cust-2", name="Rhea", role=Role.CUSTOMER)


@pytest.fixture
def address():
    return ShippingAddress(
        street="12 Linking Road", city="Mumbai", state="MH", zip="400050", country="India"
    )


@pytest.fixture
def catalog(temp_dir):
    return CatalogStore(temp_dir)


@pytest.fixture
def orders(temp_dir):
    return OrderStore(temp_dir)


@pytest.fixture
def coupons(temp_dir):
    return CouponStore(temp_dir)


@pytest.fixture
def settings_store(temp_dir):
    return SettingsStore(temp_dir)


@pytest.fixture
def bespoke_store(temp_dir):
    return BespokeStore(temp_dir)


@pytest.fixture
def lifecycle(orders, catalog, settings_store, coupons):
    return OrderLifecycle(orders=orders, catalog=catalog, settings=settings_store, coupons=coupons)


@pytest.fixture
def saree(catalog):
    """A customizable product with stock."""
    product = Product.create(
        name="Banarasi Silk Saree",
        price=2500,
        category="Women",
        sub_category="Sarees",
        sizes=["Free Size"],
        stock=10,
        is_customizable=True,
    )
    catalog.create(product)
    return product


@pytest.fixture
def frock(catalog):
    product = Product.create(
        name="Tulle Party Frock",
        price=1200,
        category="Girls",
        sub_category="Frocks",
        sizes=["4Y", "6Y", "8Y"],
        stock=3,
    )
    catalog.create(product)
    return product


def make_order(
    status: OrderStatus = OrderStatus.PENDING,
    user_id: str = "cust-1",
    payment_method: PaymentMethod = PaymentMethod.PREPAID,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    created_at: datetime = NOW,
    product_id: str = "prod-1",
    quantity: int = 1,
    order_id: str | None = None,
) -> Order:
    """Build an order directly in a given status, bypassing checkout."""
    stamp = format_timestamp(created_at)
    return Order(
        id=order_id or _generate_id(),
        user_id=user_id,
        user_name="Meera",
        items=[CartItem(product_id=product_id, name="Kurta", price=1000,
                        selected_size="M", quantity=quantity)],
        subtotal=1000 * quantity,
        shipping_cost=99,
        cod_fee=0,
        discount=0,
        total=1000 * quantity + 99,
        status=status,
        date=created_at.date().isoformat(),
        timeline=[TimelineEntry(status=status, timestamp=stamp)],
        shipping_address=ShippingAddress("1 MG Road", "Pune", "MH", "411001", "India"),
        payment_method=payment_method,
        payment_status=payment_status,
        created_at=stamp,
        updated_at=stamp,
    )


def make_coupon(code="SAVE20", discount_type="percentage", value=20, **kwargs) -> Coupon:
    return Coupon.create(code=code, discount_type=discount_type, value=value, **kwargs)


def default_settings(**overrides) -> PaymentSettings:
    return PaymentSettings(**overrides)
