"""Data models for atelier."""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import InvalidCouponError, InvalidStatusError


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return format_timestamp(datetime.now(timezone.utc))


def _generate_id() -> str:
    """Generate a new record ID."""
    return str(uuid.uuid4())


def format_timestamp(moment: datetime) -> str:
    """Format an aware datetime as an ISO 8601 UTC string ending in Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 date or datetime into an aware UTC datetime.

    A bare date ("2025-01-31") is midnight UTC of that day.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class _ParseableEnum(str, Enum):
    """String enum that raises InvalidStatusError on unknown values."""

    @classmethod
    def parse(cls, value: "str | _ParseableEnum"):
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise InvalidStatusError(str(value), kind=cls._kind())

    @classmethod
    def _kind(cls) -> str:
        return cls.__name__


class OrderStatus(_ParseableEnum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    RETURN_REQUESTED = "Return Requested"
    RETURNED = "Returned"
    CANCELLED = "Cancelled"

    @classmethod
    def _kind(cls) -> str:
        return "order"


class PaymentMethod(_ParseableEnum):
    COD = "COD"
    PREPAID = "PrePaid"

    @classmethod
    def _kind(cls) -> str:
        return "payment method"


class PaymentStatus(_ParseableEnum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"

    @classmethod
    def _kind(cls) -> str:
        return "payment"


class DiscountType(_ParseableEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def _kind(cls) -> str:
        return "discount type"


class Role(_ParseableEnum):
    CUSTOMER = "customer"
    ADMIN = "admin"

    @classmethod
    def _kind(cls) -> str:
        return "role"


class BespokeStatus(_ParseableEnum):
    PENDING = "Pending"
    CONSULTED = "Consulted"
    FULFILLED = "Fulfilled"

    @classmethod
    def _kind(cls) -> str:
        return "bespoke request"


class MeasurementUnit(_ParseableEnum):
    INCHES = "Inches"
    CM = "CM"

    @classmethod
    def _kind(cls) -> str:
        return "measurement unit"


CATEGORIES = ("Women", "Girls", "Children")


@dataclass(frozen=True)
class Actor:
    """Whoever triggers an operation: a shopper or a back-office admin."""

    user_id: str
    name: str = ""
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def admin(cls, user_id: str = "system", name: str = "System") -> "Actor":
        return cls(user_id=user_id, name=name, role=Role.ADMIN)


@dataclass
class TimelineEntry:
    """One status change in an order's history."""

    status: OrderStatus
    timestamp: str
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status.value,
            "timestamp": self.timestamp,
        }
        if self.note is not None:
            result["note"] = self.note
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelineEntry":
        return cls(
            status=OrderStatus.parse(data["status"]),
            timestamp=data["timestamp"],
            note=data.get("note"),
        )


@dataclass
class ShippingAddress:
    street: str
    city: str
    state: str
    zip: str
    country: str = "India"

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingAddress":
        return cls(
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip=data.get("zip", ""),
            country=data.get("country", ""),
        )


MEASUREMENT_FIELDS = ("bust", "waist", "hips", "length", "shoulder", "sleeve")


@dataclass
class Measurements:
    """Tailoring measurements. Each one is optional."""

    bust: float | None = None
    waist: float | None = None
    hips: float | None = None
    length: float | None = None
    shoulder: float | None = None
    sleeve: float | None = None
    unit: MeasurementUnit = MeasurementUnit.INCHES

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"unit": self.unit.value}
        for name in MEASUREMENT_FIELDS:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Measurements":
        return cls(
            unit=MeasurementUnit.parse(data.get("unit", MeasurementUnit.INCHES.value)),
            **{name: data.get(name) for name in MEASUREMENT_FIELDS},
        )


@dataclass
class Customization:
    """Bespoke options attached to a cart line."""

    measurements: Measurements
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"measurements": self.measurements.to_dict(), "notes": self.notes}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Customization":
        return cls(
            measurements=Measurements.from_dict(data.get("measurements", {})),
            notes=data.get("notes", ""),
        )


@dataclass
class Product:
    """A catalog entry."""

    id: str
    name: str
    price: float
    category: str = "Women"
    description: str = ""
    original_price: float | None = None
    sub_category: str = ""
    images: list[str] = field(default_factory=list)
    sizes: list[str] = field(default_factory=list)
    stock: int = 0
    is_offer: bool = False
    is_customizable: bool = False
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "original_price": self.original_price if self.original_price is not None else self.price,
            "category": self.category,
            "sub_category": self.sub_category,
            "images": list(self.images),
            "sizes": list(self.sizes),
            "stock": self.stock,
            "is_offer": self.is_offer,
            "is_customizable": self.is_customizable,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            price=data["price"],
            original_price=data.get("original_price"),
            category=data.get("category", "Women"),
            sub_category=data.get("sub_category", ""),
            images=list(data.get("images", [])),
            sizes=list(data.get("sizes", [])),
            stock=data.get("stock", 0),
            is_offer=data.get("is_offer", False),
            is_customizable=data.get("is_customizable", False),
            created_at=data.get("created_at", ""),
        )

    @classmethod
    def create(cls, name: str, price: float, **kwargs: Any) -> "Product":
        """Create a new product with generated ID and timestamp."""
        return cls(id=_generate_id(), name=name, price=price, created_at=_utc_now(), **kwargs)


@dataclass
class CartItem:
    """A product snapshot in the cart, later copied into an order."""

    product_id: str
    name: str
    price: float
    selected_size: str
    quantity: int = 1
    images: list[str] = field(default_factory=list)
    customization: Customization | None = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "product_id": self.product_id,
            "name": self.name,
            "images": list(self.images),
            "price": self.price,
            "selected_size": self.selected_size,
            "quantity": self.quantity,
        }
        if self.customization is not None:
            result["customization"] = self.customization.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        customization = None
        if "customization" in data:
            customization = Customization.from_dict(data["customization"])
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            images=list(data.get("images", [])),
            price=data["price"],
            selected_size=data["selected_size"],
            quantity=data.get("quantity", 1),
            customization=customization,
        )

    @classmethod
    def from_product(
        cls,
        product: Product,
        selected_size: str,
        quantity: int = 1,
        customization: Customization | None = None,
    ) -> "CartItem":
        return cls(
            product_id=product.id,
            name=product.name,
            images=list(product.images),
            price=product.price,
            selected_size=selected_size,
            quantity=quantity,
            customization=copy.deepcopy(customization),
        )


@dataclass
class Order:
    """A placed order. Status changes go through the lifecycle module only."""

    id: str
    user_id: str
    user_name: str
    items: list[CartItem]
    subtotal: float
    shipping_cost: float
    cod_fee: float
    discount: float
    total: float
    status: OrderStatus
    date: str  # human-readable creation date (YYYY-MM-DD)
    timeline: list[TimelineEntry]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    tracking_number: str | None = None
    courier: str | None = None
    return_reason: str | None = None
    cancellation_reason: str | None = None
    coupon_code: str | None = None
    refund_due: bool = False
    restocked: bool = False  # stock for a Cancelled or Returned order is back in the catalog
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "cod_fee": self.cod_fee,
            "discount": self.discount,
            "total": self.total,
            "status": self.status.value,
            "date": self.date,
            "timeline": [entry.to_dict() for entry in self.timeline],
            "shipping_address": self.shipping_address.to_dict(),
            "payment_method": self.payment_method.value,
            "payment_status": self.payment_status.value,
            "refund_due": self.refund_due,
            "restocked": self.restocked,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        for key in ("tracking_number", "courier", "return_reason", "cancellation_reason", "coupon_code"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            user_name=data.get("user_name", ""),
            items=[CartItem.from_dict(i) for i in data.get("items", [])],
            subtotal=data["subtotal"],
            shipping_cost=data.get("shipping_cost", 0),
            cod_fee=data.get("cod_fee", 0),
            discount=data.get("discount", 0),
            total=data["total"],
            status=OrderStatus.parse(data["status"]),
            date=data.get("date", ""),
            timeline=[TimelineEntry.from_dict(e) for e in data.get("timeline", [])],
            shipping_address=ShippingAddress.from_dict(data.get("shipping_address", {})),
            payment_method=PaymentMethod.parse(data["payment_method"]),
            payment_status=PaymentStatus.parse(data.get("payment_status", "Pending")),
            tracking_number=data.get("tracking_number"),
            courier=data.get("courier"),
            return_reason=data.get("return_reason"),
            cancellation_reason=data.get("cancellation_reason"),
            coupon_code=data.get("coupon_code"),
            refund_due=data.get("refund_due", False),
            restocked=data.get("restocked", False),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class Coupon:
    id: str
    code: str  # stored upper-case
    discount_type: DiscountType
    value: float
    min_purchase: float | None = None
    expiry_date: str | None = None  # ISO date or datetime
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type.value,
            "value": self.value,
            "is_active": self.is_active,
        }
        if self.min_purchase is not None:
            result["min_purchase"] = self.min_purchase
        if self.expiry_date is not None:
            result["expiry_date"] = self.expiry_date
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Coupon":
        return cls(
            id=data["id"],
            code=data["code"].upper(),
            discount_type=DiscountType.parse(data["discount_type"]),
            value=data["value"],
            min_purchase=data.get("min_purchase"),
            expiry_date=data.get("expiry_date"),
            is_active=data.get("is_active", True),
        )

    @classmethod
    def create(
        cls,
        code: str,
        discount_type: DiscountType | str,
        value: float,
        min_purchase: float | None = None,
        expiry_date: str | None = None,
    ) -> "Coupon":
        """
        Create a new active coupon with a generated ID.

        Raises:
            InvalidCouponError: expiry_date is not an ISO date or datetime.
        """
        code = code.strip().upper()
        if expiry_date is not None:
            try:
                parse_timestamp(expiry_date)
            except ValueError:
                raise InvalidCouponError(
                    code, f"expiry date {expiry_date!r} is not an ISO date"
                ) from None
        return cls(
            id=_generate_id(),
            code=code,
            discount_type=DiscountType.parse(discount_type),
            value=value,
            min_purchase=min_purchase,
            expiry_date=expiry_date,
            is_active=True,
        )


@dataclass(frozen=True)
class PaymentSettings:
    """Store-wide checkout configuration, passed explicitly into pricing."""

    cod_enabled: bool = True
    cod_fee: float = 50
    prepaid_discount: float = 5  # percent
    shipping_charge: float = 99
    free_shipping_threshold: float = 5000

    def to_dict(self) -> dict[str, Any]:
        return {
            "cod_enabled": self.cod_enabled,
            "cod_fee": self.cod_fee,
            "prepaid_discount": self.prepaid_discount,
            "shipping_charge": self.shipping_charge,
            "free_shipping_threshold": self.free_shipping_threshold,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentSettings":
        defaults = cls()
        return cls(
            cod_enabled=data.get("cod_enabled", defaults.cod_enabled),
            cod_fee=data.get("cod_fee", defaults.cod_fee),
            prepaid_discount=data.get("prepaid_discount", defaults.prepaid_discount),
            shipping_charge=data.get("shipping_charge", defaults.shipping_charge),
            free_shipping_threshold=data.get(
                "free_shipping_threshold", defaults.free_shipping_threshold
            ),
        )


@dataclass(frozen=True)
class PriceBreakdown:
    """Derived amounts for a checkout."""

    subtotal: float
    shipping_cost: float
    cod_fee: float
    prepaid_discount: float
    coupon_discount: float
    discount: float
    total: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "cod_fee": self.cod_fee,
            "prepaid_discount": self.prepaid_discount,
            "coupon_discount": self.coupon_discount,
            "discount": self.discount,
            "total": self.total,
        }


@dataclass
class BespokeRequest:
    """A tailoring consultation for a customizable product."""

    id: str
    user_id: str
    user_name: str
    user_email: str
    product_id: str
    product_name: str
    measurements: Measurements
    notes: str = ""
    status: BespokeStatus = BespokeStatus.PENDING
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "measurements": self.measurements.to_dict(),
            "notes": self.notes,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BespokeRequest":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            user_name=data.get("user_name", ""),
            user_email=data.get("user_email", ""),
            product_id=data["product_id"],
            product_name=data.get("product_name", ""),
            measurements=Measurements.from_dict(data.get("measurements", {})),
            notes=data.get("notes", ""),
            status=BespokeStatus.parse(data.get("status", "Pending")),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class AuditLog:
    """An append-only record of an administrative action."""

    id: str
    event: str
    user: str
    user_id: str
    timestamp: str
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "event": self.event,
            "user": self.user,
            "user_id": self.user_id,
            "timestamp": self.timestamp,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditLog":
        return cls(
            id=data["id"],
            event=data["event"],
            user=data.get("user", ""),
            user_id=data.get("user_id", ""),
            timestamp=data["timestamp"],
            metadata=data.get("metadata"),
        )

    @classmethod
    def record(
        cls, event: str, actor: Actor, metadata: dict[str, Any] | None = None
    ) -> "AuditLog":
        """Create an entry for an action performed now by actor."""
        return cls(
            id=_generate_id(),
            event=event,
            user=actor.name,
            user_id=actor.user_id,
            timestamp=_utc_now(),
            metadata=metadata,
        )


# Models for advisory reports


@dataclass
class RestockSuggestion:
    product_id: str
    product_name: str
    current_stock: int
    units_sold: int
    avg_daily_sales: float
    suggested_reorder: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "current_stock": self.current_stock,
            "units_sold": self.units_sold,
            "avg_daily_sales": self.avg_daily_sales,
            "suggested_reorder": self.suggested_reorder,
        }


@dataclass
class SalesSummary:
    days: int
    order_count: int
    revenue: float
    units: int
    by_status: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "days": self.days,
            "order_count": self.order_count,
            "revenue": self.revenue,
            "units": self.units,
            "by_status": dict(self.by_status),
        }


@dataclass
class SweepResult:
    """Outcome of an auto-ship sweep."""

    shipped: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"shipped": list(self.shipped), "skipped": dict(self.skipped)}
