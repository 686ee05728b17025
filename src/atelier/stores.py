"""Catalog, order, audit, coupon, settings and bespoke request stores."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from .errors import (
    BespokeRequestNotFoundError,
    CouponNotFoundError,
    DuplicateCouponError,
    OrderNotFoundError,
    OutOfStockError,
    ProductNotFoundError,
)
from .models import (
    AuditLog,
    BespokeRequest,
    Coupon,
    Order,
    PaymentSettings,
    Product,
    _utc_now,
)
from .storage import SCHEMA_VERSION, JsonDocumentStore

logger = logging.getLogger(__name__)

# Fields a partial product update may not touch
_PRODUCT_READONLY = {"id", "created_at"}


class CatalogStore(JsonDocumentStore):
    """Product records, queryable by category and free text."""

    filename = "products.json"
    collection = "products"

    def list(self, category: str | None = None, query: str | None = None) -> list[Product]:
        """
        List products, optionally filtered.

        Args:
            category: Exact category match (e.g. "Women").
            query: Case-insensitive substring of name or sub-category.
        """
        products = [Product.from_dict(p) for p in self._records()]
        if category:
            products = [p for p in products if p.category == category]
        if query:
            needle = query.lower()
            products = [
                p for p in products
                if needle in p.name.lower() or needle in p.sub_category.lower()
            ]
        return products

    def get(self, product_id: str) -> Product:
        records = self._records()
        idx = self._find(records, product_id)
        if idx is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(records[idx])

    def create(self, product: Product) -> str:
        with self._lock():
            data = self._load_data()
            data["products"].append(product.to_dict())
            self._save_data(data)
        logger.info("Created product %s (%s)", product.id, product.name)
        return product.id

    def update(self, product_id: str, partial: dict[str, Any]) -> Product:
        """Merge partial fields into a product and return the result."""
        with self._lock():
            data = self._load_data()
            idx = self._find(data["products"], product_id)
            if idx is None:
                raise ProductNotFoundError(product_id)
            merged = dict(data["products"][idx])
            merged.update({k: v for k, v in partial.items() if k not in _PRODUCT_READONLY})
            product = Product.from_dict(merged)
            data["products"][idx] = product.to_dict()
            self._save_data(data)
        return product

    def delete(self, product_id: str) -> Product:
        with self._lock():
            data = self._load_data()
            idx = self._find(data["products"], product_id)
            if idx is None:
                raise ProductNotFoundError(product_id)
            removed = Product.from_dict(data["products"].pop(idx))
            self._save_data(data)
        return removed

    def adjust_stock(self, adjustments: dict[str, int], strict: bool = False) -> None:
        """
        Apply stock deltas in one write.

        Args:
            adjustments: product_id -> delta (negative to take stock).
            strict: If True, refuse to take more than is in stock.

        Products missing from the catalog are skipped; orders keep their
        own snapshot of what was bought.

        Raises:
            OutOfStockError: strict is set and a delta would go below zero.
        """
        with self._lock():
            data = self._load_data()
            products = data["products"]
            for product_id, delta in adjustments.items():
                idx = self._find(products, product_id)
                if idx is None:
                    logger.warning("Stock adjustment for unknown product %s skipped", product_id)
                    continue
                current = products[idx].get("stock", 0)
                if strict and current + delta < 0:
                    raise OutOfStockError(product_id, -delta, current)
            for product_id, delta in adjustments.items():
                idx = self._find(products, product_id)
                if idx is not None:
                    products[idx]["stock"] = max(0, products[idx].get("stock", 0) + delta)
            self._save_data(data)


class AuditLogStore(JsonDocumentStore):
    filename = "audit_logs.json"
    collection = "audit_logs"

    def append(self, entry: AuditLog) -> None:
        with self._lock():
            data = self._load_data()
            data["audit_logs"].append(entry.to_dict())
            self._save_data(data)

    def list(self, limit: int | None = None) -> list[AuditLog]:
        """List entries newest first."""
        entries = [AuditLog.from_dict(e) for e in self._records()]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        if limit:
            entries = entries[:limit]
        return entries


class OrderStore(JsonDocumentStore):
    """Orders plus the administrative audit trail."""

    filename = "orders.json"
    collection = "orders"

    def __init__(self, config_dir: Path | None = None):
        super().__init__(config_dir)
        self.audit = AuditLogStore(self.config_dir)

    def list_all(self) -> list[Order]:
        """List every order, newest first."""
        orders = [Order.from_dict(o) for o in self._records()]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def list_by_user(self, user_id: str) -> list[Order]:
        return [o for o in self.list_all() if o.user_id == user_id]

    def get(self, order_id: str) -> Order:
        records = self._records()
        idx = self._find(records, order_id)
        if idx is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(records[idx])

    def create(self, order: Order) -> str:
        with self._lock():
            data = self._load_data()
            data["orders"].append(order.to_dict())
            self._save_data(data)
        return order.id

    def update(self, order_id: str, mutate: Callable[[Order], Order]) -> Order:
        """
        Atomically replace an order with mutate(current).

        The current order is read inside the lock, so mutate always sees the
        latest persisted state. If mutate raises, nothing is written. If it
        returns the very same object, the write is skipped.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        with self._lock():
            data = self._load_data()
            idx = self._find(data["orders"], order_id)
            if idx is None:
                raise OrderNotFoundError(order_id)
            current = Order.from_dict(data["orders"][idx])
            updated = mutate(current)
            if updated is current:
                return current
            updated.updated_at = _utc_now()
            data["orders"][idx] = updated.to_dict()
            self._save_data(data)
        return updated

    def append_audit_log(self, entry: AuditLog) -> None:
        self.audit.append(entry)

    def list_audit_logs(self, limit: int | None = None) -> list[AuditLog]:
        return self.audit.list(limit=limit)


class CouponStore(JsonDocumentStore):
    filename = "coupons.json"
    collection = "coupons"

    def list(self) -> list[Coupon]:
        return [Coupon.from_dict(c) for c in self._records()]

    def get_by_code(self, code: str) -> Coupon | None:
        wanted = code.strip().upper()
        for coupon in self.list():
            if coupon.code == wanted:
                return coupon
        return None

    def create(self, coupon: Coupon) -> Coupon:
        """
        Add a coupon.

        Raises:
            DuplicateCouponError: If another coupon already uses the code.
        """
        with self._lock():
            data = self._load_data()
            if any(c["code"].upper() == coupon.code.upper() for c in data["coupons"]):
                raise DuplicateCouponError(coupon.code)
            data["coupons"].append(coupon.to_dict())
            self._save_data(data)
        return coupon

    def set_active(self, coupon_id: str, active: bool) -> Coupon:
        with self._lock():
            data = self._load_data()
            idx = self._find(data["coupons"], coupon_id)
            if idx is None:
                raise CouponNotFoundError(coupon_id)
            data["coupons"][idx]["is_active"] = active
            self._save_data(data)
            return Coupon.from_dict(data["coupons"][idx])

    def delete(self, coupon_id: str) -> Coupon:
        with self._lock():
            data = self._load_data()
            idx = self._find(data["coupons"], coupon_id)
            if idx is None:
                raise CouponNotFoundError(coupon_id)
            removed = Coupon.from_dict(data["coupons"].pop(idx))
            self._save_data(data)
        return removed


class SettingsStore(JsonDocumentStore):
    """The single PaymentSettings document."""

    filename = "settings.json"
    collection = "payment"

    def _empty(self) -> dict[str, Any]:
        return {"schema_version": SCHEMA_VERSION, "payment": {}}

    def get(self) -> PaymentSettings:
        """Return stored settings, or defaults when none were saved."""
        data = self._load_data()
        return PaymentSettings.from_dict(data.get("payment") or {})

    def set(self, settings: PaymentSettings) -> PaymentSettings:
        with self._lock():
            data = self._load_data()
            data["payment"] = settings.to_dict()
            self._save_data(data)
        return settings


class BespokeStore(JsonDocumentStore):
    filename = "bespoke_requests.json"
    collection = "bespoke_requests"

    def list(self) -> list[BespokeRequest]:
        """List every request, newest first."""
        requests = [BespokeRequest.from_dict(r) for r in self._records()]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests

    def list_by_user(self, user_id: str) -> list[BespokeRequest]:
        return [r for r in self.list() if r.user_id == user_id]

    def get(self, request_id: str) -> BespokeRequest:
        records = self._records()
        idx = self._find(records, request_id)
        if idx is None:
            raise BespokeRequestNotFoundError(request_id)
        return BespokeRequest.from_dict(records[idx])

    def create(self, request: BespokeRequest) -> str:
        with self._lock():
            data = self._load_data()
            data["bespoke_requests"].append(request.to_dict())
            self._save_data(data)
        return request.id

    def update(
        self, request_id: str, mutate: Callable[[BespokeRequest], BespokeRequest]
    ) -> BespokeRequest:
        """Atomically replace a request with mutate(current)."""
        with self._lock():
            data = self._load_data()
            idx = self._find(data["bespoke_requests"], request_id)
            if idx is None:
                raise BespokeRequestNotFoundError(request_id)
            current = BespokeRequest.from_dict(data["bespoke_requests"][idx])
            updated = mutate(current)
            if updated is current:
                return current
            updated.updated_at = _utc_now()
            data["bespoke_requests"][idx] = updated.to_dict()
            self._save_data(data)
        return updated
