"""Advisory stock reports: restock suggestions, low stock and sales summaries.

Nothing here changes stock; admins act on the suggestions separately.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable

from .models import (
    Order,
    OrderStatus,
    Product,
    RestockSuggestion,
    SalesSummary,
    parse_timestamp,
)

DAY = timedelta(days=1)


def _orders_since(orders: Iterable[Order], cutoff: datetime) -> list[Order]:
    return [o for o in orders if o.created_at and parse_timestamp(o.created_at) >= cutoff]


def restock_suggestions(
    orders: Iterable[Order],
    products: Iterable[Product],
    lookback_days: int = 30,
    lead_time_days: int = 30,
    now: datetime | None = None,
) -> list[RestockSuggestion]:
    """
    Estimate how many units to reorder per product.

    avg_daily_sales = units sold in the lookback window / lookback days
    suggested_reorder = max(0, ceil(avg_daily_sales * lead_time_days) - stock)

    Only products with a positive suggestion are returned, largest first.
    """
    now = now or datetime.now(timezone.utc)
    recent = _orders_since(orders, now - lookback_days * DAY)

    sold: dict[str, int] = {}
    for order in recent:
        for item in order.items:
            sold[item.product_id] = sold.get(item.product_id, 0) + item.quantity

    suggestions = []
    for product in products:
        units = sold.get(product.id, 0)
        window = max(1, lookback_days)
        avg_daily = units / window
        # ceil(units * lead / window) by integer division
        needed = -(-units * lead_time_days // window)
        suggested = max(0, needed - (product.stock or 0))
        if suggested > 0:
            suggestions.append(RestockSuggestion(
                product_id=product.id,
                product_name=product.name,
                current_stock=product.stock,
                units_sold=units,
                avg_daily_sales=avg_daily,
                suggested_reorder=suggested,
            ))

    suggestions.sort(key=lambda s: s.suggested_reorder, reverse=True)
    return suggestions


def low_stock(products: Iterable[Product], threshold: int = 5) -> list[Product]:
    """Products at or below the stock threshold."""
    return [p for p in products if (p.stock or 0) <= threshold]


def sales_summary(
    orders: Iterable[Order], days: int = 7, now: datetime | None = None
) -> SalesSummary:
    """Order count, revenue and units over the last `days` days.

    Cancelled and returned orders count towards by_status but not revenue.
    """
    now = now or datetime.now(timezone.utc)
    recent = _orders_since(orders, now - days * DAY)

    by_status: dict[str, int] = {}
    revenue = 0.0
    units = 0
    for order in recent:
        by_status[order.status.value] = by_status.get(order.status.value, 0) + 1
        if order.status in (OrderStatus.CANCELLED, OrderStatus.RETURNED):
            continue
        revenue += order.total
        units += sum(item.quantity for item in order.items)

    return SalesSummary(
        days=days,
        order_count=len(recent),
        revenue=revenue,
        units=units,
        by_status=by_status,
    )
