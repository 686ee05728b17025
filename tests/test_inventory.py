"""Tests for restock suggestions, low-stock checks and sales summaries."""

from datetime import timedelta

from atelier.inventory import low_stock, restock_suggestions, sales_summary
from atelier.models import OrderStatus, Product

from conftest import NOW, make_order


def product(product_id, stock, name=None):
    return Product(id=product_id, name=name or product_id, price=1000, stock=stock)


class TestRestockSuggestions:
    def test_suggests_shortfall(self):
        orders = [
            make_order(product_id="p1", quantity=10, created_at=NOW - timedelta(days=2)),
            make_order(product_id="p1", quantity=5, created_at=NOW - timedelta(days=20)),
        ]
        # 15 sold over 30 days -> 0.5/day -> 15 needed for 30 days of lead time
        suggestions = restock_suggestions(orders, [product("p1", 4)], now=NOW)

        assert len(suggestions) == 1
        s = suggestions[0]
        assert s.units_sold == 15
        assert s.avg_daily_sales == 0.5
        assert s.suggested_reorder == 11

    def test_rounds_up(self):
        orders = [make_order(product_id="p1", quantity=1, created_at=NOW - timedelta(days=1))]
        suggestions = restock_suggestions(
            orders, [product("p1", 0)], lookback_days=30, lead_time_days=10, now=NOW
        )
        assert suggestions[0].suggested_reorder == 1

    def test_old_orders_ignored(self):
        orders = [make_order(product_id="p1", quantity=50, created_at=NOW - timedelta(days=45))]
        assert restock_suggestions(orders, [product("p1", 0)], now=NOW) == []

    def test_enough_stock(self):
        orders = [make_order(product_id="p1", quantity=3, created_at=NOW - timedelta(days=1))]
        assert restock_suggestions(orders, [product("p1", 100)], now=NOW) == []

    def test_sorted_largest_first(self):
        orders = [
            make_order(product_id="a", quantity=2, created_at=NOW - timedelta(days=1)),
            make_order(product_id="b", quantity=9, created_at=NOW - timedelta(days=1)),
        ]
        suggestions = restock_suggestions(orders, [product("a", 0), product("b", 0)], now=NOW)
        assert [s.product_id for s in suggestions] == ["b", "a"]


def test_low_stock():
    products = [product("a", 0), product("b", 5), product("c", 6)]
    assert [p.id for p in low_stock(products)] == ["a", "b"]
    assert [p.id for p in low_stock(products, threshold=0)] == ["a"]


class TestSalesSummary:
    def test_excludes_cancelled_revenue(self):
        orders = [
            make_order(OrderStatus.DELIVERED, quantity=2, created_at=NOW - timedelta(days=1)),
            make_order(OrderStatus.CANCELLED, quantity=1, created_at=NOW - timedelta(days=2)),
            make_order(OrderStatus.PENDING, quantity=1, created_at=NOW - timedelta(days=30)),
        ]
        summary = sales_summary(orders, days=7, now=NOW)

        assert summary.order_count == 2
        assert summary.revenue == 2099
        assert summary.units == 2
        assert summary.by_status == {"Delivered": 1, "Cancelled": 1}
