from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from ..core.exceptions import NotFoundError, PermissionDeniedError
from ..models.catalog import Product
from ..models.order import (
    LineRequest,
    Order,
    OrderChannel,
    OrderItem,
    OrderStatus,
    PaymentType,
)
from ..services.report_service import UNCATEGORIZED, category_breakdown, daily_totals


SAO_PAULO = ZoneInfo("America/Sao_Paulo")


def make_order(created_at, total_cents, status=OrderStatus.PAID, items=None):
    return Order(
        id=f"o{total_cents}",
        items=items or [],
        total_cents=total_cents,
        channel=OrderChannel.COUNTER,
        status=status,
        created_at=created_at,
    )


def make_item(product_id, unit_price_cents, quantity=1):
    return OrderItem(
        line_id=product_id,
        product_id=product_id,
        name=product_id,
        unit_price_cents=unit_price_cents,
        quantity=quantity,
    )


class TestDailyTotals:
    """每日汇总"""

    def test_groups_by_local_date(self):
        orders = [
            make_order(datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc), 1000),
            # 02:30 UTC 是圣保罗前一天 23:30
            make_order(datetime(2024, 3, 2, 2, 30, tzinfo=timezone.utc), 500),
            make_order(datetime(2024, 3, 2, 12, 0, tzinfo=timezone.utc), 700),
        ]

        rows = daily_totals(orders, SAO_PAULO)

        assert rows == [
            {"date": "2024-03-02", "orders_count": 1, "total_cents": 700},
            {"date": "2024-03-01", "orders_count": 2, "total_cents": 1500},
        ]

    def test_ignores_unpaid_orders(self):
        orders = [
            make_order(datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc), 1000, OrderStatus.CANCELED),
            make_order(datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc), 300, OrderStatus.READY),
        ]
        assert daily_totals(orders, SAO_PAULO) == []


class TestCategoryBreakdown:
    """分类汇总"""

    def test_joins_current_category(self):
        products = [
            Product(id="a", name="A", category="Bebidas", price_cents=500),
            Product(id="b", name="B", category="Pasteis", price_cents=1000),
            Product(id="c", name="C", category="", price_cents=100),
        ]
        orders = [
            make_order(datetime(2024, 3, 1, tzinfo=timezone.utc), 2500,
                       items=[make_item("a", 500, 3), make_item("b", 1000)]),
            make_order(datetime(2024, 3, 1, tzinfo=timezone.utc), 1300,
                       items=[make_item("c", 100), make_item("gone", 1200)]),
        ]

        rows = category_breakdown(orders, products)

        assert rows == [
            {"category": "Bebidas", "quantity": 3, "total_cents": 1500},
            {"category": UNCATEGORIZED, "quantity": 2, "total_cents": 1300},
            {"category": "Pasteis", "quantity": 1, "total_cents": 1000},
        ]


class TestReportService:
    """报表服务"""

    def test_reports_from_store(self, services, products, cashier, admin):
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca"), LineRequest(product_id="p_caldo", quantity=2)],
            OrderChannel.COUNTER
        )
        services.orders.settle(cashier, order.id, PaymentType.CARD)
        services.orders.create(cashier, [LineRequest(product_id="p_empada")], OrderChannel.COUNTER)

        daily = services.reports.daily_totals(cashier)
        assert len(daily) == 1
        assert daily[0]["orders_count"] == 1
        assert daily[0]["total_cents"] == 2250

        assert services.reports.category_breakdown(admin) == [
            {"category": "Bebidas", "quantity": 3, "total_cents": 2250},
        ]

    def test_recategorizing_changes_history(self, services, products, cashier, admin):
        order = services.orders.create(cashier, [LineRequest(product_id="p_coca")], OrderChannel.COUNTER)
        services.orders.settle(cashier, order.id, PaymentType.CARD)

        services.catalog.upsert_product(admin, {"category": "Refrigerantes"}, product_id="p_coca")

        assert services.reports.category_breakdown(cashier)[0]["category"] == "Refrigerantes"

    def test_session_summary(self, services, products, cashier):
        session = services.sessions.open(cashier, 1000)
        summary = services.reports.session_summary(cashier, session.id)
        assert summary.expected_closing_cash_cents == 1000

        with pytest.raises(NotFoundError):
            services.reports.session_summary(cashier, "manual")

    def test_register_roles_only(self, services, kitchen, customer):
        with pytest.raises(PermissionDeniedError):
            services.reports.daily_totals(kitchen)
        with pytest.raises(PermissionDeniedError):
            services.reports.category_breakdown(customer)
