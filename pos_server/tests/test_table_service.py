import pytest

from ..core.database import Collections
from ..core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..models.order import LineRequest, OrderChannel, PaymentType
from ..models.table import TableStatus


class TestTableService:
    """桌台服务测试"""

    def test_seed_creates_numbered_free_tables(self, services, tables):
        assert [t.number for t in tables] == list(range(1, 13))
        assert all(t.status == TableStatus.FREE for t in tables)
        assert services.tables.seed_if_empty(12) == 0

    def test_get_missing_table(self, services, tables):
        with pytest.raises(NotFoundError):
            services.tables.get_table(99)

    def test_occupy_and_release(self, services, products, tables, cashier):
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=4
        )
        table = services.tables.get_table(4)
        assert table.status == TableStatus.OCCUPIED
        assert table.current_order_id == order.id

        # 订单未结账时不能释放
        with pytest.raises(InvalidStateError):
            services.tables.release(4, cashier.user_id)

        services.orders.cancel(cashier, order.id, reason="desistiu")
        assert services.tables.get_table(4).status == TableStatus.FREE

    def test_occupy_same_order_is_noop(self, services, products, tables, cashier):
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=2
        )
        before = services.tables.get_table(2)
        after = services.tables.occupy(2, order.id, cashier.user_id)
        assert after.version == before.version

    def test_occupy_conflicts_with_live_order(self, services, products, tables, cashier):
        services.orders.create(cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=5)

        with pytest.raises(ConflictError) as exc_info:
            services.orders.create(
                cashier, [LineRequest(product_id="p_caldo")], OrderChannel.TABLE, table_number=5
            )
        assert exc_info.value.details["table_number"] == 5
        # 第二个订单随事务回滚，没有留下孤儿订单
        assert len(services.db.query(Collections.ORDERS)) == 1

    def test_occupy_self_heals_stale_reference(self, services, products, tables, cashier):
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=6
        )
        # 模拟结账后桌台释放失败
        services.db.update(Collections.ORDERS, order.id, {"status": "paid"})

        second = services.orders.create(
            cashier, [LineRequest(product_id="p_caldo")], OrderChannel.TABLE, table_number=6
        )

        assert services.tables.get_table(6).current_order_id == second.id
        heals = services.db.list_logs(action="table_self_heal")
        assert len(heals) == 1
        assert heals[0]["detail"]["stale_order_id"] == order.id

    def test_occupy_heals_reference_to_missing_order(self, services, products, tables, cashier):
        services.db.update(
            Collections.TABLES, "t8", {"status": TableStatus.OCCUPIED.value, "current_order_id": "ghost"}
        )
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=8
        )
        assert services.tables.get_table(8).current_order_id == order.id

    def test_release_ignores_other_order(self, services, products, tables, cashier):
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=9
        )
        table = services.tables.release(9, cashier.user_id, order_id="someone-else")
        assert table.current_order_id == order.id
        assert table.status == TableStatus.OCCUPIED

    def test_release_free_table_is_noop(self, services, tables):
        assert services.tables.release(1).status == TableStatus.FREE
        assert services.db.list_logs(action="table_release") == []

    def test_settle_frees_table(self, services, products, tables, cashier):
        order = services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=10
        )
        result = services.orders.settle(cashier, order.id, PaymentType.CARD)

        assert result.table_released
        table = services.tables.get_table(10)
        assert table.status == TableStatus.FREE
        assert table.current_order_id is None
        assert len(services.db.list_logs(action="table_release")) == 1

    def test_create_table(self, services, tables, admin, cashier):
        table = services.tables.create_table(admin, 13)
        assert table.id == "t13"
        assert table.status == TableStatus.FREE

        with pytest.raises(ConflictError):
            services.tables.create_table(admin, 13)
        with pytest.raises(ValidationError):
            services.tables.create_table(admin, 0)
        with pytest.raises(PermissionDeniedError):
            services.tables.create_table(cashier, 14)

    def test_closed_table_cannot_be_occupied(self, services, products, tables, admin, cashier):
        services.tables.set_service(admin, 11, closed=True)

        with pytest.raises(ConflictError):
            services.orders.create(
                cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=11
            )

        reopened = services.tables.set_service(admin, 11, closed=False)
        assert reopened.status == TableStatus.FREE

    def test_cannot_close_occupied_table(self, services, products, tables, admin, cashier):
        services.orders.create(cashier, [LineRequest(product_id="p_coca")], OrderChannel.TABLE, table_number=12)
        with pytest.raises(InvalidStateError):
            services.tables.set_service(admin, 12, closed=True)
