from ..core.cache import LiveCache
from ..core.database import Collections
from ..models.order import CustomerInfo, LineRequest, OrderChannel, OrderStatus


class TestLiveCache:
    """实时缓存测试"""

    def test_staff_sees_products_tables_orders(self, services, products, tables, cashier):
        cache = LiveCache(services.db)
        cache.start(cashier)

        assert len(cache.list_products()) == len([p for p in products.values() if p.active])
        assert len(cache.list_products(active_only=False)) == len(products)
        assert [t.number for t in cache.list_tables()] == list(range(1, 13))
        assert cache.list_orders() == []
        assert cache.current_session() is None

    def test_snapshot_refreshes_after_write(self, services, products, tables, cashier):
        cache = LiveCache(services.db)
        cache.start(cashier)

        order = services.orders.create(
            cashier, [LineRequest(product_id="p_frango")], OrderChannel.TABLE, table_number=3
        )

        assert cache.get_order(order.id) is not None
        assert cache.list_orders(status=OrderStatus.NEW)[0].id == order.id
        table = [t for t in cache.list_tables() if t.number == 3][0]
        assert table.current_order_id == order.id

    def test_session_tracked_for_register_roles(self, services, cashier):
        cache = LiveCache(services.db)
        cache.start(cashier)

        session = services.sessions.open(cashier, 5000)
        assert cache.current_session().id == session.id

        services.sessions.close(cashier)
        assert cache.current_session() is None

    def test_kitchen_does_not_track_session(self, services, cashier, kitchen):
        services.sessions.open(cashier, 5000)
        cache = LiveCache(services.db)
        cache.start(kitchen)
        assert cache.current_session() is None

    def test_customer_sees_only_own_orders(self, services, products, cashier, customer, other_customer):
        services.orders.create(customer, [LineRequest(product_id="p_coca")], OrderChannel.PICKUP)
        services.orders.create(other_customer, [LineRequest(product_id="p_coca")], OrderChannel.PICKUP)
        services.orders.create(
            cashier, [LineRequest(product_id="p_coca")], OrderChannel.DELIVERY,
            customer=CustomerInfo(name="Rua", address="Rua A, 1")
        )

        cache = LiveCache(services.db)
        cache.start(customer)

        orders = cache.list_orders()
        assert len(orders) == 1
        assert orders[0].customer.customer_id == customer.user_id
        assert cache.list_tables() == []

    def test_listeners_and_stop(self, services, products, admin):
        cache = LiveCache(services.db)
        changes = []
        remove = cache.add_listener(changes.append)
        cache.start(admin)
        assert Collections.PRODUCTS in changes

        changes.clear()
        services.catalog.deactivate_product(admin, "p_coca")
        assert changes == [Collections.PRODUCTS]
        assert "p_coca" not in [p.id for p in cache.list_products()]

        remove()
        services.catalog.deactivate_product(admin, "p_caldo")
        assert changes == [Collections.PRODUCTS]

        cache.stop()
        assert not cache.started
        assert cache.list_products() == []
        services.catalog.deactivate_product(admin, "p_empada")
        assert cache.list_products() == []


class TestContainerCache:
    """服务容器提供的缓存"""

    def test_open_cache_follows_writes(self, services, products, cashier):
        cache = services.open_cache(cashier)
        assert cache.started

        order = services.orders.create(cashier, [LineRequest(product_id="p_coca")], OrderChannel.COUNTER)
        assert cache.get_order(order.id).total_cents == order.total_cents

        cache.stop()
        assert not cache.started
        assert cache.list_orders() == []
