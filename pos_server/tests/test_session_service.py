import pytest

from ..core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..models.order import MANUAL_SESSION_ID, LineRequest, OrderChannel, PaymentType
from ..models.session import SessionStatus


class TestSessionService:
    """收银班次服务测试"""

    def _paid_order(self, services, caller, product_id, payment_type, tendered=None):
        order = services.orders.create(caller, [LineRequest(product_id=product_id)], OrderChannel.COUNTER)
        return services.orders.settle(caller, order.id, payment_type, tendered).order

    def test_open_and_current(self, services, cashier):
        assert services.sessions.current() is None

        session = services.sessions.open(cashier, 10000)

        assert session.status == SessionStatus.OPEN
        assert session.opened_by == cashier.user_id
        assert services.sessions.current().id == session.id
        assert len(services.db.list_logs(action="session_open")) == 1

    def test_only_one_open_session(self, services, cashier, admin):
        services.sessions.open(cashier, 0)
        with pytest.raises(ConflictError):
            services.sessions.open(admin, 5000)

    def test_negative_float_rejected(self, services, cashier):
        with pytest.raises(ValidationError):
            services.sessions.open(cashier, -1)

    def test_register_roles_only(self, services, kitchen, customer):
        with pytest.raises(PermissionDeniedError):
            services.sessions.open(kitchen, 0)
        with pytest.raises(PermissionDeniedError):
            services.sessions.close(customer)

    def test_close_without_open_session(self, services, cashier):
        with pytest.raises(InvalidStateError):
            services.sessions.close(cashier)

    def test_close_returns_summary(self, services, products, cashier):
        session = services.sessions.open(cashier, 10000)
        self._paid_order(services, cashier, "p_empada", PaymentType.CASH, 2000)
        self._paid_order(services, cashier, "p_caldo", PaymentType.CARD)
        self._paid_order(services, cashier, "p_coca", PaymentType.INSTANT_TRANSFER)

        summary = services.sessions.close(cashier)

        assert summary.session_id == session.id
        assert summary.totals_by_payment == {"cash": 1250, "card": 800, "instant_transfer": 650}
        assert summary.grand_total_cents == 2700
        assert summary.orders_count == 3
        assert summary.expected_closing_cash_cents == 11250
        assert str(summary.expected_closing_cash) == "112.50"

        closed = services.sessions.get_session(session.id)
        assert closed.status == SessionStatus.CLOSED
        assert closed.closed_by == cashier.user_id
        assert closed.end_time is not None
        assert services.sessions.current() is None

    def test_summary_includes_zero_totals(self, services, cashier):
        session = services.sessions.open(cashier, 5000)
        summary = services.sessions.summarize(session.id)

        assert summary.totals_by_payment == {"cash": 0, "card": 0, "instant_transfer": 0}
        assert summary.grand_total_cents == 0
        assert summary.expected_closing_cash_cents == 5000

    def test_orders_outside_session_are_manual(self, services, products, cashier):
        paid = self._paid_order(services, cashier, "p_coca", PaymentType.CARD)
        assert paid.session_id == MANUAL_SESSION_ID

        session = services.sessions.open(cashier, 0)
        assert services.sessions.summarize(session.id).orders_count == 0

        with pytest.raises(NotFoundError):
            services.sessions.summarize(MANUAL_SESSION_ID)

    def test_summary_only_counts_its_own_session(self, services, products, cashier):
        services.sessions.open(cashier, 0)
        self._paid_order(services, cashier, "p_coca", PaymentType.CARD)
        first = services.sessions.close(cashier)

        second = services.sessions.open(cashier, 0)
        self._paid_order(services, cashier, "p_caldo", PaymentType.CARD)

        assert services.sessions.summarize(first.session_id).grand_total_cents == 650
        assert services.sessions.summarize(second.id).grand_total_cents == 800

    def test_list_sessions_newest_first(self, services, cashier):
        first = services.sessions.open(cashier, 0)
        services.sessions.close(cashier)
        second = services.sessions.open(cashier, 0)

        assert [s.id for s in services.sessions.list_sessions()] == [second.id, first.id]
        assert len(services.sessions.list_sessions(limit=1)) == 1

    def test_unknown_session(self, services):
        with pytest.raises(NotFoundError):
            services.sessions.summarize("nope")
