"""
收银班次服务
开班、关班和班次汇总

业务规则：
- 全局同一时间最多一个打开的班次
- 只有管理员和收银员可以开班、关班
- 班次汇总按需计算：统计打上该班次标记的已支付订单，
  预计现金 = 开班备用金 + 现金收款
- 没有开班时结账的订单标记为 "manual"，不计入任何班次
"""

import logging
import uuid
from typing import List, Optional

from ..core.database import Collections, DatabaseManager, db_manager
from ..core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..core.security import require_role
from ..models.base import utc_now
from ..models.order import MANUAL_SESSION_ID, Order, OrderStatus, PaymentType
from ..models.session import CashierSession, SessionStatus, SessionSummary
from ..models.user import Caller, REGISTER_ROLES

logger = logging.getLogger(__name__)


class SessionService:
    """收银班次服务类"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def open(self, caller: Caller, initial_amount_cents: int) -> CashierSession:
        """
        开班

        Args:
            caller: 调用方（管理员或收银员）
            initial_amount_cents: 备用金（分），不能为负

        Raises:
            ValidationError: 备用金为负
            ConflictError: 已有打开的班次
        """
        require_role(caller, *REGISTER_ROLES, action="open_session")
        if not isinstance(initial_amount_cents, int) or initial_amount_cents < 0:
            raise ValidationError(
                "备用金不能为负数",
                details={"field": "initial_amount_cents", "value": initial_amount_cents}
            )

        with self.db.transaction():
            current = self.current()
            if current is not None:
                raise ConflictError("已有未关闭的班次", details={"session_id": current.id})

            session = CashierSession(
                id=uuid.uuid4().hex,
                status=SessionStatus.OPEN,
                start_time=utc_now(),
                initial_amount_cents=initial_amount_cents,
                opened_by=caller.user_id,
            )
            doc = self.db.create(Collections.SESSIONS, session.to_document(), doc_id=session.id)
            self.db.log_action(
                "session_open", caller.user_id, "session", session.id,
                {"initial_amount_cents": initial_amount_cents}
            )

        logger.info("班次已打开: %s by %s", session.id, caller.user_id)
        return CashierSession.from_document(doc)

    def close(self, caller: Caller) -> SessionSummary:
        """
        关班并返回最终汇总

        Raises:
            InvalidStateError: 没有打开的班次
        """
        require_role(caller, *REGISTER_ROLES, action="close_session")

        with self.db.transaction():
            current = self.current()
            if current is None:
                raise InvalidStateError("当前没有打开的班次")

            self.db.update(
                Collections.SESSIONS, current.id,
                {
                    "status": SessionStatus.CLOSED.value,
                    "end_time": utc_now().isoformat(),
                    "closed_by": caller.user_id,
                },
                expected_version=current.version
            )
            summary = self.summarize(current.id)
            self.db.log_action(
                "session_close", caller.user_id, "session", current.id,
                summary.model_dump(mode="json")
            )

        logger.info("班次已关闭: %s, 合计 %d 分", current.id, summary.grand_total_cents)
        return summary

    def current(self) -> Optional[CashierSession]:
        """当前打开的班次"""
        docs = self.db.query(Collections.SESSIONS, where={"status": SessionStatus.OPEN}, limit=1)
        return CashierSession.from_document(docs[0]) if docs else None

    def get_session(self, session_id: str) -> CashierSession:
        doc = self.db.get(Collections.SESSIONS, session_id)
        if doc is None:
            raise NotFoundError("班次不存在", details={"session_id": session_id})
        return CashierSession.from_document(doc)

    def list_sessions(self, limit: Optional[int] = None) -> List[CashierSession]:
        """班次历史，最新的在前"""
        docs = self.db.query(Collections.SESSIONS, order_by="start_time", descending=True, limit=limit)
        return [CashierSession.from_document(d) for d in docs]

    def summarize(self, session_id: str) -> SessionSummary:
        """
        班次汇总

        Raises:
            NotFoundError: 班次不存在（包括 "manual" 标记）
        """
        if session_id == MANUAL_SESSION_ID:
            raise NotFoundError(
                "manual 不是真实班次，无班次汇总",
                details={"session_id": session_id}
            )
        session = self.get_session(session_id)

        docs = self.db.query(
            Collections.ORDERS,
            where={"session_id": session_id, "status": OrderStatus.PAID}
        )
        orders = [Order.from_document(d) for d in docs]

        totals = {payment_type.value: 0 for payment_type in PaymentType}
        for order in orders:
            totals[order.payment_type.value] += order.total_cents

        return SessionSummary(
            session_id=session_id,
            initial_amount_cents=session.initial_amount_cents,
            totals_by_payment=totals,
            grand_total_cents=sum(totals.values()),
            orders_count=len(orders),
            expected_closing_cash_cents=session.initial_amount_cents + totals[PaymentType.CASH.value],
        )
