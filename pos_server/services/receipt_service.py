"""
小票数据服务
为打印/消息转发方生成订单小票和班次报告的数据对象，不负责排版
"""

from typing import Any, Dict, Optional

from ..core.database import DatabaseManager, db_manager
from ..core.security import require_role
from ..models.order import Order
from ..models.user import REGISTER_ROLES, Caller
from .catalog_service import CatalogService
from .order_service import OrderService
from .session_service import SessionService


class ReceiptService:
    """小票数据服务类"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 order_service: Optional[OrderService] = None,
                 session_service: Optional[SessionService] = None,
                 catalog_service: Optional[CatalogService] = None):
        self.db = db or db_manager
        self.orders = order_service or OrderService(self.db)
        self.sessions = session_service or SessionService(self.db)
        self.catalog = catalog_service or CatalogService(self.db)

    def build_order_receipt(self, caller: Caller, order_id: str) -> Dict[str, Any]:
        """订单小票：商品明细、金额、支付信息和顾客信息"""
        require_role(caller, *REGISTER_ROLES, action="build_order_receipt")
        order = self.orders.get_order(order_id)
        business = self.catalog.get_settings()
        return {
            "order_id": order.id,
            "business_whatsapp": business.business_whatsapp,
            "channel": order.channel.value,
            "table_number": order.table_number,
            "status": order.status.value,
            "items": [
                {
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit_price_cents": item.unit_price_cents,
                    "line_total_cents": item.line_total_cents,
                    "options": item.selected_options,
                    "notes": item.notes,
                }
                for item in order.items
            ],
            "subtotal_cents": order.subtotal_cents,
            "delivery_fee_cents": order.delivery_fee_cents,
            "discount_cents": order.discount_cents,
            "total_cents": order.total_cents,
            "payment": self._payment_block(order),
            "customer": order.customer.model_dump(mode="json") if order.customer else None,
            "created_at": order.created_at.isoformat(),
            "paid_at": order.paid_at.isoformat() if order.paid_at else None,
            "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
        }

    def build_session_report(self, caller: Caller, session_id: str) -> Dict[str, Any]:
        """班次报告：班次时间、备用金和汇总"""
        require_role(caller, *REGISTER_ROLES, action="build_session_report")
        session = self.sessions.get_session(session_id)
        summary = self.sessions.summarize(session_id)
        return {
            "session_id": session.id,
            "status": session.status.value,
            "start_time": session.start_time.isoformat(),
            "end_time": session.end_time.isoformat() if session.end_time else None,
            "opened_by": session.opened_by,
            "closed_by": session.closed_by,
            **summary.model_dump(mode="json", exclude={"session_id"}),
        }

    @staticmethod
    def _payment_block(order: Order) -> Optional[Dict[str, Any]]:
        if order.payment_type is None:
            return None
        return {
            "payment_type": order.payment_type.value,
            "amount_received_cents": order.amount_received_cents,
            "change_cents": order.change_cents,
            "session_id": order.session_id,
        }
