"""
报表服务
基于订单集合的只读汇总，不修改任何数据

- 每日汇总：已支付订单按下单时间在店铺时区的日期分组
- 分类汇总：读取时按商品ID关联当前分类，商品重新分类会改变历史报表
- 班次汇总：见 SessionService.summarize
"""

from datetime import date, timezone
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from ..config.settings import settings
from ..core.database import Collections, DatabaseManager, db_manager
from ..core.security import require_role
from ..models.catalog import Product
from ..models.order import Order, OrderStatus
from ..models.session import SessionSummary
from ..models.user import REGISTER_ROLES, Caller
from .session_service import SessionService

UNCATEGORIZED = "未分类"


def _local_date(order: Order, tz: ZoneInfo) -> date:
    created_at = order.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.astimezone(tz).date()


def daily_totals(orders: Iterable[Order], tz: ZoneInfo) -> List[Dict[str, Any]]:
    """按日期汇总已支付订单，最近的日期在前"""
    buckets: Dict[date, Dict[str, int]] = {}
    for order in orders:
        if order.status != OrderStatus.PAID:
            continue
        bucket = buckets.setdefault(_local_date(order, tz), {"orders_count": 0, "total_cents": 0})
        bucket["orders_count"] += 1
        bucket["total_cents"] += order.total_cents

    return [
        {"date": day.isoformat(), **buckets[day]}
        for day in sorted(buckets, reverse=True)
    ]


def category_breakdown(orders: Iterable[Order], products: Iterable[Product]) -> List[Dict[str, Any]]:
    """按商品当前分类汇总已支付订单的商品金额，金额高的在前"""
    category_of = {p.id: p.category or UNCATEGORIZED for p in products}
    buckets: Dict[str, Dict[str, int]] = {}
    for order in orders:
        if order.status != OrderStatus.PAID:
            continue
        for item in order.items:
            category = category_of.get(item.product_id, UNCATEGORIZED)
            bucket = buckets.setdefault(category, {"quantity": 0, "total_cents": 0})
            bucket["quantity"] += item.quantity
            bucket["total_cents"] += item.line_total_cents

    rows = [{"category": name, **values} for name, values in buckets.items()]
    rows.sort(key=lambda r: (-r["total_cents"], r["category"]))
    return rows


class ReportService:
    """报表服务类"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 session_service: Optional[SessionService] = None,
                 timezone_name: Optional[str] = None):
        self.db = db or db_manager
        self.sessions = session_service or SessionService(self.db)
        self.tz = ZoneInfo(timezone_name or settings.business_timezone)

    def daily_totals(self, caller: Caller) -> List[Dict[str, Any]]:
        require_role(caller, *REGISTER_ROLES, action="daily_totals")
        return daily_totals(self._paid_orders(), self.tz)

    def category_breakdown(self, caller: Caller) -> List[Dict[str, Any]]:
        require_role(caller, *REGISTER_ROLES, action="category_breakdown")
        products = [Product.from_document(d) for d in self.db.query(Collections.PRODUCTS)]
        return category_breakdown(self._paid_orders(), products)

    def session_summary(self, caller: Caller, session_id: str) -> SessionSummary:
        require_role(caller, *REGISTER_ROLES, action="session_summary")
        return self.sessions.summarize(session_id)

    def _paid_orders(self) -> List[Order]:
        docs = self.db.query(Collections.ORDERS, where={"status": OrderStatus.PAID})
        return [Order.from_document(d) for d in docs]
