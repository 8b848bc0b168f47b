"""
数据一致性检查和修复服务
结账与释放桌台不在同一事务中，中间失败会留下"订单已支付、桌台仍被占用"的状态。
这里负责发现并修复这类桌台引用问题。
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.database import Collections, DatabaseManager, db_manager
from ..core.security import require_role
from ..models.order import Order, OrderChannel
from ..models.table import Table, TableStatus
from ..models.user import REGISTER_ROLES, Caller
from .table_service import TableService

logger = logging.getLogger(__name__)


class ConsistencyCheckResult:
    """一致性检查结果"""

    def __init__(self):
        self.issues: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []
        self.statistics: Dict[str, Any] = {}

    def add_issue(self, issue_type: str, description: str, details: Dict[str, Any] = None):
        self.issues.append({
            'type': issue_type,
            'description': description,
            'details': details or {},
            'severity': 'error',
        })

    def add_warning(self, warning_type: str, description: str, details: Dict[str, Any] = None):
        self.warnings.append({
            'type': warning_type,
            'description': description,
            'details': details or {},
            'severity': 'warning',
        })

    def set_statistics(self, stats: Dict[str, Any]):
        self.statistics = stats

    def to_dict(self) -> Dict[str, Any]:
        return {
            'issues': self.issues,
            'warnings': self.warnings,
            'statistics': self.statistics,
            'summary': {
                'total_issues': len(self.issues),
                'total_warnings': len(self.warnings),
                'status': 'healthy' if len(self.issues) == 0 else 'issues_found',
                'checked_at': datetime.now().isoformat()
            }
        }


class ConsistencyService:
    """数据一致性服务"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 table_service: Optional[TableService] = None):
        self.db = db or db_manager
        self.tables = table_service or TableService(self.db)

    def check_tables(self, caller: Caller) -> Dict[str, Any]:
        """
        检查桌台与订单的引用关系

        问题（error）：
        - 桌台引用的订单已支付/已取消/不存在
        - 桌台为占用状态却没有订单引用，或空闲状态却有订单引用
        - 同一桌号有多个未结订单
        警告（warning）：
        - 未结的桌台订单没有被其桌台引用
        """
        require_role(caller, *REGISTER_ROLES, action="check_tables")
        result = ConsistencyCheckResult()

        tables = self.tables.list_tables()
        orders = {d.id: Order.from_document(d) for d in self.db.query(Collections.ORDERS)}

        for table in tables:
            problem = self._table_problem(table, orders)
            if problem:
                issue_type, description = problem
                result.add_issue(issue_type, description, {
                    'table_number': table.number,
                    'status': table.status.value,
                    'current_order_id': table.current_order_id,
                })

        live_by_table: Dict[int, List[str]] = {}
        for order in orders.values():
            if order.channel == OrderChannel.TABLE and order.is_live:
                live_by_table.setdefault(order.table_number, []).append(order.id)

        referenced = {t.number: t.current_order_id for t in tables}
        for number, order_ids in live_by_table.items():
            if len(order_ids) > 1:
                result.add_issue(
                    'multiple_live_orders',
                    f"{number}号桌同时有 {len(order_ids)} 个未结订单",
                    {'table_number': number, 'order_ids': order_ids}
                )
            for order_id in order_ids:
                if referenced.get(number) != order_id:
                    result.add_warning(
                        'unreferenced_table_order',
                        f"订单 {order_id} 未被{number}号桌引用",
                        {'table_number': number, 'order_id': order_id}
                    )

        result.set_statistics({
            'tables': {
                'total': len(tables),
                'occupied': sum(1 for t in tables if t.status == TableStatus.OCCUPIED),
                'closed': sum(1 for t in tables if t.status == TableStatus.CLOSED),
            },
            'orders': {
                'total': len(orders),
                'live': sum(1 for o in orders.values() if o.is_live),
            },
        })
        return result.to_dict()

    def heal_tables(self, caller: Optional[Caller] = None) -> Dict[str, Any]:
        """
        释放引用了已结束订单的桌台

        Args:
            caller: 调用方；为空表示系统启动时的自动修复

        Returns:
            dict: 已修复的桌号列表
        """
        if caller is not None:
            require_role(caller, *REGISTER_ROLES, action="heal_tables")
        actor_id = caller.user_id if caller else None

        repaired = []
        for number in [t.number for t in self.tables.list_tables()]:
            with self.db.transaction():
                table = self.tables.get_table(number)
                if not self._needs_release(table):
                    continue
                self.db.update(
                    Collections.TABLES, table.id,
                    {"status": TableStatus.FREE.value, "current_order_id": None},
                    expected_version=table.version
                )
                self.db.log_action(
                    "table_self_heal", actor_id, "table", table.id,
                    {"table_number": number, "stale_order_id": table.current_order_id}
                )
            logger.warning("已修复%s号桌: 释放过期订单引用 %s", number, table.current_order_id)
            repaired.append(number)

        return {"repaired_tables": repaired, "count": len(repaired)}

    def _needs_release(self, table: Table) -> bool:
        if table.status == TableStatus.CLOSED:
            return False
        if table.status == TableStatus.FREE:
            return table.current_order_id is not None
        if not table.current_order_id:
            return True
        doc = self.db.get(Collections.ORDERS, table.current_order_id)
        return doc is None or not Order.from_document(doc).is_live

    @staticmethod
    def _table_problem(table: Table, orders: Dict[str, Order]):
        if table.status == TableStatus.OCCUPIED and not table.current_order_id:
            return 'occupied_without_order', f"{table.number}号桌为占用状态但没有订单"
        if table.status != TableStatus.OCCUPIED and table.current_order_id:
            return 'dangling_reference', f"{table.number}号桌未占用却引用了订单"
        if not table.current_order_id:
            return None
        order = orders.get(table.current_order_id)
        if order is None:
            return 'missing_order', f"{table.number}号桌引用的订单不存在"
        if not order.is_live:
            return 'stale_reference', f"{table.number}号桌引用的订单已{order.status.value}"
        return None
