"""
桌台服务模块
维护桌台占用状态，保证同一时间一张桌台最多关联一个未结订单

业务规则：
- occupy：桌台已被其他未结订单占用时抛出 ConflictError；
  若引用的订单已支付、已取消或不存在，先自动修复再占用
- release：只有关联订单已支付或已取消时才能释放
- 暂停服务（closed）的桌台不能被占用
"""

import logging
from typing import List, Optional

from ..core.database import Collections, DatabaseManager, db_manager
from ..core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..core.security import require_role
from ..models.order import Order, TERMINAL_STATUSES
from ..models.table import Table, TableStatus
from ..models.user import Caller, Role

logger = logging.getLogger(__name__)


class TableService:
    """桌台服务类"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def list_tables(self) -> List[Table]:
        """按桌号获取全部桌台"""
        docs = self.db.query(Collections.TABLES, order_by="number")
        return [Table.from_document(d) for d in docs]

    def get_table(self, table_number: int) -> Table:
        docs = self.db.query(Collections.TABLES, where={"number": table_number}, limit=1)
        if not docs:
            raise NotFoundError(f"{table_number}号桌不存在", details={"table_number": table_number})
        return Table.from_document(docs[0])

    def occupy(self, table_number: int, order_id: str, actor_id: Optional[str] = None) -> Table:
        """
        将桌台标记为被订单占用

        Args:
            table_number: 桌号
            order_id: 订单ID
            actor_id: 操作人

        Returns:
            Table: 更新后的桌台

        Raises:
            NotFoundError: 桌台不存在
            ConflictError: 桌台已被其他未结订单占用或暂停服务
        """
        with self.db.transaction():
            table = self.get_table(table_number)

            if table.status == TableStatus.OCCUPIED and table.current_order_id == order_id:
                return table

            if table.status == TableStatus.CLOSED:
                raise ConflictError(
                    f"{table_number}号桌暂停服务",
                    details={"table_number": table_number, "status": table.status.value}
                )

            if table.status == TableStatus.OCCUPIED:
                if self._referenced_order_is_live(table):
                    raise ConflictError(
                        f"{table_number}号桌已被其他订单占用",
                        details={
                            "table_number": table_number,
                            "current_order_id": table.current_order_id,
                        }
                    )
                logger.warning(
                    "%s号桌引用的订单 %s 已结束，自动释放后重新占用",
                    table_number, table.current_order_id
                )
                self.db.log_action(
                    "table_self_heal", actor_id, "table", table.id,
                    {"stale_order_id": table.current_order_id, "table_number": table_number}
                )

            doc = self.db.update(
                Collections.TABLES, table.id,
                {"status": TableStatus.OCCUPIED.value, "current_order_id": order_id},
                expected_version=table.version
            )
            return Table.from_document(doc)

    def release(self, table_number: int, actor_id: Optional[str] = None,
                order_id: Optional[str] = None) -> Table:
        """
        释放桌台

        Args:
            order_id: 指定时只在桌台仍由该订单占用时释放

        Raises:
            InvalidStateError: 关联订单尚未支付或取消
        """
        with self.db.transaction():
            table = self.get_table(table_number)
            if table.status != TableStatus.OCCUPIED:
                return table
            if order_id is not None and table.current_order_id != order_id:
                return table

            order = self._referenced_order(table)
            if order is not None and order.status not in TERMINAL_STATUSES:
                raise InvalidStateError(
                    f"{table_number}号桌的订单尚未结账，不能释放",
                    details={
                        "table_number": table_number,
                        "order_id": order.id,
                        "order_status": order.status.value,
                    }
                )

            doc = self.db.update(
                Collections.TABLES, table.id,
                {"status": TableStatus.FREE.value, "current_order_id": None},
                expected_version=table.version
            )
            self.db.log_action(
                "table_release", actor_id, "table", table.id,
                {"table_number": table_number, "order_id": table.current_order_id}
            )
            return Table.from_document(doc)

    def create_table(self, caller: Caller, number: int) -> Table:
        """新增桌台"""
        require_role(caller, Role.ADMIN, action="create_table")
        if number < 1:
            raise ValidationError("桌号必须为正整数", details={"field": "number", "value": number})

        with self.db.transaction():
            if self.db.query(Collections.TABLES, where={"number": number}, limit=1):
                raise ConflictError(f"{number}号桌已存在", details={"table_number": number})
            table = Table(id=f"t{number}", number=number)
            doc = self.db.create(Collections.TABLES, table.to_document(), doc_id=table.id)
        return Table.from_document(doc)

    def set_service(self, caller: Caller, table_number: int, closed: bool) -> Table:
        """暂停或恢复桌台服务，只能对空闲/暂停的桌台操作"""
        require_role(caller, Role.ADMIN, action="set_table_service")
        with self.db.transaction():
            table = self.get_table(table_number)
            if table.status == TableStatus.OCCUPIED:
                raise InvalidStateError(
                    f"{table_number}号桌正在使用中",
                    details={"table_number": table_number, "current_order_id": table.current_order_id}
                )
            status = TableStatus.CLOSED if closed else TableStatus.FREE
            doc = self.db.update(
                Collections.TABLES, table.id, {"status": status.value},
                expected_version=table.version
            )
        return Table.from_document(doc)

    def seed_if_empty(self, count: int) -> int:
        """空库时创建 1..count 号桌"""
        with self.db.transaction():
            if self.db.query(Collections.TABLES, limit=1):
                return 0
            for number in range(1, count + 1):
                table = Table(id=f"t{number}", number=number)
                self.db.create(Collections.TABLES, table.to_document(), doc_id=table.id)
        logger.info("已创建 %d 张桌台", count)
        return count

    def _referenced_order(self, table: Table) -> Optional[Order]:
        if not table.current_order_id:
            return None
        doc = self.db.get(Collections.ORDERS, table.current_order_id)
        return Order.from_document(doc) if doc else None

    def _referenced_order_is_live(self, table: Table) -> bool:
        order = self._referenced_order(table)
        return order is not None and order.is_live
