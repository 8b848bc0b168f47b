"""
实时缓存
按调用方角色订阅各集合，每次推送整体替换本地快照并通知监听者。

订阅范围：
- 商品：所有角色
- 桌台：员工
- 订单：员工看最近 100 单，顾客只看自己的最近 50 单
- 当前班次：管理员和收银员
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from .database import Collections, DatabaseManager, Document, db_manager
from ..models.catalog import Product
from ..models.order import Order, OrderStatus
from ..models.session import CashierSession, SessionStatus
from ..models.table import Table
from ..models.user import REGISTER_ROLES, Caller

logger = logging.getLogger(__name__)

STAFF_ORDER_LIMIT = 100
CUSTOMER_ORDER_LIMIT = 50


class LiveCache:
    """本地只读镜像"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager
        self.caller: Optional[Caller] = None
        self._lock = threading.Lock()
        self._products: List[Product] = []
        self._tables: List[Table] = []
        self._orders: List[Order] = []
        self._session: Optional[CashierSession] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._listeners: Dict[int, Callable[[str], None]] = {}
        self._next_listener_id = 0

    @property
    def started(self) -> bool:
        return bool(self._unsubscribers)

    def start(self, caller: Caller):
        """按角色建立订阅，重复调用会先取消旧订阅"""
        self.stop()
        self.caller = caller

        subs = [self.db.subscribe(Collections.PRODUCTS, self._on_products, order_by="name")]
        if caller.is_staff:
            subs.append(self.db.subscribe(Collections.TABLES, self._on_tables, order_by="number"))
            subs.append(self.db.subscribe(
                Collections.ORDERS, self._on_orders,
                order_by="created_at", descending=True, limit=STAFF_ORDER_LIMIT
            ))
        else:
            subs.append(self.db.subscribe(
                Collections.ORDERS, self._on_orders,
                where={"customer.customer_id": caller.user_id},
                order_by="created_at", descending=True, limit=CUSTOMER_ORDER_LIMIT
            ))
        if caller.role in REGISTER_ROLES:
            subs.append(self.db.subscribe(
                Collections.SESSIONS, self._on_sessions,
                where={"status": SessionStatus.OPEN}, limit=1
            ))
        self._unsubscribers = subs
        logger.info("实时缓存已启动: user=%s role=%s", caller.user_id, caller.role.value)

    def stop(self):
        """取消所有订阅并清空快照"""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        with self._lock:
            self._products = []
            self._tables = []
            self._orders = []
            self._session = None

    def add_listener(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """注册变更监听，参数为发生变化的集合名"""
        with self._lock:
            self._next_listener_id += 1
            listener_id = self._next_listener_id
            self._listeners[listener_id] = listener

        def remove():
            with self._lock:
                self._listeners.pop(listener_id, None)

        return remove

    # 订阅回调

    def _on_products(self, docs: List[Document]):
        products = [Product.from_document(d) for d in docs]
        with self._lock:
            self._products = products
        self._emit(Collections.PRODUCTS)

    def _on_tables(self, docs: List[Document]):
        tables = [Table.from_document(d) for d in docs]
        with self._lock:
            self._tables = tables
        self._emit(Collections.TABLES)

    def _on_orders(self, docs: List[Document]):
        orders = [Order.from_document(d) for d in docs]
        with self._lock:
            self._orders = orders
        self._emit(Collections.ORDERS)

    def _on_sessions(self, docs: List[Document]):
        session = CashierSession.from_document(docs[0]) if docs else None
        with self._lock:
            self._session = session
        self._emit(Collections.SESSIONS)

    def _emit(self, collection: str):
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(collection)
            except Exception:
                logger.exception("缓存监听回调失败: %s", collection)

    # 读取

    def list_products(self, active_only: bool = True) -> List[Product]:
        with self._lock:
            return [p for p in self._products if p.active or not active_only]

    def list_tables(self) -> List[Table]:
        with self._lock:
            return list(self._tables)

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        with self._lock:
            return [o for o in self._orders if status is None or o.status == status]

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            for order in self._orders:
                if order.id == order_id:
                    return order
        return None

    def current_session(self) -> Optional[CashierSession]:
        with self._lock:
            return self._session
