"""
服务装配
所有服务共享同一个 DatabaseManager，便于测试时整体替换为内存库
"""

from typing import Optional

from ..core.cache import LiveCache
from ..core.database import DatabaseManager, db_manager
from ..models.user import Caller
from .cart_service import CartService
from .catalog_service import CatalogService
from .consistency_service import ConsistencyService
from .order_service import OrderService
from .receipt_service import ReceiptService
from .report_service import ReportService
from .session_service import SessionService
from .table_service import TableService


class ServiceContainer:
    """按同一个数据库实例装配全部服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager
        self.catalog = CatalogService(self.db)
        self.tables = TableService(self.db)
        self.sessions = SessionService(self.db)
        self.orders = OrderService(self.db, self.tables, self.sessions, self.catalog)
        self.carts = CartService(self.db, self.orders)
        self.reports = ReportService(self.db, self.sessions)
        self.receipts = ReceiptService(self.db, self.orders, self.sessions, self.catalog)
        self.consistency = ConsistencyService(self.db, self.tables)

    def open_cache(self, caller: Caller) -> LiveCache:
        """为调用方建立一个按角色订阅的实时缓存，用完后调用 stop()"""
        cache = LiveCache(self.db)
        cache.start(caller)
        return cache
