"""
Business logic services.
Contains service layer implementations for core business operations.
"""

from .cart_service import CartService
from .catalog_service import CatalogService
from .consistency_service import ConsistencyService
from .order_service import OrderService
from .receipt_service import ReceiptService
from .report_service import ReportService
from .session_service import SessionService
from .table_service import TableService

__all__ = [
    "CartService",
    "CatalogService",
    "ConsistencyService",
    "OrderService",
    "ReceiptService",
    "ReportService",
    "SessionService",
    "TableService",
]
