"""
收银班次模型
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from pydantic import Field

from .base import BaseEntity, DocumentEntity, cents_to_decimal


class SessionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class CashierSession(DocumentEntity):
    """收银班次"""
    status: SessionStatus = Field(SessionStatus.OPEN, description="班次状态")
    start_time: datetime = Field(..., description="开班时间")
    end_time: Optional[datetime] = Field(None, description="关班时间")
    initial_amount_cents: int = Field(..., description="开班备用金（分）")
    opened_by: Optional[str] = Field(None, description="开班人")
    closed_by: Optional[str] = Field(None, description="关班人")


class SessionSummary(BaseEntity):
    """班次汇总，按需计算，不落库"""
    session_id: str
    initial_amount_cents: int = 0
    totals_by_payment: Dict[str, int] = Field(default_factory=dict, description="支付方式 -> 金额（分）")
    grand_total_cents: int = 0
    orders_count: int = 0
    expected_closing_cash_cents: int = 0

    @property
    def expected_closing_cash(self) -> Decimal:
        return cents_to_decimal(self.expected_closing_cash_cents)
