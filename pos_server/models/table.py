"""
桌台模型
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import DocumentEntity


class TableStatus(str, Enum):
    """桌台状态"""
    FREE = "free"           # 空闲
    OCCUPIED = "occupied"   # 占用
    CLOSED = "closed"       # 暂停服务


class Table(DocumentEntity):
    """桌台"""
    number: int = Field(..., description="桌号")
    status: TableStatus = Field(TableStatus.FREE, description="状态")
    current_order_id: Optional[str] = Field(None, description="当前占用的订单")

    @property
    def is_free(self) -> bool:
        return self.status == TableStatus.FREE
