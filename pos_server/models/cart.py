"""
顾客购物车模型
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import DocumentEntity
from .order import LineRequest


class Cart(DocumentEntity):
    """购物车，文档 id 即顾客 id"""
    items: List[LineRequest] = Field(default_factory=list)
    updated_at: Optional[datetime] = None
