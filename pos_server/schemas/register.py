"""
桌台、班次和购物车相关的请求模式
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.order import CustomerInfo, LineRequest, OrderChannel


class TableCreateRequest(BaseModel):
    number: int = Field(..., description="桌号")


class TableServiceRequest(BaseModel):
    closed: bool = Field(..., description="true 暂停服务，false 恢复")


class SessionOpenRequest(BaseModel):
    initial_amount_cents: int = Field(..., description="开班备用金（分）")


class CartUpdateRequest(BaseModel):
    items: List[LineRequest] = Field(default_factory=list, description="购物车商品")


class CheckoutRequest(BaseModel):
    channel: OrderChannel = Field(..., description="外送或自提")
    customer: Optional[CustomerInfo] = Field(None, description="顾客信息")
