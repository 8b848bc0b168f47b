"""
订单相关的请求模式
金额和数量的业务校验在服务层完成，这里只描述结构
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.order import CustomerInfo, LineRequest, OrderChannel, PaymentType


class OrderCreateRequest(BaseModel):
    """下单请求"""
    items: List[LineRequest] = Field(default_factory=list, description="订单行")
    channel: OrderChannel = Field(..., description="下单渠道")
    table_number: Optional[int] = Field(None, description="桌号")
    customer: Optional[CustomerInfo] = Field(None, description="顾客信息")
    delivery_fee_cents: Optional[int] = Field(None, description="配送费（分）")
    discount_cents: int = Field(0, description="折扣（分）")
    payment_type: Optional[PaymentType] = Field(None, description="下单即结账的支付方式")
    amount_tendered_cents: Optional[int] = Field(None, description="现金实收（分）")


class AddItemRequest(BaseModel):
    """加菜请求"""
    product_id: str = Field(..., description="商品ID")
    quantity: int = Field(1, description="数量")
    options: Dict[str, str] = Field(default_factory=dict, description="选项组 -> 选择值")
    notes: Optional[str] = Field(None, description="备注")


class ChangeQuantityRequest(BaseModel):
    """改数量请求"""
    product_id: str = Field(..., description="商品ID")
    delta: int = Field(..., description="数量变化，可为负")
    line_id: Optional[str] = Field(None, description="订单行ID")


class SettleRequest(BaseModel):
    """结账请求"""
    payment_type: PaymentType = Field(..., description="支付方式")
    amount_tendered_cents: Optional[int] = Field(None, description="现金实收（分）")


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, description="取消原因")


class CustomerUpdateRequest(BaseModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    address: Optional[str] = None


class DiscountRequest(BaseModel):
    discount_cents: int = Field(..., description="折扣（分）")
