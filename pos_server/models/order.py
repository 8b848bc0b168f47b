"""
订单相关数据模型
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from .base import BaseEntity, DocumentEntity, cents_to_decimal


class OrderStatus(str, Enum):
    """订单状态枚举"""
    NEW = "new"               # 新订单
    PREPARING = "preparing"   # 制作中
    READY = "ready"           # 已出餐
    PAID = "paid"             # 已支付（终态）
    CANCELED = "canceled"     # 已取消（终态）


class OrderChannel(str, Enum):
    """下单渠道"""
    COUNTER = "counter"       # 柜台
    TABLE = "table"           # 桌台
    DELIVERY = "delivery"     # 外送
    PICKUP = "pickup"         # 自提


class PaymentType(str, Enum):
    """支付方式"""
    CASH = "cash"
    CARD = "card"
    INSTANT_TRANSFER = "instant_transfer"


LIVE_STATUSES = (OrderStatus.NEW, OrderStatus.PREPARING, OrderStatus.READY)
EDITABLE_STATUSES = (OrderStatus.NEW, OrderStatus.PREPARING)
TERMINAL_STATUSES = (OrderStatus.PAID, OrderStatus.CANCELED)
REMOTE_CHANNELS = (OrderChannel.DELIVERY, OrderChannel.PICKUP)

# 后厨推进的合法状态转换
STATUS_FLOW = {
    OrderStatus.NEW: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
}

# 没有开班时结账使用的班次标记
MANUAL_SESSION_ID = "manual"


class OrderItem(BaseEntity):
    """订单行，商品信息在加入时快照"""
    line_id: str = Field(..., description="订单行ID")
    product_id: str = Field(..., description="商品ID")
    name: str = Field(..., description="商品名称快照")
    description: str = Field("", description="商品描述快照")
    unit_price_cents: int = Field(..., description="单价快照（分）")
    quantity: int = Field(..., description="数量")
    notes: Optional[str] = Field(None, description="备注")
    selected_options: Dict[str, str] = Field(default_factory=dict, description="选项组 -> 选择值")
    requires_preparation: bool = Field(False, description="是否需要后厨制作")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def matches(self, product_id: str, options: Dict[str, str], notes: Optional[str]) -> bool:
        """是否为同一商品、同一选项和备注，可合并数量"""
        return (
            self.product_id == product_id
            and self.selected_options == options
            and (self.notes or None) == (notes or None)
        )


class CustomerInfo(BaseEntity):
    """顾客信息"""
    customer_id: Optional[str] = Field(None, description="顾客ID")
    name: Optional[str] = Field(None, description="姓名")
    address: Optional[str] = Field(None, description="地址")
    contact: Optional[str] = Field(None, description="联系方式")


class LineRequest(BaseEntity):
    """下单时的一行请求"""
    product_id: str
    quantity: int = 1
    options: Dict[str, str] = Field(default_factory=dict)
    notes: Optional[str] = None


class Order(DocumentEntity):
    """订单"""
    items: List[OrderItem] = Field(default_factory=list, description="订单行")
    subtotal_cents: int = Field(0, description="商品小计（分）")
    delivery_fee_cents: int = Field(0, description="配送费（分）")
    discount_cents: int = Field(0, description="折扣（分）")
    total_cents: int = Field(0, description="应付总额（分）")
    channel: OrderChannel = Field(..., description="下单渠道")
    table_number: Optional[int] = Field(None, description="桌号")
    customer: Optional[CustomerInfo] = Field(None, description="顾客信息")
    status: OrderStatus = Field(OrderStatus.NEW, description="订单状态")
    payment_type: Optional[PaymentType] = Field(None, description="支付方式")
    amount_received_cents: Optional[int] = Field(None, description="实收金额（分）")
    change_cents: Optional[int] = Field(None, description="找零（分）")
    created_at: datetime = Field(..., description="创建时间")
    paid_at: Optional[datetime] = Field(None, description="支付时间")
    delivered_at: Optional[datetime] = Field(None, description="送达时间")
    canceled_at: Optional[datetime] = Field(None, description="取消时间")
    cancel_reason: Optional[str] = Field(None, description="取消原因")
    session_id: Optional[str] = Field(None, description="结账所属班次")
    created_by: Optional[str] = Field(None, description="下单人")

    def recompute_total(self):
        """根据订单行重新计算金额，总额不低于 0"""
        self.subtotal_cents = sum(item.line_total_cents for item in self.items)
        self.total_cents = max(0, self.subtotal_cents + self.delivery_fee_cents - self.discount_cents)

    @property
    def total(self) -> Decimal:
        return cents_to_decimal(self.total_cents)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def has_kitchen_items(self) -> bool:
        return any(item.requires_preparation for item in self.items)

    @property
    def customer_id(self) -> Optional[str]:
        return self.customer.customer_id if self.customer else None


class SettlementResult(BaseEntity):
    """结账结果：订单已支付，桌台释放可能失败"""
    order: Order
    table_released: bool = True
