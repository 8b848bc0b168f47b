"""
顾客购物车服务
购物车按顾客保存，结算时生成外送/自提订单并清空购物车
"""

import logging
from typing import List, Optional

from ..core.database import Collections, DatabaseManager, db_manager
from ..core.exceptions import ValidationError
from ..core.security import require_role
from ..models.base import utc_now
from ..models.cart import Cart
from ..models.order import CustomerInfo, LineRequest, Order, OrderChannel
from ..models.user import Caller, Role
from .order_service import OrderService

logger = logging.getLogger(__name__)


class CartService:
    """购物车服务类"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 order_service: Optional[OrderService] = None):
        self.db = db or db_manager
        self.orders = order_service or OrderService(self.db)

    def get_cart(self, caller: Caller) -> Cart:
        require_role(caller, Role.CUSTOMER, action="get_cart")
        doc = self.db.get(Collections.CARTS, caller.user_id)
        if doc is None:
            return Cart(id=caller.user_id)
        return Cart.from_document(doc)

    def update_cart(self, caller: Caller, items: List[LineRequest]) -> Cart:
        """整体替换购物车内容"""
        require_role(caller, Role.CUSTOMER, action="update_cart")
        for item in items:
            if item.quantity < 1:
                raise ValidationError(
                    "数量必须为正整数",
                    details={"field": "quantity", "product_id": item.product_id, "value": item.quantity}
                )
            self.orders.catalog.get_product(item.product_id)

        cart = Cart(id=caller.user_id, items=items, updated_at=utc_now())
        doc = self.db.set(Collections.CARTS, cart.id, cart.to_document())
        return Cart.from_document(doc)

    def clear_cart(self, caller: Caller):
        require_role(caller, Role.CUSTOMER, action="clear_cart")
        self.db.delete(Collections.CARTS, caller.user_id)

    def checkout(self, caller: Caller, channel: OrderChannel,
                 customer: Optional[CustomerInfo] = None) -> Order:
        """
        结算购物车：创建外送/自提订单并清空购物车，两步在同一事务中

        Raises:
            ValidationError: 购物车为空
        """
        require_role(caller, Role.CUSTOMER, action="checkout")
        with self.db.transaction():
            cart = self.get_cart(caller)
            if not cart.items:
                raise ValidationError("购物车为空", details={"field": "items"})
            order = self.orders.create(caller, cart.items, channel, customer=customer)
            self.db.delete(Collections.CARTS, caller.user_id)

        logger.info("购物车已结算: user=%s order=%s", caller.user_id, order.id)
        return order
