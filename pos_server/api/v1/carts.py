"""
顾客购物车路由模块
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import get_caller
from ...models.user import Caller
from ...schemas.register import CartUpdateRequest, CheckoutRequest
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter()


@router.get("")
def get_cart(caller: Caller = Depends(get_caller),
             services: ServiceContainer = Depends(get_services)):
    return create_success_response(services.carts.get_cart(caller).model_dump(mode="json"))


@router.put("")
def update_cart(req: CartUpdateRequest, caller: Caller = Depends(get_caller),
                services: ServiceContainer = Depends(get_services)):
    cart = services.carts.update_cart(caller, req.items)
    return create_success_response(cart.model_dump(mode="json"), "购物车已更新")


@router.delete("")
def clear_cart(caller: Caller = Depends(get_caller),
               services: ServiceContainer = Depends(get_services)):
    services.carts.clear_cart(caller)
    return create_success_response(message="购物车已清空")


@router.post("/checkout")
def checkout(req: CheckoutRequest, caller: Caller = Depends(get_caller),
             services: ServiceContainer = Depends(get_services)):
    """结算购物车"""
    order = services.carts.checkout(caller, req.channel, customer=req.customer)
    return create_success_response(order.model_dump(mode="json"), "下单成功")
