"""
订单路由模块
只负责把请求转换为 OrderService 调用
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import get_caller
from ...models.order import OrderStatus
from ...models.user import Caller
from ...schemas.order import (
    AddItemRequest,
    CancelRequest,
    ChangeQuantityRequest,
    CustomerUpdateRequest,
    DiscountRequest,
    OrderCreateRequest,
    SettleRequest,
)
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter()


@router.post("")
def create_order(req: OrderCreateRequest, caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    """下单"""
    order = services.orders.create(
        caller, req.items, req.channel,
        table_number=req.table_number,
        customer=req.customer,
        delivery_fee_cents=req.delivery_fee_cents,
        discount_cents=req.discount_cents,
        payment_type=req.payment_type,
        amount_tendered_cents=req.amount_tendered_cents,
    )
    return create_success_response(order.model_dump(mode="json"), "下单成功")


@router.get("")
def list_orders(status: Optional[OrderStatus] = None,
                limit: Optional[int] = Query(None, ge=1, description="最多返回条数"),
                caller: Caller = Depends(get_caller),
                services: ServiceContainer = Depends(get_services)):
    orders = services.orders.list_orders(caller, status=status, limit=limit)
    return create_success_response([o.model_dump(mode="json") for o in orders], "查询成功")


@router.get("/kitchen")
def kitchen_queue(caller: Caller = Depends(get_caller),
                  services: ServiceContainer = Depends(get_services)):
    """后厨待制作队列"""
    orders = services.orders.kitchen_queue(caller)
    return create_success_response([o.model_dump(mode="json") for o in orders], "查询成功")


@router.get("/ready")
def ready_for_handoff(caller: Caller = Depends(get_caller),
                      services: ServiceContainer = Depends(get_services)):
    orders = services.orders.ready_for_handoff(caller)
    return create_success_response([o.model_dump(mode="json") for o in orders], "查询成功")


@router.get("/{order_id}")
def get_order(order_id: str, caller: Caller = Depends(get_caller),
              services: ServiceContainer = Depends(get_services)):
    order = services.orders.get_order_for(caller, order_id)
    return create_success_response(order.model_dump(mode="json"), "查询成功")


@router.post("/{order_id}/items")
def add_item(order_id: str, req: AddItemRequest, caller: Caller = Depends(get_caller),
             services: ServiceContainer = Depends(get_services)):
    """加菜"""
    order = services.orders.add_item(
        caller, order_id, req.product_id, req.quantity, options=req.options, notes=req.notes
    )
    return create_success_response(order.model_dump(mode="json"), "已加入订单")


@router.post("/{order_id}/quantity")
def change_quantity(order_id: str, req: ChangeQuantityRequest, caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    order = services.orders.change_quantity(
        caller, order_id, req.product_id, req.delta, line_id=req.line_id
    )
    return create_success_response(order.model_dump(mode="json"), "数量已更新")


@router.post("/{order_id}/advance")
def advance_status(order_id: str, caller: Caller = Depends(get_caller),
                   services: ServiceContainer = Depends(get_services)):
    order = services.orders.advance_status(caller, order_id)
    return create_success_response(order.model_dump(mode="json"), "状态已更新")


@router.post("/{order_id}/settle")
def settle_order(order_id: str, req: SettleRequest, caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    """结账"""
    result = services.orders.settle(caller, order_id, req.payment_type, req.amount_tendered_cents)
    return create_success_response(result.model_dump(mode="json"), "结账成功")


@router.post("/{order_id}/deliver")
def mark_delivered(order_id: str, caller: Caller = Depends(get_caller),
                   services: ServiceContainer = Depends(get_services)):
    order = services.orders.mark_delivered(caller, order_id)
    return create_success_response(order.model_dump(mode="json"), "已送达")


@router.post("/{order_id}/cancel")
def cancel_order(order_id: str, req: CancelRequest, caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    order = services.orders.cancel(caller, order_id, reason=req.reason)
    return create_success_response(order.model_dump(mode="json"), "订单已取消")


@router.put("/{order_id}/customer")
def update_customer(order_id: str, req: CustomerUpdateRequest, caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    order = services.orders.update_customer(
        caller, order_id, name=req.name, contact=req.contact, address=req.address
    )
    return create_success_response(order.model_dump(mode="json"), "顾客信息已更新")


@router.put("/{order_id}/discount")
def apply_discount(order_id: str, req: DiscountRequest, caller: Caller = Depends(get_caller),
                   services: ServiceContainer = Depends(get_services)):
    order = services.orders.apply_discount(caller, order_id, req.discount_cents)
    return create_success_response(order.model_dump(mode="json"), "折扣已更新")


@router.get("/{order_id}/receipt")
def order_receipt(order_id: str, caller: Caller = Depends(get_caller),
                  services: ServiceContainer = Depends(get_services)):
    """小票数据"""
    return create_success_response(services.receipts.build_order_receipt(caller, order_id))
