"""
订单服务模块
订单生命周期的核心业务逻辑：下单、加菜、改数量、后厨推进、结账、送达、取消

状态机：
    NEW -> PREPARING -> READY -> PAID
    任意非 PAID 状态 -> CANCELED

业务规则：
- 总额 = Σ(单价 × 数量) + 配送费 - 折扣，每次修改订单行都重新计算，不低于 0
- 商品名称、描述、单价在加入订单时快照，之后修改目录不影响历史订单
- 只有 NEW / PREPARING 状态可以增删商品
- 含后厨商品的订单必须经过 PREPARING、READY 才能结账；
  不含后厨商品的订单可以在 NEW 状态直接结账
- 已支付订单的商品和金额不可再修改
- 桌台订单下单与占桌在同一事务中完成；结账后释放桌台为单独一步，
  失败时订单仍为已支付，由一致性检查修复
- 每个写操作都是一次事务内的 读取-校验-写入
"""

import logging
import uuid
from enum import Enum
from typing import Dict, List, Optional, Type

from ..core.database import Collections, DatabaseManager, db_manager
from ..core.exceptions import (
    BaseApplicationError,
    InsufficientPaymentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..core.security import require_role
from ..models.base import utc_now
from ..models.catalog import Product
from ..models.order import (
    EDITABLE_STATUSES,
    MANUAL_SESSION_ID,
    REMOTE_CHANNELS,
    STATUS_FLOW,
    CustomerInfo,
    LineRequest,
    Order,
    OrderChannel,
    OrderItem,
    OrderStatus,
    PaymentType,
    SettlementResult,
)
from ..models.user import REGISTER_ROLES, STAFF_ROLES, Caller, Role
from .catalog_service import CatalogService
from .session_service import SessionService
from .table_service import TableService

logger = logging.getLogger(__name__)


def _coerce(enum_cls: Type[Enum], value, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(
            f"无效的 {field}: {value}",
            details={"field": field, "value": value, "allowed": [m.value for m in enum_cls]}
        ) from e


class OrderService:
    """订单服务类，封装所有订单相关的业务逻辑"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 table_service: Optional[TableService] = None,
                 session_service: Optional[SessionService] = None,
                 catalog_service: Optional[CatalogService] = None):
        self.db = db or db_manager
        self.tables = table_service or TableService(self.db)
        self.sessions = session_service or SessionService(self.db)
        self.catalog = catalog_service or CatalogService(self.db)

    # ------------------------------------------------------------------
    # 下单
    # ------------------------------------------------------------------

    def create(self, caller: Caller, lines: List[LineRequest], channel: OrderChannel,
               table_number: Optional[int] = None, customer: Optional[CustomerInfo] = None,
               delivery_fee_cents: Optional[int] = None, discount_cents: int = 0,
               payment_type: Optional[PaymentType] = None,
               amount_tendered_cents: Optional[int] = None) -> Order:
        """
        创建订单

        Args:
            caller: 调用方
            lines: 订单行，不能为空
            channel: 下单渠道
            table_number: 桌号，仅桌台订单需要
            customer: 顾客信息，外送订单必须有地址
            delivery_fee_cents: 配送费，外送订单为空时使用店铺默认值
            discount_cents: 折扣
            payment_type: 指定时下单即结账（仅限不含后厨商品的柜台/自提/外送订单）
            amount_tendered_cents: 现金实收

        Returns:
            Order: 新订单

        Raises:
            PermissionDeniedError: 后厨下单；顾客下堂食单、替他人下单或自行指定折扣/配送费
            ValidationError: 订单行为空、数量非法、渠道与桌号/地址不匹配、折扣超过订单金额
            NotFoundError: 商品或桌台不存在
            ConflictError: 桌台已被占用
            InvalidStateError: 含后厨商品的订单要求立即结账
            InsufficientPaymentError: 立即结账时现金不足
        """
        require_role(caller, Role.ADMIN, Role.CASHIER, Role.CUSTOMER, action="create_order")
        channel = _coerce(OrderChannel, channel, "channel")
        customer = self._resolve_customer(caller, channel, customer)

        if not lines:
            raise ValidationError("订单至少需要一个商品", details={"field": "items"})

        if channel == OrderChannel.TABLE:
            if table_number is None:
                raise ValidationError("桌台订单必须指定桌号", details={"field": "table_number"})
            if payment_type is not None:
                raise ValidationError(
                    "桌台订单不能在下单时结账",
                    details={"field": "payment_type", "channel": channel.value}
                )
        elif table_number is not None:
            raise ValidationError(
                "只有桌台订单可以指定桌号",
                details={"field": "table_number", "channel": channel.value}
            )

        if channel == OrderChannel.DELIVERY and not (customer and customer.address):
            raise ValidationError("外送订单必须填写地址", details={"field": "customer.address"})

        # 折扣和配送费只能由收银台指定，顾客订单使用店铺默认配送费
        if discount_cents:
            require_role(caller, *REGISTER_ROLES, action="apply_discount")
        if delivery_fee_cents is not None:
            require_role(caller, *REGISTER_ROLES, action="set_delivery_fee")

        if delivery_fee_cents is None:
            delivery_fee_cents = (
                self.catalog.get_settings().default_delivery_fee_cents
                if channel == OrderChannel.DELIVERY else 0
            )
        self._validate_amount(delivery_fee_cents, "delivery_fee_cents")
        self._validate_amount(discount_cents, "discount_cents")

        items: List[OrderItem] = []
        for line in lines:
            self._merge_line(items, self._build_item(line))

        order = Order(
            id=uuid.uuid4().hex,
            items=items,
            delivery_fee_cents=delivery_fee_cents,
            discount_cents=discount_cents,
            channel=channel,
            table_number=table_number,
            customer=customer,
            status=OrderStatus.NEW,
            created_at=utc_now(),
            created_by=caller.user_id,
        )
        order.recompute_total()
        self._check_discount_ceiling(order, discount_cents)

        with self.db.transaction():
            if payment_type is not None:
                require_role(caller, *REGISTER_ROLES, action="settle_order")
                if order.has_kitchen_items:
                    raise InvalidStateError(
                        "订单包含需要后厨制作的商品，不能下单即结账",
                        details={"field": "payment_type", "kitchen_items": self._kitchen_names(order)}
                    )
                self._apply_payment(order, _coerce(PaymentType, payment_type, "payment_type"),
                                    amount_tendered_cents)

            doc = self.db.create(Collections.ORDERS, order.to_document(), doc_id=order.id)
            if channel == OrderChannel.TABLE:
                self.tables.occupy(table_number, order.id, caller.user_id)
            self.db.log_action(
                "order_create", caller.user_id, "order", order.id,
                {
                    "channel": channel.value,
                    "table_number": table_number,
                    "total_cents": order.total_cents,
                    "status": order.status.value,
                }
            )

        logger.info("订单已创建: %s channel=%s total=%d", order.id, channel.value, order.total_cents)
        return Order.from_document(doc)

    def _resolve_customer(self, caller: Caller, channel: OrderChannel,
                          customer: Optional[CustomerInfo]) -> Optional[CustomerInfo]:
        if caller.role != Role.CUSTOMER:
            return customer
        if channel not in REMOTE_CHANNELS:
            raise PermissionDeniedError(
                "顾客只能下外送或自提订单",
                details={"action": "create_order", "channel": channel.value}
            )
        customer = customer or CustomerInfo()
        if customer.customer_id and customer.customer_id != caller.user_id:
            raise PermissionDeniedError(
                "顾客只能为自己下单",
                details={"action": "create_order", "customer_id": customer.customer_id}
            )
        return customer.model_copy(update={"customer_id": caller.user_id})

    # ------------------------------------------------------------------
    # 修改订单行
    # ------------------------------------------------------------------

    def add_item(self, caller: Caller, order_id: str, product_id: str, quantity: int = 1,
                 options: Optional[Dict[str, str]] = None, notes: Optional[str] = None) -> Order:
        """
        加菜，同一商品、同一选项和备注的行合并数量

        Raises:
            InvalidStateError: 订单不在 NEW / PREPARING 状态
        """
        require_role(caller, *REGISTER_ROLES, action="add_item")
        item = self._build_item(LineRequest(
            product_id=product_id, quantity=quantity, options=options or {}, notes=notes
        ))

        with self.db.transaction():
            order = self.get_order(order_id)
            self._ensure_editable(order)
            self._merge_line(order.items, item)
            order.recompute_total()
            return self._save(order)

    def change_quantity(self, caller: Caller, order_id: str, product_id: str, delta: int,
                        line_id: Optional[str] = None) -> Order:
        """
        调整某商品的数量

        数量最低为 0，为 0 时删除该行。订单因此变空时不会自动释放桌台，
        由调用方决定取消订单还是继续加菜。

        Args:
            line_id: 同一商品有多行（不同选项/备注）时用于指定具体行

        Raises:
            ValidationError: delta 为 0，或同一商品有多行却未指定 line_id
            NotFoundError: 订单中没有该商品
            InvalidStateError: 订单不在 NEW / PREPARING 状态
        """
        require_role(caller, *REGISTER_ROLES, action="change_quantity")
        if not isinstance(delta, int) or delta == 0:
            raise ValidationError("数量变化必须为非零整数", details={"field": "delta", "value": delta})

        with self.db.transaction():
            order = self.get_order(order_id)
            self._ensure_editable(order)

            candidates = [
                item for item in order.items
                if item.product_id == product_id and (line_id is None or item.line_id == line_id)
            ]
            if not candidates:
                raise NotFoundError(
                    "订单中没有该商品",
                    details={"order_id": order_id, "product_id": product_id, "line_id": line_id}
                )
            if len(candidates) > 1:
                raise ValidationError(
                    "该商品有多行，请指定 line_id",
                    details={"field": "line_id", "line_ids": [c.line_id for c in candidates]}
                )

            target = candidates[0]
            target.quantity = max(0, target.quantity + delta)
            if target.quantity == 0:
                order.items = [item for item in order.items if item.line_id != target.line_id]
            order.recompute_total()
            return self._save(order)

    def update_customer(self, caller: Caller, order_id: str, name: Optional[str] = None,
                        contact: Optional[str] = None, address: Optional[str] = None) -> Order:
        """修改订单上的顾客姓名/联系方式/地址"""
        require_role(caller, *REGISTER_ROLES, action="update_customer")
        with self.db.transaction():
            order = self.get_order(order_id)
            if not order.is_live:
                raise InvalidStateError(
                    "订单已结束，不能修改顾客信息",
                    details={"order_id": order_id, "status": order.status.value}
                )
            customer = order.customer or CustomerInfo()
            changes = {k: v for k, v in {"name": name, "contact": contact, "address": address}.items()
                       if v is not None}
            order.customer = customer.model_copy(update=changes)
            if order.channel == OrderChannel.DELIVERY and not order.customer.address:
                raise ValidationError("外送订单必须填写地址", details={"field": "customer.address"})
            return self._save(order)

    def apply_discount(self, caller: Caller, order_id: str, discount_cents: int) -> Order:
        """
        设置订单折扣

        Raises:
            ValidationError: 折扣为负或超过小计与配送费之和
            InvalidStateError: 订单已支付或已取消
        """
        require_role(caller, *REGISTER_ROLES, action="apply_discount")
        self._validate_amount(discount_cents, "discount_cents")

        with self.db.transaction():
            order = self.get_order(order_id)
            if not order.is_live:
                raise InvalidStateError(
                    "订单已结束，不能修改折扣",
                    details={"order_id": order_id, "status": order.status.value}
                )
            self._check_discount_ceiling(order, discount_cents)
            order.discount_cents = discount_cents
            order.recompute_total()
            saved = self._save(order)
            self.db.log_action(
                "order_discount", caller.user_id, "order", order_id,
                {"discount_cents": discount_cents, "total_cents": saved.total_cents}
            )
            return saved

    # ------------------------------------------------------------------
    # 状态流转
    # ------------------------------------------------------------------

    def advance_status(self, caller: Caller, order_id: str) -> Order:
        """
        后厨推进订单：NEW -> PREPARING -> READY

        Raises:
            InvalidStateError: 当前状态不能再推进
        """
        require_role(caller, Role.ADMIN, Role.CASHIER, Role.KITCHEN, action="advance_status")
        with self.db.transaction():
            order = self.get_order(order_id)
            next_status = STATUS_FLOW.get(order.status)
            if next_status is None:
                raise InvalidStateError(
                    f"订单状态 {order.status.value} 不能再推进",
                    details={"order_id": order_id, "status": order.status.value}
                )
            order.status = next_status
            return self._save(order)

    def settle(self, caller: Caller, order_id: str, payment_type: PaymentType,
               amount_tendered_cents: Optional[int] = None) -> SettlementResult:
        """
        结账

        现金支付时找零 = 实收 - 总额；其他方式实收等于总额、找零为 0。
        订单标记为当前班次，没有开班时标记为 "manual"。
        订单写入成功后再释放桌台，释放失败只记录日志，由一致性检查修复。

        Returns:
            SettlementResult: 已支付的订单和桌台是否已释放

        Raises:
            InvalidStateError: 订单已支付/已取消/制作中，或含后厨商品尚未出餐
            ValidationError: 订单为空，或现金支付未填写实收
            InsufficientPaymentError: 现金实收小于总额
        """
        require_role(caller, *REGISTER_ROLES, action="settle_order")
        payment_type = _coerce(PaymentType, payment_type, "payment_type")

        with self.db.transaction():
            order = self.get_order(order_id)
            self._ensure_settleable(order)
            self._apply_payment(order, payment_type, amount_tendered_cents)
            paid = self._save(order)
            self.db.log_action(
                "order_settle", caller.user_id, "order", order_id,
                {
                    "payment_type": payment_type.value,
                    "total_cents": paid.total_cents,
                    "amount_received_cents": paid.amount_received_cents,
                    "change_cents": paid.change_cents,
                    "session_id": paid.session_id,
                }
            )

        logger.info("订单已结账: %s %s %d", order_id, payment_type.value, paid.total_cents)
        released = True
        if paid.table_number is not None:
            released = self._release_table(paid, caller.user_id)
        return SettlementResult(order=paid, table_released=released)

    def mark_delivered(self, caller: Caller, order_id: str) -> Order:
        """
        标记外送/自提订单已送达，不改变订单状态

        Raises:
            InvalidStateError: 非外送/自提订单，未出餐，或已标记送达
        """
        require_role(caller, *REGISTER_ROLES, action="mark_delivered")
        with self.db.transaction():
            order = self.get_order(order_id)
            if order.channel not in REMOTE_CHANNELS:
                raise InvalidStateError(
                    "只有外送或自提订单可以标记送达",
                    details={"order_id": order_id, "channel": order.channel.value}
                )
            if order.status not in (OrderStatus.READY, OrderStatus.PAID):
                raise InvalidStateError(
                    "订单尚未出餐",
                    details={"order_id": order_id, "status": order.status.value}
                )
            if order.delivered_at is not None:
                raise InvalidStateError(
                    "订单已标记送达",
                    details={"order_id": order_id, "delivered_at": order.delivered_at.isoformat()}
                )
            order.delivered_at = utc_now()
            return self._save(order)

    def cancel(self, caller: Caller, order_id: str, reason: Optional[str] = None) -> Order:
        """
        取消订单（任意未支付状态），同时释放桌台

        Raises:
            InvalidStateError: 订单已支付或已取消
        """
        require_role(caller, *REGISTER_ROLES, action="cancel_order")
        with self.db.transaction():
            order = self.get_order(order_id)
            if not order.is_live:
                raise InvalidStateError(
                    f"订单状态为 {order.status.value}，不能取消",
                    details={"order_id": order_id, "status": order.status.value}
                )
            previous = order.status
            order.status = OrderStatus.CANCELED
            order.canceled_at = utc_now()
            order.cancel_reason = reason
            canceled = self._save(order)
            if order.table_number is not None:
                self.tables.release(order.table_number, caller.user_id, order_id=order_id)
            self.db.log_action(
                "order_cancel", caller.user_id, "order", order_id,
                {
                    "previous_status": previous.value,
                    "reason": reason,
                    "total_cents": order.total_cents,
                    "items": [i.model_dump(mode="json") for i in order.items],
                }
            )

        logger.info("订单已取消: %s (%s)", order_id, reason or "-")
        return canceled

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        doc = self.db.get(Collections.ORDERS, order_id)
        if doc is None:
            raise NotFoundError("订单不存在", details={"order_id": order_id})
        return Order.from_document(doc)

    def get_order_for(self, caller: Caller, order_id: str) -> Order:
        """按调用方权限读取订单，顾客只能看自己的订单"""
        order = self.get_order(order_id)
        if caller.role == Role.CUSTOMER and order.customer_id != caller.user_id:
            raise PermissionDeniedError("无权查看该订单", details={"order_id": order_id})
        return order

    def list_orders(self, caller: Caller, status: Optional[OrderStatus] = None,
                    limit: Optional[int] = None) -> List[Order]:
        """订单列表，最新的在前；顾客只能看到自己的订单"""
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
            raise ValidationError("limit 必须为正整数", details={"field": "limit", "value": limit})
        where = {}
        if status is not None:
            where["status"] = _coerce(OrderStatus, status, "status")
        if caller.role == Role.CUSTOMER:
            where["customer.customer_id"] = caller.user_id
        docs = self.db.query(
            Collections.ORDERS, where=where or None,
            order_by="created_at", descending=True, limit=limit
        )
        return [Order.from_document(d) for d in docs]

    def kitchen_queue(self, caller: Caller) -> List[Order]:
        """后厨待制作：含后厨商品的 NEW / PREPARING 订单，先下单的在前"""
        require_role(caller, *STAFF_ROLES, action="kitchen_queue")
        docs = self.db.query(Collections.ORDERS, order_by="created_at")
        orders = [Order.from_document(d) for d in docs]
        return [o for o in orders if o.status in EDITABLE_STATUSES and o.has_kitchen_items]

    def ready_for_handoff(self, caller: Caller) -> List[Order]:
        """已出餐待交付的订单"""
        require_role(caller, *STAFF_ROLES, action="ready_for_handoff")
        docs = self.db.query(Collections.ORDERS, where={"status": OrderStatus.READY}, order_by="created_at")
        orders = [Order.from_document(d) for d in docs]
        return [o for o in orders if o.delivered_at is None]

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    def _build_item(self, line: LineRequest) -> OrderItem:
        """校验订单行并快照商品信息"""
        if isinstance(line.quantity, bool) or line.quantity < 1:
            raise ValidationError(
                "数量必须为正整数",
                details={"field": "quantity", "product_id": line.product_id, "value": line.quantity}
            )

        product = self.catalog.get_product(line.product_id)
        if not product.active:
            raise ValidationError(
                f"商品 {product.name} 已下架",
                details={"field": "product_id", "product_id": product.id}
            )

        return OrderItem(
            line_id=uuid.uuid4().hex,
            product_id=product.id,
            name=product.name,
            description=product.description,
            unit_price_cents=product.price_cents,
            quantity=line.quantity,
            notes=line.notes or None,
            selected_options=self._validate_options(product, line.options or {}),
            requires_preparation=product.requires_preparation,
        )

    @staticmethod
    def _validate_options(product: Product, options: Dict[str, str]) -> Dict[str, str]:
        for group_name, choice in options.items():
            group = product.find_group(group_name)
            if group is None:
                raise ValidationError(
                    f"商品 {product.name} 没有选项组 {group_name}",
                    details={"field": "options", "product_id": product.id, "group": group_name}
                )
            if choice not in group.choices:
                raise ValidationError(
                    f"选项 {group_name} 的值无效: {choice}",
                    details={
                        "field": "options",
                        "product_id": product.id,
                        "group": group_name,
                        "choice": choice,
                        "allowed": group.choices,
                    }
                )
        for group in product.option_groups:
            if group.required and group.name not in options:
                raise ValidationError(
                    f"请选择 {group.name}",
                    details={"field": "options", "product_id": product.id, "group": group.name}
                )
        return dict(options)

    @staticmethod
    def _merge_line(items: List[OrderItem], new_item: OrderItem):
        for item in items:
            if item.matches(new_item.product_id, new_item.selected_options, new_item.notes):
                item.quantity += new_item.quantity
                return
        items.append(new_item)

    @staticmethod
    def _validate_amount(value: int, field: str):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"{field} 必须为非负整数（分）", details={"field": field, "value": value})

    @staticmethod
    def _check_discount_ceiling(order: Order, discount_cents: int):
        ceiling = order.subtotal_cents + order.delivery_fee_cents
        if discount_cents > ceiling:
            raise ValidationError(
                "折扣不能超过订单金额",
                details={"field": "discount_cents", "value": discount_cents, "max": ceiling}
            )

    @staticmethod
    def _kitchen_names(order: Order) -> List[str]:
        return [item.name for item in order.items if item.requires_preparation]

    @staticmethod
    def _ensure_editable(order: Order):
        if order.status not in EDITABLE_STATUSES:
            raise InvalidStateError(
                f"订单状态为 {order.status.value}，不能修改商品",
                details={"order_id": order.id, "status": order.status.value}
            )

    def _ensure_settleable(self, order: Order):
        if order.status == OrderStatus.PAID:
            raise InvalidStateError("订单已支付", details={"order_id": order.id, "status": order.status.value})
        if order.status == OrderStatus.CANCELED:
            raise InvalidStateError("订单已取消", details={"order_id": order.id, "status": order.status.value})
        if order.status == OrderStatus.PREPARING:
            raise InvalidStateError(
                "订单正在制作中，出餐后才能结账",
                details={"order_id": order.id, "status": order.status.value}
            )
        if order.status == OrderStatus.NEW and order.has_kitchen_items:
            raise InvalidStateError(
                "订单包含需要后厨制作的商品，出餐后才能结账",
                details={
                    "order_id": order.id,
                    "status": order.status.value,
                    "kitchen_items": self._kitchen_names(order),
                }
            )
        if order.is_empty:
            raise ValidationError("订单没有商品，不能结账", details={"order_id": order.id, "field": "items"})

    def _apply_payment(self, order: Order, payment_type: PaymentType,
                       amount_tendered_cents: Optional[int]):
        """写入支付字段；必须在事务内调用"""
        if payment_type == PaymentType.CASH:
            if amount_tendered_cents is None:
                raise ValidationError("现金支付需要填写实收金额", details={"field": "amount_tendered_cents"})
            self._validate_amount(amount_tendered_cents, "amount_tendered_cents")
            if amount_tendered_cents < order.total_cents:
                raise InsufficientPaymentError(
                    "实收金额不足",
                    details={
                        "total_cents": order.total_cents,
                        "amount_tendered_cents": amount_tendered_cents,
                        "missing_cents": order.total_cents - amount_tendered_cents,
                    }
                )
            order.amount_received_cents = amount_tendered_cents
            order.change_cents = amount_tendered_cents - order.total_cents
        else:
            order.amount_received_cents = order.total_cents
            order.change_cents = 0

        session = self.sessions.current()
        order.payment_type = payment_type
        order.status = OrderStatus.PAID
        order.paid_at = utc_now()
        order.session_id = session.id if session else MANUAL_SESSION_ID

    def _save(self, order: Order) -> Order:
        doc = self.db.update(
            Collections.ORDERS, order.id, order.to_document(),
            expected_version=order.version
        )
        return Order.from_document(doc)

    def _release_table(self, order: Order, actor_id: str) -> bool:
        try:
            self.tables.release(order.table_number, actor_id, order_id=order.id)
        except BaseApplicationError as e:
            logger.error(
                "订单 %s 已支付，但释放%s号桌失败: %s（等待一致性检查修复）",
                order.id, order.table_number, e.message
            )
            return False
        return True
