"""
商品目录服务
管理商品、分类和店铺设置

业务规则：
- 商品只做软删除（下架），订单中已快照的信息不受影响
- 分类按 display_order 排序，新分类顺序号 = 当前最大值 + 1
- 删除分类不影响商品，商品上保留原分类名称
- 只有管理员可以维护目录和设置
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from ..core.database import Collections, DatabaseManager, db_manager
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.security import require_role
from ..models.catalog import BusinessSettings, Category, OptionGroup, Product
from ..models.user import Caller, Role

logger = logging.getLogger(__name__)

SETTINGS_DOC_ID = "business"

# 空库时写入的初始菜单
SEED_CATEGORIES = ["Pasteis de Carne", "Pasteis de Frango", "Pasteis Especiais", "Bebidas"]

SEED_PRODUCTS = [
    ("1", "Pastel de Carne", "Carne moída temperada, ovo e azeitona", "Pasteis de Carne", 1250, True),
    ("2", "Carne com Queijo", "Carne moída com mussarela derretida", "Pasteis de Carne", 1350, True),
    ("3", "Pastel de Frango", "Frango desfiado temperado", "Pasteis de Frango", 1100, True),
    ("4", "Frango c/ Catupiry", "Frango desfiado com o legítimo Catupiry", "Pasteis de Frango", 1400, True),
    ("5", "4 Queijos Especial", "Mussarela, provolone, parmesão e gorgonzola", "Pasteis Especiais", 1600, True),
    ("6", "Pastel de Bacalhau", "Bacalhau do porto desfiado com azeitonas", "Pasteis Especiais", 2200, True),
    ("7", "Caldo de Cana 500ml", "Moído na hora, bem geladinho", "Bebidas", 800, True),
    ("8", "Coca-Cola Lata", "350ml gelada", "Bebidas", 650, False),
]


class CatalogService:
    """商品目录服务类"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    # ------------------------------------------------------------------
    # 商品
    # ------------------------------------------------------------------

    def list_active(self) -> List[Product]:
        """
        获取上架商品

        按分类顺序排序，同一分类内按名称排序；分类已删除的商品排在最后。
        """
        order_of = {c.name: c.display_order for c in self.list_categories()}
        products = [p for p in self.list_products() if p.active]
        return sorted(
            products,
            key=lambda p: (p.category not in order_of, order_of.get(p.category, 0), p.name)
        )

    def list_products(self) -> List[Product]:
        """获取全部商品（含已下架）"""
        docs = self.db.query(Collections.PRODUCTS, order_by="name")
        return [Product.from_document(d) for d in docs]

    def get_product(self, product_id: str) -> Product:
        doc = self.db.get(Collections.PRODUCTS, product_id)
        if doc is None:
            raise NotFoundError("商品不存在", details={"product_id": product_id})
        return Product.from_document(doc)

    def upsert_product(self, caller: Caller, data: Dict[str, Any],
                       product_id: Optional[str] = None) -> Product:
        """
        新建或修改商品

        Args:
            caller: 调用方（必须是管理员）
            data: 商品字段
            product_id: 为空时新建

        Raises:
            ValidationError: 名称为空、价格为负、选项组不合法
        """
        require_role(caller, Role.ADMIN, action="upsert_product")

        if product_id:
            current = self.get_product(product_id).to_document()
            current.update(data)
            data = current
        product = self._validate_product({**data, "id": product_id or uuid.uuid4().hex})

        doc = self.db.set(Collections.PRODUCTS, product.id, product.to_document())
        logger.info("商品已保存: %s (%s)", product.name, product.id)
        return Product.from_document(doc)

    def deactivate_product(self, caller: Caller, product_id: str) -> Product:
        """下架商品（软删除）"""
        require_role(caller, Role.ADMIN, action="deactivate_product")
        self.get_product(product_id)
        doc = self.db.update(Collections.PRODUCTS, product_id, {"active": False})
        return Product.from_document(doc)

    def _validate_product(self, data: Dict[str, Any]) -> Product:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("商品名称不能为空", details={"field": "name"})

        price_cents = data.get("price_cents")
        if not isinstance(price_cents, int) or isinstance(price_cents, bool) or price_cents < 0:
            raise ValidationError(
                "商品价格必须为非负整数（分）",
                details={"field": "price_cents", "value": price_cents}
            )

        groups = [OptionGroup.model_validate(g) for g in data.get("option_groups") or []]
        seen = set()
        for group in groups:
            if not group.name or group.name in seen:
                raise ValidationError(
                    "选项组名称不能为空且不能重复",
                    details={"field": "option_groups", "group": group.name}
                )
            seen.add(group.name)
            if not group.choices:
                raise ValidationError(
                    f"选项组 {group.name} 没有可选值",
                    details={"field": "option_groups", "group": group.name}
                )

        return Product.model_validate({**data, "name": name, "option_groups": groups})

    # ------------------------------------------------------------------
    # 分类
    # ------------------------------------------------------------------

    def list_categories(self) -> List[Category]:
        """按显示顺序获取分类"""
        docs = self.db.query(Collections.CATEGORIES, order_by="display_order")
        return [Category.from_document(d) for d in docs]

    def add_category(self, caller: Caller, name: str) -> Category:
        """
        新建分类，顺序号为当前最大值 + 1（空表时为 1）

        Raises:
            ValidationError: 名称为空
            ConflictError: 分类名称已存在
        """
        require_role(caller, Role.ADMIN, action="add_category")
        name = (name or "").strip()
        if not name:
            raise ValidationError("分类名称不能为空", details={"field": "name"})

        with self.db.transaction():
            categories = self.list_categories()
            if any(c.name == name for c in categories):
                raise ConflictError("分类已存在", details={"name": name})
            next_order = max((c.display_order for c in categories), default=0) + 1
            category = Category(id=uuid.uuid4().hex, name=name, display_order=next_order)
            self.db.create(Collections.CATEGORIES, category.to_document(), doc_id=category.id)
        return category.model_copy(update={"version": 1})

    def delete_category(self, caller: Caller, category_id: str):
        """删除分类，商品保留原分类名称"""
        require_role(caller, Role.ADMIN, action="delete_category")
        if not self.db.delete(Collections.CATEGORIES, category_id):
            raise NotFoundError("分类不存在", details={"category_id": category_id})

    # ------------------------------------------------------------------
    # 店铺设置
    # ------------------------------------------------------------------

    def get_settings(self) -> BusinessSettings:
        doc = self.db.get(Collections.SETTINGS, SETTINGS_DOC_ID)
        if doc is None:
            return BusinessSettings()
        return BusinessSettings.model_validate(doc.data)

    def update_settings(self, caller: Caller, changes: Dict[str, Any]) -> BusinessSettings:
        require_role(caller, Role.ADMIN, action="update_settings")
        merged = self.get_settings().model_dump()
        merged.update(changes)
        updated = BusinessSettings.model_validate(merged)
        if updated.default_delivery_fee_cents < 0:
            raise ValidationError(
                "配送费不能为负数",
                details={"field": "default_delivery_fee_cents"}
            )
        self.db.set(Collections.SETTINGS, SETTINGS_DOC_ID, updated.model_dump(mode="json"))
        return updated

    # ------------------------------------------------------------------
    # 初始数据
    # ------------------------------------------------------------------

    def seed_if_empty(self) -> int:
        """空库时写入初始菜单，返回写入的商品数"""
        with self.db.transaction():
            if self.db.query(Collections.PRODUCTS, limit=1):
                return 0
            if not self.db.query(Collections.CATEGORIES, limit=1):
                for order, name in enumerate(SEED_CATEGORIES, start=1):
                    category = Category(id=uuid.uuid4().hex, name=name, display_order=order)
                    self.db.create(Collections.CATEGORIES, category.to_document(), doc_id=category.id)
            for product_id, name, description, category, price_cents, kitchen in SEED_PRODUCTS:
                product = Product(
                    id=product_id,
                    name=name,
                    description=description,
                    category=category,
                    price_cents=price_cents,
                    image_url=f"https://picsum.photos/seed/p{product_id}/300/200",
                    requires_preparation=kitchen,
                )
                self.db.create(Collections.PRODUCTS, product.to_document(), doc_id=product.id)
        logger.info("已写入初始菜单: %d 个商品", len(SEED_PRODUCTS))
        return len(SEED_PRODUCTS)
