"""
商品目录相关数据模型
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from .base import BaseEntity, DocumentEntity, cents_to_decimal


class OptionGroup(BaseEntity):
    """商品定制选项组，例如"辣度" -> ["不辣", "微辣"]"""
    name: str = Field(..., description="选项组名称")
    required: bool = Field(False, description="是否必选")
    choices: List[str] = Field(default_factory=list, description="可选值")


class Product(DocumentEntity):
    """商品"""
    name: str = Field(..., description="商品名称")
    description: str = Field("", description="描述")
    category: str = Field("", description="分类名称（非外键）")
    price_cents: int = Field(..., description="单价（分）")
    image_url: Optional[str] = Field(None, description="图片地址")
    active: bool = Field(True, description="是否上架")
    ingredients: List[str] = Field(default_factory=list, description="配料")
    option_groups: List[OptionGroup] = Field(default_factory=list, description="定制选项组")
    requires_preparation: bool = Field(False, description="是否需要后厨制作")

    @property
    def price(self) -> Decimal:
        return cents_to_decimal(self.price_cents)

    def find_group(self, name: str) -> Optional[OptionGroup]:
        for group in self.option_groups:
            if group.name == name:
                return group
        return None


class Category(DocumentEntity):
    """商品分类"""
    name: str = Field(..., description="分类名称")
    display_order: int = Field(..., description="显示顺序")


class BusinessSettings(BaseEntity):
    """店铺设置"""
    banner_url: Optional[str] = Field(None, description="菜单横幅图片")
    business_whatsapp: Optional[str] = Field(None, description="店铺 WhatsApp 号码")
    default_delivery_fee_cents: int = Field(0, description="默认配送费（分）")
