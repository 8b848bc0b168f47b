"""
商品目录相关的请求模式
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.catalog import OptionGroup


class ProductUpsertRequest(BaseModel):
    """新建/修改商品请求，修改时只提交需要变更的字段"""
    name: Optional[str] = Field(None, description="商品名称")
    description: Optional[str] = Field(None, description="描述")
    category: Optional[str] = Field(None, description="分类名称")
    price_cents: Optional[int] = Field(None, description="单价（分）")
    image_url: Optional[str] = Field(None, description="图片地址")
    active: Optional[bool] = Field(None, description="是否上架")
    ingredients: Optional[List[str]] = Field(None, description="配料")
    option_groups: Optional[List[OptionGroup]] = Field(None, description="定制选项组")
    requires_preparation: Optional[bool] = Field(None, description="是否需要后厨制作")


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., description="分类名称")


class SettingsUpdateRequest(BaseModel):
    banner_url: Optional[str] = None
    business_whatsapp: Optional[str] = None
    default_delivery_fee_cents: Optional[int] = None
