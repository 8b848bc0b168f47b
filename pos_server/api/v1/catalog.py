"""
商品目录路由模块
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import get_caller
from ...models.user import Caller
from ...schemas.catalog import CategoryCreateRequest, ProductUpsertRequest, SettingsUpdateRequest
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter()


@router.get("/products")
def list_products(caller: Caller = Depends(get_caller),
                  services: ServiceContainer = Depends(get_services)):
    """上架商品，按分类顺序排列"""
    products = services.catalog.list_active()
    return create_success_response([p.model_dump(mode="json") for p in products], "查询成功")


@router.post("/products")
def create_product(req: ProductUpsertRequest, caller: Caller = Depends(get_caller),
                   services: ServiceContainer = Depends(get_services)):
    product = services.catalog.upsert_product(caller, req.model_dump(exclude_unset=True))
    return create_success_response(product.model_dump(mode="json"), "商品已创建")


@router.put("/products/{product_id}")
def update_product(product_id: str, req: ProductUpsertRequest, caller: Caller = Depends(get_caller),
                   services: ServiceContainer = Depends(get_services)):
    product = services.catalog.upsert_product(
        caller, req.model_dump(exclude_unset=True), product_id=product_id
    )
    return create_success_response(product.model_dump(mode="json"), "商品已更新")


@router.delete("/products/{product_id}")
def deactivate_product(product_id: str, caller: Caller = Depends(get_caller),
                       services: ServiceContainer = Depends(get_services)):
    """下架商品"""
    product = services.catalog.deactivate_product(caller, product_id)
    return create_success_response(product.model_dump(mode="json"), "商品已下架")


@router.get("/categories")
def list_categories(caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    categories = services.catalog.list_categories()
    return create_success_response([c.model_dump(mode="json") for c in categories], "查询成功")


@router.post("/categories")
def add_category(req: CategoryCreateRequest, caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    category = services.catalog.add_category(caller, req.name)
    return create_success_response(category.model_dump(mode="json"), "分类已创建")


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    services.catalog.delete_category(caller, category_id)
    return create_success_response(message="分类已删除")


@router.get("/settings")
def get_settings(caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    return create_success_response(services.catalog.get_settings().model_dump(mode="json"))


@router.put("/settings")
def update_settings(req: SettingsUpdateRequest, caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    updated = services.catalog.update_settings(caller, req.model_dump(exclude_unset=True))
    return create_success_response(updated.model_dump(mode="json"), "设置已保存")
