"""
桌台路由模块
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import get_caller, require_role
from ...models.user import STAFF_ROLES, Caller
from ...schemas.register import TableCreateRequest, TableServiceRequest
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter()


@router.get("")
def list_tables(caller: Caller = Depends(get_caller),
                services: ServiceContainer = Depends(get_services)):
    require_role(caller, *STAFF_ROLES, action="list_tables")
    tables = services.tables.list_tables()
    return create_success_response([t.model_dump(mode="json") for t in tables], "查询成功")


@router.post("")
def create_table(req: TableCreateRequest, caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    table = services.tables.create_table(caller, req.number)
    return create_success_response(table.model_dump(mode="json"), "桌台已创建")


@router.post("/{table_number}/service")
def set_table_service(table_number: int, req: TableServiceRequest,
                      caller: Caller = Depends(get_caller),
                      services: ServiceContainer = Depends(get_services)):
    """暂停/恢复桌台服务"""
    table = services.tables.set_service(caller, table_number, req.closed)
    return create_success_response(table.model_dump(mode="json"), "桌台状态已更新")


@router.get("/consistency")
def check_tables(caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    return create_success_response(services.consistency.check_tables(caller), "检查完成")


@router.post("/heal")
def heal_tables(caller: Caller = Depends(get_caller),
                services: ServiceContainer = Depends(get_services)):
    """释放引用了已结束订单的桌台"""
    return create_success_response(services.consistency.heal_tables(caller), "修复完成")
