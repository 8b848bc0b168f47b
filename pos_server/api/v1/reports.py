"""
报表路由模块
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import get_caller
from ...models.user import Caller
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter()


@router.get("/daily")
def daily_totals(caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    """按日汇总"""
    return create_success_response(services.reports.daily_totals(caller), "查询成功")


@router.get("/categories")
def category_breakdown(caller: Caller = Depends(get_caller),
                       services: ServiceContainer = Depends(get_services)):
    return create_success_response(services.reports.category_breakdown(caller), "查询成功")


@router.get("/sessions/{session_id}")
def session_summary(session_id: str, caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    summary = services.reports.session_summary(caller, session_id)
    return create_success_response(summary.model_dump(mode="json"), "查询成功")
