"""
收银班次路由模块
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import get_caller, require_role
from ...models.user import REGISTER_ROLES, Caller
from ...schemas.register import SessionOpenRequest
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter()


@router.post("/open")
def open_session(req: SessionOpenRequest, caller: Caller = Depends(get_caller),
                 services: ServiceContainer = Depends(get_services)):
    """开班"""
    session = services.sessions.open(caller, req.initial_amount_cents)
    return create_success_response(session.model_dump(mode="json"), "开班成功")


@router.post("/close")
def close_session(caller: Caller = Depends(get_caller),
                  services: ServiceContainer = Depends(get_services)):
    """关班并返回汇总"""
    summary = services.sessions.close(caller)
    return create_success_response(summary.model_dump(mode="json"), "关班成功")


@router.get("/current")
def current_session(caller: Caller = Depends(get_caller),
                    services: ServiceContainer = Depends(get_services)):
    require_role(caller, *REGISTER_ROLES, action="current_session")
    session = services.sessions.current()
    return create_success_response(session.model_dump(mode="json") if session else None, "查询成功")


@router.get("")
def list_sessions(caller: Caller = Depends(get_caller),
                  services: ServiceContainer = Depends(get_services)):
    require_role(caller, *REGISTER_ROLES, action="list_sessions")
    sessions = services.sessions.list_sessions()
    return create_success_response([s.model_dump(mode="json") for s in sessions], "查询成功")


@router.get("/{session_id}/report")
def session_report(session_id: str, caller: Caller = Depends(get_caller),
                   services: ServiceContainer = Depends(get_services)):
    """班次报告数据"""
    return create_success_response(services.receipts.build_session_report(caller, session_id))
