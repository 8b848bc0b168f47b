"""
路由依赖
"""

from fastapi import Request

from ..services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """应用启动时装配的服务"""
    return request.app.state.services
