"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import carts, catalog, orders, reports, sessions, tables

api_router = APIRouter()

# 包含所有v1路由
api_router.include_router(catalog.router, prefix="/catalog", tags=["商品目录"])
api_router.include_router(tables.router, prefix="/tables", tags=["桌台"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["收银班次"])
api_router.include_router(orders.router, prefix="/orders", tags=["订单"])
api_router.include_router(carts.router, prefix="/carts", tags=["购物车"])
api_router.include_router(reports.router, prefix="/reports", tags=["报表"])
