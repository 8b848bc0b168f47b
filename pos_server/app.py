"""
POS 点单收银后端服务入口

路由：
- /api/v1/catalog   商品、分类、店铺设置
- /api/v1/tables    桌台与一致性修复
- /api/v1/sessions  收银班次
- /api/v1/orders    订单生命周期
- /api/v1/carts     顾客购物车
- /api/v1/reports   销售报表

启动时建表、按配置写入演示数据，并释放引用了已结束订单的桌台。
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config.settings import settings
from .core.database import DatabaseManager, db_manager
from .core.error_handler import register_exception_handlers
from .core.exceptions import StorageUnavailableError
from .services.container import ServiceContainer

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _startup(services: ServiceContainer):
    services.db.init_database()
    if settings.seed_demo_data:
        services.catalog.seed_if_empty()
        services.tables.seed_if_empty(settings.seed_table_count)
    healed = services.consistency.heal_tables()
    if healed["count"]:
        logger.warning("启动时释放了 %d 张桌台: %s", healed["count"], healed["repaired_tables"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: ServiceContainer = app.state.services
    try:
        _startup(services)
        logger.info("数据库已就绪: %s", services.db.db_path)
    except StorageUnavailableError as e:
        # 存储暂不可用时照常启动，请求会返回 503
        logger.error("数据库初始化失败: %s", e.message)

    yield

    if app.state.owns_db:
        services.db.close()


def create_app(db: Optional[DatabaseManager] = None) -> FastAPI:
    """
    创建应用

    Args:
        db: 指定时使用该数据库（测试用内存库），应用关闭时不负责关闭它
    """
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="POS 点单收银系统API",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.services = ServiceContainer(db or db_manager)
    app.state.owns_db = db is None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    def health_check():
        status = {"version": settings.api_version}
        try:
            app.state.services.db.init_database()
        except StorageUnavailableError as e:
            return {**status, "status": "unhealthy", "database": f"error: {e.message}"}
        return {**status, "status": "healthy", "database": "connected"}

    @app.get("/")
    def root():
        return {"name": settings.api_title, "version": settings.api_version}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pos_server.app:app", host="127.0.0.1", port=8000, reload=settings.debug)
