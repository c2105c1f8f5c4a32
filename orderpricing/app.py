"""
订单定价服务 - 主应用入口
提供多租户餐厅点餐平台的定价、促销、税费和发票编号API服务

主要功能模块：
- 购物车定价与报价
- 促销码校验、折扣分摊和核销
- 税额快照计算
- 历史订单金额归一化
- 发票编号分配
- 营业额和税务报表

技术栈：FastAPI + DuckDB + pydantic
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config import Settings, load_settings, settings
from .core.database import DatabaseManager
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError, DatabaseError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时初始化数据库
    try:
        app.state.db.init_database()
        logger.info("Database initialized: %s", app.state.db.db_path)
    except DatabaseError as e:
        # 不要让应用启动失败，允许在运行时重试
        logger.error("Database initialization failed: %s", e.message)

    yield

    if app.state.owns_db:
        app.state.db.close()


def create_app(app_settings: Optional[Settings] = None,
               db: Optional[DatabaseManager] = None) -> FastAPI:
    """创建FastAPI应用"""
    app_settings = app_settings or settings
    app = FastAPI(
        title=app_settings.api_title,
        version=app_settings.api_version,
        description="多租户餐厅订单定价、税费与发票编号API",
        debug=app_settings.debug,
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.owns_db = db is None
    app.state.db = db or DatabaseManager(app_settings=app_settings)

    # 添加中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册异常处理器
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # 注册路由
    app.include_router(api_router, prefix=app_settings.api_prefix)

    # 健康检查
    @app.get("/health")
    async def health_check():
        try:
            app.state.db.execute_one("SELECT 1")
            return {
                "status": "healthy",
                "version": app_settings.api_version,
                "database": "connected"
            }
        except DatabaseError as e:
            return {
                "status": "unhealthy",
                "version": app_settings.api_version,
                "database": f"error: {e.message}"
            }

    @app.get("/")
    async def root():
        return {
            "name": app_settings.api_title,
            "version": app_settings.api_version,
            "description": "多租户餐厅订单定价、税费与发票编号API"
        }

    return app


# 应用实例
app = create_app(load_settings())
