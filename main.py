"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import invoices as invoice_routes
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.bootstrap import PaymentPipeline, build_pipeline


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


def create_app(pipeline: Optional[PaymentPipeline] = None) -> FastAPI:
    """
    创建应用

    Args:
        pipeline: 预先装配的流水线（测试注入）；为空时在启动阶段按配置装配
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        active = pipeline or build_pipeline(settings)
        await active.start()
        app.state.pipeline = active
        logger.info(
            "application_started",
            providers=[p.value for p in active.registry.providers()],
            environment=settings.ENVIRONMENT,
        )
        try:
            yield
        finally:
            await active.aclose()
            logger.info("application_shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="旅游预订支付校验与发票开具服务",
    )

    # 添加中间件（注意顺序：从下往上执行）
    # 1. 日志中间件（依赖request_id）
    app.add_middleware(LoggingMiddleware)
    # 2. Request ID中间件（最先执行，为后续中间件提供request_id）
    app.add_middleware(RequestIDMiddleware)
    # 3. CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册全局异常处理器
    register_exception_handlers(app)

    # 注册路由
    app.include_router(payments_routes.router, prefix="/api/v1")
    app.include_router(invoice_routes.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "docs": "/docs",
                "redoc": "/redoc",
            },
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return success_response(data={"status": "healthy"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
