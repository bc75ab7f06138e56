"""
Payflow 服务入口：装配中间件、异常处理器与支付路由
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import create_tables, engine
from infrastructure.external.cache import init_redis_client, shutdown_redis_client


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DEBUG:
        # 仅开发环境自动建表；其他环境执行 alembic upgrade head
        await create_tables()
        logger.info("database_tables_created")

    if settings.redis.url:
        try:
            await init_redis_client()
        except Exception as exc:
            # webhook 去重退化为基于订单状态的判断
            logger.error("redis_init_failed", error=str(exc))

    logger.info("application_started", environment=settings.ENVIRONMENT)
    yield

    if settings.redis.url:
        await shutdown_redis_client()
    await engine.dispose()
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="订单支付意图生命周期与支付回调对账服务",
    )

    # 后添加的中间件先执行：RequestID -> Logging -> CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(RequestIDMiddleware)

    register_exception_handlers(application)
    application.include_router(payments_routes.router, prefix="/api/v1")

    @application.get("/health", tags=["Health"])
    async def health_check():
        """存活检查，不访问外部依赖"""
        return success_response(data={"status": "healthy"}, message="OK")

    @application.get("/health/ready", tags=["Health"])
    async def readiness_check():
        """就绪检查：订单库可连通"""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("readiness_check_failed", error=str(exc))
            return success_response(data={"status": "degraded", "database": "unavailable"}, message="Degraded")
        return success_response(data={"status": "ready", "database": "ok"}, message="OK")

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
