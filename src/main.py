"""FastAPI 应用入口。"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import get_settings
from src.database.async_session import dispose_async_engine, get_async_engine
from src.database.models import Base
from src.feed.services.feed_service import FeedService
from src.reaction.infrastructure.repository import ReactionRepository
from src.reaction.services.reaction_controller import ReactionController
from src.store import create_document_store

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理。

    启动时创建数据库表、文档存储和服务实例。
    关闭时释放存储和数据库连接池。
    """
    _configure_logging()
    settings = get_settings()

    # 启动时创建数据库表
    if settings.document_store_backend == "sql":
        async with get_async_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    store = create_document_store()
    app.state.store = store
    app.state.feed_service = FeedService.from_settings(store, settings)
    app.state.reaction_controller = ReactionController(
        ReactionRepository(store, track_user_stats=settings.track_user_support_stats),
        max_states=settings.reaction_state_capacity,
    )
    logger.info("服务已启动，文档存储: %s", settings.document_store_backend)

    yield

    # 关闭时的清理工作
    await store.close()
    await dispose_async_engine()
    logger.info("服务已停止")


# 创建 FastAPI 应用
app = FastAPI(
    title="Community Feed",
    description="社区条目 Feed、筛选、搜索、相似条目与支持反应服务",
    version="0.1.0",
    lifespan=lifespan,
)

# 配置 CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 配置 Prometheus 监控中间件（在 CORS 之后）
from src.monitoring.middleware import PrometheusMiddleware

settings = get_settings()
if settings.prometheus_enabled:
    app.add_middleware(PrometheusMiddleware)


@app.get("/health")
async def health_check():
    """健康检查端点。

    检查文档存储是否可读，始终返回 HTTP 200。
    """
    from src.feed.infrastructure.repository import COLLECTION_ENTRIES

    components = {}

    store = getattr(app.state, "store", None)
    if store is None:
        components["store"] = {"status": "unhealthy", "error": "not initialized"}
    else:
        try:
            await store.count(COLLECTION_ENTRIES)
            components["store"] = {"status": "healthy"}
        except Exception as e:
            components["store"] = {"status": "unhealthy", "error": str(e)}

    overall = "healthy"
    if any(c["status"] == "unhealthy" for c in components.values()):
        overall = "degraded"

    return {"status": overall, "components": components}


# 注册 API 路由
from src.feed.api.routes import router as feed_router
from src.reaction.api.routes import router as reaction_router

app.include_router(feed_router)
app.include_router(reaction_router)

# 注册 Prometheus 监控路由
from src.monitoring import routes as monitoring_routes

app.include_router(monitoring_routes.router)


def main() -> None:
    """开发环境启动入口。"""
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=get_settings().log_level.lower(),
    )


if __name__ == "__main__":
    main()
