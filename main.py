"""Mayombe overlay backend - 目录与实时 overlay 属性合并服务入口。"""

from fastapi import FastAPI
from fastapi.concurrency import asynccontextmanager
from fastapi.routing import APIRoute
from loguru import logger
from starlette.middleware.cors import CORSMiddleware

from src.core.application import dependencies as core_app_deps
from src.core.config import settings
from src.core.domain.exceptions import DomainException
from src.core.infrastructure.local_store import get_local_store, local_store
from src.core.infrastructure.logging import setup_logging
from src.core.infrastructure.redis import redis_client
from src.core.interfaces.http.exceptions import (
    domain_exception_handler,
    global_exception_handler,
)
from src.core.interfaces.http.routers import api_router
from src.modules.catalog.application import dependencies as catalog_app_deps
from src.modules.catalog.infrastructure import dependencies as catalog_infra_deps
from src.modules.images.application import dependencies as images_app_deps
from src.modules.images.infrastructure import dependencies as images_infra_deps
from src.modules.overlay.application import dependencies as overlay_app_deps
from src.modules.overlay.infrastructure import dependencies as overlay_infra_deps
from src.modules.ratings.application import dependencies as ratings_app_deps
from src.modules.ratings.application.services import RatingAggregateMemo


def custom_generate_unique_id(route: APIRoute) -> str:
    """Generate unique operation IDs for OpenAPI."""
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting mayombe overlay backend...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    yield

    logger.info("Shutting down mayombe overlay backend...")
    await redis_client.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description=(
        "目录（只读 REST）与实时 overlay（营业状态、图片、促销价、评分）合并服务\n\n"
        "- 列表接口按属性类批量读取 overlay，失败时退化为默认值\n"
        "- 管理接口写入 overlay，失败时返回可重试错误"
    ),
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    root_path=settings.ROOTPATH,
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)

# 进程内评分聚合缓存（显式对象，随应用生命周期存在）
rating_memo = RatingAggregateMemo()

# Dependency overrides (application -> infrastructure)
app.dependency_overrides[core_app_deps.get_local_kv_client] = get_local_store

app.dependency_overrides[overlay_app_deps.get_overlay_backend] = (
    overlay_infra_deps.get_overlay_backend
)

app.dependency_overrides[ratings_app_deps.get_rating_memo] = lambda: rating_memo

app.dependency_overrides[catalog_app_deps.get_catalog_source] = (
    catalog_infra_deps.get_catalog_source
)

app.dependency_overrides[images_app_deps.get_image_fetcher] = (
    images_infra_deps.get_image_fetcher
)

# Exception handlers
app.add_exception_handler(DomainException, domain_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# CORS middleware
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint.

    检查关键依赖的健康状态：
    - Redis（overlay 存储）
    - 本地持久化存储（图片缓存、访客 ID）

    Overlay 不可用时读取会退化为默认值，因此整体状态为 degraded 而不是 unhealthy。
    """
    redis_health_result = await redis_client.health_check()
    local_store_health_result = await local_store.health_check()

    redis_ok = redis_health_result.status.value == "ok"
    local_ok = local_store_health_result.status.value == "ok"

    if redis_ok and local_ok:
        overall_status = "healthy"
    else:
        overall_status = "degraded"

    return {
        "status": overall_status,
        "environment": settings.ENVIRONMENT,
        "version": "0.1.0",
        "components": {
            "redis": redis_health_result.to_dict(),
            "local_store": local_store_health_result.to_dict(),
        },
    }


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to mayombe overlay API",
        "docs": f"{settings.API_V1_STR}/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.SERVER_PORT,
        reload=settings.ENVIRONMENT == "local",
    )
