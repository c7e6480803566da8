"""
app.main
~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api import signaling_ws, streams
from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.core.rate_limit import limiter
from app.schemas.api_response import ApiResponse
from app.services.connection_hub import ConnectionHub
from app.services.relay_router import RelayRouter
from app.services.session_manager import SessionManager
from app.services.signaling_dispatcher import SignalingDispatcher
from app.services.stream_registry import StreamRegistry

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：启动时创建注册表与各服务，关闭时清空注册表。"""
    # ── 启动 ──
    registry = StreamRegistry()
    hub = ConnectionHub()
    manager = SessionManager(registry, hub, report_join_failures=settings.REPORT_JOIN_FAILURES)
    relay = RelayRouter(hub)

    app.state.registry = registry
    app.state.hub = hub
    app.state.session_manager = manager
    app.state.relay_router = relay
    app.state.dispatcher = SignalingDispatcher(
        manager, relay, hub, chat_interval_seconds=settings.WS_RATE_LIMIT_INTERVAL,
    )
    logger.info(
        "🚀 信令服务已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    logger.info("👋 信令服务已关闭 | 清理直播数: %d", len(registry))
    registry.clear()


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="点对点音视频直播的会合与信令转发服务",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── CORS 中间件 ───────────────────────────────────────────────────────
if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
else:
    # prod 环境：按 CORS_ORIGINS 放行，默认为 "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(streams.router, prefix="/api", tags=["Streams"])
app.include_router(signaling_ws.router, tags=["Signaling"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(
        status_code=500,
        content=response.model_dump(),
    )


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """验证服务是否正常运行。

    Returns:
        包含服务状态、在线连接数与直播数的 JSON 响应。
    """
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "debug": settings.debug,
            "log_level": settings.effective_log_level,
            "online_connections": request.app.state.hub.online_count,
            "active_streams": len(request.app.state.registry),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
