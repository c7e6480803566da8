"""
app.api.streams
~~~~~~~~~~~~~~~

直播发现 REST 接口 —— 与 WebSocket ``get-streams`` 返回同一份快照。

端点:
  - ``GET /streams``               → 获取当前直播列表
  - ``GET /streams/{stream_key}``  → 获取单路直播详情
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_registry, get_session_manager
from app.core.rate_limit import limiter
from app.schemas.api_response import ApiResponse
from app.schemas.signaling import StreamInfoData
from app.services.session_manager import SessionManager
from app.services.stream_registry import StreamRegistry

router: APIRouter = APIRouter()


@router.get("/streams", summary="获取当前直播列表", response_model=ApiResponse[list[StreamInfoData]])
@limiter.limit("20/second")
async def list_streams(request: Request, manager: SessionManager = Depends(get_session_manager)):
    """返回所有正在进行的直播（含观众数）。"""
    return ApiResponse.ok(data=manager.list_streams())


@router.get(
    "/streams/{stream_key}",
    summary="获取直播详情",
    response_model=ApiResponse[StreamInfoData],
    responses={404: {"model": ApiResponse[None]}},
)
@limiter.limit("20/second")
async def stream_detail(request: Request, stream_key: str, registry: StreamRegistry = Depends(get_registry)):
    """返回指定直播的摘要信息。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        stream_key: 直播流唯一标识。
    """
    stream = registry.get(stream_key)
    if stream is None:
        return JSONResponse(
            status_code=404,
            content=ApiResponse.fail(msg=f"直播流不存在: {stream_key}", code=404).model_dump(),
        )
    return ApiResponse.ok(data=stream.info())
