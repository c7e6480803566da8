"""
app.api.signaling_ws
~~~~~~~~~~~~~~~~~~~~

WebSocket 信令接口。

提供 ``/ws`` 端点：每条连接在接入时获得一个连接 ID（首帧 ``connected``），
之后收发的每一帧都是 ``{"event": ..., "data": ...}`` JSON 信封，
由 ``SignalingDispatcher`` 负责解析与路由。

连接断开（无论正常还是异常）都会执行一次主播 + 观众身份的清理。
"""
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.logging import get_logger, request_id_ctx_var
from app.schemas.signaling import EVT_CONNECTED, ConnectedData
from app.services.connection_hub import ConnectionHub
from app.services.session_manager import SessionManager
from app.services.signaling_dispatcher import SignalingDispatcher

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws")
async def websocket_signaling_endpoint(websocket: WebSocket) -> None:
    """WebSocket 信令端点。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    hub: ConnectionHub = websocket.app.state.hub
    manager: SessionManager = websocket.app.state.session_manager
    dispatcher: SignalingDispatcher = websocket.app.state.dispatcher

    connection_id = await hub.connect(websocket)
    token = request_id_ctx_var.set(f"ws-{connection_id[:8]}")
    logger.info("连接接入 | 在线: %d", hub.online_count)

    try:
        await hub.send(connection_id, EVT_CONNECTED, ConnectedData(connection_id=connection_id).to_wire())
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # 文本帧与二进制帧都交给分发器，二进制按 UTF-8 解码
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await dispatcher.dispatch(connection_id, raw)
    except WebSocketDisconnect:
        pass  # 正常断开
    except Exception as e:
        logger.error("WebSocket 处理异常: %s", e, exc_info=True)
    finally:
        hub.disconnect(connection_id)
        dispatcher.forget(connection_id)
        await manager.handle_disconnect(connection_id)
        logger.info("连接断开 | 在线: %d", hub.online_count)
        request_id_ctx_var.reset(token)
