"""
app.services.signaling_dispatcher
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

信令分发 —— 在边界处校验信封与载荷，再按事件名交给 ``SessionManager`` 或 ``RelayRouter``。

格式错误、未知事件与聊天限流只会向发送方回一帧 ``error``，连接保持打开。
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from app.core.logging import get_logger
from app.core.rate_limit import WebSocketRateLimiter
from app.schemas.signaling import (
    EVT_ANSWER,
    EVT_CHAT_MESSAGE,
    EVT_ERROR,
    EVT_GET_STREAMS,
    EVT_ICE_CANDIDATE,
    EVT_JOIN_STREAM,
    EVT_LEAVE_STREAM,
    EVT_OFFER,
    EVT_START_STREAM,
    EVT_STOP_STREAM,
    AnswerRequest,
    ChatMessageRequest,
    ErrorData,
    IceCandidateRequest,
    JoinStreamRequest,
    OfferRequest,
    SignalEnvelope,
    StartStreamRequest,
)
from app.services.connection_hub import ConnectionHub
from app.services.relay_router import RelayRouter
from app.services.session_manager import SessionManager

logger = get_logger(__name__)

Handler = Callable[[str, Any], Awaitable[Any]]


class SignalingDispatcher:
    """把一帧原始文本解析、校验并路由到对应的处理函数。

    Attributes:
        manager: 会话生命周期管理器。
        relay: 信令转发器。
        hub: 连接中心（用于回复 error）。
        chat_limiter: 聊天消息限流器，按连接 ID 计时。
    """

    def __init__(
        self,
        manager: SessionManager,
        relay: RelayRouter,
        hub: ConnectionHub,
        chat_interval_seconds: float = 0.5,
    ) -> None:
        self.manager = manager
        self.relay = relay
        self.hub = hub
        self.chat_limiter = WebSocketRateLimiter(interval_seconds=chat_interval_seconds)

        # 事件名 → (载荷模型, 处理函数)；模型为 None 表示不需要载荷
        self._routes: dict[str, tuple[type[BaseModel] | None, Handler]] = {
            EVT_GET_STREAMS: (None, self._on_get_streams),
            EVT_START_STREAM: (StartStreamRequest, self.manager.start_stream),
            EVT_STOP_STREAM: (None, self._on_stop_stream),
            EVT_JOIN_STREAM: (JoinStreamRequest, self._on_join_stream),
            EVT_LEAVE_STREAM: (None, self._on_leave_stream),
            EVT_OFFER: (OfferRequest, self.relay.relay_offer),
            EVT_ANSWER: (AnswerRequest, self.relay.relay_answer),
            EVT_ICE_CANDIDATE: (IceCandidateRequest, self.relay.relay_ice_candidate),
            EVT_CHAT_MESSAGE: (ChatMessageRequest, self._on_chat_message),
        }

    @property
    def events(self) -> list[str]:
        """支持的入站事件名。"""
        return list(self._routes)

    async def dispatch(self, connection_id: str, raw: str | bytes) -> bool:
        """处理一帧入站消息（文本帧或 UTF-8 二进制帧），返回是否成功路由到处理函数。"""
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("二进制帧不是合法 UTF-8 | size=%d", len(raw))
                await self._reply_error(connection_id, None, "二进制帧必须是 UTF-8 编码的 JSON")
                return False

        try:
            envelope = SignalEnvelope.model_validate_json(raw)
        except ValidationError as e:
            logger.debug("信封格式错误 | %s", e.errors(include_url=False))
            await self._reply_error(connection_id, None, "消息格式错误，应为 {event, data} JSON 对象")
            return False

        route = self._routes.get(envelope.event)
        if route is None:
            logger.debug("未知事件 | event=%s", envelope.event)
            await self._reply_error(connection_id, envelope.event, f"未知事件: {envelope.event}")
            return False

        model, handler = route
        payload: Any = None
        if model is not None:
            try:
                payload = model.model_validate(envelope.data if envelope.data is not None else {})
            except ValidationError as e:
                logger.debug("载荷校验失败 | event=%s | %s", envelope.event, e.errors(include_url=False))
                await self._reply_error(connection_id, envelope.event, "载荷格式错误")
                return False

        await handler(connection_id, payload)
        return True

    def forget(self, connection_id: str) -> None:
        """连接断开后清理限流记录。"""
        self.chat_limiter.remove_client(connection_id)

    # ── 适配 ──────────────────────────────────────────────────────────

    async def _on_get_streams(self, connection_id: str, _: None) -> None:
        await self.manager.get_streams(connection_id)

    async def _on_stop_stream(self, connection_id: str, _: None) -> None:
        await self.manager.stop_stream(connection_id)

    async def _on_join_stream(self, connection_id: str, request: JoinStreamRequest) -> None:
        await self.manager.join_stream(connection_id, request.stream_key)

    async def _on_leave_stream(self, connection_id: str, _: None) -> None:
        await self.manager.leave_stream(connection_id)

    async def _on_chat_message(self, connection_id: str, request: ChatMessageRequest) -> None:
        if not self.chat_limiter.is_allowed(connection_id):
            await self._reply_error(connection_id, EVT_CHAT_MESSAGE, "您发送消息的速度太快啦，请慢一点~")
            return
        await self.manager.chat_message(connection_id, request)

    async def _reply_error(self, connection_id: str, event: str | None, reason: str) -> None:
        await self.hub.send(connection_id, EVT_ERROR, ErrorData(event=event, reason=reason).to_wire())
