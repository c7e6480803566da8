"""
app.services.session_manager
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

会话生命周期管理 —— 处理开播、加入、离开、下播与断线，保持注册表一致，
并把对应的通知发给正确的受众。

每个处理函数都遵循同一个顺序：先同步完成全部注册表读写，再 ``await`` 发送通知。
因此在 asyncio 单线程模型下，两个处理函数的注册表修改不会交错，
观众数通知总是在引起它的修改之后发出。

连接状态机::

    Idle ──start-stream──▶ Streaming ──stop-stream / 断线──▶ Idle
    Idle ──join-stream───▶ Viewing   ──leave-stream / 断线─▶ Idle

同一连接不能同时处于 Streaming 与 Viewing。
"""
from __future__ import annotations

from typing import NamedTuple

from app.core.logging import get_logger
from app.schemas.signaling import (
    EVT_CHAT_MESSAGE,
    EVT_INITIAL_STREAMS,
    EVT_JOIN_STREAM_ERROR,
    EVT_START_STREAM_ACK,
    EVT_STREAM_ADDED,
    EVT_STREAM_ENDED,
    EVT_STREAM_REMOVED,
    EVT_VIEWER_COUNT_UPDATE,
    EVT_VIEWER_JOINED,
    EVT_VIEWER_LEFT,
    ChatBroadcastData,
    ChatMessageRequest,
    JoinStreamErrorData,
    StartStreamAck,
    StartStreamRequest,
    StreamInfoData,
    StreamKeyData,
    ViewerCountData,
    ViewerData,
)
from app.services.connection_hub import ConnectionHub
from app.services.stream_registry import Stream, StreamRegistry, StreamRegistryError

logger = get_logger(__name__)


class _ViewerExit(NamedTuple):
    """一次观众离开在注册表中产生的结果。"""

    viewer_id: str
    stream_key: str
    streamer_id: str
    count: int


class SessionManager:
    """会话生命周期管理器。

    - ``start_stream()``     → 开播并广播 stream-added
    - ``get_streams()``      → 向请求方返回当前直播列表
    - ``join_stream()``      → 加入直播，通知主播并广播观众数
    - ``leave_stream()``     → 观众主动离开
    - ``stop_stream()``      → 主播主动下播
    - ``handle_disconnect()``→ 断线清理（主播、观众两种身份各自独立检查）
    - ``chat_message()``     → 聊天消息扇出给主播与全部观众

    Attributes:
        registry: 直播流注册表。
        hub: 连接中心。
        report_join_failures: 加入失败时是否回复 join-stream-error。
    """

    def __init__(
        self,
        registry: StreamRegistry,
        hub: ConnectionHub,
        report_join_failures: bool = False,
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.report_join_failures = report_join_failures

    # ── 发现 ──────────────────────────────────────────────────────────

    def list_streams(self) -> list[StreamInfoData]:
        """当前所有直播流的摘要（含观众数）。"""
        return [stream.info() for stream in self.registry.list_active()]

    async def get_streams(self, connection_id: str) -> list[StreamInfoData]:
        """只向请求方发送 initial-streams，不广播。"""
        streams = self.list_streams()
        await self.hub.send(connection_id, EVT_INITIAL_STREAMS, [s.to_wire() for s in streams])
        return streams

    # ── 主播 ──────────────────────────────────────────────────────────

    async def start_stream(self, connection_id: str, request: StartStreamRequest) -> StartStreamAck:
        """开播。

        直播流标识取 ``username``，未提供时使用连接 ID。成功时先向请求方回 ack，
        再向全体广播 stream-added；失败时只回 ack，不广播。
        """
        stream_key = request.username or connection_id
        viewing = self.registry.viewing(connection_id)

        stream: Stream | None = None
        if viewing is not None:
            ack = StartStreamAck(success=False, error=f"观看中的连接不能开播: {viewing}")
        elif stream_key != connection_id and self.hub.is_connected(stream_key):
            # 在线连接 ID 保留给该连接自己的默认直播流标识
            ack = StartStreamAck(success=False, error=f"直播流标识为保留名称: {stream_key}")
        else:
            try:
                stream = self.registry.register(stream_key, connection_id, request.metadata)
                ack = StartStreamAck(success=True, stream_key=stream_key)
            except StreamRegistryError as e:
                ack = StartStreamAck(success=False, error=str(e))

        if stream is None:
            logger.info("开播失败 | stream=%s | %s", stream_key, ack.error)
            await self.hub.send(connection_id, EVT_START_STREAM_ACK, ack.to_wire())
            return ack

        info = stream.info()
        logger.info("开播 | stream=%s | 当前直播数: %d", stream_key, len(self.registry))
        await self.hub.send(connection_id, EVT_START_STREAM_ACK, ack.to_wire())
        await self.hub.broadcast(EVT_STREAM_ADDED, info.to_wire())
        return ack

    async def stop_stream(self, connection_id: str) -> bool:
        """主播主动下播，连接保持。没有直播时为无操作。"""
        ended = self._detach_stream(connection_id)
        if ended is None:
            return False
        await self._announce_stream_ended(ended)
        return True

    # ── 观众 ──────────────────────────────────────────────────────────

    async def join_stream(self, connection_id: str, stream_key: str) -> int | None:
        """加入直播，返回加入后的观众数；被拒绝或直播不存在时返回 None。

        正在观看其他直播时会先离开原直播；重复加入同一直播不产生任何通知。
        """
        stream = self.registry.get(stream_key)
        if stream is None:
            logger.debug("加入不存在的直播，已忽略 | stream=%s", stream_key)
            await self._reject_join(connection_id, stream_key, "直播流不存在")
            return None
        if self.registry.find_by_streamer(connection_id) is not None:
            logger.debug("直播中的连接不能观看，已忽略 | stream=%s", stream_key)
            await self._reject_join(connection_id, stream_key, "直播中的连接不能观看")
            return None

        current = self.registry.viewing(connection_id)
        if current == stream_key:
            return stream.viewer_count

        previous = self._detach_viewer(connection_id) if current is not None else None
        count = self.registry.add_viewer(stream_key, connection_id)
        streamer_id = stream.streamer_id
        logger.info("观众加入 | stream=%s | 观众数: %d", stream_key, count)

        if previous is not None:
            await self._announce_viewer_left(previous)
        await self.hub.send(streamer_id, EVT_VIEWER_JOINED, ViewerData(viewer_id=connection_id).to_wire())
        await self.hub.broadcast(
            EVT_VIEWER_COUNT_UPDATE,
            ViewerCountData(stream_key=stream_key, count=count).to_wire(),
        )
        return count

    async def leave_stream(self, connection_id: str) -> bool:
        """观众主动离开。没有观看记录时为无操作。"""
        exit_ = self._detach_viewer(connection_id)
        if exit_ is None:
            return False
        await self._announce_viewer_left(exit_)
        return True

    # ── 断线 ──────────────────────────────────────────────────────────

    async def handle_disconnect(self, connection_id: str) -> None:
        """断线清理。主播、观众两种身份各自独立检查，重复调用为无操作。"""
        ended = self._detach_stream(connection_id)
        exit_ = self._detach_viewer(connection_id)

        if ended is not None:
            await self._announce_stream_ended(ended)
        if exit_ is not None:
            await self._announce_viewer_left(exit_)

    # ── 聊天 ──────────────────────────────────────────────────────────

    async def chat_message(self, connection_id: str, request: ChatMessageRequest) -> int:
        """把聊天消息扇出给主播与全部观众，返回送达数。直播不存在时丢弃。"""
        stream = self.registry.get(request.stream_key)
        if stream is None:
            logger.debug("聊天目标直播不存在，已丢弃 | stream=%s", request.stream_key)
            return 0
        recipients = {stream.streamer_id, *stream.viewers}
        payload = ChatBroadcastData(user=request.user, text=request.text).to_wire()
        return await self.hub.send_many(recipients, EVT_CHAT_MESSAGE, payload)

    # ── 内部：同步的注册表修改 ────────────────────────────────────────

    def _detach_stream(self, connection_id: str) -> Stream | None:
        stream = self.registry.find_by_streamer(connection_id)
        if stream is None:
            return None
        return self.registry.unregister(stream.stream_key)

    def _detach_viewer(self, connection_id: str) -> _ViewerExit | None:
        stream_key = self.registry.viewing(connection_id)
        if stream_key is None:
            return None
        stream = self.registry.get(stream_key)
        if stream is None:
            return None
        count = self.registry.remove_viewer(stream_key, connection_id)
        return _ViewerExit(connection_id, stream_key, stream.streamer_id, count)

    # ── 内部：通知 ────────────────────────────────────────────────────

    async def _announce_stream_ended(self, stream: Stream) -> None:
        logger.info("下播 | stream=%s | 通知观众: %d", stream.stream_key, stream.viewer_count)
        payload = StreamKeyData(stream_key=stream.stream_key).to_wire()
        await self.hub.send_many(stream.viewers, EVT_STREAM_ENDED, payload)
        await self.hub.broadcast(EVT_STREAM_REMOVED, payload)

    async def _announce_viewer_left(self, exit_: _ViewerExit) -> None:
        logger.info("观众离开 | stream=%s | 观众数: %d", exit_.stream_key, exit_.count)
        await self.hub.send(exit_.streamer_id, EVT_VIEWER_LEFT, ViewerData(viewer_id=exit_.viewer_id).to_wire())
        await self.hub.broadcast(
            EVT_VIEWER_COUNT_UPDATE,
            ViewerCountData(stream_key=exit_.stream_key, count=exit_.count).to_wire(),
        )

    async def _reject_join(self, connection_id: str, stream_key: str, reason: str) -> None:
        if not self.report_join_failures:
            return
        await self.hub.send(
            connection_id,
            EVT_JOIN_STREAM_ERROR,
            JoinStreamErrorData(stream_key=stream_key, reason=reason).to_wire(),
        )
