"""
app.schemas.signaling
~~~~~~~~~~~~~~~~~~~~~

信令协议的 Pydantic 模型 —— 信封、入站载荷与出站载荷。

线上格式统一为 JSON 信封::

    {"event": "join-stream", "data": {"streamKey": "A_123"}}

字段名在线上使用 camelCase，Python 侧使用 snake_case。
``metadata`` 与协商载荷（offer / answer / candidate）一律为 ``Any``，
服务端只做转发，从不检查其内部结构。
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ── 事件名 ────────────────────────────────────────────────────────────

# 入站
EVT_GET_STREAMS = "get-streams"
EVT_START_STREAM = "start-stream"
EVT_STOP_STREAM = "stop-stream"
EVT_JOIN_STREAM = "join-stream"
EVT_LEAVE_STREAM = "leave-stream"
EVT_OFFER = "offer"
EVT_ANSWER = "answer"
EVT_ICE_CANDIDATE = "ice-candidate"
EVT_CHAT_MESSAGE = "chat-message"

# 出站
EVT_CONNECTED = "connected"
EVT_INITIAL_STREAMS = "initial-streams"
EVT_START_STREAM_ACK = "start-stream-ack"
EVT_STREAM_ADDED = "stream-added"
EVT_STREAM_REMOVED = "stream-removed"
EVT_STREAM_ENDED = "stream-ended"
EVT_VIEWER_JOINED = "viewer-joined"
EVT_VIEWER_LEFT = "viewer-left"
EVT_VIEWER_COUNT_UPDATE = "viewer-count-update"
EVT_JOIN_STREAM_ERROR = "join-stream-error"
EVT_ERROR = "error"


class WireModel(BaseModel):
    """线上模型基类：camelCase 别名，按名或按别名均可构造。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """序列化为可直接发送的 dict（camelCase，省略 None）。"""
        return self.model_dump(by_alias=True, exclude_none=True)


class OpaqueWireModel(WireModel):
    """携带不透明载荷的出站模型，null 也是有效值（如 end-of-candidates），原样保留。"""

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SignalEnvelope(WireModel):
    """所有帧共用的信封：类型化的头部 + 不透明的 ``data``。"""

    event: str = Field(..., min_length=1, description="事件名")
    data: Any = Field(default=None, description="事件载荷")


# ── 入站载荷 ──────────────────────────────────────────────────────────


class StartStreamRequest(WireModel):
    """开播请求。"""

    metadata: dict[str, Any] = Field(default_factory=dict, description="标题、简介、外链等描述信息")
    username: str | None = Field(default=None, min_length=1, description="主播自选名称，用作直播流标识")


class JoinStreamRequest(WireModel):
    """加入直播请求。"""

    stream_key: str = Field(..., min_length=1)


class OfferRequest(WireModel):
    offer: Any = Field(...)
    target_viewer_id: str = Field(..., min_length=1)


class AnswerRequest(WireModel):
    answer: Any = Field(...)
    target_streamer_id: str = Field(..., min_length=1)


class IceCandidateRequest(WireModel):
    candidate: Any = Field(...)
    target_id: str = Field(..., min_length=1)


class ChatMessageRequest(WireModel):
    """聊天消息，``user`` / ``text`` 原样扇出。"""

    stream_key: str = Field(..., min_length=1)
    user: Any = None
    text: Any = None


# ── 出站载荷 ──────────────────────────────────────────────────────────


class ConnectedData(WireModel):
    connection_id: str


class StreamInfoData(OpaqueWireModel):
    """直播流摘要信息（发现列表、stream-added、REST 接口共用）。"""

    stream_key: str = Field(..., description="直播流唯一标识")
    streamer_id: str = Field(..., description="主播连接 ID")
    metadata: dict[str, Any] = Field(default_factory=dict, description="主播提供的描述信息")
    viewer_count: int = Field(..., description="当前观众数")


class StartStreamAck(WireModel):
    success: bool
    stream_key: str | None = None
    error: str | None = None


class StreamKeyData(WireModel):
    stream_key: str


class ViewerData(WireModel):
    viewer_id: str


class ViewerCountData(WireModel):
    stream_key: str
    count: int


class JoinStreamErrorData(WireModel):
    stream_key: str
    reason: str


class RelayedOffer(OpaqueWireModel):
    offer: Any
    from_streamer_id: str


class RelayedAnswer(OpaqueWireModel):
    answer: Any
    from_viewer_id: str


class RelayedIceCandidate(OpaqueWireModel):
    candidate: Any
    sender: str = Field(..., alias="from")


class ChatBroadcastData(OpaqueWireModel):
    user: Any = None
    text: Any = None


class ErrorData(WireModel):
    event: str | None = None
    reason: str
