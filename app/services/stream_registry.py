"""
app.services.stream_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

直播流注册表 —— 唯一持有"谁在直播、谁在观看"这份内存状态的组件。

内部维护三张表并保证它们始终同步:

- ``_streams``:        stream_key → ``Stream``
- ``_viewer_index``:   观众连接 ID → 正在观看的 stream_key
- ``_streamer_index``: 主播连接 ID → 自己的 stream_key

不变量:

- ``_viewer_index[v] == k``  当且仅当 ``v in _streams[k].viewers``
- ``_streamer_index[c] == k`` 当且仅当 ``_streams[k].streamer_id == c``

所有方法都是同步的，内部不会让出事件循环，因此在 asyncio 单线程模型下
每次调用天然是原子的。注册表只由 ``SessionManager`` 修改。
"""
from __future__ import annotations

from typing import Any

from app.core.logging import get_logger
from app.schemas.signaling import StreamInfoData

logger = get_logger(__name__)


# ── 异常 ──────────────────────────────────────────────────────────────


class StreamRegistryError(Exception):
    """注册表操作失败的基类。"""


class DuplicateStreamKeyError(StreamRegistryError):
    def __init__(self, stream_key: str) -> None:
        super().__init__(f"直播流标识已被占用: {stream_key}")
        self.stream_key = stream_key


class StreamNotFoundError(StreamRegistryError):
    def __init__(self, stream_key: str) -> None:
        super().__init__(f"直播流不存在: {stream_key}")
        self.stream_key = stream_key


class StreamerAlreadyActiveError(StreamRegistryError):
    def __init__(self, streamer_id: str, stream_key: str) -> None:
        super().__init__(f"该连接已在直播: {stream_key}")
        self.streamer_id = streamer_id
        self.stream_key = stream_key


class AlreadyViewingError(StreamRegistryError):
    def __init__(self, viewer_id: str, stream_key: str) -> None:
        super().__init__(f"该连接正在观看其他直播: {stream_key}")
        self.viewer_id = viewer_id
        self.stream_key = stream_key


# ── 领域模型 ──────────────────────────────────────────────────────────


class Stream:
    """一路正在进行的直播。

    Attributes:
        stream_key: 直播流唯一标识。
        streamer_id: 主播的连接 ID。
        metadata: 主播提供的描述信息，原样透传。
        viewers: 当前观众的连接 ID 集合。
    """

    def __init__(self, stream_key: str, streamer_id: str, metadata: dict[str, Any] | None = None) -> None:
        self.stream_key = stream_key
        self.streamer_id = streamer_id
        self.metadata: dict[str, Any] = metadata or {}
        self.viewers: set[str] = set()

    @property
    def viewer_count(self) -> int:
        """当前观众数。"""
        return len(self.viewers)

    def info(self) -> StreamInfoData:
        """返回直播流摘要信息。"""
        return StreamInfoData(
            stream_key=self.stream_key,
            streamer_id=self.streamer_id,
            metadata=self.metadata,
            viewer_count=self.viewer_count,
        )

    def __repr__(self) -> str:
        return f"Stream(stream_key={self.stream_key!r}, streamer_id={self.streamer_id!r}, viewers={len(self.viewers)})"


# ── 注册表 ────────────────────────────────────────────────────────────


class StreamRegistry:
    """直播流注册表。

    在 FastAPI lifespan 中创建、关闭时 ``clear()``，不做任何持久化。
    测试中每个用例可以直接 new 一个全新的实例。
    """

    def __init__(self) -> None:
        self._streams: dict[str, Stream] = {}
        self._viewer_index: dict[str, str] = {}
        self._streamer_index: dict[str, str] = {}

    # ── 直播流 ──

    def register(self, stream_key: str, streamer_id: str, metadata: dict[str, Any] | None = None) -> Stream:
        """登记一路新直播，失败时注册表保持不变。

        Raises:
            DuplicateStreamKeyError: ``stream_key`` 已存在。
            StreamerAlreadyActiveError: 该连接已经拥有一路直播。
        """
        if stream_key in self._streams:
            raise DuplicateStreamKeyError(stream_key)
        if streamer_id in self._streamer_index:
            raise StreamerAlreadyActiveError(streamer_id, self._streamer_index[streamer_id])

        stream = Stream(stream_key=stream_key, streamer_id=streamer_id, metadata=metadata)
        self._streams[stream_key] = stream
        self._streamer_index[streamer_id] = stream_key
        logger.debug("直播流已登记 | stream=%s | streamer=%s", stream_key, streamer_id)
        return stream

    def unregister(self, stream_key: str) -> Stream:
        """移除一路直播，并清理所有指向它的观众索引。

        返回的 ``Stream`` 仍保留移除前的观众集合，供调用方发送 stream-ended。

        Raises:
            StreamNotFoundError: ``stream_key`` 不存在。
        """
        stream = self._streams.pop(stream_key, None)
        if stream is None:
            raise StreamNotFoundError(stream_key)

        self._streamer_index.pop(stream.streamer_id, None)
        for viewer_id in stream.viewers:
            if self._viewer_index.get(viewer_id) == stream_key:
                del self._viewer_index[viewer_id]
        logger.debug("直播流已移除 | stream=%s | 观众: %d", stream_key, stream.viewer_count)
        return stream

    def get(self, stream_key: str) -> Stream | None:
        return self._streams.get(stream_key)

    def find_by_streamer(self, connection_id: str) -> Stream | None:
        """按主播连接 ID 反查其直播流。"""
        stream_key = self._streamer_index.get(connection_id)
        if stream_key is None:
            return None
        return self._streams.get(stream_key)

    def list_active(self) -> list[Stream]:
        """当前所有直播流的快照（列表本身可安全修改）。"""
        return list(self._streams.values())

    # ── 观众 ──

    def viewing(self, connection_id: str) -> str | None:
        """返回该连接正在观看的 stream_key，没有则为 None。"""
        return self._viewer_index.get(connection_id)

    def add_viewer(self, stream_key: str, viewer_id: str) -> int:
        """把观众加入直播，返回加入后的观众数。

        重复加入同一路直播是无操作。

        Raises:
            StreamNotFoundError: ``stream_key`` 不存在。
            AlreadyViewingError: 该连接正在观看另一路直播。
        """
        stream = self._streams.get(stream_key)
        if stream is None:
            raise StreamNotFoundError(stream_key)

        current = self._viewer_index.get(viewer_id)
        if current is not None and current != stream_key:
            raise AlreadyViewingError(viewer_id, current)

        stream.viewers.add(viewer_id)
        self._viewer_index[viewer_id] = stream_key
        return stream.viewer_count

    def remove_viewer(self, stream_key: str, viewer_id: str) -> int:
        """把观众移出直播，返回移除后的观众数。观众不在其中时为无操作。

        Raises:
            StreamNotFoundError: ``stream_key`` 不存在。
        """
        stream = self._streams.get(stream_key)
        if stream is None:
            raise StreamNotFoundError(stream_key)

        if viewer_id in stream.viewers:
            stream.viewers.discard(viewer_id)
            self._viewer_index.pop(viewer_id, None)
        return stream.viewer_count

    # ── 生命周期 ──

    def clear(self) -> None:
        """清空全部状态（服务关闭时调用）。"""
        self._streams.clear()
        self._viewer_index.clear()
        self._streamer_index.clear()

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, stream_key: object) -> bool:
        return stream_key in self._streams
