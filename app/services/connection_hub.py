"""
app.services.connection_hub
~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 连接中心 —— 为每条在线连接分配唯一 ID，并提供定向发送与广播能力。

所有发送都是"尽力而为"：目标不在线时直接丢弃，发送失败时把该连接从
在线表中移除并记录警告，不会向调用方抛出异常。
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable
from typing import Any

from fastapi import WebSocket

from app.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionHub:
    """WebSocket 连接中心。

    Attributes:
        active_connections: 连接 ID → WebSocket。
    """

    def __init__(self) -> None:
        self.active_connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """接受新连接，返回为其分配的连接 ID。"""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """从在线表移除连接（重复调用无副作用）。"""
        self.active_connections.pop(connection_id, None)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.active_connections

    async def send(self, connection_id: str, event: str, data: Any = None) -> bool:
        """向单个连接发送一帧，返回是否送达。"""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.debug("目标不在线，丢弃消息 | event=%s | target=%s", event, connection_id)
            return False
        return await self._deliver({connection_id: websocket}, event, data) == 1

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Any = None) -> int:
        """向一组连接发送同一帧，返回成功送达数。不在线的目标被跳过。"""
        targets = {
            cid: self.active_connections[cid]
            for cid in connection_ids
            if cid in self.active_connections
        }
        return await self._deliver(targets, event, data)

    async def broadcast(self, event: str, data: Any = None) -> int:
        """向所有在线连接广播，返回成功送达数。"""
        return await self._deliver(dict(self.active_connections), event, data)

    async def _deliver(self, targets: dict[str, WebSocket], event: str, data: Any) -> int:
        if not targets:
            return 0
        message = {"event": event, "data": data}
        results = await asyncio.gather(
            *(ws.send_json(message) for ws in targets.values()),
            return_exceptions=True,
        )
        delivered = 0
        for (cid, ws), result in zip(targets.items(), results):
            if isinstance(result, Exception):
                logger.warning("发送失败，移除断开的连接 | event=%s | target=%s | %s", event, cid, result)
                # 仅当映射仍指向该 socket 时移除
                if self.active_connections.get(cid) is ws:
                    del self.active_connections[cid]
            else:
                delivered += 1
        return delivered

    @property
    def online_count(self) -> int:
        """当前在线连接数。"""
        return len(self.active_connections)
