"""
tests.test_connection_hub
~~~~~~~~~~~~~~~~~~~~~~~~~

ConnectionHub 单元测试：连接 ID 分配、定向发送、广播与失败连接清理。
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket

from app.services.connection_hub import ConnectionHub
from conftest import connect


class TestConnectionHub:
    """测试连接中心。"""

    @pytest.mark.asyncio
    async def test_connect_assigns_unique_ids(self, hub: ConnectionHub) -> None:
        """每条连接获得不同的 ID，且 socket 已被 accept。"""
        id_a, ws_a = await connect(hub)
        id_b, _ = await connect(hub)

        assert id_a != id_b
        assert ws_a.accepted
        assert hub.online_count == 2
        assert hub.is_connected(id_a)

    @pytest.mark.asyncio
    async def test_connect_with_mock_websocket(self, hub: ConnectionHub) -> None:
        mock_ws = AsyncMock(spec=WebSocket)

        connection_id = await hub.connect(mock_ws)
        await hub.send(connection_id, "ping", {"n": 1})

        mock_ws.accept.assert_awaited_once()
        mock_ws.send_json.assert_awaited_once_with({"event": "ping", "data": {"n": 1}})

    @pytest.mark.asyncio
    async def test_send_to_unknown_target_is_dropped(self, hub: ConnectionHub) -> None:
        """目标不在线时静默丢弃并返回 False。"""
        assert await hub.send("nobody", "offer", {}) is False

    @pytest.mark.asyncio
    async def test_broadcast_reaches_everyone(self, hub: ConnectionHub) -> None:
        _, ws_a = await connect(hub)
        _, ws_b = await connect(hub)

        delivered = await hub.broadcast("stream-removed", {"streamKey": "s"})

        assert delivered == 2
        assert ws_a.last("stream-removed") == {"streamKey": "s"}
        assert ws_b.last("stream-removed") == {"streamKey": "s"}

    @pytest.mark.asyncio
    async def test_send_many_skips_offline(self, hub: ConnectionHub) -> None:
        id_a, ws_a = await connect(hub)
        _, ws_b = await connect(hub)

        delivered = await hub.send_many([id_a, "gone"], "stream-ended", {"streamKey": "s"})

        assert delivered == 1
        assert ws_a.events("stream-ended")
        assert not ws_b.sent

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self, hub: ConnectionHub) -> None:
        """发送失败的连接被移出在线表，其他连接不受影响。"""
        id_ok, ws_ok = await connect(hub)
        id_bad, _ = await connect(hub, fail=True)

        delivered = await hub.broadcast("viewer-count-update", {"streamKey": "s", "count": 1})

        assert delivered == 1
        assert ws_ok.events("viewer-count-update")
        assert hub.is_connected(id_ok)
        assert not hub.is_connected(id_bad)

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, hub: ConnectionHub) -> None:
        connection_id, _ = await connect(hub)

        hub.disconnect(connection_id)
        hub.disconnect(connection_id)

        assert hub.online_count == 0
