"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 每个用例拿到全新的注册表、连接中心与管理器，
WebSocket 用 ``FakeWebSocket`` 代替，记录所有发出的帧。
"""
from __future__ import annotations

import os
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")

from app.services.connection_hub import ConnectionHub  # noqa: E402
from app.services.relay_router import RelayRouter  # noqa: E402
from app.services.session_manager import SessionManager  # noqa: E402
from app.services.stream_registry import StreamRegistry  # noqa: E402


class FakeWebSocket:
    """只实现 ``ConnectionHub`` 用到的接口，记录所有 send_json 的帧。"""

    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        """按事件名过滤已发送的帧。"""
        return [m for m in self.sent if name is None or m["event"] == name]

    def last(self, name: str) -> Any:
        """指定事件最近一帧的 data。"""
        return self.events(name)[-1]["data"]


@pytest.fixture()
def registry() -> StreamRegistry:
    return StreamRegistry()


@pytest.fixture()
def hub() -> ConnectionHub:
    return ConnectionHub()


@pytest.fixture()
def manager(registry: StreamRegistry, hub: ConnectionHub) -> SessionManager:
    return SessionManager(registry, hub)


@pytest.fixture()
def relay(hub: ConnectionHub) -> RelayRouter:
    return RelayRouter(hub)


async def connect(hub: ConnectionHub, fail: bool = False) -> tuple[str, FakeWebSocket]:
    """在 hub 上接入一条假连接，返回 (连接 ID, socket)。"""
    ws = FakeWebSocket(fail=fail)
    connection_id = await hub.connect(ws)
    return connection_id, ws


def assert_membership_consistent(registry: StreamRegistry) -> None:
    """校验观众集合与观众索引、主播索引完全一致。"""
    from_streams = {
        viewer: stream.stream_key
        for stream in registry.list_active()
        for viewer in stream.viewers
    }
    assert from_streams == registry._viewer_index
    assert {s.streamer_id: s.stream_key for s in registry.list_active()} == registry._streamer_index
