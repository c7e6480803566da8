"""
tests.test_relay_router
~~~~~~~~~~~~~~~~~~~~~~~

RelayRouter 单元测试：载荷原样转发、附带发送方 ID、目标不可达时丢弃。
"""
from __future__ import annotations

import pytest

from app.schemas.signaling import AnswerRequest, IceCandidateRequest, OfferRequest
from app.services.connection_hub import ConnectionHub
from app.services.relay_router import RelayRouter
from conftest import connect

SDP_OFFER = {"type": "offer", "sdp": "v=0\r\no=- 4611731400430051336 2 IN IP4 127.0.0.1\r\n"}
SDP_ANSWER = {"type": "answer", "sdp": "v=0\r\no=- 1 2 IN IP4 0.0.0.0\r\n", "extra": [1, {"nested": None}]}
CANDIDATE = {"candidate": "candidate:1 1 UDP 2122252543 10.0.0.2 54400 typ host", "sdpMid": "0", "sdpMLineIndex": 0}


class TestRelayRouter:
    """测试信令转发。"""

    @pytest.mark.asyncio
    async def test_offer_forwarded_with_sender(self, hub: ConnectionHub, relay: RelayRouter) -> None:
        streamer_id, streamer_ws = await connect(hub)
        viewer_id, viewer_ws = await connect(hub)

        ok = await relay.relay_offer(streamer_id, OfferRequest(offer=SDP_OFFER, target_viewer_id=viewer_id))

        assert ok is True
        assert viewer_ws.sent == [
            {"event": "offer", "data": {"offer": SDP_OFFER, "fromStreamerId": streamer_id}},
        ]
        assert streamer_ws.sent == []

    @pytest.mark.asyncio
    async def test_answer_payload_is_untouched(self, hub: ConnectionHub, relay: RelayRouter) -> None:
        """任意结构的 answer 原样到达目标。"""
        streamer_id, streamer_ws = await connect(hub)
        viewer_id, _ = await connect(hub)

        request = AnswerRequest.model_validate({"answer": SDP_ANSWER, "targetStreamerId": streamer_id})
        await relay.relay_answer(viewer_id, request)

        assert streamer_ws.last("answer") == {"answer": SDP_ANSWER, "fromViewerId": viewer_id}

    @pytest.mark.asyncio
    async def test_ice_candidate_tagged_with_from(self, hub: ConnectionHub, relay: RelayRouter) -> None:
        a_id, _ = await connect(hub)
        b_id, b_ws = await connect(hub)

        await relay.relay_ice_candidate(a_id, IceCandidateRequest(candidate=CANDIDATE, target_id=b_id))

        assert b_ws.last("ice-candidate") == {"candidate": CANDIDATE, "from": a_id}

    @pytest.mark.asyncio
    async def test_null_candidate_still_forwarded(self, hub: ConnectionHub, relay: RelayRouter) -> None:
        """end-of-candidates 的 null 也必须原样送达。"""
        a_id, _ = await connect(hub)
        b_id, b_ws = await connect(hub)

        await relay.relay_ice_candidate(a_id, IceCandidateRequest(candidate=None, target_id=b_id))

        assert b_ws.last("ice-candidate") == {"candidate": None, "from": a_id}

    @pytest.mark.asyncio
    async def test_unknown_target_dropped_silently(self, hub: ConnectionHub, relay: RelayRouter) -> None:
        sender_id, sender_ws = await connect(hub)

        ok = await relay.relay_offer(sender_id, OfferRequest(offer=SDP_OFFER, target_viewer_id="gone"))

        assert ok is False
        assert sender_ws.sent == []
