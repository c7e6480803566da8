"""
app.services.relay_router
~~~~~~~~~~~~~~~~~~~~~~~~~

信令转发 —— 把 offer / answer / ice-candidate 原样转给指定目标，并附上发送方 ID。

无状态：不读写注册表，不缓冲、不重试。目标不在线时消息被静默丢弃，
超时与重试由两端的协商协议自行负责。
"""
from __future__ import annotations

from app.core.logging import get_logger
from app.schemas.signaling import (
    EVT_ANSWER,
    EVT_ICE_CANDIDATE,
    EVT_OFFER,
    AnswerRequest,
    IceCandidateRequest,
    OfferRequest,
    RelayedAnswer,
    RelayedIceCandidate,
    RelayedOffer,
)
from app.services.connection_hub import ConnectionHub

logger = get_logger(__name__)


class RelayRouter:
    """点对点信令转发器。"""

    def __init__(self, hub: ConnectionHub) -> None:
        self.hub = hub

    async def relay_offer(self, sender_id: str, request: OfferRequest) -> bool:
        """主播 → 观众。"""
        relayed = RelayedOffer(offer=request.offer, from_streamer_id=sender_id)
        return await self._forward(sender_id, request.target_viewer_id, EVT_OFFER, relayed.to_wire())

    async def relay_answer(self, sender_id: str, request: AnswerRequest) -> bool:
        """观众 → 主播。"""
        relayed = RelayedAnswer(answer=request.answer, from_viewer_id=sender_id)
        return await self._forward(sender_id, request.target_streamer_id, EVT_ANSWER, relayed.to_wire())

    async def relay_ice_candidate(self, sender_id: str, request: IceCandidateRequest) -> bool:
        """任意方向。"""
        relayed = RelayedIceCandidate(candidate=request.candidate, sender=sender_id)
        return await self._forward(sender_id, request.target_id, EVT_ICE_CANDIDATE, relayed.to_wire())

    async def _forward(self, sender_id: str, target_id: str, event: str, data: dict) -> bool:
        delivered = await self.hub.send(target_id, event, data)
        if delivered:
            logger.debug("信令已转发 | event=%s | %s -> %s", event, sender_id, target_id)
        else:
            logger.debug("信令目标不可达，已丢弃 | event=%s | %s -> %s", event, sender_id, target_id)
        return delivered
