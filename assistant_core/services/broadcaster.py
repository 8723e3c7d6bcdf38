"""
Delivers assistant replies to every live subscriber of a conversation.

Delivery is publish, verify, fallback: publish to the channel, check that
someone received it, and otherwise send to each known member directly.
"""

from dataclasses import dataclass
from typing import Any

from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.services.realtime_transport import RealtimeTransport

logger = get_logger(__name__)

REPLY_EVENT = "assistant_message"


@dataclass(frozen=True, slots=True)
class DeliveryReport:
    channel_id: str
    recipients: int
    fallback_used: bool

    @property
    def delivered(self) -> bool:
        return self.recipients > 0


class Broadcaster:
    def __init__(self, transport: RealtimeTransport, event: str = REPLY_EVENT):
        self.transport = transport
        self.event = event
        self._stats = {"deliveries": 0, "fallbacks": 0, "failures": 0}

    async def deliver(self, channel_id: str, payload: dict[str, Any]) -> DeliveryReport:
        self._stats["deliveries"] += 1

        try:
            recipients = await self.transport.publish(channel_id, self.event, payload)
        except Exception as e:
            logger.warning(
                "Channel publish failed",
                channel_id=channel_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            recipients = 0

        if recipients > 0:
            return DeliveryReport(channel_id=channel_id, recipients=recipients, fallback_used=False)

        self._stats["fallbacks"] += 1
        recipients = await self._fallback(channel_id, payload)

        if recipients == 0:
            self._stats["failures"] += 1
            logger.warning("Assistant reply reached no subscribers", channel_id=channel_id)
        else:
            logger.info(
                "Assistant reply delivered via member fallback",
                channel_id=channel_id,
                recipients=recipients,
            )

        return DeliveryReport(channel_id=channel_id, recipients=recipients, fallback_used=True)

    async def _fallback(self, channel_id: str, payload: dict[str, Any]) -> int:
        try:
            members = await self.transport.members_of(channel_id)
        except Exception as e:
            logger.warning("Member lookup failed", channel_id=channel_id, error=str(e))
            return 0

        delivered = 0
        for subscriber_id in sorted(members):
            try:
                if await self.transport.send(subscriber_id, self.event, payload):
                    delivered += 1
            except Exception as e:
                logger.warning(
                    "Direct send failed",
                    channel_id=channel_id,
                    subscriber_id=subscriber_id,
                    error=str(e),
                )
        return delivered

    def stats(self) -> dict[str, int]:
        return dict(self._stats)
