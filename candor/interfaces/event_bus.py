"""
Event Bus Interface

Abstraction for handing work off between ingress and processing.
The webhook layer publishes normalized inbound messages; the orchestrator
publishes closed conversations for downstream analysis.
Implementations: DirectBus (local), etc.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict

from candor.models.conversation import Conversation
from candor.models.message import InboundMessage

INBOUND_MESSAGE = "conversation.inbound"
CONVERSATION_CLOSED = "conversation.closed"


class EventBus(ABC):
    """
    Abstract base class for event publishing.

    Queue-backed implementations decouple ingress latency from LLM latency.
    The local implementation processes events inline.
    """

    @abstractmethod
    async def publish(
        self,
        source: str,
        detail_type: str,
        detail: dict,
    ) -> None:
        """
        Publish an event.

        Args:
            source: Event source (e.g., "webhooks.slack")
            detail_type: Event type (e.g., "conversation.inbound")
            detail: Event payload
        """
        ...

    async def publish_inbound_message(self, message: InboundMessage) -> None:
        """Hand a normalized inbound message to the orchestrator."""
        await self.publish(
            source=f"webhooks.{message.platform.value}",
            detail_type=INBOUND_MESSAGE,
            detail={"message": message},
        )

    async def publish_conversation_closed(self, conversation: Conversation) -> None:
        """Announce a closed conversation (analysis hand-off)."""
        detail = asdict(conversation)
        await self.publish(
            source="orchestrator",
            detail_type=CONVERSATION_CLOSED,
            detail={
                "conversation_id": detail["conversation_id"],
                "org_id": detail["org_id"],
                "interaction_type": detail["interaction_type"],
                "message_count": detail["message_count"],
            },
        )
