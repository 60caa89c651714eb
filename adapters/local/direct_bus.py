"""
Local Event Bus — Direct function call.

For local development. No queue: an inbound message is handed straight
to the orchestrator and the webhook waits for the turn to finish. A
failed turn propagates back to the webhook handler, which answers 503
so the platform redelivers.
"""

import logging
from typing import Optional

from candor.interfaces.event_bus import CONVERSATION_CLOSED, INBOUND_MESSAGE, EventBus

logger = logging.getLogger(__name__)


class DirectBus(EventBus):
    """
    Runs the orchestrator inline instead of publishing to a queue.
    Closed-conversation events are kept in memory for inspection.
    """

    def __init__(self, orchestrator=None):
        # Set after construction when the orchestrator also publishes here
        self.orchestrator = orchestrator
        self.closed_events: list[dict] = []

    async def publish(
        self,
        source: str,
        detail_type: str,
        detail: dict,
    ) -> None:
        if detail_type == INBOUND_MESSAGE:
            if self.orchestrator is None:
                raise RuntimeError("DirectBus has no orchestrator attached")
            message = detail["message"]
            logger.info(f"DirectBus: dispatching {message.platform.value} message from {source}")
            await self.orchestrator.handle_inbound_message(message)
        elif detail_type == CONVERSATION_CLOSED:
            logger.info(f"DirectBus: conversation {detail['conversation_id'][:8]} closed")
            self.closed_events.append(detail)
        else:
            logger.warning(f"DirectBus ignoring event type: {detail_type}")

    def last_closed(self) -> Optional[dict]:
        return self.closed_events[-1] if self.closed_events else None
