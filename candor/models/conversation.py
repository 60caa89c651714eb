"""
Conversation models and the status state machine.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from candor.errors.exceptions import InvalidTransition
from candor.models.message import ChatPlatform


class InteractionType(str, Enum):
    PEER_REVIEW = "peer_review"
    SELF_REFLECTION = "self_reflection"
    THREE_SIXTY = "three_sixty"
    PULSE_CHECK = "pulse_check"


class ConversationStatus(str, Enum):
    SCHEDULED = "scheduled"
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    CLOSING = "closing"
    CLOSED = "closed"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({ConversationStatus.CLOSED, ConversationStatus.EXPIRED})

# Outbound messages may only be emitted in these states
SENDABLE_STATUSES = frozenset({
    ConversationStatus.INITIATED,
    ConversationStatus.IN_PROGRESS,
    ConversationStatus.CLOSING,
})

ALLOWED_TRANSITIONS: dict[ConversationStatus, frozenset] = {
    ConversationStatus.SCHEDULED: frozenset({
        ConversationStatus.INITIATED,
        ConversationStatus.EXPIRED,
    }),
    ConversationStatus.INITIATED: frozenset({
        ConversationStatus.IN_PROGRESS,
        ConversationStatus.CLOSING,
        ConversationStatus.EXPIRED,
    }),
    ConversationStatus.IN_PROGRESS: frozenset({
        ConversationStatus.IN_PROGRESS,
        ConversationStatus.CLOSING,
        ConversationStatus.EXPIRED,
    }),
    ConversationStatus.CLOSING: frozenset({
        ConversationStatus.CLOSED,
        ConversationStatus.EXPIRED,
    }),
    ConversationStatus.CLOSED: frozenset(),
    ConversationStatus.EXPIRED: frozenset(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Conversation:
    """
    A single bounded feedback conversation.

    `message_count` counts completed user turns. The opening prompt sent on
    initiation does not count towards the interaction type's maximum.
    """

    conversation_id: str
    org_id: str
    interaction_type: str           # InteractionType value; unknown tags tolerated
    platform: ChatPlatform
    channel_id: str
    status: ConversationStatus = ConversationStatus.SCHEDULED
    message_count: int = 0
    reviewer_id: str = ""
    subject_id: str = ""
    subject_name: str = ""
    thread_id: Optional[str] = None
    theme_index: int = 0
    scheduled_at: datetime = field(default_factory=_now)
    initiated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_send(self) -> bool:
        return self.status in SENDABLE_STATUSES

    def transition(self, to: ConversationStatus, **changes) -> "Conversation":
        """Return a copy in status `to`. Raises InvalidTransition if not allowed."""
        if to not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Conversation {self.conversation_id}: "
                f"{self.status.value} -> {to.value} is not allowed"
            )
        return replace(self, status=to, **changes)

    def log_prefix(self) -> str:
        return f"[{self.conversation_id[:8]}:{self.platform.value}]"


@dataclass
class ConversationMessage:
    conversation_id: str
    role: str                       # "assistant" | "user"
    content: str
    platform_message_id: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
