"""
Conversation Store Interface

Abstraction for conversation persistence (a tenant-scoped relational
store in production). Implementations: SQLiteConversationStore (local).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from candor.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
)
from candor.models.message import ChatPlatform


class ConversationStore(ABC):
    """
    Abstract base class for conversation storage.

    The orchestrator is the only writer of status and message_count, and
    it serializes writes per conversation. `expected_count` lets a store
    enforce the same guarantee across processes with a conditional update.
    """

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a new conversation (normally in `scheduled`)."""
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def find_active_conversation(
        self,
        platform: ChatPlatform,
        channel_id: str,
    ) -> Optional[Conversation]:
        """
        Most recent conversation on this channel that is not scheduled,
        closed or expired. Used to route inbound replies.
        """
        ...

    @abstractmethod
    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        platform_message_id: Optional[str] = None,
    ) -> None:
        """
        Append a transcript message. Must be idempotent on
        (conversation_id, platform_message_id) when the id is given.
        """
        ...

    @abstractmethod
    async def has_message(self, conversation_id: str, platform_message_id: str) -> bool:
        """True if a message with this platform id is already in the transcript."""
        ...

    @abstractmethod
    async def update_status(
        self,
        conversation_id: str,
        status: ConversationStatus,
        *,
        message_count: Optional[int] = None,
        theme_index: Optional[int] = None,
        initiated_at: Optional[datetime] = None,
        closed_at: Optional[datetime] = None,
        expected_count: Optional[int] = None,
    ) -> None:
        """
        Update status and counters.

        Raises:
            ConcurrentModification: if expected_count is given and the stored
                message_count differs.
        """
        ...

    @abstractmethod
    async def commit_turn(
        self,
        conversation_id: str,
        messages: list[ConversationMessage],
        status: ConversationStatus,
        *,
        message_count: Optional[int] = None,
        theme_index: Optional[int] = None,
        initiated_at: Optional[datetime] = None,
        closed_at: Optional[datetime] = None,
        expected_count: Optional[int] = None,
    ) -> None:
        """
        Append transcript messages and update status in one transaction.

        Either every write lands or none does. Message appends keep the
        idempotency of append_message.

        Raises:
            ConcurrentModification: as update_status; nothing is written.
        """
        ...

    @abstractmethod
    async def get_transcript(self, conversation_id: str) -> list[ConversationMessage]:
        """All messages in transcript order."""
        ...
