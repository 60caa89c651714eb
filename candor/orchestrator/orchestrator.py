"""
Conversation Orchestrator — the conversation state machine.

Consumes normalized inbound messages, enforces sanitization and turn
limits, calls the LLM gateway and emits outbound messages through the
adapter registry.

  scheduled -> initiated -> in_progress -> closing -> closed
        (any non-terminal state) -> expired

A turn sends first, then commits its transcript rows and status in one
store transaction. A failure before the commit leaves nothing behind; the
webhook layer answers with a transient error and the platform redelivers,
which re-runs the whole turn. A conversation found in `closing` (its
closing message already out) is finished without sending again.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from candor.channels.base import AdapterRegistry
from candor.errors.exceptions import (
    ConversationNotFound,
    InvalidTransition,
    TurnFailed,
)
from candor.errors.handler import ErrorHandler
from candor.interfaces.conversation_store import ConversationStore
from candor.interfaces.event_bus import EventBus
from candor.interfaces.llm_provider import CompletionRequest
from candor.llm.gateway import LLMGateway
from candor.llm.json_output import parse_json_object
from candor.models.ai_models import ModelTier
from candor.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
)
from candor.models.message import ChatPlatform, InboundMessage, OutboundMessage
from candor.orchestrator.locks import ConversationLocks
from candor.orchestrator.policy import closing_message, max_messages, sanitize
from candor.orchestrator.prompts import (
    FALLBACK_QUESTION,
    NEXT_ACTION_FOLLOW_UP,
    NEXT_ACTION_NEXT_THEME,
    build_next_action_prompt,
    build_question_prompt,
    verbatim_question,
)
from candor.themes.registry import Theme, ThemeCatalog

logger = logging.getLogger(__name__)

QUESTION_MAX_TOKENS = 150
QUESTION_TEMPERATURE = 0.7
DECISION_MAX_TOKENS = 20


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TurnResult:
    """Outcome of a completed turn."""
    conversation: Conversation      # State after the turn
    outbound: OutboundMessage
    platform_message_id: str
    closed: bool = False


class ConversationOrchestrator:
    """
    Drives conversations. All dependencies injected.
    """

    def __init__(
        self,
        store: ConversationStore,
        adapters: AdapterRegistry,
        llm: LLMGateway,
        themes: ThemeCatalog,
        locks: Optional[ConversationLocks] = None,
        events: Optional[EventBus] = None,
        llm_provider: Optional[str] = None,
    ):
        self.store = store
        self.adapters = adapters
        self.llm = llm
        self.themes = themes
        self.locks = locks or ConversationLocks()
        self.events = events
        self.llm_provider = llm_provider
        self.errors = ErrorHandler()

    # --- Lifecycle entry points ---

    async def schedule_conversation(
        self,
        org_id: str,
        interaction_type: str,
        platform: ChatPlatform,
        channel_id: str,
        reviewer_id: str = "",
        subject_id: str = "",
        subject_name: str = "",
        thread_id: Optional[str] = None,
    ) -> Conversation:
        """Create a conversation in `scheduled`."""
        conversation = Conversation(
            conversation_id=str(uuid.uuid4()),
            org_id=org_id,
            interaction_type=getattr(interaction_type, "value", interaction_type),
            platform=platform,
            channel_id=channel_id,
            reviewer_id=reviewer_id,
            subject_id=subject_id,
            subject_name=subject_name,
            thread_id=thread_id,
        )
        return await self.store.create_conversation(conversation)

    async def initiate_conversation(
        self, conversation_id: str, reviewer_name: str = ""
    ) -> TurnResult:
        """
        Send the opening question: scheduled -> initiated.
        Called by the scheduler when it's time for the interaction.
        """
        async with self.locks.hold(conversation_id):
            conversation = await self._load(conversation_id)
            initiated = conversation.transition(
                ConversationStatus.INITIATED, initiated_at=_now(), theme_index=0
            )
            theme = self.themes.theme_at(initiated.interaction_type, 0)

            try:
                text = verbatim_question(theme)
                if text is None:
                    text = await self._generate_question(
                        initiated, theme, [], reviewer_name=reviewer_name, is_opening=True
                    )
                outbound, message_id = await self._emit(initiated, text)
                await self.store.commit_turn(
                    conversation_id,
                    [ConversationMessage(conversation_id, "assistant", text, message_id)],
                    ConversationStatus.INITIATED,
                    initiated_at=initiated.initiated_at,
                    theme_index=0,
                    expected_count=conversation.message_count,
                )
            except Exception as e:
                self.errors.handle(e, context=f"initiate:{conversation_id[:8]}")
                raise TurnFailed(conversation_id, e) from e

            logger.info(f"{initiated.log_prefix()} Initiated {initiated.interaction_type}")
            return TurnResult(initiated, outbound, message_id)

    async def handle_inbound_message(self, message: InboundMessage) -> Optional[TurnResult]:
        """
        Main entry point for user replies.
        Returns None when the message doesn't belong to a live conversation.
        """
        conversation = await self.store.find_active_conversation(
            message.platform, message.channel_id
        )
        if conversation is None:
            logger.info(
                f"No active conversation for {message.platform.value}:"
                f"{message.channel_id}; ignoring message {message.platform_message_id}"
            )
            return None
        return await self.handle_reply(conversation.conversation_id, message)

    async def handle_reply(
        self, conversation_id: str, message: InboundMessage
    ) -> Optional[TurnResult]:
        """
        Process one user reply for a known conversation.

        Raises:
            TurnFailed: gateway, adapter or store failure; nothing was persisted.
        """
        finished: Optional[Conversation] = None
        async with self.locks.hold(conversation_id):
            # Re-read under the lock: a concurrent turn may have closed it
            conversation = await self.store.get_conversation(conversation_id)
            if conversation is None:
                logger.warning(f"Reply for unknown conversation {conversation_id}; ignoring")
                return None
            if conversation.is_terminal or conversation.status == ConversationStatus.SCHEDULED:
                logger.info(
                    f"{conversation.log_prefix()} Ignoring reply in status "
                    f"{conversation.status.value}"
                )
                return None
            if (
                conversation.status != ConversationStatus.CLOSING
                and message.platform_message_id
                and await self.store.has_message(conversation_id, message.platform_message_id)
            ):
                # Platform redelivery of a turn that already completed
                logger.info(
                    f"{conversation.log_prefix()} Duplicate delivery of "
                    f"{message.platform_message_id}; ignoring"
                )
                return None

            try:
                if conversation.status == ConversationStatus.CLOSING:
                    finished = await self._finish_close(conversation)
                else:
                    result = await self._run_turn(conversation, message)
            except Exception as e:
                self.errors.handle(e, context=f"turn:{conversation_id[:8]}")
                raise TurnFailed(conversation_id, e) from e

        if finished is not None:
            await self._announce_closed(finished)
            return None
        if result.closed:
            await self._announce_closed(result.conversation)
        return result

    async def expire_conversation(self, conversation_id: str) -> Conversation:
        """Mark a conversation expired. Terminal conversations are returned unchanged."""
        async with self.locks.hold(conversation_id):
            conversation = await self._load(conversation_id)
            if conversation.is_terminal:
                return conversation
            expired = conversation.transition(ConversationStatus.EXPIRED)
            await self.store.update_status(conversation_id, ConversationStatus.EXPIRED)
            logger.info(f"{expired.log_prefix()} Expired in status {conversation.status.value}")
            return expired

    # --- Turn processing ---

    async def _run_turn(
        self, conversation: Conversation, message: InboundMessage
    ) -> TurnResult:
        reply = sanitize(message.text)
        turn_count = conversation.message_count + 1
        thread_id = message.thread_id or conversation.thread_id

        logger.info(
            f"{conversation.log_prefix()} Turn {turn_count}/"
            f"{max_messages(conversation.interaction_type)}: {reply[:60]}"
        )

        if turn_count >= max_messages(conversation.interaction_type):
            return await self._close(conversation, message, turn_count, thread_id)

        await self._typing(conversation)

        theme_index = await self._next_theme_index(conversation, reply)
        theme = self.themes.theme_at(conversation.interaction_type, theme_index)

        text = None
        if theme_index != conversation.theme_index:
            text = verbatim_question(theme)
        if text is None:
            transcript = await self.store.get_transcript(conversation.conversation_id)
            transcript.append(
                ConversationMessage(conversation.conversation_id, "user", reply)
            )
            text = await self._generate_question(conversation, theme, transcript)

        advanced = conversation.transition(
            ConversationStatus.IN_PROGRESS,
            message_count=turn_count,
            theme_index=theme_index,
        )
        outbound, message_id = await self._emit(advanced, text, thread_id)

        await self.store.commit_turn(
            conversation.conversation_id,
            self._exchange(conversation, message, text, message_id),
            ConversationStatus.IN_PROGRESS,
            message_count=turn_count,
            theme_index=theme_index,
            expected_count=conversation.message_count,
        )
        return TurnResult(advanced, outbound, message_id)

    async def _close(
        self,
        conversation: Conversation,
        message: InboundMessage,
        turn_count: int,
        thread_id: Optional[str],
    ) -> TurnResult:
        """Send the static closing message: -> closing -> closed."""
        closing = conversation.transition(
            ConversationStatus.CLOSING, message_count=turn_count
        )
        text = closing_message(conversation.interaction_type)
        outbound, message_id = await self._emit(closing, text, thread_id)

        # closing is never stored on this path: the exchange and closed land together
        closed = closing.transition(ConversationStatus.CLOSED, closed_at=_now())
        await self.store.commit_turn(
            conversation.conversation_id,
            self._exchange(conversation, message, text, message_id),
            ConversationStatus.CLOSED,
            message_count=turn_count,
            closed_at=closed.closed_at,
            expected_count=conversation.message_count,
        )
        logger.info(f"{closed.log_prefix()} Closed after {turn_count} turns")
        return TurnResult(closed, outbound, message_id, closed=True)

    async def _finish_close(self, conversation: Conversation) -> Conversation:
        """closing -> closed for a conversation whose closing message is already out."""
        closed = conversation.transition(ConversationStatus.CLOSED, closed_at=_now())
        await self.store.update_status(
            conversation.conversation_id,
            ConversationStatus.CLOSED,
            closed_at=closed.closed_at,
            expected_count=conversation.message_count,
        )
        logger.info(f"{closed.log_prefix()} Finished close left in closing")
        return closed

    def _exchange(
        self,
        conversation: Conversation,
        message: InboundMessage,
        reply_text: str,
        reply_message_id: str,
    ) -> list[ConversationMessage]:
        return [
            ConversationMessage(
                conversation.conversation_id, "user", message.text, message.platform_message_id
            ),
            ConversationMessage(
                conversation.conversation_id, "assistant", reply_text, reply_message_id
            ),
        ]

    async def _emit(
        self,
        conversation: Conversation,
        text: str,
        thread_id: Optional[str] = None,
    ) -> tuple[OutboundMessage, str]:
        if not conversation.can_send:
            raise InvalidTransition(
                f"Refusing to send for conversation {conversation.conversation_id} "
                f"in status {conversation.status.value}"
            )
        outbound = OutboundMessage(
            platform=conversation.platform,
            channel_id=conversation.channel_id,
            thread_id=thread_id or conversation.thread_id,
            text=text,
        )
        message_id = await self.adapters.send_message(outbound)
        return outbound, message_id

    async def _typing(self, conversation: Conversation) -> None:
        """Best-effort typing indicator; never fails the turn."""
        if not self.adapters.has(conversation.platform):
            return
        adapter = self.adapters.get(conversation.platform)
        try:
            await adapter.send_typing_indicator(conversation.channel_id)
        except Exception as e:
            logger.warning(f"{conversation.log_prefix()} Typing indicator failed: {e}")

    # --- LLM helpers ---

    async def _next_theme_index(self, conversation: Conversation, reply: str) -> int:
        """Stay on the current theme (follow-up) or move to the next one."""
        themes = self.themes.themes_for(conversation.interaction_type)
        if conversation.theme_index >= len(themes) - 1:
            return conversation.theme_index

        response = await self.llm.complete(
            CompletionRequest(
                messages=build_next_action_prompt(reply),
                tier=ModelTier.FAST,
                max_tokens=DECISION_MAX_TOKENS,
                temperature=0,
                json_mode=True,
            ),
            provider=self.llm_provider,
        )
        decision = parse_json_object(
            response.content, default={"action": NEXT_ACTION_FOLLOW_UP}
        )
        if decision.get("action") == NEXT_ACTION_NEXT_THEME:
            return conversation.theme_index + 1
        return conversation.theme_index

    async def _generate_question(
        self,
        conversation: Conversation,
        theme: Optional[Theme],
        transcript: list[ConversationMessage],
        reviewer_name: str = "",
        is_opening: bool = False,
    ) -> str:
        if theme is None:
            return FALLBACK_QUESTION

        response = await self.llm.complete(
            CompletionRequest(
                messages=build_question_prompt(
                    conversation.interaction_type,
                    theme,
                    transcript,
                    subject_name=conversation.subject_name,
                    reviewer_name=reviewer_name,
                    is_opening=is_opening,
                ),
                tier=ModelTier.STANDARD,
                max_tokens=QUESTION_MAX_TOKENS,
                temperature=QUESTION_TEMPERATURE,
            ),
            provider=self.llm_provider,
        )
        question = response.content.strip()
        if not question:
            logger.warning(f"{conversation.log_prefix()} Empty question from model, using fallback")
            return FALLBACK_QUESTION
        return question

    # --- Internals ---

    async def _load(self, conversation_id: str) -> Conversation:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(f"Conversation '{conversation_id}' not found")
        return conversation

    async def _announce_closed(self, conversation: Conversation) -> None:
        if self.events is None:
            return
        try:
            await self.events.publish_conversation_closed(conversation)
        except Exception:
            # The turn is already committed; analysis can be re-enqueued from the store
            logger.exception(f"{conversation.log_prefix()} Failed to publish close event")
