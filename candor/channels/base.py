"""
Chat Adapter — base class and registry.

Every chat platform (Slack, Google Chat, Teams) implements ChatAdapter.
Adding a platform = implement these methods. Zero changes to the
registry, webhook handler or orchestrator.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from candor.errors.exceptions import ConfigurationError
from candor.models.message import (
    ChatPlatform,
    InboundMessage,
    OutboundMessage,
    PlatformUser,
    RawRequest,
    WebhookVerification,
)

logger = logging.getLogger(__name__)


class ChatAdapter(ABC):
    """
    Base class for all platform adapters.
    """

    @property
    @abstractmethod
    def platform(self) -> ChatPlatform:
        """Which platform this adapter handles."""
        ...

    @abstractmethod
    async def verify_webhook(self, request: RawRequest) -> WebhookVerification:
        """
        Verify that an incoming webhook is authentic.
        HMAC schemes must sign request.raw_body, never a re-serialized dict.
        A returned challenge short-circuits processing (handshake echo).
        """
        ...

    @abstractmethod
    async def normalize_inbound(self, raw_payload: dict) -> Optional[InboundMessage]:
        """
        Convert a raw webhook payload into a canonical InboundMessage.
        Events irrelevant to conversations return None and are dropped silently.
        """
        ...

    @abstractmethod
    async def send_message(self, message: OutboundMessage) -> str:
        """
        Send a canonical OutboundMessage via the platform API.
        Returns the platform-native message id.
        """
        ...

    # --- Best-effort methods with defaults ---

    async def resolve_user(self, platform_user_id: str) -> Optional[PlatformUser]:
        """Resolve a platform user id to a name/email. None if unavailable."""
        return None

    async def send_typing_indicator(self, channel_id: str) -> None:
        """Show typing indicator. No-op by default."""
        pass


class AdapterRegistry:
    """
    Maps platforms to adapters and routes outbound messages.
    Adapters register at startup; the registry is read-mostly afterwards.
    """

    def __init__(self):
        self._adapters: dict[ChatPlatform, ChatAdapter] = {}

    def register(self, adapter: ChatAdapter) -> None:
        """Register an adapter. Re-registering a platform overwrites it."""
        if adapter.platform in self._adapters:
            logger.warning(
                f"Overriding existing adapter for platform: {adapter.platform.value}"
            )
        self._adapters[adapter.platform] = adapter

    def get(self, platform: ChatPlatform) -> ChatAdapter:
        """Get adapter for a platform. Raises ConfigurationError if not registered."""
        adapter = self._adapters.get(platform)
        if adapter is None:
            raise ConfigurationError(
                f"No adapter registered for platform: {_name(platform)}. "
                f"Available: {[p.value for p in self._adapters]}"
            )
        return adapter

    def has(self, platform: ChatPlatform) -> bool:
        return platform in self._adapters

    async def send_message(self, message: OutboundMessage) -> str:
        return await self.get(message.platform).send_message(message)

    def registered_platforms(self) -> list[ChatPlatform]:
        return list(self._adapters.keys())


def _name(platform) -> str:
    return getattr(platform, "value", str(platform))
