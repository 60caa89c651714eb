"""
Shared fixtures and fakes. No network: platforms and LLM providers are
replaced with in-memory recorders.
"""

import sys
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adapters.local.direct_bus import DirectBus
from adapters.local.sqlite_store import SQLiteConversationStore
from candor.channels.base import AdapterRegistry, ChatAdapter
from candor.interfaces.llm_provider import (
    CompletionRequest,
    CompletionResponse,
    LLMProviderAdapter,
)
from candor.llm.gateway import LLMGateway
from candor.models.message import (
    ChatPlatform,
    InboundMessage,
    OutboundMessage,
    RawRequest,
    WebhookVerification,
)
from candor.orchestrator.orchestrator import ConversationOrchestrator
from candor.themes.registry import default_catalog


class FakeChatAdapter(ChatAdapter):
    """Records outbound messages. Set `fail_with` to make sends raise."""

    def __init__(self, platform: ChatPlatform = ChatPlatform.SLACK, valid: bool = True):
        self._platform = platform
        self.valid = valid
        self.sent: list[OutboundMessage] = []
        self.typing: list[str] = []
        self.normalized: list[dict] = []
        self.fail_with: Optional[Exception] = None

    @property
    def platform(self) -> ChatPlatform:
        return self._platform

    async def verify_webhook(self, request: RawRequest) -> WebhookVerification:
        if request.parsed.get("type") == "url_verification":
            return WebhookVerification(is_valid=self.valid, challenge=request.parsed["challenge"])
        return WebhookVerification(is_valid=self.valid)

    async def normalize_inbound(self, raw_payload: dict) -> Optional[InboundMessage]:
        self.normalized.append(raw_payload)
        if "text" not in raw_payload:
            return None
        return InboundMessage(
            platform=self._platform,
            platform_message_id=raw_payload.get("id", ""),
            channel_id=raw_payload.get("channel", "C1"),
            user_id=raw_payload.get("user", "U1"),
            text=raw_payload["text"],
        )

    async def send_message(self, message: OutboundMessage) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)
        return f"out-{len(self.sent)}"

    async def send_typing_indicator(self, channel_id: str) -> None:
        self.typing.append(channel_id)


class FakeLLMProvider(LLMProviderAdapter):
    """
    Scripted completions. JSON-mode requests get `decision`; everything
    else gets the next question (or a numbered default).
    """

    def __init__(self, name: str = "fake"):
        self.name = name
        self.requests: list[CompletionRequest] = []
        self.questions: list[str] = []
        self.decision = '{"action": "next_theme"}'
        self.fail_with: Optional[Exception] = None

    @property
    def provider(self) -> str:
        return self.name

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.json_mode:
            return CompletionResponse(content=self.decision, model="fake-fast")
        if self.questions:
            return CompletionResponse(content=self.questions.pop(0), model="fake-standard")
        return CompletionResponse(
            content=f"Question {len(self.requests)}?", model="fake-standard"
        )


def make_message(
    text: str,
    message_id: str,
    channel_id: str = "C1",
    platform: ChatPlatform = ChatPlatform.SLACK,
) -> InboundMessage:
    return InboundMessage(
        platform=platform,
        platform_message_id=message_id,
        channel_id=channel_id,
        user_id="U1",
        text=text,
    )


# --- Fixtures ---


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite conversation store."""
    return SQLiteConversationStore(str(tmp_path / "test.db"))


@pytest.fixture
def adapter():
    return FakeChatAdapter()


@pytest.fixture
def registry(adapter):
    registry = AdapterRegistry()
    registry.register(adapter)
    return registry


@pytest.fixture
def provider():
    return FakeLLMProvider()


@pytest.fixture
def gateway(provider):
    gateway = LLMGateway(default_provider=provider.provider)
    gateway.register_provider(provider)
    return gateway


@pytest.fixture
def bus():
    return DirectBus()


@pytest.fixture
def orchestrator(store, registry, gateway, bus):
    orchestrator = ConversationOrchestrator(
        store=store,
        adapters=registry,
        llm=gateway,
        themes=default_catalog(),
        events=bus,
    )
    bus.orchestrator = orchestrator
    return orchestrator
