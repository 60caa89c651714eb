"""
LLM Provider Interface

Provider-agnostic abstraction for completions and embeddings.
Implementations: AnthropicProvider, OpenAICompatProvider (local),
BedrockProvider (AWS).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from candor.models.ai_models import ModelTier, resolve_tier_models

JSON_ONLY_INSTRUCTION = "Respond ONLY with valid JSON. No markdown, no explanation."


@dataclass
class LLMMessage:
    role: str        # "system" | "user" | "assistant"
    content: str


@dataclass
class CompletionRequest:
    """Canonical completion request. The tier is chosen by the orchestrator per call."""
    messages: list[LLMMessage]
    tier: ModelTier = ModelTier.STANDARD
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    json_mode: bool = False


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class CompletionResponse:
    """Normalized completion response."""
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    latency_ms: int = 0


@dataclass
class EmbeddingRequest:
    texts: list[str]


@dataclass
class EmbeddingResponse:
    embeddings: list[list[float]]
    model: str = ""


@dataclass
class ProviderConfig:
    """Credentials and tier → model mapping for one provider."""
    provider: str
    api_key: str
    models: dict[ModelTier, str]
    base_url: Optional[str] = None

    @classmethod
    def create(
        cls,
        provider: str,
        api_key: str = "",
        models: Optional[dict] = None,
        base_url: Optional[str] = None,
    ) -> "ProviderConfig":
        """Build a config, filling tiers from compiled-in defaults.

        Raises ConfigurationError if the provider has no defaults and
        `models` doesn't name all three tiers.
        """
        return cls(
            provider=provider,
            api_key=api_key,
            models=resolve_tier_models(provider, models),
            base_url=base_url,
        )

    def model_for(self, tier: ModelTier) -> str:
        return self.models[ModelTier(tier)]


class LLMProviderAdapter(ABC):
    """
    Abstract base class for completion providers.

    Each adapter owns its transport, including retry/backoff, and the
    translation of the canonical role-tagged message list into the
    provider's native shape.
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        ...

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        ...


class EmbeddingProviderAdapter(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def provider(self) -> str:
        ...

    @abstractmethod
    async def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        ...


def split_system_messages(
    messages: list[LLMMessage], json_mode: bool = False
) -> tuple[Optional[str], list[dict]]:
    """
    Separate system messages from the conversation for providers that take
    the system prompt as its own field and need at least one user turn.

    When only system messages are present, the last one is promoted to a
    user turn and the rest become the system preamble. In JSON mode the
    JSON-only instruction is appended to the preamble in every case.

    Returns:
        (system_prompt or None, [{"role": ..., "content": ...}, ...])
    """
    system_parts = [m.content for m in messages if m.role == "system"]
    turns = [
        {"role": m.role, "content": m.content}
        for m in messages
        if m.role != "system"
    ]

    if not turns and system_parts:
        turns.append({"role": "user", "content": system_parts.pop()})

    system_prompt = "\n\n".join(system_parts) or None
    if json_mode:
        system_prompt = (
            f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}" if system_prompt
            else JSON_ONLY_INSTRUCTION
        )
    return system_prompt, turns
