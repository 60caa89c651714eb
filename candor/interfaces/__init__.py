"""
Candor Interfaces — platform- and provider-agnostic contracts.

All orchestration code depends on these interfaces only.
Concrete implementations live in adapters/.
"""

from candor.interfaces.llm_provider import (
    LLMMessage, CompletionRequest, CompletionResponse, TokenUsage,
    EmbeddingRequest, EmbeddingResponse, ProviderConfig,
    LLMProviderAdapter, EmbeddingProviderAdapter,
)
from candor.interfaces.conversation_store import ConversationStore
from candor.interfaces.event_bus import EventBus
from candor.interfaces.secrets_provider import SecretsProvider, SecretNotFound

__all__ = [
    "LLMMessage", "CompletionRequest", "CompletionResponse", "TokenUsage",
    "EmbeddingRequest", "EmbeddingResponse", "ProviderConfig",
    "LLMProviderAdapter", "EmbeddingProviderAdapter",
    "ConversationStore",
    "EventBus",
    "SecretsProvider", "SecretNotFound",
]
