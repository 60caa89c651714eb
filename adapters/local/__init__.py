from adapters.local.anthropic_provider import AnthropicProvider
from adapters.local.openai_provider import OpenAICompatProvider
from adapters.local.sqlite_store import SQLiteConversationStore
from adapters.local.env_secrets import EnvSecretsProvider
from adapters.local.direct_bus import DirectBus

__all__ = [
    "AnthropicProvider",
    "OpenAICompatProvider",
    "SQLiteConversationStore",
    "EnvSecretsProvider",
    "DirectBus",
]
