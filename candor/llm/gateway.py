"""
LLM Gateway — provider-agnostic completion interface.

Routes requests to the configured provider (Anthropic, OpenAI-compatible,
Bedrock). Holds no retry logic: each provider adapter owns its transport.
"""

import logging
from typing import Optional

from candor.errors.exceptions import CompletionValidationError, ConfigurationError
from candor.interfaces.llm_provider import (
    CompletionRequest,
    CompletionResponse,
    EmbeddingProviderAdapter,
    EmbeddingRequest,
    EmbeddingResponse,
    LLMProviderAdapter,
)
from candor.llm.json_output import strip_code_fences
from candor.models.ai_models import ModelTier

logger = logging.getLogger(__name__)


class LLMGateway:
    """
    Completion and embedding providers, registered independently.
    Registration happens once at startup.
    """

    def __init__(self, default_provider: str):
        self.default_provider = default_provider
        self._providers: dict[str, LLMProviderAdapter] = {}
        self._embedding_providers: dict[str, EmbeddingProviderAdapter] = {}

    def register_provider(self, adapter: LLMProviderAdapter) -> None:
        self._providers[adapter.provider] = adapter

    def register_embedding_provider(self, adapter: EmbeddingProviderAdapter) -> None:
        self._embedding_providers[adapter.provider] = adapter

    def providers(self) -> list[str]:
        return list(self._providers.keys())

    async def complete(
        self,
        request: CompletionRequest,
        provider: Optional[str] = None,
    ) -> CompletionResponse:
        """
        Run a completion on `provider` (or the default provider).

        Raises:
            CompletionValidationError: empty messages or non-positive max_tokens.
            ConfigurationError: no adapter registered for the target provider.
        """
        self._validate(request)

        target = provider or self.default_provider
        adapter = self._providers.get(target)
        if adapter is None:
            raise ConfigurationError(
                f"No LLM provider registered: {target}. "
                f"Available: {list(self._providers.keys())}"
            )

        response = await adapter.complete(request)
        if request.json_mode:
            response.content = strip_code_fences(response.content)

        logger.debug(
            f"LLM {target}/{response.model} tier={ModelTier(request.tier).value} "
            f"tokens={response.usage.input_tokens}+{response.usage.output_tokens} "
            f"latency={response.latency_ms}ms"
        )
        return response

    async def embed(
        self,
        request: EmbeddingRequest,
        provider: Optional[str] = None,
    ) -> EmbeddingResponse:
        if not request.texts:
            raise CompletionValidationError("Embedding request has no texts")

        target = provider or self.default_provider
        adapter = self._embedding_providers.get(target)
        if adapter is None:
            raise ConfigurationError(f"No embedding provider registered: {target}")
        return await adapter.embed(request)

    @staticmethod
    def _validate(request: CompletionRequest) -> None:
        if not request.messages:
            raise CompletionValidationError("Completion request has no messages")
        if request.max_tokens is not None and request.max_tokens <= 0:
            raise CompletionValidationError(
                f"max_tokens must be positive, got {request.max_tokens}"
            )
