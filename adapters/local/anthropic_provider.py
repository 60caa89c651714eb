"""
Local LLM Provider — Direct Anthropic API.

For local development. No AWS/Bedrock dependency.
"""

import logging
import time

from adapters.platforms._http import call_json
from candor.interfaces.llm_provider import (
    CompletionRequest,
    CompletionResponse,
    LLMProviderAdapter,
    ProviderConfig,
    TokenUsage,
    split_system_messages,
)

logger = logging.getLogger(__name__)

ANTHROPIC_API = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024


class AnthropicProvider(LLMProviderAdapter):
    """Calls the Anthropic Messages API directly using urllib."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.base_url = (config.base_url or ANTHROPIC_API).rstrip("/")

    @property
    def provider(self) -> str:
        return self.config.provider

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self.config.model_for(request.tier)
        system, messages = split_system_messages(request.messages, request.json_mode)

        body = {
            "model": model,
            "messages": messages,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system:
            body["system"] = system
        if request.temperature is not None:
            body["temperature"] = request.temperature

        started = time.perf_counter()
        result = await call_json(
            "POST",
            f"{self.base_url}/messages",
            body=body,
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            source="anthropic",
        )
        latency_ms = int((time.perf_counter() - started) * 1000)

        return self._parse_response(result, model, latency_ms)

    def _parse_response(self, result: dict, model: str, latency_ms: int) -> CompletionResponse:
        """Parse Anthropic API response into a CompletionResponse."""
        text_parts = [
            block["text"]
            for block in result.get("content", [])
            if block.get("type") == "text"
        ]
        usage = result.get("usage", {})
        return CompletionResponse(
            content="".join(text_parts),
            usage=TokenUsage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
            ),
            model=result.get("model", model),
            latency_ms=latency_ms,
        )
