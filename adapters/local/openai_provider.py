"""
Local LLM Provider — OpenAI-compatible chat completions.

Works against OpenAI and self-hosted servers that speak the same API
(Ollama, vLLM). Also serves embeddings.
"""

import logging
import time

from adapters.platforms._http import call_json
from candor.interfaces.llm_provider import (
    JSON_ONLY_INSTRUCTION,
    CompletionRequest,
    CompletionResponse,
    EmbeddingProviderAdapter,
    EmbeddingRequest,
    EmbeddingResponse,
    LLMProviderAdapter,
    ProviderConfig,
    TokenUsage,
)

logger = logging.getLogger(__name__)

OPENAI_API = "https://api.openai.com/v1"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAICompatProvider(LLMProviderAdapter, EmbeddingProviderAdapter):
    """Chat completions and embeddings over the OpenAI REST shape."""

    def __init__(self, config: ProviderConfig, embedding_model: str = DEFAULT_EMBEDDING_MODEL):
        self.config = config
        self.base_url = (config.base_url or OPENAI_API).rstrip("/")
        self.embedding_model = embedding_model

    @property
    def provider(self) -> str:
        return self.config.provider

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self.config.model_for(request.tier)
        messages = [{"role": m.role, "content": m.content} for m in request.messages]

        body = {"model": model, "messages": messages}
        if request.max_tokens:
            body["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.json_mode:
            body["response_format"] = {"type": "json_object"}
            # The API rejects json_object mode unless a message mentions JSON
            if not any("json" in m["content"].lower() for m in messages):
                messages.insert(0, {"role": "system", "content": JSON_ONLY_INSTRUCTION})

        started = time.perf_counter()
        result = await call_json(
            "POST",
            f"{self.base_url}/chat/completions",
            body=body,
            headers=self._headers(),
            source=self.provider,
        )
        latency_ms = int((time.perf_counter() - started) * 1000)

        choices = result.get("choices") or [{}]
        usage = result.get("usage") or {}
        return CompletionResponse(
            content=(choices[0].get("message") or {}).get("content") or "",
            usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
            ),
            model=result.get("model", model),
            latency_ms=latency_ms,
        )

    async def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        result = await call_json(
            "POST",
            f"{self.base_url}/embeddings",
            body={"model": self.embedding_model, "input": request.texts},
            headers=self._headers(),
            source=self.provider,
        )
        data = sorted(result.get("data", []), key=lambda d: d.get("index", 0))
        return EmbeddingResponse(
            embeddings=[d["embedding"] for d in data],
            model=result.get("model", self.embedding_model),
        )

    def _headers(self) -> dict:
        # Local servers (Ollama) accept any key or none
        if not self.config.api_key:
            return {}
        return {"Authorization": f"Bearer {self.config.api_key}"}
