"""
AWS LLM Provider — Amazon Bedrock.

Calls Claude via the Bedrock Converse API. Uses IAM role auth (no API key needed).
"""

import asyncio
import logging
import time

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from candor.errors.exceptions import TransportError
from candor.interfaces.llm_provider import (
    CompletionRequest,
    CompletionResponse,
    LLMProviderAdapter,
    ProviderConfig,
    TokenUsage,
    split_system_messages,
)
from candor.retry import retry_async

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024


class BedrockProvider(LLMProviderAdapter):
    """Bedrock Converse API client. Region defaults to us-east-1."""

    def __init__(self, config: ProviderConfig, region: str = "us-east-1", client=None):
        self.config = config
        self.client = client or boto3.client("bedrock-runtime", region_name=region or "us-east-1")

    @property
    def provider(self) -> str:
        return self.config.provider

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self.config.model_for(request.tier)
        converse_request = self._build_request(model, request)

        started = time.perf_counter()
        response = await retry_async(lambda: asyncio.to_thread(self._converse, converse_request))
        latency_ms = int((time.perf_counter() - started) * 1000)

        return self._parse_response(response, model, latency_ms)

    def _build_request(self, model: str, request: CompletionRequest) -> dict:
        """Build Bedrock Converse API request."""
        # Converse requires the conversation to start with a user turn
        system, messages = split_system_messages(request.messages, request.json_mode)

        inference = {"maxTokens": request.max_tokens or DEFAULT_MAX_TOKENS}
        if request.temperature is not None:
            inference["temperature"] = request.temperature

        converse_request = {
            "modelId": model,
            "messages": [
                {"role": m["role"], "content": [{"text": m["content"]}]}
                for m in messages
            ],
            "inferenceConfig": inference,
        }
        if system:
            converse_request["system"] = [{"text": system}]
        return converse_request

    def _converse(self, converse_request: dict) -> dict:
        try:
            return self.client.converse(**converse_request)
        except ClientError as e:
            error = e.response.get("Error", {})
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise TransportError(
                f"Bedrock {error.get('Code', 'ClientError')}: {error.get('Message', str(e))}",
                status=status,
                source="bedrock",
            ) from e
        except BotoCoreError as e:
            raise TransportError(f"Bedrock unreachable: {e}", source="bedrock") from e

    def _parse_response(self, response: dict, model: str, latency_ms: int) -> CompletionResponse:
        """Parse Bedrock Converse API response."""
        message = response.get("output", {}).get("message", {})
        text_parts = [block["text"] for block in message.get("content", []) if "text" in block]

        usage = response.get("usage", {})
        return CompletionResponse(
            content="".join(text_parts),
            usage=TokenUsage(
                input_tokens=usage.get("inputTokens", 0),
                output_tokens=usage.get("outputTokens", 0),
            ),
            model=model,
            latency_ms=latency_ms,
        )
