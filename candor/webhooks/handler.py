"""
Webhook Handler — platform-agnostic ingress.

    raw request -> verify -> (challenge echo) -> normalize -> event bus

Verification always runs on the raw body bytes before anything else, and
normalize is never reached for a request that fails it. The status code
tells the platform whether to redeliver: 2xx acknowledges, 503 asks for
a retry.
"""

import logging
from dataclasses import dataclass, field

from candor.channels.base import AdapterRegistry
from candor.errors.handler import ErrorHandler
from candor.interfaces.event_bus import EventBus
from candor.models.message import ChatPlatform, RawRequest

logger = logging.getLogger(__name__)


@dataclass
class WebhookResponse:
    status: int
    body: dict = field(default_factory=dict)


class WebhookHandler:
    """Verifies and normalizes platform webhooks, then hands them to the bus."""

    def __init__(self, adapters: AdapterRegistry, events: EventBus):
        self.adapters = adapters
        self.events = events
        self.errors = ErrorHandler()

    async def handle(self, platform: ChatPlatform, request: RawRequest) -> WebhookResponse:
        if not self.adapters.has(platform):
            logger.warning(f"Webhook for unconfigured platform: {platform.value}")
            return WebhookResponse(503, {"error": f"Platform not configured: {platform.value}"})

        adapter = self.adapters.get(platform)

        try:
            verification = await adapter.verify_webhook(request)
        except Exception as e:
            # A verifier that can't decide is a rejection
            logger.warning(f"Webhook verification error ({platform.value}): {e}")
            return WebhookResponse(401, {"error": "Invalid signature"})

        if not verification.is_valid:
            logger.warning(f"Rejected unverified {platform.value} webhook")
            return WebhookResponse(401, {"error": "Invalid signature"})

        if verification.challenge is not None:
            return WebhookResponse(200, {"challenge": verification.challenge})

        try:
            message = await adapter.normalize_inbound(request.parsed)
            if message is None:
                return WebhookResponse(200, {"status": "ignored"})

            logger.info(
                f"Inbound {platform.value} message {message.platform_message_id} "
                f"on {message.channel_id}"
            )
            await self.events.publish_inbound_message(message)
        except Exception as e:
            report = self.errors.handle(e, context=f"webhook:{platform.value}")
            status = 503 if report.retryable else report.http_status
            return WebhookResponse(status, report.to_dict())

        return WebhookResponse(200, {"status": "ok"})
