"""
Slack Adapter — Events API in, Web API out.

Requires secrets (from SecretsProvider):
    bot_token: xoxb-...
    signing_secret: from the Slack app's Basic Information page
"""

import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlencode

from adapters.platforms._http import call_json
from adapters.platforms.slack_blocks import to_block_kit
from candor.channels.base import ChatAdapter
from candor.errors.exceptions import TransportError
from candor.models.message import (
    ChatPlatform,
    InboundMessage,
    OutboundMessage,
    PlatformUser,
    RawRequest,
    WebhookVerification,
)

logger = logging.getLogger(__name__)

SLACK_API = "https://slack.com/api"
MAX_CLOCK_SKEW_SECONDS = 300

# Web API error codes that are the caller's fault; never retried
CLIENT_ERRORS = {
    "invalid_auth": 401,
    "not_authed": 401,
    "account_inactive": 401,
    "token_revoked": 401,
    "missing_scope": 403,
    "not_in_channel": 403,
    "channel_not_found": 404,
    "user_not_found": 404,
    "invalid_blocks": 400,
    "msg_too_long": 400,
    "no_text": 400,
}


class SlackAdapter(ChatAdapter):
    """Slack bot using a bot token and a signing secret."""

    def __init__(
        self,
        bot_token: str,
        signing_secret: str,
        api_base: str = SLACK_API,
        clock: Callable[[], float] = time.time,
    ):
        self.bot_token = bot_token
        self.signing_secret = signing_secret
        self.api_base = api_base.rstrip("/")
        self._clock = clock

    @property
    def platform(self) -> ChatPlatform:
        return ChatPlatform.SLACK

    async def verify_webhook(self, request: RawRequest) -> WebhookVerification:
        timestamp = request.header("X-Slack-Request-Timestamp")
        signature = request.header("X-Slack-Signature")
        if not timestamp or not signature:
            return WebhookVerification(is_valid=False)

        try:
            skew = abs(self._clock() - int(timestamp))
        except ValueError:
            return WebhookVerification(is_valid=False)
        if skew > MAX_CLOCK_SKEW_SECONDS:
            logger.warning(f"Slack request timestamp outside window ({skew:.0f}s)")
            return WebhookVerification(is_valid=False)

        basestring = f"v0:{timestamp}:".encode() + request.raw_body
        expected = "v0=" + hmac.new(
            self.signing_secret.encode(), basestring, hashlib.sha256
        ).hexdigest()
        if not hmac.compare_digest(expected, signature):
            return WebhookVerification(is_valid=False)

        if request.parsed.get("type") == "url_verification":
            return WebhookVerification(is_valid=True, challenge=request.parsed.get("challenge", ""))
        return WebhookVerification(is_valid=True)

    async def normalize_inbound(self, raw_payload: dict) -> Optional[InboundMessage]:
        if raw_payload.get("type") != "event_callback":
            return None
        event = raw_payload.get("event") or {}
        # Subtypes cover bot posts, edits, joins, deletions
        if event.get("type") != "message" or event.get("subtype") or event.get("bot_id"):
            return None
        if not event.get("user"):
            return None

        ts = event.get("ts", "")
        try:
            timestamp = datetime.fromtimestamp(float(ts), tz=timezone.utc)
        except ValueError:
            timestamp = datetime.now(timezone.utc)

        return InboundMessage(
            platform=ChatPlatform.SLACK,
            platform_message_id=ts,
            channel_id=event.get("channel", ""),
            user_id=event["user"],
            text=event.get("text", ""),
            thread_id=event.get("thread_ts"),
            timestamp=timestamp,
            raw_payload=raw_payload,
        )

    async def send_message(self, message: OutboundMessage) -> str:
        body = {"channel": message.channel_id, "text": message.text}
        if message.thread_id:
            body["thread_ts"] = message.thread_id
        if message.blocks:
            body["blocks"] = to_block_kit(message.blocks)

        result = await call_json(
            "POST",
            f"{self.api_base}/chat.postMessage",
            check=lambda r: self._check(r, "chat.postMessage"),
            body=body,
            headers=self._auth_headers(),
            source="slack",
        )
        return result.get("ts", "")

    async def resolve_user(self, platform_user_id: str) -> Optional[PlatformUser]:
        try:
            result = await call_json(
                "GET",
                f"{self.api_base}/users.info?{urlencode({'user': platform_user_id})}",
                check=lambda r: self._check(r, "users.info"),
                headers=self._auth_headers(),
                source="slack",
            )
        except TransportError as e:
            logger.warning(f"Slack users.info failed for {platform_user_id}: {e}")
            return None

        user = result.get("user") or {}
        profile = user.get("profile") or {}
        return PlatformUser(
            platform_user_id=platform_user_id,
            display_name=profile.get("display_name") or user.get("real_name") or user.get("name", ""),
            email=profile.get("email"),
        )

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.bot_token}"}

    @staticmethod
    def _check(result: dict, method: str) -> None:
        """Slack answers HTTP 200 with ok=false on API errors."""
        if result.get("ok"):
            return
        error = result.get("error", "unknown_error")
        if error == "ratelimited":
            status = 429
        else:
            status = CLIENT_ERRORS.get(error, 502)
        raise TransportError(f"Slack {method} failed: {error}", status=status, source="slack")
