"""
Google Chat Adapter — HTTP app endpoint in, Chat REST API out.

Requires secrets (from SecretsProvider):
    service_account_json: service account key (JSON string)
    verification_token: shared token configured on the Chat API page

Webhooks are authenticated with the shared verification token rather than
Google-signed JWTs. Outbound calls use a bearer token minted from the
service account with the chat.bot scope.
"""

import asyncio
import hmac
import json
import logging
import time
from typing import Optional

import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from adapters.platforms._http import call_json, parse_timestamp
from candor.channels.base import ChatAdapter
from candor.errors.exceptions import ConfigurationError, TransportError
from candor.models.message import (
    ActionsBlock,
    ButtonElement,
    ChatPlatform,
    DividerBlock,
    InboundMessage,
    MessageBlock,
    OutboundMessage,
    PlatformUser,
    RawRequest,
    SectionBlock,
    TextBlock,
    WebhookVerification,
)

logger = logging.getLogger(__name__)

CHAT_API = "https://chat.googleapis.com/v1"
CHAT_SCOPES = ["https://www.googleapis.com/auth/chat.bot"]

BUTTON_COLORS = {
    "primary": {"red": 0.13, "green": 0.55, "blue": 0.13},
    "danger": {"red": 0.86, "green": 0.2, "blue": 0.2},
}


def _button(button: ButtonElement) -> dict:
    widget = {
        "text": button.text,
        "onClick": {
            "action": {
                "function": button.action_id,
                "parameters": (
                    [{"key": "value", "value": button.value}] if button.value else []
                ),
            }
        },
    }
    if button.style in BUTTON_COLORS:
        widget["color"] = BUTTON_COLORS[button.style]
    return widget


def build_card(blocks: list[MessageBlock]) -> dict:
    """Canonical blocks -> Cards v2 card. A divider closes the current section."""
    sections = []
    widgets = []

    for block in blocks:
        if isinstance(block, (TextBlock, SectionBlock)):
            widgets.append({"textParagraph": {"text": block.text}})
            if isinstance(block, SectionBlock) and block.accessory:
                widgets.append({"buttonList": {"buttons": [_button(block.accessory)]}})
        elif isinstance(block, ActionsBlock):
            widgets.append({"buttonList": {"buttons": [_button(b) for b in block.elements]}})
        elif isinstance(block, DividerBlock):
            if widgets:
                sections.append({"widgets": widgets})
                widgets = []
            sections.append({"widgets": [{"divider": {}}]})

    if widgets:
        sections.append({"widgets": widgets})
    return {"sections": sections}


class GoogleChatAdapter(ChatAdapter):
    """Google Chat app authenticated as a service account."""

    def __init__(
        self,
        service_account_json: str,
        verification_token: str,
        api_base: str = CHAT_API,
        credentials=None,
    ):
        self.verification_token = verification_token
        self.api_base = api_base.rstrip("/")
        if credentials is None:
            try:
                info = json.loads(service_account_json)
            except (TypeError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Invalid Google Chat service account JSON: {e}")
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=CHAT_SCOPES
            )
        self._credentials = credentials

    @property
    def platform(self) -> ChatPlatform:
        return ChatPlatform.GOOGLE_CHAT

    async def verify_webhook(self, request: RawRequest) -> WebhookVerification:
        if not self.verification_token:
            return WebhookVerification(is_valid=False)

        auth = request.header("Authorization")
        if auth.startswith("Bearer ") and self._matches(auth[7:]):
            return WebhookVerification(is_valid=True)

        body_token = request.parsed.get("token")
        if body_token and self._matches(str(body_token)):
            return WebhookVerification(is_valid=True)

        return WebhookVerification(is_valid=False)

    async def normalize_inbound(self, raw_payload: dict) -> Optional[InboundMessage]:
        if raw_payload.get("type") != "MESSAGE":
            return None
        message = raw_payload.get("message")
        if not message:
            return None

        sender = message.get("sender") or {}
        space = raw_payload.get("space") or message.get("space") or {}
        thread = message.get("thread") or {}

        return InboundMessage(
            platform=ChatPlatform.GOOGLE_CHAT,
            platform_message_id=message.get("name", ""),
            channel_id=space.get("name", ""),
            user_id=sender.get("name", ""),
            text=message.get("argumentText") or message.get("text", ""),
            thread_id=thread.get("name"),
            timestamp=parse_timestamp(message.get("createTime")),
            raw_payload=raw_payload,
        )

    async def send_message(self, message: OutboundMessage) -> str:
        body = {"text": message.text}
        if message.blocks:
            body["cardsV2"] = [{
                "cardId": f"card-{int(time.time() * 1000)}",
                "card": build_card(message.blocks),
            }]

        url = f"{self.api_base}/{message.channel_id}/messages"
        if message.thread_id:
            body["thread"] = {"name": message.thread_id}
            url += "?messageReplyOption=REPLY_MESSAGE_FALLBACK_TO_NEW_THREAD"

        result = await call_json(
            "POST", url, body=body, headers=await self._auth_headers(), source="google_chat"
        )
        return result.get("name", "")

    async def resolve_user(self, platform_user_id: str) -> Optional[PlatformUser]:
        # Membership lookups take spaces/{space}/members/{user}
        try:
            result = await call_json(
                "GET",
                f"{self.api_base}/{platform_user_id}",
                headers=await self._auth_headers(),
                source="google_chat",
            )
        except (TransportError, ConfigurationError) as e:
            logger.warning(f"Google Chat member lookup failed for {platform_user_id}: {e}")
            return None

        member = result.get("member")
        if not member:
            return None
        return PlatformUser(
            platform_user_id=platform_user_id,
            display_name=member.get("displayName", "Unknown"),
            email=member.get("email"),
        )

    def _matches(self, candidate: str) -> bool:
        return hmac.compare_digest(candidate.encode(), self.verification_token.encode())

    async def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {await self._access_token()}"}

    async def _access_token(self) -> str:
        if not self._credentials.valid:
            try:
                await asyncio.to_thread(
                    self._credentials.refresh, google.auth.transport.requests.Request()
                )
            except google.auth.exceptions.RefreshError as e:
                raise TransportError(
                    f"Google service account token refresh failed: {e}",
                    status=401,
                    source="google_chat",
                ) from e
        return self._credentials.token
