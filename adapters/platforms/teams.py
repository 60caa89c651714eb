"""
Microsoft Teams Adapter — Bot Framework activities.

Requires secrets (from SecretsProvider):
    app_id: Azure bot registration (Microsoft App ID)
    app_secret: client secret for the registration
    tenant_id: optional, for single-tenant bots

Inbound activities carry a Bot Framework JWT (RS256) signed with keys
from the Bot Framework OpenID metadata. Replies go to the serviceUrl the
activity came from, authenticated with a client-credentials token.
"""

import asyncio
import logging
import time
from typing import Optional

import jwt

from adapters.platforms._http import call_json, parse_timestamp
from adapters.platforms.teams_cards import card_attachment
from candor.channels.base import ChatAdapter
from candor.models.message import (
    ChatPlatform,
    InboundMessage,
    OutboundMessage,
    PlatformUser,
    RawRequest,
    WebhookVerification,
)

logger = logging.getLogger(__name__)

BOT_FRAMEWORK_ISSUER = "https://api.botframework.com"
BOT_FRAMEWORK_JWKS_URL = "https://login.botframework.com/v1/.well-known/keys"
BOT_FRAMEWORK_SCOPE = "https://api.botframework.com/.default"
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
DEFAULT_TENANT = "botframework.com"
DEFAULT_SERVICE_URL = "https://smba.trafficmanager.net/teams/"

# Refresh the outbound token this long before it expires
TOKEN_REFRESH_MARGIN_SECONDS = 300


class TeamsAdapter(ChatAdapter):
    """Teams bot over the Bot Connector REST API."""

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        tenant_id: str = "",
        jwks_client: Optional[jwt.PyJWKClient] = None,
        default_service_url: str = DEFAULT_SERVICE_URL,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.tenant_id = tenant_id or DEFAULT_TENANT
        self.default_service_url = default_service_url
        self._jwks = jwks_client or jwt.PyJWKClient(BOT_FRAMEWORK_JWKS_URL)
        self._service_urls: dict[str, str] = {}
        self._token = ""
        self._token_expires_at = 0.0

    @property
    def platform(self) -> ChatPlatform:
        return ChatPlatform.TEAMS

    async def verify_webhook(self, request: RawRequest) -> WebhookVerification:
        auth = request.header("Authorization")
        if not auth.startswith("Bearer "):
            return WebhookVerification(is_valid=False)
        token = auth[7:]

        try:
            signing_key = await asyncio.to_thread(self._jwks.get_signing_key_from_jwt, token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.app_id,
                issuer=BOT_FRAMEWORK_ISSUER,
                leeway=300,
            )
        except jwt.PyJWTError as e:
            logger.warning(f"Teams JWT rejected: {e}")
            return WebhookVerification(is_valid=False)

        service_url = request.parsed.get("serviceUrl")
        if service_url and claims.get("serviceurl") not in (None, service_url):
            logger.warning("Teams JWT serviceurl claim does not match activity")
            return WebhookVerification(is_valid=False)

        return WebhookVerification(is_valid=True)

    async def normalize_inbound(self, raw_payload: dict) -> Optional[InboundMessage]:
        if raw_payload.get("type") != "message":
            return None
        sender = raw_payload.get("from") or {}
        if not sender.get("id"):
            return None

        conversation_id = (raw_payload.get("conversation") or {}).get("id", "")
        if raw_payload.get("serviceUrl") and conversation_id:
            self._service_urls[conversation_id] = raw_payload["serviceUrl"]

        return InboundMessage(
            platform=ChatPlatform.TEAMS,
            platform_message_id=raw_payload.get("id", ""),
            channel_id=conversation_id,
            user_id=sender["id"],
            text=raw_payload.get("text") or "",
            thread_id=raw_payload.get("replyToId"),
            timestamp=parse_timestamp(raw_payload.get("timestamp")),
            raw_payload=raw_payload,
        )

    async def send_message(self, message: OutboundMessage) -> str:
        activity = {"type": "message", "text": message.text, "textFormat": "markdown"}
        if message.blocks:
            activity["attachments"] = [card_attachment(message.blocks)]
        if message.thread_id:
            activity["replyToId"] = message.thread_id

        result = await call_json(
            "POST",
            self._activities_url(message.channel_id),
            body=activity,
            headers=await self._auth_headers(),
            source="teams",
        )
        return result.get("id", "")

    async def send_typing_indicator(self, channel_id: str) -> None:
        try:
            await call_json(
                "POST",
                self._activities_url(channel_id),
                body={"type": "typing"},
                headers=await self._auth_headers(),
                source="teams",
            )
        except Exception as e:
            logger.warning(f"Teams typing indicator failed for {channel_id}: {e}")

    async def resolve_user(self, platform_user_id: str) -> Optional[PlatformUser]:
        # Needs a conversation the user belongs to
        conversation_id = next(iter(self._service_urls), None)
        if conversation_id is None:
            return None
        base = self._service_url(conversation_id)
        try:
            member = await call_json(
                "GET",
                f"{base}/v3/conversations/{conversation_id}/members/{platform_user_id}",
                headers=await self._auth_headers(),
                source="teams",
            )
        except Exception as e:
            logger.warning(f"Teams member lookup failed for {platform_user_id}: {e}")
            return None

        return PlatformUser(
            platform_user_id=platform_user_id,
            display_name=member.get("name", "Unknown"),
            email=member.get("email") or member.get("userPrincipalName"),
        )

    def _service_url(self, conversation_id: str) -> str:
        return self._service_urls.get(conversation_id, self.default_service_url).rstrip("/")

    def _activities_url(self, conversation_id: str) -> str:
        return f"{self._service_url(conversation_id)}/v3/conversations/{conversation_id}/activities"

    async def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {await self._access_token()}"}

    async def _access_token(self) -> str:
        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token

        result = await call_json(
            "POST",
            TOKEN_URL.format(tenant=self.tenant_id),
            form={
                "grant_type": "client_credentials",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "scope": BOT_FRAMEWORK_SCOPE,
            },
            source="teams",
        )
        self._token = result.get("access_token", "")
        self._token_expires_at = time.time() + int(result.get("expires_in", 3600))
        return self._token
