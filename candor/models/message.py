"""
Inbound and Outbound message models.
Canonical representations that every chat platform produces/consumes.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class ChatPlatform(str, Enum):
    SLACK = "slack"
    GOOGLE_CHAT = "google_chat"
    TEAMS = "teams"


@dataclass(frozen=True)
class InboundMessage:
    """
    Normalized inbound message.
    Every platform adapter produces this. The orchestrator only sees this.
    """

    platform: ChatPlatform
    platform_message_id: str      # Slack ts, Google Chat message name, Teams activity id
    channel_id: str               # Slack channel, Google Chat space, Teams conversation
    user_id: str                  # Platform-native user id
    text: str
    thread_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_payload: dict = field(default_factory=dict, compare=False, repr=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


# --- Rich content blocks ---


@dataclass
class ButtonElement:
    text: str
    action_id: str
    value: Optional[str] = None
    style: Optional[str] = None   # "primary" | "danger"


@dataclass
class TextBlock:
    text: str
    style: str = "markdown"       # "markdown" | "plain"
    type: str = field(default="text", init=False)


@dataclass
class SectionBlock:
    text: str
    accessory: Optional[ButtonElement] = None
    type: str = field(default="section", init=False)


@dataclass
class ActionsBlock:
    elements: list[ButtonElement] = field(default_factory=list)
    type: str = field(default="actions", init=False)


@dataclass
class DividerBlock:
    type: str = field(default="divider", init=False)


MessageBlock = Union[TextBlock, SectionBlock, ActionsBlock, DividerBlock]


@dataclass
class OutboundMessage:
    """
    Normalized outbound message.
    Orchestrator produces this. Platform adapter sends it.
    """

    platform: ChatPlatform
    channel_id: str
    text: str                                   # Plain fallback text, always set
    thread_id: Optional[str] = None
    blocks: list[MessageBlock] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


# --- Webhook plumbing ---


@dataclass(frozen=True)
class WebhookVerification:
    is_valid: bool
    challenge: Optional[str] = None   # URL verification handshake echo


@dataclass
class PlatformUser:
    platform_user_id: str
    display_name: str
    email: Optional[str] = None


@dataclass
class RawRequest:
    """
    An ingress request as the transport received it.

    HMAC-based platforms sign the exact body bytes, so the raw bytes travel
    alongside the parsed JSON. Never re-serialize `parsed` for verification.
    """

    headers: dict
    raw_body: bytes
    parsed: dict = field(default_factory=dict)

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default
