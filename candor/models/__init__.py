from candor.models.message import (
    ChatPlatform, InboundMessage, OutboundMessage, WebhookVerification,
    PlatformUser, RawRequest,
    ButtonElement, TextBlock, SectionBlock, ActionsBlock, DividerBlock,
)
from candor.models.conversation import (
    Conversation, ConversationMessage, ConversationStatus, InteractionType,
)
from candor.models.ai_models import ModelTier

__all__ = [
    "ChatPlatform", "InboundMessage", "OutboundMessage", "WebhookVerification",
    "PlatformUser", "RawRequest",
    "ButtonElement", "TextBlock", "SectionBlock", "ActionsBlock", "DividerBlock",
    "Conversation", "ConversationMessage", "ConversationStatus", "InteractionType",
    "ModelTier",
]
