"""
Conversation policy — input sanitization and per-interaction-type bounds.

Everything here is static so conversation termination is deterministic
and costs nothing.
"""

import re

from candor.models.conversation import InteractionType

MAX_INPUT_LENGTH = 200

# C0 controls + DEL, then the characters that break out of prompt templates.
# A raw newline is a control character, so it goes in the first pass.
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_TEMPLATE_BREAKERS = re.compile(r'[`"\\]')

DEFAULT_MAX_MESSAGES = 4

MAX_MESSAGES: dict[InteractionType, int] = {
    InteractionType.PEER_REVIEW: 5,
    InteractionType.SELF_REFLECTION: 4,
    InteractionType.THREE_SIXTY: 5,
    InteractionType.PULSE_CHECK: 3,
}

DEFAULT_CLOSING_MESSAGE = "Thanks for your time! Your input is really valuable."

CLOSING_MESSAGES: dict[InteractionType, str] = {
    InteractionType.PEER_REVIEW: (
        "Thanks so much for sharing your thoughts! Your feedback makes a real "
        "difference. Have a great rest of your day."
    ),
    InteractionType.SELF_REFLECTION: (
        "Great reflection session! Taking time to think about your week is a "
        "real strength. Keep it up!"
    ),
    InteractionType.THREE_SIXTY: (
        "Really appreciate your candid feedback. This kind of input is "
        "invaluable for growth. Thank you!"
    ),
    InteractionType.PULSE_CHECK: (
        "Thanks for the quick check-in! Your input helps us keep a pulse on "
        "how things are going."
    ),
}

INTERACTION_LABELS: dict[InteractionType, str] = {
    InteractionType.PEER_REVIEW: "peer review",
    InteractionType.SELF_REFLECTION: "self-reflection",
    InteractionType.THREE_SIXTY: "360 review",
    InteractionType.PULSE_CHECK: "pulse check",
}


def sanitize(text: str) -> str:
    """
    Make untrusted chat text safe to embed in a prompt.

    Strips control characters (0x00-0x1F, 0x7F), backticks, double quotes
    and backslashes, then truncates to 200 characters. Idempotent.
    """
    if not text:
        return ""
    cleaned = _CONTROL_CHARS.sub("", text)
    cleaned = _TEMPLATE_BREAKERS.sub("", cleaned)
    return cleaned[:MAX_INPUT_LENGTH]


def _interaction_type(value):
    """Map a raw tag to InteractionType, or None if unrecognized."""
    try:
        return InteractionType(value)
    except ValueError:
        return None


def max_messages(interaction_type) -> int:
    """User turns allowed before the conversation closes."""
    return MAX_MESSAGES.get(_interaction_type(interaction_type), DEFAULT_MAX_MESSAGES)


def closing_message(interaction_type) -> str:
    return CLOSING_MESSAGES.get(_interaction_type(interaction_type), DEFAULT_CLOSING_MESSAGE)


def interaction_label(interaction_type) -> str:
    return INTERACTION_LABELS.get(_interaction_type(interaction_type), "feedback")
