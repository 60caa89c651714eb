"""
Canonical blocks -> Adaptive Card v1.4.
"""

from candor.models.message import (
    ActionsBlock,
    ButtonElement,
    DividerBlock,
    MessageBlock,
    SectionBlock,
    TextBlock,
)

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
ADAPTIVE_CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"

BUTTON_STYLES = {"primary": "positive", "danger": "destructive"}


def _submit(button: ButtonElement) -> dict:
    data = {"actionId": button.action_id}
    if button.value:
        data["value"] = button.value
    action = {"type": "Action.Submit", "title": button.text, "data": data}
    if button.style in BUTTON_STYLES:
        action["style"] = BUTTON_STYLES[button.style]
    return action


def build_adaptive_card(blocks: list[MessageBlock]) -> dict:
    body = []
    for block in blocks:
        if isinstance(block, TextBlock):
            element = {"type": "TextBlock", "text": block.text, "wrap": True}
            if block.style != "markdown":
                element["markdown"] = False
            body.append(element)
        elif isinstance(block, SectionBlock):
            items = [{"type": "TextBlock", "text": block.text, "wrap": True}]
            if block.accessory:
                items.append({"type": "ActionSet", "actions": [_submit(block.accessory)]})
            body.append({"type": "Container", "items": items})
        elif isinstance(block, ActionsBlock):
            body.append({"type": "ActionSet", "actions": [_submit(b) for b in block.elements]})
        elif isinstance(block, DividerBlock):
            body.append({"type": "TextBlock", "text": " ", "separator": True, "spacing": "medium"})

    return {
        "type": "AdaptiveCard",
        "$schema": ADAPTIVE_CARD_SCHEMA,
        "version": "1.4",
        "body": body,
    }


def card_attachment(blocks: list[MessageBlock]) -> dict:
    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": build_adaptive_card(blocks)}
