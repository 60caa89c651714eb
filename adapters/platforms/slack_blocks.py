"""
Canonical blocks -> Slack Block Kit.
"""

from candor.models.message import (
    ActionsBlock,
    ButtonElement,
    DividerBlock,
    MessageBlock,
    SectionBlock,
    TextBlock,
)


def _text(text: str, style: str = "markdown") -> dict:
    kind = "plain_text" if style == "plain" else "mrkdwn"
    return {"type": kind, "text": text}


def button_to_slack(button: ButtonElement) -> dict:
    element = {
        "type": "button",
        "text": {"type": "plain_text", "text": button.text},
        "action_id": button.action_id,
    }
    if button.value is not None:
        element["value"] = button.value
    if button.style in ("primary", "danger"):
        element["style"] = button.style
    return element


def to_block_kit(blocks: list[MessageBlock]) -> list[dict]:
    result = []
    for block in blocks:
        if isinstance(block, TextBlock):
            result.append({"type": "section", "text": _text(block.text, block.style)})
        elif isinstance(block, SectionBlock):
            section = {"type": "section", "text": _text(block.text)}
            if block.accessory:
                section["accessory"] = button_to_slack(block.accessory)
            result.append(section)
        elif isinstance(block, ActionsBlock):
            result.append({
                "type": "actions",
                "elements": [button_to_slack(b) for b in block.elements],
            })
        elif isinstance(block, DividerBlock):
            result.append({"type": "divider"})
    return result
