"""Chat log export as a standalone HTML page.

Messages are written oldest first. Raw-markup messages ("html") pass
through untouched, "/img <url>" narration lines become images, and every
other message is a "sender: text" line with its text escaped.
"""

from collections.abc import Iterable
from typing import Any

import pybars

from obscura.models import BonusPenaltyMessage, ChatMessage, SkillCheckMessage

_compiler = pybars.Compiler()

SYSTEM_SENDER = "System"

_LOG_TEMPLATE = _compiler.compile(
    "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
    "<title>Obscura Log {{session_id}}</title>"
    "<style>body{font-family:sans-serif;padding:20px;max-width:800px;margin:0 auto;"
    "background:#f5f5f4;color:#292524;} .msg{margin-bottom:8px;} .sender{font-weight:bold;}"
    "</style></head><body><h1>Log Export: {{session_id}}</h1><div class=\"log\">"
    "{{#each entries}}"
    "{{#if raw}}<div>{{{raw}}}</div>"
    "{{else}}{{#if image}}<img src=\"{{image}}\" style=\"max-width:100%;\" />"
    "{{else}}<div class=\"msg\"><span class=\"sender\">{{sender}}:</span> {{text}}</div>"
    "{{/if}}{{/if}}"
    "{{/each}}"
    "</div></body></html>"
)


def _message_text(message: ChatMessage) -> str:
    if isinstance(message, SkillCheckMessage):
        return (
            f"{message.skill_name} ({message.skill_value}): "
            f"{message.roll} {message.result_text}"
        )
    if isinstance(message, BonusPenaltyMessage):
        rolls = ", ".join(str(r) for r in message.all_rolls)
        return f"{message.skill_name} ({message.skill_value}) bonus/penalty dice: {rolls}"
    return message.text


def _entry(message: ChatMessage) -> dict[str, Any]:
    if message.type == "html":
        return {"raw": message.text}
    text = _message_text(message)
    if message.type == "desc" and text.startswith("/img "):
        return {"image": text[5:].strip()}
    return {"sender": getattr(message, "sender", "") or SYSTEM_SENDER, "text": text}


def export_log(session_id: str, messages: Iterable[ChatMessage]) -> str:
    """Render `messages` as an HTML page, ordered by store timestamp."""
    ordered = sorted(messages, key=lambda m: m.timestamp or 0)
    context = {"session_id": session_id, "entries": [_entry(m) for m in ordered]}
    return str(_LOG_TEMPLATE(context))
