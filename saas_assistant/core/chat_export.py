"""Chat transcript export as JSON or Markdown."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from saas_assistant.models.chat import Chat, MessageRole, StoredMessage


JSON_FORMAT = "json"
MARKDOWN_FORMAT = "markdown"

_UNSAFE_FILENAME_CHARS = set('"\\/')


def export_document(chat: Chat, messages: List[StoredMessage]) -> Dict[str, Any]:
    return {
        "title": chat.title,
        "createdAt": chat.created_at.isoformat(),
        "messages": [
            {
                "role": message.role.value,
                "content": message.text(),
                "timestamp": message.created_at.isoformat(),
            }
            for message in messages
        ],
    }


def export_markdown(
    chat: Chat,
    messages: List[StoredMessage],
    exported_at: Optional[datetime] = None,
) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    lines = [f"# {chat.title}", f"Exported on {exported_at:%Y-%m-%d %H:%M} UTC", ""]
    for message in messages:
        speaker = "You" if message.role == MessageRole.USER else "Assistant"
        lines += [f"## {speaker} ({message.created_at:%Y-%m-%d %H:%M})", "", message.text(), ""]
        if message.attachments:
            lines += ["### Attachments", ""]
            for attachment in message.attachments:
                name = attachment.get("filename") or attachment.get("name") or "File"
                lines.append(f"- [{name}]({attachment.get('url', '')})")
            lines.append("")
    return "\n".join(lines) + "\n"


def export_filename(chat: Chat, extension: str) -> str:
    safe = "".join(
        char for char in chat.title if char.isascii() and char.isprintable() and char not in _UNSAFE_FILENAME_CHARS
    ).strip()
    return f"{safe or chat.id}.{extension}"
