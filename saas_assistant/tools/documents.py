"""Google Docs: create a document from free text or a template."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from saas_assistant.config.providers import GOOGLE_DOCS
from saas_assistant.models.token import TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId, as_list


DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DOCS_API_URL = "https://docs.googleapis.com/v1/documents"
GOOGLE_DOC_MIME = "application/vnd.google-apps.document"

TEMPLATES = ("deal-summary", "meeting-notes", "custom")


def _money(value: Any) -> str:
    try:
        return f"${float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value or "n/a")


def format_deal_summary(deal: Dict[str, Any]) -> str:
    lines = [
        f"Deal Summary: {deal.get('name', 'Untitled deal')}",
        "",
        f"Amount: {_money(deal.get('amount'))}",
        f"Stage: {deal.get('stage', 'n/a')}",
    ]
    if deal.get("probability") is not None:
        lines.append(f"Probability: {deal['probability']}%")
    if deal.get("closeDate"):
        lines.append(f"Expected close: {deal['closeDate']}")
    contact = deal.get("contact") or {}
    if isinstance(contact, dict) and contact.get("name"):
        who = contact["name"]
        if contact.get("email"):
            who += f" <{contact['email']}>"
        lines.append(f"Contact: {who}")
    if deal.get("description"):
        lines.extend(["", "Description", str(deal["description"])])
    if deal.get("notes"):
        lines.extend(["", "Notes", str(deal["notes"])])
    return "\n".join(lines) + "\n"


def format_meeting_notes(meeting: Dict[str, Any]) -> str:
    lines: List[str] = [f"Meeting Notes: {meeting.get('title', 'Meeting')}", ""]
    if meeting.get("date"):
        lines.append(f"Date: {meeting['date']}")
    attendees = as_list(meeting.get("attendees"))
    if attendees:
        lines.append(f"Attendees: {', '.join(attendees)}")
    for heading, key in (("Agenda", "agenda"), ("Discussion", "notes"), ("Action Items", "actionItems")):
        items = meeting.get(key)
        if not items:
            continue
        lines.extend(["", heading])
        if isinstance(items, str):
            lines.append(items)
        else:
            lines.extend(f"- {item}" for item in items)
    return "\n".join(lines) + "\n"


def render_content(data: Dict[str, Any]) -> str:
    template = data.get("template")
    if not isinstance(template, dict):
        template = {}
    kind = template.get("type")
    template_data = template.get("data") or {}
    if kind == "deal-summary":
        return format_deal_summary(template_data)
    if kind == "meeting-notes":
        return format_meeting_notes(template_data)
    return str(data.get("content") or template_data.get("content") or "")


class DocumentsTool(Tool):
    default_action = "create_document"

    config = ToolConfig(
        id=ToolId.DOCUMENTS,
        name="Google Docs",
        description=(
            "Create a Google Doc from text, or from a deal-summary / meeting-notes template "
            "filled with CRM or meeting data."
        ),
        provider=GOOGLE_DOCS,
        scopes=(
            "https://www.googleapis.com/auth/drive.file",
            "https://www.googleapis.com/auth/documents",
        ),
        required_fields=("title",),
        optional_fields=("content", "template"),
        capabilities=(
            "Create Google Docs",
            "Generate deal summaries",
            "Write meeting notes",
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "content": {"type": "string", "description": "Plain text body"},
                "template": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string", "enum": list(TEMPLATES)},
                        "data": {"type": "object", "description": "Deal or meeting fields for the template"},
                    },
                },
            },
            "required": ["title"],
        },
    )

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        if not data.get("title"):
            return ToolResponse.needs("title", "What should the document be called?", error="Missing title")
        template = data.get("template")
        if template is not None:
            kind = template.get("type") if isinstance(template, dict) else None
            if kind not in TEMPLATES:
                return ToolResponse.needs(
                    "template",
                    "Which template should I use?",
                    error="Unknown template type",
                    options=list(TEMPLATES),
                )
        elif not data.get("content"):
            return ToolResponse.needs(
                "content", "What should the document say?", error="Either content or template is required"
            )
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        token = await self.get_token(user_id, "documents.create")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect Google Docs to create documents.")

        title = str(data["title"])
        content = render_content(data)
        try:
            created = await self.call(
                "POST", DRIVE_FILES_URL, token, json_body={"name": title, "mimeType": GOOGLE_DOC_MIME}
            )
            document_id = created.get("id") if isinstance(created, dict) else None
            if not document_id:
                raise ProviderError("Document creation failed: No ID returned", provider=GOOGLE_DOCS)
            if content:
                await self.call(
                    "POST",
                    f"{DOCS_API_URL}/{document_id}:batchUpdate",
                    token,
                    json_body={"requests": [{"insertText": {"location": {"index": 1}, "text": content}}]},
                )
        except ProviderError as exc:
            return self.provider_error_response(exc, "creating your document")

        link = f"https://docs.google.com/document/d/{document_id}/edit"
        return ToolResponse.ok(
            {
                "documentId": document_id,
                "documentTitle": title,
                "title": title,
                "link": link,
                "formattedMessage": f'Created "{title}". [Open in Google Docs]({link})',
            }
        )
