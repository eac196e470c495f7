"""Microsoft Teams: group chat with the attendees plus a meeting message."""

from __future__ import annotations

import html
from typing import Any, Dict, List, Optional

from saas_assistant.config.providers import MICROSOFT_TEAMS
from saas_assistant.models.token import TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.date_parser import get_current_date_context
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId, as_list, is_valid_email
from saas_assistant.tools.scheduling import end_from_duration, human_time, parse_duration, parse_when
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.tools.teams")

GRAPH_API_URL = "https://graph.microsoft.com/v1.0"


def _member(user_ref: str) -> Dict[str, Any]:
    return {
        "@odata.type": "#microsoft.graph.aadUserConversationMember",
        "roles": ["owner"],
        "user@odata.bind": f"{GRAPH_API_URL}/users('{user_ref}')",
    }


class TeamsChatTool(Tool):
    default_action = "schedule_meeting"

    config = ToolConfig(
        id=ToolId.MICROSOFT_TEAMS,
        name="Microsoft Teams",
        description="Create a Microsoft Teams group chat with the attendees and post the meeting details.",
        provider=MICROSOFT_TEAMS,
        scopes=("Chat.ReadWrite", "ChatMessage.Send", "User.Read"),
        required_fields=("title", "startTime", "duration"),
        optional_fields=("description", "attendees", "timeZone"),
        capabilities=(
            "Create Microsoft Teams chats",
            "Share meeting details in Teams",
            "Coordinate meetings with attendees",
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "startTime": {"type": "string", "description": "ISO 8601 start, or a phrase"},
                "duration": {"type": "integer", "description": "Minutes"},
                "attendees": {"type": "array", "items": {"type": "string"}, "description": "Attendee emails"},
                "description": {"type": "string"},
                "timeZone": {"type": "string"},
            },
            "required": ["title", "startTime", "duration"],
        },
    )

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        if not data.get("title"):
            return ToolResponse.needs("title", "Please provide a meeting title", error="Missing title")
        if not data.get("startTime"):
            today = get_current_date_context(data.get("timeZone") or self.settings.default_timezone)["currentDate"]
            return ToolResponse.needs(
                "startTime", f"Please provide a start time. Today is {today}.", error="Missing start time"
            )
        if parse_duration(data.get("duration")) is None:
            return ToolResponse.needs(
                "duration", "Please provide a meeting duration in minutes", error="Missing duration"
            )
        attendees = as_list(data.get("attendees"))
        if any(not is_valid_email(email) for email in attendees):
            return ToolResponse.needs(
                "attendees",
                "Please provide valid email addresses",
                error="Invalid emails",
                current_value=", ".join(attendees),
            )
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        token = await self.get_token(user_id, "chats.create")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your Microsoft account to create Teams chats.")

        tz_name = data.get("timeZone") or self.settings.default_timezone
        duration = parse_duration(data.get("duration"))
        start = parse_when(data.get("startTime"), tz_name)
        end = end_from_duration(start, duration)
        attendees = as_list(data.get("attendees"))

        try:
            me = await self.call("GET", f"{GRAPH_API_URL}/me", token)
            members: List[Dict[str, Any]] = [_member(me["id"])]
            members.extend(_member(email) for email in attendees if email.lower() != str(me.get("mail", "")).lower())
            chat = await self.call(
                "POST",
                f"{GRAPH_API_URL}/chats",
                token,
                json_body={"chatType": "group", "topic": data["title"], "members": members},
            )
        except ProviderError as exc:
            return self.provider_error_response(exc, "creating your Teams chat")

        chat_id = chat.get("id")
        content = (
            f"<strong>{html.escape(str(data['title']))}</strong>"
            f"<p>{html.escape(str(data.get('description') or ''))}</p>"
            f"<p>Start: {human_time(start)}</p>"
            f"<p>End: {human_time(end)}</p>"
            f"<p>Duration: {duration} minutes</p>"
        )
        message_sent = True
        try:
            await self.call(
                "POST",
                f"{GRAPH_API_URL}/chats/{chat_id}/messages",
                token,
                json_body={"body": {"contentType": "html", "content": content}},
            )
        except ProviderError as exc:
            # The chat exists, so the meeting is still usable without the message.
            logger.warning("Failed to post meeting details to Teams chat %s: %s", chat_id, exc.message)
            message_sent = False

        chat_url = chat.get("webUrl")
        return ToolResponse.ok(
            {
                "chatId": chat_id,
                "title": data["title"],
                "joinUrl": chat_url,
                "meetingUrl": chat_url,
                "startTime": start.isoformat(),
                "endTime": end.isoformat(),
                "duration": duration,
                "timezone": tz_name,
                "attendees": attendees,
                "messageSent": message_sent,
                "formattedMessage": (
                    f'Microsoft Teams chat "{data["title"]}" created for {human_time(start)}! '
                    f"Join here: [Join Teams Chat]({chat_url})"
                ),
            }
        )
