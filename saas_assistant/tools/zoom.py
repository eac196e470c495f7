"""Zoom scheduled meetings."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from saas_assistant.config.providers import ZOOM
from saas_assistant.models.token import Token, TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId
from saas_assistant.tools.scheduling import human_time, parse_duration, parse_when, to_utc_z


ZOOM_API_URL = "https://api.zoom.us/v2"

# Zoom meeting type 2 is a scheduled meeting.
_SCHEDULED_MEETING = 2

_MEETING_SETTINGS = {
    "host_video": True,
    "participant_video": True,
    "join_before_host": False,
    "mute_upon_entry": True,
    "waiting_room": True,
    "meeting_authentication": True,
}


async def create_zoom_meeting(
    tool: Tool,
    token: Token,
    title: str,
    start: datetime,
    duration: int,
    timezone: str = "UTC",
    agenda: Optional[str] = None,
) -> Dict[str, Any]:
    """POST a scheduled meeting for the token's user. Raises ``ProviderError``."""

    body = {
        "topic": title,
        "type": _SCHEDULED_MEETING,
        "start_time": to_utc_z(start),
        "duration": duration,
        "timezone": timezone,
        "agenda": agenda or "",
        "settings": dict(_MEETING_SETTINGS),
    }
    meeting = await tool.call("POST", f"{ZOOM_API_URL}/users/me/meetings", token, provider=ZOOM, json_body=body)
    if not isinstance(meeting, dict) or not meeting.get("id"):
        raise ProviderError("Failed to create Zoom meeting: no meeting id returned", provider=ZOOM)
    return meeting


class ZoomTool(Tool):
    default_action = "schedule_meeting"

    config = ToolConfig(
        id=ToolId.ZOOM,
        name="Zoom",
        description="Create a scheduled Zoom meeting and return its join link.",
        provider=ZOOM,
        scopes=("meeting:write",),
        required_fields=("title", "startTime", "duration"),
        optional_fields=("description", "timeZone"),
        capabilities=(
            "Create Zoom meetings",
            "Generate Zoom meeting links",
            "Schedule video conferences",
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Meeting topic"},
                "startTime": {
                    "type": "string",
                    "description": "Start time in ISO 8601, or a phrase like 'tomorrow at 3pm'",
                },
                "duration": {"type": "integer", "description": "Duration in minutes"},
                "description": {"type": "string", "description": "Meeting agenda"},
                "timeZone": {"type": "string", "description": "IANA timezone, e.g. America/New_York"},
            },
            "required": ["title", "startTime", "duration"],
        },
    )

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        if not (data.get("title") or data.get("topic")):
            return ToolResponse.needs("title", "Please provide a meeting title", error="Missing title")
        if not data.get("startTime"):
            return ToolResponse.needs("startTime", "Please provide a start time", error="Missing start time")
        if parse_duration(data.get("duration")) is None:
            return ToolResponse.needs(
                "duration",
                "Please provide a meeting duration in minutes",
                error="Missing duration",
            )
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        token = await self.get_token(user_id, "meetings.create")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your Zoom account to create meetings.")

        tz_name = data.get("timeZone") or self.settings.default_timezone
        title = data.get("title") or data.get("topic")
        start = parse_when(data.get("startTime"), tz_name)
        duration = parse_duration(data.get("duration"))

        try:
            meeting = await create_zoom_meeting(
                self, token, title, start, duration, timezone=tz_name, agenda=data.get("description")
            )
        except ProviderError as exc:
            return self.provider_error_response(exc, "creating your Zoom meeting")

        join_url = meeting.get("join_url")
        return ToolResponse.ok(
            {
                "meetingId": str(meeting.get("id")),
                "joinUrl": join_url,
                "meetingUrl": join_url,
                "startUrl": meeting.get("start_url"),
                "password": meeting.get("password"),
                "title": meeting.get("topic") or title,
                "startTime": start.isoformat(),
                "duration": duration,
                "timezone": tz_name,
                "formattedMessage": (
                    f'Zoom meeting "{meeting.get("topic") or title}" scheduled for {human_time(start)}. '
                    f"Join here: [Join Zoom Meeting]({join_url})"
                ),
            }
        )
