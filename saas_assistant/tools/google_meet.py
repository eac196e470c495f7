"""Google Meet links, created as calendar events with conference data."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from saas_assistant.config.providers import GOOGLE_MEET
from saas_assistant.models.token import TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import (
    Tool,
    ToolConfig,
    ToolId,
    as_list,
    create_connection_request,
    is_valid_email,
)
from saas_assistant.tools.calendar import CALENDAR_EVENTS_URL
from saas_assistant.tools.scheduling import end_from_duration, human_time, parse_duration, parse_when


class GoogleMeetTool(Tool):
    default_action = "schedule_meeting"

    config = ToolConfig(
        id=ToolId.GOOGLE_MEET,
        name="Google Meet",
        description="Create a Google Meet video meeting and return the join link.",
        provider=GOOGLE_MEET,
        scopes=("https://www.googleapis.com/auth/calendar",),
        required_fields=("title", "startTime", "duration"),
        optional_fields=("description", "attendees", "timeZone"),
        capabilities=(
            "Create Google Meet meetings",
            "Generate meeting links",
            "Schedule video conferences",
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "startTime": {
                    "type": "string",
                    "description": "Start time in ISO 8601, or a phrase like 'friday at 10am'",
                },
                "duration": {"type": "integer", "description": "Duration in minutes"},
                "attendees": {"type": "array", "items": {"type": "string"}},
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
            return ToolResponse.needs("startTime", "Please provide a start time", error="Missing start time")
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
        token = await self.get_token(user_id, "events.create")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your Google Meet to create video conferences.")

        tz_name = data.get("timeZone") or self.settings.default_timezone
        duration = parse_duration(data.get("duration"))
        start = parse_when(data.get("startTime"), tz_name)
        end = end_from_duration(start, duration)

        body = {
            "summary": data["title"],
            "description": data.get("description") or "",
            "start": {"dateTime": start.isoformat(), "timeZone": tz_name},
            "end": {"dateTime": end.isoformat(), "timeZone": tz_name},
            "attendees": [{"email": email} for email in as_list(data.get("attendees"))],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"meet-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }

        try:
            event = await self.call(
                "POST", CALENDAR_EVENTS_URL, token, params={"conferenceDataVersion": 1}, json_body=body
            )
        except ProviderError as exc:
            if exc.is_auth_error:
                required = None
                if self.broker is not None:
                    required = await self.broker.scope_resolver.get_required_scopes(GOOGLE_MEET, "meetings.space")
                return create_connection_request(
                    GOOGLE_MEET,
                    message=(
                        "You need additional permissions to create Google Meet meetings. "
                        "Please reconnect with the required scopes."
                    ),
                    required_scopes=required or None,
                    is_reconnect=True,
                    error="Insufficient permissions to create Google Meet",
                )
            return self.provider_error_response(exc, "creating your Google Meet")

        entry_points = ((event or {}).get("conferenceData") or {}).get("entryPoints") or []
        join_url = next(
            (entry.get("uri") for entry in entry_points if entry.get("entryPointType") == "video"),
            event.get("hangoutLink"),
        )
        title = event.get("summary") or data["title"]
        return ToolResponse.ok(
            {
                "meetingId": event.get("id"),
                "eventId": event.get("id"),
                "title": title,
                "joinUrl": join_url,
                "meetingUrl": join_url,
                "startUrl": event.get("hangoutLink"),
                "startTime": start.isoformat(),
                "duration": duration,
                "timezone": tz_name,
                "formattedMessage": (
                    f'Google Meet "{title}" created for {human_time(start)}! '
                    f"Join here: [Join Google Meet]({join_url})"
                ),
            }
        )
