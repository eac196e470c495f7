"""Google Calendar events, optionally with a Zoom meeting attached."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from saas_assistant.config.providers import GOOGLE_CALENDAR, ZOOM
from saas_assistant.models.token import TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId, as_list, is_valid_email
from saas_assistant.tools.scheduling import (
    end_from_duration,
    human_time,
    minutes_between,
    parse_duration,
    parse_when,
)
from saas_assistant.tools.zoom import create_zoom_meeting


CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


class CalendarTool(Tool):
    default_action = "schedule_meeting"

    config = ToolConfig(
        id=ToolId.CALENDAR,
        name="Calendar",
        description=(
            "Create Google Calendar events (optionally with a Zoom meeting) or list upcoming events. "
            "Only use email addresses the user gave explicitly; look names up with crm-contacts first."
        ),
        provider=GOOGLE_CALENDAR,
        scopes=("https://www.googleapis.com/auth/calendar.events",),
        required_fields=("title", "startDateTime"),
        optional_fields=("endDateTime", "duration", "attendees", "description", "location", "timeZone", "zoomMeeting"),
        capabilities=(
            "Schedule meetings and events",
            "Manage event details and timing",
            "Add attendees and send invitations",
            "List upcoming calendar events",
        ),
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["create", "list"], "default": "create"},
                "title": {"type": "string", "description": "Event title"},
                "startDateTime": {
                    "type": "string",
                    "description": "Start in ISO 8601 (e.g. 2024-03-19T14:00:00Z). Use date-parser for phrases.",
                },
                "endDateTime": {"type": "string", "description": "End in ISO 8601"},
                "duration": {"type": "integer", "description": "Duration in minutes when no end is given"},
                "attendees": {"type": "array", "items": {"type": "string"}, "description": "Attendee emails"},
                "description": {"type": "string"},
                "location": {"type": "string"},
                "timeZone": {"type": "string", "description": "IANA timezone"},
                "zoomMeeting": {"type": "boolean", "description": "Also create a Zoom meeting"},
                "timeMin": {"type": "string", "description": "List events starting after this ISO time"},
                "timeMax": {"type": "string", "description": "List events starting before this ISO time"},
                "maxResults": {"type": "integer", "default": 10},
            },
            "required": [],
        },
    )

    def action_name(self, data: Dict[str, Any]) -> str:
        return "list_events" if data.get("action") == "list" else self.default_action

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        if data.get("action") == "list":
            return None

        if not data.get("title"):
            return ToolResponse.needs("title", "Please provide a meeting title", error="Missing title")

        start_value = data.get("startDateTime") or data.get("startTime")
        end_value = data.get("endDateTime") or data.get("endTime")
        if not start_value or not (end_value or parse_duration(data.get("duration"))):
            return ToolResponse.needs("time", "Please provide meeting start and end times", error="Missing time")

        if end_value:
            tz_name = data.get("timeZone") or self.settings.default_timezone
            start = parse_when(start_value, tz_name)
            end = parse_when(end_value, tz_name)
            if start is None or end is None:
                return ToolResponse.needs(
                    "time", "Please provide valid meeting dates and times", error="Invalid dates"
                )
            if end <= start:
                return ToolResponse.needs("time", "Please provide valid meeting duration", error="Invalid duration")

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
        if data.get("action") == "list":
            return await self._list_events(user_id, data)
        return await self._create_event(user_id, data)

    async def _create_event(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        token = await self.get_token(user_id, "events.insert")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your Google Calendar to schedule meetings.")

        tz_name = data.get("timeZone") or self.settings.default_timezone
        title = str(data["title"])
        start = parse_when(data.get("startDateTime") or data.get("startTime"), tz_name)
        end_value = data.get("endDateTime") or data.get("endTime")
        end = parse_when(end_value, tz_name) if end_value else end_from_duration(start, parse_duration(data.get("duration")))
        attendees = as_list(data.get("attendees"))
        description = data.get("description") or ""
        location = data.get("location")

        zoom_meeting: Optional[Dict[str, Any]] = None
        if data.get("zoomMeeting"):
            # Raises ToolAuthError when Zoom is not connected; the registry maps it.
            zoom_token = await self.require_token(user_id, "meetings.create", provider=ZOOM)
            try:
                zoom_meeting = await create_zoom_meeting(
                    self, zoom_token, title, start, minutes_between(start, end), timezone=tz_name, agenda=description
                )
            except ProviderError as exc:
                return self.provider_error_response(exc, "creating the Zoom meeting")
            location = location or zoom_meeting.get("join_url")
            description = f"{description}\n\nJoin Zoom Meeting: {zoom_meeting.get('join_url')}".strip()

        body: Dict[str, Any] = {
            "summary": title,
            "description": description,
            "start": {"dateTime": start.isoformat(), "timeZone": tz_name},
            "end": {"dateTime": end.isoformat(), "timeZone": tz_name},
            "attendees": [{"email": email} for email in attendees],
        }
        if location:
            body["location"] = location
        if data.get("recurrence"):
            body["recurrence"] = as_list(data.get("recurrence"))

        try:
            event = await self.call(
                "POST", CALENDAR_EVENTS_URL, token, params={"sendUpdates": "all"}, json_body=body
            )
        except ProviderError as exc:
            if "invalid attendee email" in exc.message.lower():
                return ToolResponse.needs(
                    "attendees",
                    "Please verify the email addresses",
                    error="Invalid emails",
                    current_value=", ".join(attendees),
                )
            return self.provider_error_response(exc, "creating your calendar event")

        if not isinstance(event, dict) or not event.get("id"):
            return ToolResponse.failure("Failed to create calendar event: No event ID returned")

        result: Dict[str, Any] = {
            "eventId": event["id"],
            "calendarEventId": event["id"],
            "title": event.get("summary") or title,
            "link": event.get("htmlLink"),
            "startTime": start.isoformat(),
            "endTime": end.isoformat(),
            "attendees": attendees,
        }
        message = f'Scheduled "{result["title"]}" for {human_time(start)}.'
        if zoom_meeting is not None:
            result["zoomMeetingId"] = str(zoom_meeting.get("id"))
            result["meetingUrl"] = zoom_meeting.get("join_url")
            message += f" Join here: [Join Zoom Meeting]({zoom_meeting.get('join_url')})"
        elif event.get("hangoutLink"):
            result["meetingUrl"] = event["hangoutLink"]
        if attendees:
            message += f" Invitations sent to {', '.join(attendees)}."
        result["formattedMessage"] = message
        return ToolResponse.ok(result)

    async def _list_events(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        token = await self.get_token(user_id, "events.list")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your Google Calendar to view events.")

        params: Dict[str, Any] = {
            "timeMin": data.get("timeMin") or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "maxResults": parse_duration(data.get("maxResults")) or 10,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if data.get("timeMax"):
            params["timeMax"] = data["timeMax"]

        try:
            payload = await self.call("GET", CALENDAR_EVENTS_URL, token, params=params)
        except ProviderError as exc:
            return self.provider_error_response(exc, "listing your calendar events")

        items = payload.get("items", []) if isinstance(payload, dict) else []
        events: List[Dict[str, Any]] = [
            {
                "id": item.get("id"),
                "title": item.get("summary") or "(no title)",
                "start": (item.get("start") or {}).get("dateTime") or (item.get("start") or {}).get("date"),
                "end": (item.get("end") or {}).get("dateTime") or (item.get("end") or {}).get("date"),
                "link": item.get("htmlLink"),
            }
            for item in items
            if isinstance(item, dict)
        ]
        if events:
            lines = [f"- {event['title']} ({event['start']})" for event in events]
            message = f"You have {len(events)} upcoming event(s):\n" + "\n".join(lines)
        else:
            message = "You have no upcoming events."
        return ToolResponse.ok({"events": events, "count": len(events), "formattedMessage": message})
