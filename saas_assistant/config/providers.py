"""Static provider tables for the SaaS assistant.

Provider ids are the identity provider's outbound app ids. The scope tables
are the first source consulted by the scope resolver; remote API documents
are only fetched for operations missing here.
"""

from typing import Dict, List

GOOGLE_CALENDAR = "google-calendar"
GOOGLE_DOCS = "google-docs"
GOOGLE_MEET = "google-meet"
ZOOM = "zoom"
CUSTOM_CRM = "custom-crm"
SLACK = "slack"
LINKEDIN = "linkedin"
MICROSOFT_TEAMS = "microsoft-teams"

PROVIDER_DISPLAY_NAMES: Dict[str, str] = {
    GOOGLE_CALENDAR: "Google Calendar",
    GOOGLE_DOCS: "Google Docs",
    GOOGLE_MEET: "Google Meet",
    ZOOM: "Zoom",
    CUSTOM_CRM: "CRM",
    SLACK: "Slack",
    LINKEDIN: "LinkedIn",
    MICROSOFT_TEAMS: "Microsoft Teams",
    "google-mail": "Gmail",
}

# Providers reported by the connection-status endpoint.
CONNECTION_PROVIDERS: List[str] = [
    GOOGLE_CALENDAR,
    GOOGLE_DOCS,
    GOOGLE_MEET,
    ZOOM,
    CUSTOM_CRM,
    SLACK,
    LINKEDIN,
    MICROSOFT_TEAMS,
]

_CALENDAR = "https://www.googleapis.com/auth/calendar"
_CALENDAR_EVENTS = "https://www.googleapis.com/auth/calendar.events"
_CALENDAR_READONLY = "https://www.googleapis.com/auth/calendar.readonly"
_DRIVE_FILE = "https://www.googleapis.com/auth/drive.file"
_DOCUMENTS = "https://www.googleapis.com/auth/documents"

# provider -> operation -> scopes. "connect" is what the consent screen asks for.
DEFAULT_SCOPES: Dict[str, Dict[str, List[str]]] = {
    GOOGLE_CALENDAR: {
        "connect": [_CALENDAR, _CALENDAR_EVENTS],
        "events.create": [_CALENDAR_EVENTS],
        "events.insert": [_CALENDAR_EVENTS],
        "events.list": [_CALENDAR_READONLY],
    },
    GOOGLE_MEET: {
        "connect": [_CALENDAR, _CALENDAR_EVENTS],
        "events.create": [_CALENDAR_EVENTS],
        "meetings.space": [_CALENDAR, "https://www.googleapis.com/auth/meetings.space.created"],
    },
    GOOGLE_DOCS: {
        "connect": [_DRIVE_FILE, _DOCUMENTS],
        "documents.create": [_DRIVE_FILE, _DOCUMENTS],
    },
    ZOOM: {
        "connect": ["meeting:write", "meeting:read"],
        "meetings.create": ["meeting:write"],
    },
    CUSTOM_CRM: {
        "connect": ["crm:read", "crm:write"],
        "contacts.list": ["crm:read"],
        "contacts.create": ["crm:write"],
        "deals.list": ["crm:read"],
        "deals.create": ["crm:write"],
    },
    SLACK: {
        "connect": ["chat:write", "channels:manage", "channels:read", "channels:history", "users:read", "users:read.email"],
        "send_message": ["chat:write", "channels:read"],
        "create_channel": ["channels:manage"],
        "invite_user": ["channels:manage", "users:read", "users:read.email"],
        "get_messages": ["channels:history", "channels:read", "users:read"],
        "search": ["search:read"],
    },
    LINKEDIN: {
        "connect": ["openid", "profile", "w_member_social"],
        "create_post": ["openid", "w_member_social"],
        "upload_media": ["openid", "w_member_social"],
        "update_post": ["w_member_social"],
    },
    MICROSOFT_TEAMS: {
        "connect": ["Chat.ReadWrite", "ChatMessage.Send", "User.Read", "offline_access"],
        "chats.create": ["Chat.ReadWrite", "ChatMessage.Send", "User.Read"],
    },
}

# Remote API documents used when the static table has no entry.
OPENAPI_SPEC_URLS: Dict[str, str] = {
    GOOGLE_CALENDAR: "https://www.googleapis.com/discovery/v1/apis/calendar/v3/rest",
    GOOGLE_MEET: "https://www.googleapis.com/discovery/v1/apis/calendar/v3/rest",
    GOOGLE_DOCS: "https://www.googleapis.com/discovery/v1/apis/docs/v1/rest",
    "google-drive": "https://www.googleapis.com/discovery/v1/apis/drive/v3/rest",
    ZOOM: "https://raw.githubusercontent.com/zoom/api-spec/master/openapi.json",
}

# Substrings in assistant text that mean the user has to (re)connect a provider.
RECONNECTION_PHRASES: List[str] = [
    "connection required",
    "access is required",
    "please connect your",
    "connect your",
    "reconnect",
    "additional permissions",
    "access required",
]

# keyword -> weight for the chat classifier. Weights combine as independent
# evidence, so two mid-weight hits already clear the tool threshold.
ROUTING_KEYWORDS: Dict[str, float] = {
    "schedule": 0.45,
    "meeting": 0.4,
    "calendar": 0.45,
    "event": 0.25,
    "appointment": 0.4,
    "book": 0.25,
    "invite": 0.3,
    "zoom": 0.5,
    "google meet": 0.5,
    "meet with": 0.35,
    "teams": 0.45,
    "call with": 0.3,
    "crm": 0.5,
    "contact": 0.35,
    "deal": 0.4,
    "pipeline": 0.35,
    "slack": 0.5,
    "channel": 0.3,
    "linkedin": 0.5,
    "post": 0.2,
    "document": 0.35,
    "google doc": 0.5,
    "notes": 0.2,
    "summary": 0.2,
    "tomorrow": 0.15,
    "next week": 0.15,
    "connect my": 0.3,
    "reconnect": 0.3,
}
