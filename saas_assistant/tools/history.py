"""In-process record of recent tool executions, per user."""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from saas_assistant.models.tool_response import ToolResponse


DEFAULT_MAX_PER_USER = 50
DEFAULT_MAX_USERS = 1000

_DETAIL_KEYS = (
    "title",
    "description",
    "link",
    "startTime",
    "endTime",
    "attendees",
    "eventId",
    "documentId",
    "documentTitle",
    "meetingId",
    "meetingUrl",
    "joinUrl",
    "dealId",
    "contactId",
    "channelId",
    "postId",
    "chatId",
)


def _details_for(action: str, response: ToolResponse) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    if isinstance(response.data, dict):
        details = {key: response.data[key] for key in _DETAIL_KEYS if key in response.data}

    if not response.success:
        if response.error:
            details["error"] = response.error
        if response.error_kind is not None:
            details["errorCode"] = response.error_kind.value
        if response.ui is not None and response.ui.required_scopes:
            details["requiredScopes"] = list(response.ui.required_scopes)
        return details

    if action == "schedule_meeting":
        details["link"] = details.get("meetingUrl") or details.get("joinUrl") or details.get("link")
        details["title"] = details.get("title") or "Meeting"
    elif action == "create_document":
        document_id = details.get("documentId")
        details["link"] = f"https://docs.google.com/document/d/{document_id}" if document_id else None
        details["title"] = details.get("documentTitle") or details.get("title") or "Document"
    return details


class ToolActionHistory:
    """Bounded per-user history. The least recently active user is evicted first."""

    def __init__(self, max_per_user: int = DEFAULT_MAX_PER_USER, max_users: int = DEFAULT_MAX_USERS) -> None:
        self.max_per_user = max(1, max_per_user)
        self.max_users = max(1, max_users)
        self._actions: "OrderedDict[str, Deque[Dict[str, Any]]]" = OrderedDict()
        self._lock = threading.Lock()

    def record(
        self,
        user_id: str,
        tool_id: str,
        action: str,
        provider: Optional[str],
        response: ToolResponse,
    ) -> Dict[str, Any]:
        entry = {
            "toolId": tool_id,
            "action": action,
            "provider": provider or tool_id,
            "success": response.success,
            "details": _details_for(action, response),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            actions = self._actions.get(user_id)
            if actions is None:
                actions = deque(maxlen=self.max_per_user)
                self._actions[user_id] = actions
            self._actions.move_to_end(user_id)
            actions.append(entry)
            while len(self._actions) > self.max_users:
                self._actions.popitem(last=False)
        return entry

    def get_recent(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest first."""

        with self._lock:
            actions = list(self._actions.get(user_id, ()))
        actions.reverse()
        if limit is not None:
            actions = actions[: max(0, limit)]
        return actions

    def clear(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._actions.clear()
            else:
                self._actions.pop(user_id, None)
