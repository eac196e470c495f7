"""Slack messaging and channel management through the Slack Web API.

Slack reports most failures as HTTP 200 with ``{"ok": false, "error": ...}``,
so every call goes through ``_slack`` which turns those into ``ProviderError``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from saas_assistant.config.providers import SLACK
from saas_assistant.models.token import Token, TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId, as_list, is_valid_email
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.tools.slack")

SLACK_API_URL = "https://slack.com/api"

ACTIONS = ("send_message", "create_channel", "invite_user", "get_messages", "search")

_AUTH_ERRORS = {
    "invalid_auth",
    "not_authed",
    "token_revoked",
    "token_expired",
    "account_inactive",
    "missing_scope",
    "no_permission",
}

_CHANNEL_ACTIONS = ("send_message", "invite_user", "get_messages")


def _ts_to_iso(ts: Any) -> Optional[str]:
    try:
        return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat()
    except (TypeError, ValueError):
        return None


def _channel_label(data: Dict[str, Any], channel_id: str) -> str:
    name = data.get("channelName")
    return f"#{str(name).lstrip('#')}" if name else f"<#{channel_id}>"


class SlackTool(Tool):
    config = ToolConfig(
        id=ToolId.SLACK,
        name="Slack",
        description="Send messages, read channel history, search messages, and manage channels in Slack.",
        provider=SLACK,
        scopes=("chat:write", "channels:manage", "users:read"),
        required_fields=("action",),
        optional_fields=("channelName", "channelId", "message", "users", "topic", "query", "limit", "oldest", "latest"),
        capabilities=(
            "send_slack_message",
            "create_slack_channel",
            "invite_slack_users",
            "get_slack_messages",
            "search_slack",
        ),
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": list(ACTIONS)},
                "channelName": {"type": "string", "description": "Channel name without #"},
                "channelId": {"type": "string"},
                "message": {"type": "string"},
                "users": {"type": "array", "items": {"type": "string"}, "description": "Emails or Slack user ids"},
                "topic": {"type": "string"},
                "query": {"type": "string"},
                "limit": {"type": "integer", "default": 10},
                "oldest": {"type": "string"},
                "latest": {"type": "string"},
            },
            "required": ["action"],
        },
    )

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        action = data.get("action")
        if not action:
            return ToolResponse.needs(
                "action", "What would you like to do in Slack?", error="Action is required", options=list(ACTIONS)
            )
        if action not in ACTIONS:
            return ToolResponse.needs(
                "action",
                f"Unsupported Slack action: {action}",
                error=f"Unsupported action: {action}",
                options=list(ACTIONS),
            )

        if action in _CHANNEL_ACTIONS and not (data.get("channelId") or data.get("channelName")):
            return ToolResponse.needs(
                "channelName", "Which Slack channel?", error="Either channelId or channelName is required"
            )
        if action == "send_message" and not data.get("message"):
            return ToolResponse.needs("message", "What should the message say?", error="Message is required")
        if action == "create_channel" and not data.get("channelName"):
            return ToolResponse.needs(
                "channelName", "What should the channel be called?", error="Channel name is required"
            )
        if action == "invite_user" and not as_list(data.get("users")):
            return ToolResponse.needs("users", "Who should I invite?", error="Users list is required")
        if action == "search" and not data.get("query"):
            return ToolResponse.needs("query", "What should I search for?", error="Search query is required")
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        action = data["action"]
        token = await self.get_token(user_id, action)
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your Slack workspace to continue.")

        handlers = {
            "send_message": self._send_message,
            "create_channel": self._create_channel,
            "invite_user": self._invite_users,
            "get_messages": self._get_messages,
            "search": self._search,
        }
        try:
            return await handlers[action](token, data)
        except ProviderError as exc:
            return self.provider_error_response(exc, f"Slack ({action.replace('_', ' ')})")

    async def _slack(
        self,
        method: str,
        token: Token,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        http_method = "POST" if json_body is not None else "GET"
        payload = await self.call(http_method, f"{SLACK_API_URL}/{method}", token, json_body=json_body, params=params)
        if not isinstance(payload, dict):
            raise ProviderError(f"Unexpected response from Slack {method}", provider=SLACK)
        if not payload.get("ok"):
            error = str(payload.get("error") or f"{method} failed")
            raise ProviderError(error, provider=SLACK, body=payload, auth_error=error in _AUTH_ERRORS)
        return payload

    async def _resolve_channel(self, token: Token, data: Dict[str, Any]) -> Optional[str]:
        if data.get("channelId"):
            return str(data["channelId"])
        wanted = str(data.get("channelName", "")).lstrip("#").strip().lower()
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"types": "public_channel,private_channel", "limit": 1000}
            if cursor:
                params["cursor"] = cursor
            payload = await self._slack("conversations.list", token, params=params)
            for channel in payload.get("channels", []):
                if str(channel.get("name", "")).lower() == wanted:
                    return channel.get("id")
            cursor = (payload.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return None

    def _channel_not_found(self, data: Dict[str, Any]) -> ToolResponse:
        name = str(data.get("channelName") or data.get("channelId"))
        return ToolResponse.needs(
            "channelName",
            f"I couldn't find a Slack channel named #{name.lstrip('#')}. Which channel should I use?",
            error="Channel not found",
            current_value=name,
        )

    async def _send_message(self, token: Token, data: Dict[str, Any]) -> ToolResponse:
        channel_id = await self._resolve_channel(token, data)
        if channel_id is None:
            return self._channel_not_found(data)
        payload = await self._slack("chat.postMessage", token, json_body={"channel": channel_id, "text": data["message"]})
        return ToolResponse.ok(
            {
                "channelId": channel_id,
                "ts": payload.get("ts"),
                "formattedMessage": f"Message sent to {_channel_label(data, channel_id)}.",
            }
        )

    async def _create_channel(self, token: Token, data: Dict[str, Any]) -> ToolResponse:
        name = "-".join(str(data["channelName"]).replace("#", "").lower().split())
        try:
            payload = await self._slack("conversations.create", token, json_body={"name": name, "is_private": False})
        except ProviderError as exc:
            if exc.message == "name_taken":
                return ToolResponse.needs(
                    "channelName",
                    f"A channel named #{name} already exists. Pick another name?",
                    error="Channel already exists",
                    current_value=name,
                )
            raise
        channel = payload.get("channel") or {}
        if data.get("topic"):
            await self._slack(
                "conversations.setTopic", token, json_body={"channel": channel.get("id"), "topic": data["topic"]}
            )
        return ToolResponse.ok(
            {
                "channelId": channel.get("id"),
                "channelName": channel.get("name", name),
                "formattedMessage": f"Created new Slack channel #{channel.get('name', name)}.",
            }
        )

    async def _invite_users(self, token: Token, data: Dict[str, Any]) -> ToolResponse:
        channel_id = await self._resolve_channel(token, data)
        if channel_id is None:
            return self._channel_not_found(data)

        user_ids: List[str] = []
        unresolved: List[str] = []
        for user in as_list(data.get("users")):
            if not is_valid_email(user):
                user_ids.append(user)
                continue
            try:
                found = await self._slack("users.lookupByEmail", token, params={"email": user})
            except ProviderError as exc:
                if exc.is_auth_error:
                    raise
                logger.info("No Slack user for %s: %s", user, exc.message)
                unresolved.append(user)
                continue
            user_ids.append(found["user"]["id"])

        if not user_ids:
            return ToolResponse.needs(
                "users",
                "I couldn't find those people in Slack. Can you check the email addresses?",
                error="No valid users found",
                current_value=", ".join(unresolved),
            )

        label = _channel_label(data, channel_id)
        try:
            await self._slack(
                "conversations.invite", token, json_body={"channel": channel_id, "users": ",".join(user_ids)}
            )
        except ProviderError as exc:
            if exc.message != "already_in_channel":
                raise
            return ToolResponse.ok(
                {"channelId": channel_id, "formattedMessage": f"The users are already members of {label}."}
            )

        message = f"Invited {len(user_ids)} user(s) to {label}."
        if unresolved:
            message += f" Could not find: {', '.join(unresolved)}."
        return ToolResponse.ok(
            {"channelId": channel_id, "invited": user_ids, "unresolved": unresolved, "formattedMessage": message}
        )

    async def _get_messages(self, token: Token, data: Dict[str, Any]) -> ToolResponse:
        channel_id = await self._resolve_channel(token, data)
        if channel_id is None:
            return self._channel_not_found(data)

        params: Dict[str, Any] = {"channel": channel_id, "limit": int(data.get("limit") or 10)}
        for key in ("oldest", "latest"):
            if data.get(key):
                params[key] = data[key]
        payload = await self._slack("conversations.history", token, params=params)

        names: Dict[str, str] = {}
        messages: List[Dict[str, Any]] = []
        for message in payload.get("messages", []):
            user = message.get("user")
            if user and user not in names:
                names[user] = await self._user_name(token, user)
            messages.append(
                {
                    "ts": message.get("ts"),
                    "text": message.get("text", ""),
                    "user": names.get(user, "Unknown User"),
                    "timestamp": _ts_to_iso(message.get("ts")),
                }
            )

        return ToolResponse.ok(
            {
                "channelId": channel_id,
                "channelName": data.get("channelName"),
                "messages": messages,
                "hasMore": bool(payload.get("has_more")),
                "messageCount": len(messages),
                "formattedMessage": f"Retrieved {len(messages)} messages from {_channel_label(data, channel_id)}.",
            }
        )

    async def _user_name(self, token: Token, user_id: str) -> str:
        try:
            payload = await self._slack("users.info", token, params={"user": user_id})
        except ProviderError as exc:
            if exc.is_auth_error:
                raise
            logger.info("Slack user lookup failed for %s: %s", user_id, exc.message)
            return "Unknown User"
        user = payload.get("user") or {}
        return user.get("real_name") or user.get("name") or "Unknown User"

    async def _search(self, token: Token, data: Dict[str, Any]) -> ToolResponse:
        params: Dict[str, Any] = {"query": data["query"], "count": int(data.get("limit") or 20)}
        for key in ("sort", "sort_dir"):
            if data.get(key):
                params[key] = data[key]
        payload = await self._slack("search.messages", token, params=params)

        found = payload.get("messages") or {}
        results = [
            {
                "text": match.get("text", ""),
                "permalink": match.get("permalink"),
                "username": match.get("username"),
                "channelName": (match.get("channel") or {}).get("name"),
                "timestamp": _ts_to_iso(match.get("ts")),
            }
            for match in found.get("matches", [])
        ]
        total = found.get("total", len(results))
        return ToolResponse.ok(
            {
                "query": data["query"],
                "resultCount": total,
                "results": results,
                "formattedMessage": f'Found {total} messages matching "{data["query"]}".',
            }
        )
