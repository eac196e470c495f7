"""Tool abstraction shared by every provider integration.

A tool owns a frozen ``ToolConfig`` (what the LLM sees and what the registry
indexes), a ``validate`` step that never touches the network, and an async
``execute`` that fetches a token, calls the provider and maps the result into
a ``ToolResponse``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from saas_assistant.config import Settings
from saas_assistant.config.providers import GOOGLE_MEET, PROVIDER_DISPLAY_NAMES
from saas_assistant.models.token import ErrorKind, Token, TokenError, TokenResult
from saas_assistant.models.tool_response import (
    CONNECTION_REQUIRED_UI,
    ERROR_UI,
    ConnectButton,
    ToolResponse,
    UIHint,
)
from saas_assistant.services import http_client
from saas_assistant.services.http_client import ProviderError
from saas_assistant.services.token_broker import TokenBroker, TokenOptions
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.tools")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_MEET_RECONNECT_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/meetings.space.created",
]


class ToolId(str, Enum):
    """Every tool the assistant can run. The registry must cover all of them."""

    CALENDAR = "calendar"
    CRM_CONTACTS = "crm-contacts"
    CRM_DEALS = "crm-deals"
    ZOOM = "zoom"
    GOOGLE_MEET = "google-meet"
    SLACK = "slack"
    LINKEDIN = "linkedin"
    MICROSOFT_TEAMS = "microsoft-teams"
    DOCUMENTS = "documents"
    DATE_PARSER = "date-parser"


@dataclass(frozen=True)
class ToolConfig:
    id: ToolId
    name: str
    description: str
    provider: Optional[str] = None
    scopes: Tuple[str, ...] = ()
    required_fields: Tuple[str, ...] = ()
    optional_fields: Tuple[str, ...] = ()
    capabilities: Tuple[str, ...] = ()
    parameters: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.value,
            "name": self.name,
            "description": self.description,
            "provider": self.provider,
            "scopes": list(self.scopes),
            "requiredFields": list(self.required_fields),
            "optionalFields": list(self.optional_fields),
            "capabilities": list(self.capabilities),
        }


class ToolAuthError(Exception):
    """Carries a ``TokenError`` out of nested provider helpers."""

    def __init__(self, token_error: TokenError) -> None:
        super().__init__(token_error.error)
        self.token_error = token_error


def display_name(service: str) -> str:
    return PROVIDER_DISPLAY_NAMES.get(service, service)


def create_connection_request(
    service: str,
    message: Optional[str] = None,
    required_scopes: Optional[Iterable[str]] = None,
    current_scopes: Optional[Iterable[str]] = None,
    is_reconnect: bool = False,
    error: Optional[str] = None,
    kind: ErrorKind = ErrorKind.CONNECTION_REQUIRED,
) -> ToolResponse:
    """Build the response that asks the user to connect (or reconnect) a provider."""

    name = display_name(service)
    if required_scopes is not None:
        scopes = list(required_scopes)
    elif service == GOOGLE_MEET:
        scopes = list(_MEET_RECONNECT_SCOPES)
    else:
        scopes = []

    if message is None:
        if is_reconnect:
            message = f"You need additional permissions for {name}. Please reconnect with the required scopes."
        else:
            message = f"{name} access is required to continue."

    return ToolResponse(
        success=False,
        error=error or f"{name} connection required",
        error_kind=kind,
        ui=UIHint(
            type=CONNECTION_REQUIRED_UI,
            service=service,
            message=message,
            connect_button=ConnectButton(
                text=f"{'Reconnect' if is_reconnect else 'Connect'} {name}",
                action=f"connection://{service}",
            ),
            required_scopes=scopes,
            current_scopes=list(current_scopes) if current_scopes else None,
            alternative_message=f"This will allow the assistant to access your {name} data.",
        ),
    )


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def as_list(value: Any) -> List[str]:
    """Accept a list or a comma separated string of values."""

    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


class Tool:
    """Base class for provider tools."""

    config: ToolConfig
    default_action: str = "execute"

    def __init__(self, broker: Optional[TokenBroker], settings: Settings) -> None:
        self.broker = broker
        self.settings = settings

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        raise NotImplementedError

    def action_name(self, data: Dict[str, Any]) -> str:
        action = data.get("action") if isinstance(data, dict) else None
        return str(action) if action else self.default_action

    # -- tokens ---------------------------------------------------------------

    async def get_token(
        self,
        user_id: str,
        operation: str,
        provider: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ) -> TokenResult:
        provider_id = provider or self.config.provider
        if self.broker is None or provider_id is None:
            return TokenError(kind=ErrorKind.CONNECTION_REQUIRED, provider=provider_id or "")
        options = TokenOptions(scopes=scopes) if scopes else None
        return await self.broker.get_token_with_scope_validation(user_id, provider_id, operation, options)

    async def require_token(
        self,
        user_id: str,
        operation: str,
        provider: Optional[str] = None,
    ) -> Token:
        """Token or ``ToolAuthError``; for helpers nested below ``execute``."""

        result = await self.get_token(user_id, operation, provider=provider)
        if isinstance(result, TokenError):
            raise ToolAuthError(result)
        return result

    def token_error_response(self, error: TokenError, message: Optional[str] = None) -> ToolResponse:
        service = error.provider or self.config.provider or self.config.id.value
        if error.kind == ErrorKind.RATE_LIMITED:
            return ToolResponse.failure(
                error="rate_limited",
                message=f"{display_name(service)} is rate limiting requests. Please try again in a moment.",
                kind=ErrorKind.RATE_LIMITED,
            )
        if error.kind == ErrorKind.INSUFFICIENT_SCOPES:
            return create_connection_request(
                service,
                message=message,
                required_scopes=error.required_scopes,
                current_scopes=error.current_scopes,
                is_reconnect=True,
                error=f"{display_name(service)} is missing required permissions",
                kind=ErrorKind.INSUFFICIENT_SCOPES,
            )
        return create_connection_request(service, message=message, required_scopes=error.required_scopes or None)

    def provider_error_response(self, exc: ProviderError, action: Optional[str] = None) -> ToolResponse:
        service = exc.provider or self.config.provider or self.config.id.value
        if exc.is_auth_error:
            return create_connection_request(
                service,
                required_scopes=list(self.config.scopes) or None,
                is_reconnect=True,
                error=exc.message,
            )
        what = action or self.config.name
        return ToolResponse(
            success=False,
            error=exc.message,
            error_kind=ErrorKind.PROVIDER_ERROR,
            ui=UIHint(
                type=ERROR_UI,
                service=service,
                message=f"There was an error with {what}. Please try again later.",
            ),
        )

    # -- http -----------------------------------------------------------------

    async def call(
        self,
        method: str,
        url: str,
        token: Token,
        provider: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        return await http_client.provider_request(
            method,
            url,
            access_token=token.access_token,
            provider=provider or self.config.provider,
            timeout=self.settings.http_timeout_seconds,
            **kwargs,
        )
