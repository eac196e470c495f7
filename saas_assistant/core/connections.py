"""Per-provider connection status plus connect/disconnect flows."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional

from saas_assistant.config.providers import CONNECTION_PROVIDERS
from saas_assistant.models.token import ErrorKind, Token, TokenError
from saas_assistant.services.analytics import EventType, track_event
from saas_assistant.services.http_client import ProviderError
from saas_assistant.services.scopes import CHECK_CONNECTION
from saas_assistant.services.token_broker import TokenBroker
from saas_assistant.utils.logger import get_logger, log_error, log_info


logger = get_logger("assistant.connections")

CONNECTED = "connected"
NOT_CONNECTED = "not_connected"
INSUFFICIENT_SCOPES = "insufficient_scopes"
RATE_LIMITED = "rate_limited"
ERROR = "error"


class ConnectionService:
    def __init__(self, broker: TokenBroker) -> None:
        self.broker = broker

    async def provider_status(self, user_id: str, provider_id: str) -> Dict[str, Any]:
        try:
            result = await self.broker.get_oauth_token(user_id, provider_id, CHECK_CONNECTION)
        except ProviderError as exc:
            log_error("Connection check failed", user_id=user_id, provider=provider_id, error=exc.message)
            return {"connected": False, "status": ERROR}

        if isinstance(result, Token):
            return {"connected": True, "status": CONNECTED, "token": result.summary()}
        if isinstance(result, TokenError):
            if result.kind == ErrorKind.INSUFFICIENT_SCOPES:
                return {
                    "connected": False,
                    "status": INSUFFICIENT_SCOPES,
                    "requiredScopes": result.required_scopes,
                    "currentScopes": result.current_scopes,
                }
            if result.kind == ErrorKind.RATE_LIMITED:
                return {"connected": False, "status": RATE_LIMITED}
        return {"connected": False, "status": NOT_CONNECTED}

    async def get_connections(
        self,
        user_id: str,
        providers: Optional[Iterable[str]] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """Status for every provider, checked concurrently."""

        provider_ids = list(providers or CONNECTION_PROVIDERS)
        results = await asyncio.gather(
            *(self.provider_status(user_id, provider_id) for provider_id in provider_ids),
            return_exceptions=True,
        )

        connections: Dict[str, Dict[str, Any]] = {}
        for provider_id, result in zip(provider_ids, results):
            if isinstance(result, BaseException):
                logger.error("Connection status for %s failed", provider_id, exc_info=result)
                connections[provider_id] = {"connected": False, "status": ERROR}
            else:
                connections[provider_id] = result
        return connections

    async def connect(
        self,
        user_id: Optional[str],
        app_id: str,
        options: Dict[str, Any],
        refresh_token: str,
    ) -> str:
        """Consent URL for ``app_id``. Raises ``ProviderError`` on failure."""

        track_event(EventType.CONNECT_INITIATED, {"provider": app_id}, user_id=user_id)
        url = await self.broker.start_connect(app_id, options, refresh_token)
        log_info("Connect flow started", user_id=user_id, provider=app_id)
        return url

    async def disconnect(self, user_id: str, provider_id: str) -> Dict[str, Any]:
        track_event(EventType.DISCONNECT_INITIATED, {"provider": provider_id}, user_id=user_id)
        result = await self.broker.revoke_tokens(user_id, provider_id)
        if result.get("success"):
            track_event(
                EventType.DISCONNECT_SUCCESSFUL,
                {"provider": provider_id, "status": result.get("status")},
                user_id=user_id,
            )
        return result

    async def validate_scopes(self, user_id: str, provider_id: str, operation: str) -> Optional[TokenError]:
        """The ``TokenError`` blocking ``operation``, or ``None`` when the stored token covers it."""

        result = await self.broker.get_token_with_scope_validation(user_id, provider_id, operation)
        if isinstance(result, TokenError):
            log_info("Scope check failed", user_id=user_id, provider=provider_id, error=result.error)
            return result
        return None
