"""Client for the identity provider's outbound-app token service.

Tokens are fetched fresh for every tool call and never cached here. The
management endpoints authenticate with ``Bearer {projectId}:{managementKey}``;
the connect endpoint uses the end user's refresh token instead.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from saas_assistant.config import Settings
from saas_assistant.models.token import ErrorKind, Token, TokenError, TokenResult
from saas_assistant.services import http_client
from saas_assistant.services.analytics import EventType, track_event
from saas_assistant.services.http_client import ProviderError
from saas_assistant.services.scopes import CHECK_CONNECTION, CONNECT, ScopeResolver
from saas_assistant.utils.logger import get_logger, log_error, log_warn


logger = get_logger("assistant.token_broker")

_TOKEN_PATH = "/v1/mgmt/outbound/app/user/token"
_REVOKE_PATH = "/v1/mgmt/outbound/user/tokens"
_CONNECT_PATH = "/v1/outbound/oauth/connect"


class TokenOptions(BaseModel):
    scopes: Optional[List[str]] = None
    with_refresh_token: bool = False
    force_refresh: bool = False


class TokenBroker:
    """Fetches, revokes and starts consent for per-user provider tokens."""

    def __init__(self, settings: Settings, scope_resolver: ScopeResolver) -> None:
        self.settings = settings
        self.scope_resolver = scope_resolver

    def _management_auth(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.descope_project_id}:{self.settings.descope_management_key}",
        }

    async def _resolve_scopes(
        self,
        provider_id: str,
        operation: str,
        options: Optional[TokenOptions],
    ) -> List[str]:
        if options is not None and options.scopes:
            return list(options.scopes)
        return await self.scope_resolver.get_required_scopes(provider_id, operation)

    async def get_oauth_token(
        self,
        user_id: str,
        provider_id: str,
        operation: str = CHECK_CONNECTION,
        options: Optional[TokenOptions] = None,
    ) -> Optional[TokenResult]:
        """Fetch a token for ``user_id`` at ``provider_id``.

        Returns a ``Token``, a ``TokenError`` for the mapped failure statuses
        (404 connection required, 429 rate limited, missing scopes), or
        ``None`` for anything else.
        """

        scopes = await self._resolve_scopes(provider_id, operation, options)
        opts = options or TokenOptions()

        result = await self._request_token(user_id, provider_id, scopes, opts)

        properties: Dict[str, Any] = {
            "provider": provider_id,
            "operation": operation,
            "scopes": scopes,
            "success": isinstance(result, Token),
        }
        if isinstance(result, Token):
            properties["expires_at"] = result.access_token_expiry
        elif isinstance(result, TokenError):
            properties["error"] = result.error
        track_event(EventType.TOKEN_REQUEST, properties, user_id=user_id)
        return result

    async def _request_token(
        self,
        user_id: str,
        provider_id: str,
        scopes: List[str],
        opts: TokenOptions,
    ) -> Optional[TokenResult]:
        if not self.settings.has_descope_credentials:
            log_error("Missing identity provider credentials", user_id=user_id, provider=provider_id)
            return None

        body: Dict[str, Any] = {
            "appId": provider_id,
            "userId": user_id,
            "options": {
                "withRefreshToken": opts.with_refresh_token,
                "forceRefresh": opts.force_refresh,
            },
        }
        if scopes:
            body["scopes"] = scopes

        url = f"{self.settings.descope_base_url}{_TOKEN_PATH}"
        try:
            async with http_client.create_client(self.settings.http_timeout_seconds) as client:
                resp = await client.post(url, json=body, headers=self._management_auth())
        except httpx.RequestError as exc:
            log_error("Token request failed", user_id=user_id, provider=provider_id, error=repr(exc))
            return None

        if resp.status_code == 404:
            return TokenError(
                kind=ErrorKind.CONNECTION_REQUIRED,
                provider=provider_id,
                required_scopes=scopes,
            )
        if resp.status_code == 429:
            return TokenError(
                kind=ErrorKind.RATE_LIMITED,
                provider=provider_id,
                required_scopes=scopes,
            )
        if not resp.is_success:
            log_warn(
                "Token request rejected",
                user_id=user_id,
                provider=provider_id,
                status=resp.status_code,
                body=resp.text[:300],
            )
            return None

        try:
            payload = resp.json()
            token = Token.model_validate(payload.get("token", payload))
        except (ValueError, AttributeError, ValidationError) as exc:
            log_error("Malformed token response", user_id=user_id, provider=provider_id, error=repr(exc))
            return None

        # Tokens that report no scopes at all are accepted as-is.
        missing = [scope for scope in scopes if scope not in token.scopes]
        if token.scopes and missing:
            return TokenError(
                kind=ErrorKind.INSUFFICIENT_SCOPES,
                provider=provider_id,
                required_scopes=scopes,
                current_scopes=sorted(token.scopes),
            )
        return token

    async def get_token_with_scope_validation(
        self,
        user_id: str,
        provider_id: str,
        operation: str,
        options: Optional[TokenOptions] = None,
    ) -> TokenResult:
        """Like ``get_oauth_token`` but never ``None``: unknown failures need a connection."""

        scopes = await self._resolve_scopes(provider_id, operation, options)
        opts = (options or TokenOptions()).model_copy(update={"scopes": scopes})
        result = await self.get_oauth_token(user_id, provider_id, operation, opts)
        if result is None:
            return TokenError(
                kind=ErrorKind.CONNECTION_REQUIRED,
                provider=provider_id,
                required_scopes=scopes,
                message="Failed to get OAuth token",
            )
        return result

    async def revoke_tokens(self, user_id: str, provider_id: str) -> Dict[str, Any]:
        """Delete the user's stored tokens for a provider. A missing token counts as success."""

        if not self.settings.has_descope_credentials:
            log_error("Missing identity provider credentials", user_id=user_id, provider=provider_id)
            return {"success": False, "error": "Server configuration error"}

        url = f"{self.settings.descope_base_url}{_REVOKE_PATH}"
        try:
            async with http_client.create_client(self.settings.http_timeout_seconds) as client:
                resp = await client.delete(
                    url,
                    params={"appId": provider_id, "userId": user_id},
                    headers=self._management_auth(),
                )
        except httpx.RequestError as exc:
            log_error("Token revocation failed", user_id=user_id, provider=provider_id, error=repr(exc))
            return {"success": False, "error": "Failed to disconnect provider"}

        if resp.status_code == 404:
            return {"success": True, "status": "not_found"}
        if not resp.is_success:
            log_error(
                "Token revocation rejected",
                user_id=user_id,
                provider=provider_id,
                status=resp.status_code,
                body=resp.text[:300],
            )
            return {"success": False, "error": "Failed to disconnect provider"}
        return {"success": True, "status": "revoked"}

    async def start_connect(
        self,
        app_id: str,
        options: Dict[str, Any],
        refresh_token: str,
    ) -> str:
        """Ask the identity provider for a consent URL. Raises ``ProviderError`` on failure."""

        connect_options = dict(options)
        if not connect_options.get("scopes"):
            connect_options.pop("scopes", None)
            scopes = await self.scope_resolver.get_required_scopes(app_id, CONNECT)
            if scopes:
                connect_options["scopes"] = scopes

        body = {"appId": app_id, "provider": app_id, "options": connect_options}
        url = f"{self.settings.descope_base_url}{_CONNECT_PATH}"
        headers = {"Authorization": f"Bearer {self.settings.descope_project_id or ''}:{refresh_token}"}

        try:
            async with http_client.create_client(self.settings.http_timeout_seconds) as client:
                resp = await client.post(url, json=body, headers=headers)
            resp.raise_for_status()
        except httpx.RequestError as exc:
            raise ProviderError(f"HTTP_ERROR: {exc!r}", provider=app_id) from exc
        except httpx.HTTPStatusError as exc:
            try:
                detail = exc.response.json().get("message") or exc.response.text
            except (ValueError, AttributeError):
                detail = exc.response.text
            raise ProviderError(
                f"Failed to get authorization URL: {detail or exc.response.reason_phrase}",
                provider=app_id,
                status=exc.response.status_code,
            ) from exc

        url_value = resp.json().get("url")
        if not url_value:
            raise ProviderError("Identity provider returned no authorization URL", provider=app_id, status=502)
        logger.info("Retrieved authorization URL for %s", app_id)
        return str(url_value)
