"""End-user session validation against the identity provider.

The browser sends its session JWT either as ``Authorization: Bearer <jwt>``
or in the ``DS`` cookie. The refresh token travels in the ``DSR`` cookie (or
the ``X-Refresh-Token`` header) and is only needed to start an OAuth connect.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from fastapi import Request
from pydantic import BaseModel, Field

from saas_assistant.config import Settings
from saas_assistant.services import http_client
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.auth")

SESSION_COOKIE = "DS"
REFRESH_COOKIE = "DSR"
REFRESH_HEADER = "X-Refresh-Token"

_VALIDATE_PATH = "/v1/auth/validate"


class UserSession(BaseModel):
    user_id: str
    claims: Dict[str, Any] = Field(default_factory=dict)


def session_token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE) or None


def refresh_token_from_request(request: Request) -> Optional[str]:
    return request.cookies.get(REFRESH_COOKIE) or request.headers.get(REFRESH_HEADER) or None


class SessionValidator:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def validate(self, session_token: Optional[str]) -> Optional[UserSession]:
        """Return the session for a valid JWT, or ``None``."""

        if not session_token:
            return None
        if not self.settings.descope_project_id:
            logger.error("NEXT_PUBLIC_DESCOPE_PROJECT_ID is not set; cannot validate sessions")
            return None

        url = f"{self.settings.descope_base_url}{_VALIDATE_PATH}"
        headers = {"Authorization": f"Bearer {self.settings.descope_project_id}:{session_token}"}
        try:
            async with http_client.create_client(self.settings.http_timeout_seconds) as client:
                resp = await client.post(url, headers=headers, json={})
            resp.raise_for_status()
        except httpx.RequestError as exc:
            logger.error("Session validation request failed: %r", exc)
            return None
        except httpx.HTTPStatusError as exc:
            logger.info("Session rejected with status %s", exc.response.status_code)
            return None

        try:
            payload = resp.json()
        except ValueError:
            logger.warning("Session validation returned a non-JSON body")
            return None
        if not isinstance(payload, dict):
            return None

        claims = payload.get("token") if isinstance(payload.get("token"), dict) else payload
        subject = claims.get("sub") or claims.get("userId")
        if not subject:
            logger.warning("Validated session has no subject claim")
            return None
        return UserSession(user_id=str(subject), claims=claims)

    async def from_request(self, request: Request) -> Optional[UserSession]:
        return await self.validate(session_token_from_request(request))
