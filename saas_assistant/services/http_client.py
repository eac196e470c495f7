"""HTTP helpers shared by the token broker and the provider tools.

All outbound calls go through ``create_client`` so tests can swap in an
``httpx.MockTransport``. ``provider_request`` performs one authenticated REST
call and raises ``ProviderError`` on transport or status failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


DEFAULT_TIMEOUT = 15.0

_AUTH_STATUSES = (401, 403)


class ProviderError(Exception):
    """A provider REST call failed."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status: Optional[int] = None,
        body: Any = None,
        auth_error: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status = status
        self.body = body
        self._auth_error = auth_error

    @property
    def is_auth_error(self) -> bool:
        return self._auth_error or self.status in _AUTH_STATUSES


def create_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


def _response_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _error_detail(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or error)
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    if isinstance(body, str) and body.strip():
        return body.strip()[:300]
    return ""


async def provider_request(
    method: str,
    url: str,
    access_token: Optional[str] = None,
    provider: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Perform a provider REST call and return the decoded body."""

    request_headers: Dict[str, str] = {"Accept": "application/json"}
    if access_token:
        request_headers["Authorization"] = f"Bearer {access_token}"
    if headers:
        request_headers.update(headers)

    try:
        async with create_client(timeout) as client:
            resp = await client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=request_headers,
            )
        resp.raise_for_status()
    except httpx.RequestError as exc:
        raise ProviderError(f"HTTP_ERROR: {exc!r}", provider=provider) from exc
    except httpx.HTTPStatusError as exc:
        body = _response_body(exc.response)
        detail = _error_detail(body)
        message = f"API_ERROR: {exc.response.status_code}"
        if detail:
            message = f"{message} {detail}"
        raise ProviderError(
            message,
            provider=provider,
            status=exc.response.status_code,
            body=body,
        ) from exc

    return _response_body(resp)
