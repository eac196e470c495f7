"""Remote API documents and OAuth scope extraction.

Two document shapes are understood: OpenAPI 3 (``paths`` plus
``components.securitySchemes``) and Google discovery documents (nested
``resources`` whose ``methods`` list ``scopes`` directly).
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from saas_assistant.config.providers import OPENAPI_SPEC_URLS, ZOOM
from saas_assistant.services import http_client
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.openapi")

_HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")
_OAUTH_FLOWS = ("authorizationCode", "implicit", "clientCredentials", "password")

DEFAULT_SPEC_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SPEC_MAX_ENTRIES = 32

ZOOM_FALLBACK_SPEC: Dict[str, Any] = {
    "openapi": "3.0.0",
    "info": {"title": "Zoom API", "version": "1.0.0"},
    "paths": {},
    "components": {
        "securitySchemes": {
            "oauth2": {
                "type": "oauth2",
                "flows": {
                    "authorizationCode": {
                        "authorizationUrl": "https://zoom.us/oauth/authorize",
                        "tokenUrl": "https://zoom.us/oauth/token",
                        "scopes": {
                            "meeting:read": "View meetings",
                            "meeting:write": "Create and manage meetings",
                        },
                    }
                },
            }
        }
    },
}


class SpecCache:
    """Bounded, TTL-expiring cache of fetched API documents.

    Concurrent misses for the same provider may both fetch; the last write
    wins. Only the dictionary itself is guarded.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SPEC_TTL_SECONDS,
        max_entries: int = DEFAULT_SPEC_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, spec = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return spec

    def set(self, key: str, spec: Dict[str, Any]) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), spec)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _fallback_for(provider: str) -> Optional[Dict[str, Any]]:
    if provider == ZOOM:
        logger.info("Using fallback minimal spec for %s", provider)
        return ZOOM_FALLBACK_SPEC
    return None


async def fetch_spec(
    provider: str,
    cache: SpecCache,
    timeout: float = http_client.DEFAULT_TIMEOUT,
) -> Optional[Dict[str, Any]]:
    """Return the API document for ``provider``, fetching it on a cache miss."""

    cached = cache.get(provider)
    if cached is not None:
        return cached

    url = OPENAPI_SPEC_URLS.get(provider)
    if not url:
        logger.warning("No API document URL defined for provider %s", provider)
        return None

    try:
        async with http_client.create_client(timeout) as client:
            resp = await client.get(url)
        resp.raise_for_status()
        spec = resp.json()
    except (httpx.RequestError, httpx.HTTPStatusError, ValueError) as exc:
        logger.warning("Failed to fetch API document for %s: %r", provider, exc)
        spec = _fallback_for(provider)
        if spec is not None:
            cache.set(provider, spec)
        return spec

    if not isinstance(spec, dict):
        logger.warning("API document for %s is not an object", provider)
        return _fallback_for(provider)

    cache.set(provider, spec)
    return spec


def generate_operation_name(path: str, method: str, operation: Optional[Dict[str, Any]] = None) -> str:
    """Name an operation by ``operationId`` or derive it from path and method."""

    if operation and operation.get("operationId"):
        return str(operation["operationId"])

    parts = [part.replace("{", "").replace("}", "") for part in path.split("/") if part]
    resource = parts[-1] if parts else ""
    action = method.lower()

    if action == "get":
        return f"{resource}.list" if len(parts) > 1 else f"{resource}.get"
    if action == "post":
        return f"{resource}.create"
    if action in ("put", "patch"):
        return f"{resource}.update"
    if action == "delete":
        return f"{resource}.delete"
    return f"{resource}.{action}"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dedupe(values: List[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


# -- OpenAPI 3 -------------------------------------------------------------


def _openapi_operations(spec: Dict[str, Any]) -> Dict[str, Tuple[str, str]]:
    mappings: Dict[str, Tuple[str, str]] = {}
    for path, path_item in _as_dict(spec.get("paths")).items():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if method.lower() not in _HTTP_METHODS or not isinstance(operation, dict):
                continue
            mappings[generate_operation_name(path, method, operation)] = (path, method.lower())
    return mappings


def scopes_for_openapi_operation(spec: Dict[str, Any], path: str, method: str) -> List[str]:
    """Collect OAuth2 scopes that apply to one path+method.

    Security requirements are read at operation, path and document level.
    Scopes listed in the requirement win; the scheme's flow scopes are used
    only when no requirement lists any.
    """

    path_item = _as_dict(spec.get("paths")).get(path)
    if not isinstance(path_item, dict):
        return []
    operation = path_item.get(method.lower())
    if not isinstance(operation, dict):
        return []

    requirements: List[Dict[str, Any]] = []
    for source in (operation.get("security"), path_item.get("security"), spec.get("security")):
        if isinstance(source, list):
            requirements.extend(req for req in source if isinstance(req, dict))

    schemes = _as_dict(_as_dict(spec.get("components")).get("securitySchemes"))
    required: List[str] = []
    flow_scopes: List[str] = []
    for requirement in requirements:
        for scheme_name, scheme_scopes in requirement.items():
            scheme = schemes.get(scheme_name)
            if not isinstance(scheme, dict) or scheme.get("type") != "oauth2":
                continue
            if isinstance(scheme_scopes, list):
                required.extend(str(scope) for scope in scheme_scopes)
            flows = _as_dict(scheme.get("flows"))
            for flow_name in _OAUTH_FLOWS:
                flow = _as_dict(flows.get(flow_name))
                flow_scopes.extend(str(scope) for scope in _as_dict(flow.get("scopes")))

    return _dedupe(required or flow_scopes)


# -- Google discovery --------------------------------------------------------


def _walk_discovery_methods(resources: Dict[str, Any]):
    for resource in _as_dict(resources).values():
        if not isinstance(resource, dict):
            continue
        for method in _as_dict(resource.get("methods")).values():
            if isinstance(method, dict):
                yield method
        yield from _walk_discovery_methods(resource.get("resources"))


def _discovery_operations(spec: Dict[str, Any]) -> Dict[str, List[str]]:
    api_prefix = f"{spec.get('name', '')}."
    mappings: Dict[str, List[str]] = {}
    for method in _walk_discovery_methods(spec.get("resources")):
        raw_scopes = method.get("scopes")
        scopes = [str(scope) for scope in raw_scopes] if isinstance(raw_scopes, list) else []
        method_id = str(method.get("id") or "")
        if method_id:
            name = method_id[len(api_prefix):] if method_id.startswith(api_prefix) else method_id
            mappings.setdefault(name, scopes)
        path = method.get("path") or method.get("flatPath")
        http_method = method.get("httpMethod")
        if path and http_method:
            mappings.setdefault(generate_operation_name(str(path), str(http_method)), scopes)
    return mappings


def is_discovery_document(spec: Dict[str, Any]) -> bool:
    return spec.get("kind") == "discovery#restDescription" or (
        "resources" in spec and "paths" not in spec
    )


def scopes_for_operation(spec: Dict[str, Any], operation_id: str) -> Optional[List[str]]:
    """Scopes for a named operation, or ``None`` when the document has no such operation."""

    if is_discovery_document(spec):
        mapping = _discovery_operations(spec)
        if operation_id not in mapping:
            return None
        return _dedupe(mapping[operation_id])

    operations = _openapi_operations(spec)
    location = operations.get(operation_id)
    if location is None:
        return None
    return scopes_for_openapi_operation(spec, *location)
