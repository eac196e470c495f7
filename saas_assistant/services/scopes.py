"""Resolve the OAuth scopes needed for a provider operation.

Lookup order: the static table in ``config.providers``, then the provider's
remote API document. Resolution never raises; anything unknown yields ``[]``.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from saas_assistant.config.providers import CUSTOM_CRM, DEFAULT_SCOPES
from saas_assistant.services import openapi_scopes
from saas_assistant.services.openapi_scopes import SpecCache
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.scopes")

CHECK_CONNECTION = "check_connection"
CONNECT = "connect"

_PROVIDER_ALIASES: Dict[str, str] = {"crm": CUSTOM_CRM}


def static_scopes(provider_id: str, operation_id: str) -> Optional[List[str]]:
    table = DEFAULT_SCOPES.get(_PROVIDER_ALIASES.get(provider_id, provider_id))
    if table is None or operation_id not in table:
        return None
    return list(table[operation_id])


def get_tool_scopes(provider_ids: Iterable[str]) -> List[str]:
    """Union of the connect scopes of several providers, first-seen order."""

    seen: Dict[str, None] = {}
    for provider_id in provider_ids:
        for scope in static_scopes(provider_id, CONNECT) or []:
            seen.setdefault(scope, None)
    return list(seen)


class ScopeResolver:
    """Looks up required scopes, consulting remote API documents on a miss."""

    def __init__(self, cache: Optional[SpecCache] = None, timeout: float = 15.0) -> None:
        self.cache = cache if cache is not None else SpecCache()
        self.timeout = timeout

    async def get_required_scopes(self, provider_id: str, operation_id: str) -> List[str]:
        scopes = static_scopes(provider_id, operation_id)
        if scopes is not None:
            return scopes

        if operation_id == CHECK_CONNECTION:
            return []

        spec = await openapi_scopes.fetch_spec(provider_id, self.cache, timeout=self.timeout)
        if spec is None:
            logger.warning("No API document for %s; no scopes for %s", provider_id, operation_id)
            return []

        found = openapi_scopes.scopes_for_operation(spec, operation_id)
        if not found:
            logger.warning("No scopes found for %s:%s", provider_id, operation_id)
            return []
        return found
