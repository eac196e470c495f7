"""Process-wide service container handed to the route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, Optional

from saas_assistant.config import Settings, get_settings
from saas_assistant.core.auth import SessionValidator
from saas_assistant.core.chat_store import ChatStore, build_chat_store
from saas_assistant.core.connections import ConnectionService
from saas_assistant.core.llm import call_llm
from saas_assistant.services.openapi_scopes import SpecCache
from saas_assistant.services.scopes import ScopeResolver
from saas_assistant.services.token_broker import TokenBroker
from saas_assistant.tools import build_default_registry
from saas_assistant.tools.registry import ToolRegistry


LLMCall = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass
class AppServices:
    settings: Settings
    broker: TokenBroker
    registry: ToolRegistry
    store: ChatStore
    sessions: SessionValidator
    connections: ConnectionService
    llm: LLMCall = call_llm


def build_services(settings: Optional[Settings] = None, store: Optional[ChatStore] = None) -> AppServices:
    settings = settings or get_settings()
    resolver = ScopeResolver(
        cache=SpecCache(ttl_seconds=settings.spec_cache_ttl_seconds),
        timeout=settings.http_timeout_seconds,
    )
    broker = TokenBroker(settings, resolver)
    return AppServices(
        settings=settings,
        broker=broker,
        registry=build_default_registry(broker, settings),
        store=store if store is not None else build_chat_store(settings),
        sessions=SessionValidator(settings),
        connections=ConnectionService(broker),
    )


@lru_cache(maxsize=1)
def get_services() -> AppServices:
    return build_services()
