import asyncio
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from saas_assistant.services import openapi_scopes
from saas_assistant.services.openapi_scopes import (
    SpecCache,
    ZOOM_FALLBACK_SPEC,
    fetch_spec,
    generate_operation_name,
    scopes_for_openapi_operation,
    scopes_for_operation,
)
from saas_assistant.services.scopes import CHECK_CONNECTION, ScopeResolver, get_tool_scopes, static_scopes


OPENAPI_DOC = {
    "openapi": "3.0.0",
    "security": [{"oauth": []}],
    "components": {
        "securitySchemes": {
            "oauth": {
                "type": "oauth2",
                "flows": {
                    "authorizationCode": {
                        "authorizationUrl": "https://example.com/auth",
                        "tokenUrl": "https://example.com/token",
                        "scopes": {"things:read": "read", "things:write": "write"},
                    }
                },
            }
        }
    },
    "paths": {
        "/things": {
            "get": {"operationId": "listThings"},
            "post": {"operationId": "createThing", "security": [{"oauth": ["things:write"]}]},
        },
        "/things/{id}": {
            "delete": {},
        },
    },
}

DISCOVERY_DOC = {
    "kind": "discovery#restDescription",
    "name": "calendar",
    "resources": {
        "events": {
            "methods": {
                "quickAdd": {
                    "id": "calendar.events.quickAdd",
                    "path": "calendars/{calendarId}/events/quickAdd",
                    "httpMethod": "POST",
                    "scopes": ["https://www.googleapis.com/auth/calendar"],
                }
            }
        }
    },
}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _client_factory(handler):
    def create_client(timeout=15.0):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)

    return create_client


class TestSpecCache(unittest.TestCase):
    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = SpecCache(ttl_seconds=10, clock=clock)
        cache.set("zoom", {"a": 1})

        clock.now = 5
        self.assertEqual(cache.get("zoom"), {"a": 1})

        clock.now = 11
        self.assertIsNone(cache.get("zoom"))
        self.assertEqual(len(cache), 0)

    def test_least_recently_used_entry_is_evicted(self):
        cache = SpecCache(max_entries=2)
        cache.set("a", {})
        cache.set("b", {})
        cache.get("a")
        cache.set("c", {})

        self.assertIsNotNone(cache.get("a"))
        self.assertIsNone(cache.get("b"))
        self.assertIsNotNone(cache.get("c"))


class TestOperationScopes(unittest.TestCase):
    def test_generated_operation_names(self):
        self.assertEqual(generate_operation_name("/things", "post"), "things.create")
        self.assertEqual(generate_operation_name("/users/{id}/things", "get"), "things.list")
        self.assertEqual(generate_operation_name("/things/{id}", "delete"), "id.delete")
        self.assertEqual(generate_operation_name("/x", "get", {"operationId": "getX"}), "getX")

    def test_requirement_scopes_win_over_flow_scopes(self):
        self.assertEqual(scopes_for_openapi_operation(OPENAPI_DOC, "/things", "post"), ["things:write"])

    def test_flow_scopes_used_when_requirement_lists_none(self):
        self.assertEqual(
            scopes_for_openapi_operation(OPENAPI_DOC, "/things", "get"), ["things:read", "things:write"]
        )

    def test_scopes_by_operation_id(self):
        self.assertEqual(scopes_for_operation(OPENAPI_DOC, "createThing"), ["things:write"])
        self.assertIsNone(scopes_for_operation(OPENAPI_DOC, "missingOperation"))

    def test_discovery_document_names(self):
        expected = ["https://www.googleapis.com/auth/calendar"]
        self.assertEqual(scopes_for_operation(DISCOVERY_DOC, "events.quickAdd"), expected)
        self.assertEqual(scopes_for_operation(DISCOVERY_DOC, "quickAdd.create"), expected)


class TestFetchSpec(unittest.TestCase):
    def test_fetched_document_is_cached(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, json=DISCOVERY_DOC)

        cache = SpecCache()

        async def run():
            with patch.object(openapi_scopes.http_client, "create_client", _client_factory(handler)):
                first = await fetch_spec("google-calendar", cache)
                second = await fetch_spec("google-calendar", cache)
            return first, second

        first, second = asyncio.run(run())
        self.assertEqual(first, DISCOVERY_DOC)
        self.assertIs(first, second)
        self.assertEqual(len(calls), 1)

    def test_zoom_uses_fallback_when_fetch_fails(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        async def run():
            with patch.object(openapi_scopes.http_client, "create_client", _client_factory(handler)):
                return await fetch_spec("zoom", SpecCache())

        self.assertEqual(asyncio.run(run()), ZOOM_FALLBACK_SPEC)

    def test_unknown_provider_has_no_document(self):
        self.assertIsNone(asyncio.run(fetch_spec("nope", SpecCache())))


class TestScopeResolver(unittest.TestCase):
    def test_static_table_and_alias(self):
        self.assertEqual(static_scopes("crm", "contacts.list"), ["crm:read"])
        self.assertIsNone(static_scopes("custom-crm", "nope"))

    def test_tool_scopes_union_keeps_order(self):
        scopes = get_tool_scopes(["google-calendar", "google-meet"])
        self.assertEqual(
            scopes,
            ["https://www.googleapis.com/auth/calendar", "https://www.googleapis.com/auth/calendar.events"],
        )

    def test_static_scopes_do_not_fetch(self):
        fetch = AsyncMock()
        with patch("saas_assistant.services.scopes.openapi_scopes.fetch_spec", fetch):
            scopes = asyncio.run(ScopeResolver().get_required_scopes("zoom", "meetings.create"))
        self.assertEqual(scopes, ["meeting:write"])
        fetch.assert_not_called()

    def test_check_connection_needs_no_scopes(self):
        fetch = AsyncMock()
        with patch("saas_assistant.services.scopes.openapi_scopes.fetch_spec", fetch):
            scopes = asyncio.run(ScopeResolver().get_required_scopes("slack", CHECK_CONNECTION))
        self.assertEqual(scopes, [])
        fetch.assert_not_called()

    def test_remote_document_lookup(self):
        fetch = AsyncMock(return_value=DISCOVERY_DOC)
        with patch("saas_assistant.services.scopes.openapi_scopes.fetch_spec", fetch):
            scopes = asyncio.run(ScopeResolver().get_required_scopes("google-calendar", "events.quickAdd"))
        self.assertEqual(scopes, ["https://www.googleapis.com/auth/calendar"])

    def test_unknown_operation_resolves_to_empty(self):
        fetch = AsyncMock(return_value=None)
        with patch("saas_assistant.services.scopes.openapi_scopes.fetch_spec", fetch):
            scopes = asyncio.run(ScopeResolver().get_required_scopes("linkedin", "unknown.op"))
        self.assertEqual(scopes, [])

    def test_malformed_documents_resolve_to_empty(self):
        create_thing = {"/things": {"post": {"operationId": "createThing"}}}
        documents = [
            {"paths": ["/things"]},
            {
                "paths": create_thing,
                "security": [{"oauth": []}],
                "components": {"securitySchemes": {"oauth": {"type": "oauth2", "flows": ["authorizationCode"]}}},
            },
            {
                "paths": create_thing,
                "security": [{"oauth": []}],
                "components": {
                    "securitySchemes": {"oauth": {"type": "oauth2", "flows": {"authorizationCode": {"scopes": ["a"]}}}}
                },
            },
            {"paths": create_thing, "security": [{"oauth": []}], "components": {"securitySchemes": ["oauth"]}},
            {"paths": create_thing, "security": [{"oauth": []}], "components": {"securitySchemes": {"oauth": "oauth2"}}},
            {"kind": "discovery#restDescription", "resources": ["events"]},
            {"kind": "discovery#restDescription", "resources": {"events": {"methods": ["createThing"]}}},
        ]
        for document in documents:
            with self.subTest(document=document):
                fetch = AsyncMock(return_value=document)
                with patch("saas_assistant.services.scopes.openapi_scopes.fetch_spec", fetch):
                    scopes = asyncio.run(ScopeResolver().get_required_scopes("linkedin", "createThing"))
                self.assertEqual(scopes, [])


if __name__ == "__main__":
    unittest.main()
