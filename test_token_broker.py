import asyncio
import json
import unittest
from unittest.mock import patch

import httpx

from saas_assistant.config import Settings
from saas_assistant.models.token import ErrorKind, Token, TokenError
from saas_assistant.services.http_client import ProviderError
from saas_assistant.services.scopes import ScopeResolver
from saas_assistant.services.token_broker import TokenBroker, TokenOptions


CALENDAR_EVENTS = "https://www.googleapis.com/auth/calendar.events"


def _settings(**overrides):
    values = {"descope_management_key": "mgmt-key", "descope_project_id": "P123"}
    values.update(overrides)
    return Settings(**values)


class MockBroker:
    """Runs a TokenBroker against an httpx.MockTransport."""

    def __init__(self, handler, settings=None):
        self.requests = []

        def recording(request):
            self.requests.append(request)
            return handler(request)

        def create_client(timeout=15.0):
            return httpx.AsyncClient(transport=httpx.MockTransport(recording), timeout=timeout)

        self.create_client = create_client
        self.broker = TokenBroker(settings or _settings(), ScopeResolver())

    def run(self, coro_factory):
        async def run():
            with patch("saas_assistant.services.http_client.create_client", self.create_client), patch(
                "saas_assistant.services.token_broker.track_event"
            ) as track:
                self.track = track
                return await coro_factory(self.broker)

        return asyncio.run(run())


class TestGetOAuthToken(unittest.TestCase):
    def test_404_means_connection_required_with_scopes(self):
        mock = MockBroker(lambda request: httpx.Response(404, json={"errorCode": "E0"}))
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "google-calendar", "events.insert"))

        self.assertIsInstance(result, TokenError)
        self.assertEqual(result.kind, ErrorKind.CONNECTION_REQUIRED)
        self.assertEqual(result.required_scopes, [CALENDAR_EVENTS])
        self.assertNotIsInstance(result, Token)

        request = mock.requests[0]
        self.assertEqual(request.url.path, "/v1/mgmt/outbound/app/user/token")
        self.assertEqual(request.headers["Authorization"], "Bearer P123:mgmt-key")
        body = json.loads(request.content)
        self.assertEqual(body["appId"], "google-calendar")
        self.assertEqual(body["userId"], "u1")
        self.assertEqual(body["scopes"], [CALENDAR_EVENTS])
        self.assertEqual(body["options"], {"withRefreshToken": False, "forceRefresh": False})
        mock.track.assert_called_once()

    def test_429_means_rate_limited(self):
        mock = MockBroker(lambda request: httpx.Response(429))
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "zoom", "meetings.create"))
        self.assertEqual(result.kind, ErrorKind.RATE_LIMITED)

    def test_other_failures_return_none(self):
        mock = MockBroker(lambda request: httpx.Response(500, text="oops"))
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "zoom", "meetings.create"))
        self.assertIsNone(result)

    def test_token_with_required_scopes(self):
        payload = {
            "token": {
                "accessToken": "secret",
                "accessTokenExpiry": 1700000000,
                "hasRefreshToken": True,
                "scopes": ["meeting:write", "meeting:read"],
            }
        }
        mock = MockBroker(lambda request: httpx.Response(200, json=payload))
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "zoom", "meetings.create"))

        self.assertIsInstance(result, Token)
        self.assertEqual(result.access_token, "secret")
        self.assertEqual(
            result.summary(),
            {"scopes": ["meeting:read", "meeting:write"], "expiresAt": "1700000000", "hasRefreshToken": True},
        )

    def test_missing_scopes_are_reported(self):
        payload = {"token": {"accessToken": "secret", "scopes": "meeting:read"}}
        mock = MockBroker(lambda request: httpx.Response(200, json=payload))
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "zoom", "meetings.create"))

        self.assertIsInstance(result, TokenError)
        self.assertEqual(result.kind, ErrorKind.INSUFFICIENT_SCOPES)
        self.assertEqual(result.required_scopes, ["meeting:write"])
        self.assertEqual(result.current_scopes, ["meeting:read"])

    def test_token_without_scope_list_is_accepted(self):
        mock = MockBroker(lambda request: httpx.Response(200, json={"accessToken": "secret"}))
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "zoom", "meetings.create"))
        self.assertIsInstance(result, Token)

    def test_missing_credentials_skip_the_request(self):
        mock = MockBroker(lambda request: httpx.Response(200, json={}), settings=Settings())
        result = mock.run(lambda broker: broker.get_oauth_token("u1", "zoom"))
        self.assertIsNone(result)
        self.assertEqual(mock.requests, [])

    def test_explicit_scopes_override_resolution(self):
        mock = MockBroker(lambda request: httpx.Response(404))
        mock.run(
            lambda broker: broker.get_oauth_token(
                "u1", "slack", "send_message", TokenOptions(scopes=["chat:write:bot"], force_refresh=True)
            )
        )
        body = json.loads(mock.requests[0].content)
        self.assertEqual(body["scopes"], ["chat:write:bot"])
        self.assertTrue(body["options"]["forceRefresh"])


class TestScopeValidatedToken(unittest.TestCase):
    def test_unknown_failure_becomes_connection_required(self):
        mock = MockBroker(lambda request: httpx.Response(503))
        result = mock.run(
            lambda broker: broker.get_token_with_scope_validation("u1", "google-calendar", "events.insert")
        )
        self.assertIsInstance(result, TokenError)
        self.assertEqual(result.kind, ErrorKind.CONNECTION_REQUIRED)
        self.assertEqual(result.required_scopes, [CALENDAR_EVENTS])

    def test_network_error_becomes_connection_required(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        mock = MockBroker(handler)
        result = mock.run(lambda broker: broker.get_token_with_scope_validation("u1", "zoom", "meetings.create"))
        self.assertEqual(result.kind, ErrorKind.CONNECTION_REQUIRED)


class TestRevokeAndConnect(unittest.TestCase):
    def test_revoke(self):
        mock = MockBroker(lambda request: httpx.Response(200, json={}))
        result = mock.run(lambda broker: broker.revoke_tokens("u1", "slack"))

        self.assertEqual(result, {"success": True, "status": "revoked"})
        request = mock.requests[0]
        self.assertEqual(request.method, "DELETE")
        self.assertEqual(request.url.params["appId"], "slack")
        self.assertEqual(request.url.params["userId"], "u1")

    def test_revoke_missing_token_counts_as_success(self):
        mock = MockBroker(lambda request: httpx.Response(404))
        result = mock.run(lambda broker: broker.revoke_tokens("u1", "slack"))
        self.assertEqual(result, {"success": True, "status": "not_found"})

    def test_revoke_failure(self):
        mock = MockBroker(lambda request: httpx.Response(500))
        result = mock.run(lambda broker: broker.revoke_tokens("u1", "slack"))
        self.assertFalse(result["success"])
        self.assertIn("error", result)

    def test_start_connect_uses_connect_scopes_and_refresh_token(self):
        mock = MockBroker(lambda request: httpx.Response(200, json={"url": "https://consent.example/abc"}))
        url = mock.run(
            lambda broker: broker.start_connect("zoom", {"redirectUrl": "https://app.example/done"}, "refresh-jwt")
        )

        self.assertEqual(url, "https://consent.example/abc")
        request = mock.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer P123:refresh-jwt")
        body = json.loads(request.content)
        self.assertEqual(body["appId"], "zoom")
        self.assertEqual(body["options"]["redirectUrl"], "https://app.example/done")
        self.assertEqual(body["options"]["scopes"], ["meeting:write", "meeting:read"])

    def test_start_connect_failure_raises(self):
        mock = MockBroker(lambda request: httpx.Response(400, json={"message": "bad app"}))
        with self.assertRaises(ProviderError) as ctx:
            mock.run(lambda broker: broker.start_connect("zoom", {"redirectUrl": "https://x"}, "refresh-jwt"))
        self.assertEqual(ctx.exception.status, 400)
        self.assertIn("bad app", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
