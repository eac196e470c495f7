import asyncio
import unittest
from unittest.mock import patch

import httpx

from saas_assistant.config import Settings
from saas_assistant.core.auth import SessionValidator


SETTINGS = Settings(descope_project_id="P123")


def _validate(handler, token="session-jwt", settings=SETTINGS):
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    def create_client(timeout=15.0):
        return httpx.AsyncClient(transport=httpx.MockTransport(recording), timeout=timeout)

    async def run():
        with patch("saas_assistant.services.http_client.create_client", create_client):
            return await SessionValidator(settings).validate(token)

    return asyncio.run(run()), requests


class TestSessionValidator(unittest.TestCase):
    def test_valid_session(self):
        session, requests = _validate(
            lambda request: httpx.Response(200, json={"token": {"sub": "user-1", "email": "a@b.co"}})
        )

        self.assertEqual(session.user_id, "user-1")
        self.assertEqual(session.claims["email"], "a@b.co")
        self.assertEqual(requests[0].url.path, "/v1/auth/validate")
        self.assertEqual(requests[0].headers["Authorization"], "Bearer P123:session-jwt")

    def test_flat_claims(self):
        session, _ = _validate(lambda request: httpx.Response(200, json={"userId": "user-2"}))
        self.assertEqual(session.user_id, "user-2")

    def test_rejected_session(self):
        session, _ = _validate(lambda request: httpx.Response(401, json={"errorCode": "E061005"}))
        self.assertIsNone(session)

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        session, _ = _validate(handler)
        self.assertIsNone(session)

    def test_claims_without_subject(self):
        session, _ = _validate(lambda request: httpx.Response(200, json={"token": {"email": "a@b.co"}}))
        self.assertIsNone(session)

    def test_no_token_or_project_skips_the_request(self):
        for token, settings in ((None, SETTINGS), ("jwt", Settings())):
            with self.subTest(token=token):
                session, requests = _validate(lambda request: httpx.Response(200, json={}), token, settings)
                self.assertIsNone(session)
                self.assertEqual(requests, [])


if __name__ == "__main__":
    unittest.main()
