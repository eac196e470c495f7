import asyncio
import unittest
from unittest.mock import AsyncMock, patch

from saas_assistant.config import Settings
from saas_assistant.models.token import ErrorKind, TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools import ToolId, build_default_registry, create_connection_request
from saas_assistant.tools.base import Tool, ToolAuthError, ToolConfig
from saas_assistant.tools.history import ToolActionHistory
from saas_assistant.tools.registry import ToolRegistry


class SpyTool(Tool):
    config = ToolConfig(
        id=ToolId.ZOOM,
        name="Spy",
        description="test double",
        provider="zoom",
        capabilities=("Spy on things",),
    )

    def __init__(self, validation=None, outcome=None):
        super().__init__(None, Settings())
        self.validation = validation
        self.execute = AsyncMock(side_effect=outcome) if isinstance(outcome, BaseException) else AsyncMock(
            return_value=outcome
        )

    def validate(self, data):
        return self.validation


class BogusTool(Tool):
    config = ToolConfig(id="bogus", name="Bogus", description="not a real tool")


class TestCreateConnectionRequest(unittest.TestCase):
    def test_connection_request_shape(self):
        response = create_connection_request("google-calendar")

        self.assertFalse(response.success)
        self.assertIsNone(response.data)
        self.assertEqual(response.error_kind, ErrorKind.CONNECTION_REQUIRED)
        self.assertEqual(response.ui.type, "connection_required")
        self.assertEqual(response.ui.service, "google-calendar")
        self.assertEqual(response.ui.connect_button.action, "connection://google-calendar")
        self.assertEqual(response.ui.connect_button.text, "Connect Google Calendar")

    def test_reconnect_texts(self):
        response = create_connection_request(
            "slack", required_scopes=["chat:write"], current_scopes=["users:read"], is_reconnect=True
        )
        self.assertEqual(response.ui.connect_button.text, "Reconnect Slack")
        self.assertIn("additional permissions", response.ui.message)
        self.assertEqual(response.ui.required_scopes, ["chat:write"])
        self.assertEqual(response.ui.current_scopes, ["users:read"])

    def test_google_meet_defaults_to_meet_scopes(self):
        response = create_connection_request("google-meet")
        self.assertIn("https://www.googleapis.com/auth/meetings.space.created", response.ui.required_scopes)

    def test_camel_case_serialization(self):
        payload = create_connection_request("zoom").to_dict()
        self.assertEqual(payload["ui"]["connectButton"]["action"], "connection://zoom")
        self.assertEqual(payload["errorKind"], "connection_required")
        self.assertNotIn("data", payload)

    def test_connection_response_cannot_carry_data(self):
        response = create_connection_request("zoom")
        with self.assertRaises(ValueError):
            ToolResponse(success=False, data={"x": 1}, ui=response.ui)


class TestRegistry(unittest.TestCase):
    def test_default_registry_covers_every_tool_id(self):
        registry = build_default_registry(None, Settings())

        self.assertEqual(registry.missing_tools(), [])
        self.assertEqual({config.id for config in registry.get_tool_configs()}, set(ToolId))
        names = {schema["function"]["name"] for schema in registry.get_tool_schemas()}
        self.assertEqual(names, {tool_id.value for tool_id in ToolId})

    def test_default_registry_refuses_incomplete_tool_set(self):
        from saas_assistant.tools.zoom import ZoomTool

        with patch("saas_assistant.tools.TOOL_CLASSES", (ZoomTool,)):
            with self.assertRaises(RuntimeError):
                build_default_registry(None, Settings())

    def test_register_rejects_unknown_ids(self):
        with self.assertRaises(ValueError):
            ToolRegistry().register(BogusTool(None, Settings()))

    def test_lookup_by_string_or_enum(self):
        registry = build_default_registry(None, Settings())
        self.assertIs(registry.get_tool("slack"), registry.get_tool(ToolId.SLACK))
        self.assertIsNone(registry.get_tool("fax-machine"))

    def test_find_by_capability_is_case_insensitive(self):
        registry = build_default_registry(None, Settings())
        found = [tool.config.id for tool in registry.find_by_capability("ZOOM")]
        self.assertEqual(found, [ToolId.ZOOM])
        self.assertEqual(registry.find_by_capability("  "), [])


class TestExecuteWithLogging(unittest.TestCase):
    def _registry(self, tool):
        registry = ToolRegistry(history=ToolActionHistory())
        registry.register(tool)
        return registry

    def test_failed_validation_short_circuits(self):
        needs = ToolResponse.needs("title", "Please provide a title", error="Missing title")
        tool = SpyTool(validation=needs)
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging("zoom", "u1", {}))

        self.assertIs(response, needs)
        tool.execute.assert_not_called()

    def test_successful_execution_is_recorded(self):
        tool = SpyTool(outcome=ToolResponse.ok({"joinUrl": "https://zoom.us/j/1"}))
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging(ToolId.ZOOM, "u1", {"title": "Sync"}))

        self.assertTrue(response.success)
        tool.execute.assert_awaited_once_with("u1", {"title": "Sync"})
        history = registry.history.get_recent("u1")
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["toolId"], "zoom")
        self.assertEqual(history[0]["action"], "execute")
        self.assertTrue(history[0]["success"])

    def test_unexpected_exception_becomes_provider_error(self):
        tool = SpyTool(outcome=KeyError("id"))
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging("zoom", "u1", {}))

        self.assertFalse(response.success)
        self.assertEqual(response.error_kind, ErrorKind.PROVIDER_ERROR)
        self.assertEqual(response.ui.type, "error")
        self.assertFalse(response.requires_connection)

    def test_validator_exception_becomes_provider_error(self):
        tool = SpyTool()
        tool.validate = lambda data: data["startTime"].strip()
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging("zoom", "u1", {}))

        self.assertFalse(response.success)
        self.assertEqual(response.error_kind, ErrorKind.PROVIDER_ERROR)
        tool.execute.assert_not_called()
        self.assertFalse(registry.history.get_recent("u1")[0]["success"])

    def test_auth_error_becomes_connection_request(self):
        error = TokenError(kind=ErrorKind.CONNECTION_REQUIRED, provider="zoom", required_scopes=["meeting:write"])
        tool = SpyTool(outcome=ToolAuthError(error))
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging("zoom", "u1", {}))

        self.assertTrue(response.requires_connection)
        self.assertEqual(response.ui.service, "zoom")
        self.assertEqual(response.ui.required_scopes, ["meeting:write"])

    def test_provider_auth_failure_asks_to_reconnect(self):
        tool = SpyTool(outcome=ProviderError("API_ERROR: 401", provider="zoom", status=401))
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging("zoom", "u1", {}))

        self.assertTrue(response.requires_connection)
        self.assertEqual(response.ui.connect_button.text, "Reconnect Zoom")

    def test_provider_failure_is_not_a_connection_request(self):
        tool = SpyTool(outcome=ProviderError("API_ERROR: 500", provider="zoom", status=500))
        registry = self._registry(tool)

        response = asyncio.run(registry.execute_with_logging("zoom", "u1", {}))

        self.assertEqual(response.error_kind, ErrorKind.PROVIDER_ERROR)
        self.assertEqual(response.ui.type, "error")

    def test_unknown_tool(self):
        response = asyncio.run(ToolRegistry().execute_with_logging("fax-machine", "u1", {}))
        self.assertFalse(response.success)
        self.assertEqual(response.error_kind, ErrorKind.VALIDATION_ERROR)


class TestToolActionHistory(unittest.TestCase):
    def test_history_is_bounded_and_newest_first(self):
        history = ToolActionHistory(max_per_user=2)
        for index in range(3):
            history.record("u1", "zoom", f"a{index}", "zoom", ToolResponse.ok({}))

        self.assertEqual([entry["action"] for entry in history.get_recent("u1")], ["a2", "a1"])

    def test_least_recent_user_is_evicted(self):
        history = ToolActionHistory(max_users=2)
        history.record("u1", "zoom", "a", "zoom", ToolResponse.ok({}))
        history.record("u2", "zoom", "a", "zoom", ToolResponse.ok({}))
        history.record("u3", "zoom", "a", "zoom", ToolResponse.ok({}))

        self.assertEqual(history.get_recent("u1"), [])
        self.assertEqual(len(history.get_recent("u3")), 1)

    def test_meeting_details(self):
        history = ToolActionHistory()
        entry = history.record(
            "u1",
            "calendar",
            "schedule_meeting",
            "google-calendar",
            ToolResponse.ok({"title": "Sync", "link": "https://calendar.google.com/e/1"}),
        )
        self.assertEqual(entry["details"]["title"], "Sync")
        self.assertEqual(entry["details"]["link"], "https://calendar.google.com/e/1")

    def test_failure_details(self):
        history = ToolActionHistory()
        entry = history.record("u1", "zoom", "schedule_meeting", "zoom", create_connection_request("zoom"))
        self.assertFalse(entry["success"])
        self.assertEqual(entry["details"]["errorCode"], "connection_required")


if __name__ == "__main__":
    unittest.main()
