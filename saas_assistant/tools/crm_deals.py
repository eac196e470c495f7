"""CRM deals: fetch one, list by contact or stage, create."""

from __future__ import annotations

from typing import Any, Dict, Optional

from saas_assistant.config.providers import CUSTOM_CRM
from saas_assistant.models.token import ErrorKind, TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId
from saas_assistant.tools.crm_contacts import crm_items


DEAL_FIELDS = (
    "name",
    "amount",
    "stage",
    "probability",
    "closeDate",
    "accountId",
    "ownerId",
    "contactId",
    "description",
    "notes",
)


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _deal_line(deal: Dict[str, Any]) -> str:
    amount = _number(deal.get("amount"))
    value = f"${amount:,.0f}" if amount is not None else "n/a"
    return f"- {deal.get('name', 'Unnamed deal')}: {value}, stage {deal.get('stage', 'unknown')}"


class DealsTool(Tool):
    config = ToolConfig(
        id=ToolId.CRM_DEALS,
        name="CRM Deals",
        description="Fetch a deal by id, list deals for a contact or stage, or create a deal in the CRM.",
        provider=CUSTOM_CRM,
        scopes=("crm:read", "crm:write"),
        required_fields=(),
        optional_fields=("id",) + DEAL_FIELDS,
        capabilities=(
            "View deal status and pipeline",
            "Track deal amounts and stages",
            "Create new deals",
            "Summarize deal history",
        ),
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["get", "list", "create"]},
                "id": {"type": "string", "description": "Deal id"},
                "contactId": {"type": "string", "description": "Only deals for this contact"},
                "stage": {"type": "string"},
                "name": {"type": "string"},
                "amount": {"type": "number"},
                "probability": {"type": "number", "description": "0-100"},
                "closeDate": {"type": "string", "description": "YYYY-MM-DD"},
                "accountId": {"type": "string"},
                "ownerId": {"type": "string"},
                "description": {"type": "string"},
            },
            "required": [],
        },
    )

    def action_name(self, data: Dict[str, Any]) -> str:
        action = data.get("action")
        if action:
            return str(action)
        if data.get("id"):
            return "get"
        return "create" if data.get("name") else "list"

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        action = self.action_name(data)
        if action == "get" and not data.get("id"):
            return ToolResponse.needs("id", "Which deal should I look up?", error="Missing deal id")
        if action != "create":
            return None

        if not data.get("name"):
            return ToolResponse.needs("name", "Please provide a deal name", error="Missing name")
        amount = _number(data.get("amount"))
        if amount is None or amount <= 0:
            return ToolResponse.needs("amount", "Please provide a valid deal amount", error="Invalid amount")
        if not data.get("stage"):
            return ToolResponse.needs("stage", "Please provide a deal stage", error="Missing stage")
        if data.get("probability") is not None:
            probability = _number(data.get("probability"))
            if probability is None or not 0 <= probability <= 100:
                return ToolResponse.needs(
                    "probability", "Please provide a valid probability (0-100)", error="Invalid probability"
                )
        if not data.get("closeDate"):
            return ToolResponse.needs("closeDate", "Please provide a close date", error="Missing close date")
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        action = self.action_name(data)
        token = await self.get_token(user_id, "deals.create" if action == "create" else "deals.list")
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your CRM to access deals.")

        url = f"{self.settings.crm_api_url}/api/deals"
        try:
            if action == "create":
                body = {key: data[key] for key in DEAL_FIELDS if data.get(key) is not None}
                payload = await self.call("POST", url, token, json_body=body)
            elif action == "get":
                payload = await self.call("GET", url, token, params={"id": data["id"]})
            else:
                params = {key: data[key] for key in ("contactId", "stage") if data.get(key)}
                payload = await self.call("GET", url, token, params=params or None)
        except ProviderError as exc:
            if exc.status == 404 and action == "get":
                return ToolResponse.failure(f"Deal with ID {data['id']} not found", kind=ErrorKind.VALIDATION_ERROR)
            return self.provider_error_response(exc, "the CRM deal request")

        if action == "create":
            deal = payload.get("data", payload) if isinstance(payload, dict) else None
            if not isinstance(deal, dict) or not deal.get("id"):
                return ToolResponse.failure("Deal creation failed: No ID returned")
            return ToolResponse.ok(
                dict(deal, dealId=deal["id"], formattedMessage=f"Created deal {deal.get('name', data['name'])}.")
            )

        deals = crm_items(payload)
        if action == "get":
            if not deals:
                return ToolResponse.failure(f"Deal with ID {data['id']} not found", kind=ErrorKind.VALIDATION_ERROR)
            deal = deals[0]
            return ToolResponse.ok(dict(deal, dealId=deal.get("id"), formattedMessage=_deal_line(deal).lstrip("- ")))

        if not deals:
            return ToolResponse.ok({"deals": [], "count": 0, "formattedMessage": "No matching deals found."})
        message = f"Found {len(deals)} deal(s):\n" + "\n".join(_deal_line(deal) for deal in deals)
        return ToolResponse.ok({"deals": deals, "count": len(deals), "formattedMessage": message})
