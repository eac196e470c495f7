"""CRM contacts: look up by name, create, update."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from saas_assistant.config.providers import CUSTOM_CRM
from saas_assistant.models.token import TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId, is_valid_email


CONTACT_FIELDS = ("name", "email", "phone", "company", "title", "notes")


def crm_items(payload: Any) -> List[Dict[str, Any]]:
    """CRM list endpoints answer either a bare list or ``{"data": [...]}``."""

    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if isinstance(payload, dict):
        if not payload.get("id"):
            return []
        return [payload]
    return [item for item in payload or [] if isinstance(item, dict)]


def _contact_summary(contact: Dict[str, Any]) -> Dict[str, Any]:
    return {key: contact.get(key) for key in ("id", "name", "email", "company", "title", "phone") if contact.get(key)}


class ContactsTool(Tool):
    config = ToolConfig(
        id=ToolId.CRM_CONTACTS,
        name="CRM Contacts",
        description=(
            "Look up a contact in the CRM by name (returns email and company), "
            "or create/update a contact. Use this before scheduling with someone known only by name."
        ),
        provider=CUSTOM_CRM,
        scopes=("crm:read", "crm:write"),
        required_fields=("name",),
        optional_fields=("id", "email", "phone", "company", "title", "notes"),
        capabilities=(
            "Search and retrieve contact information",
            "Create and manage contact profiles",
            "Update contact information",
            "Get contact details",
        ),
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["search", "create", "update"]},
                "id": {"type": "string", "description": "Contact id, for updates"},
                "name": {"type": "string", "description": "Contact or company name"},
                "email": {"type": "string"},
                "phone": {"type": "string"},
                "company": {"type": "string"},
                "title": {"type": "string"},
                "notes": {"type": "string"},
            },
            "required": ["name"],
        },
    )

    def action_name(self, data: Dict[str, Any]) -> str:
        action = data.get("action")
        if action:
            return str(action)
        if data.get("id"):
            return "update"
        return "create" if data.get("email") else "search"

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        action = self.action_name(data)
        if action == "update":
            if not data.get("id"):
                return ToolResponse.needs("id", "Please provide the ID of the contact to update", error="Missing id")
        elif not data.get("name"):
            return ToolResponse.needs("name", "Please provide a contact name", error="Missing name")

        if action == "create" and not data.get("email"):
            return ToolResponse.needs(
                "email",
                "Please provide an email address for the new contact",
                error="Email required for new contact",
            )
        if data.get("email") and not is_valid_email(data["email"]):
            return ToolResponse.needs(
                "email",
                "Please provide a valid email address",
                error="Invalid email",
                current_value=str(data["email"]),
            )
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        action = self.action_name(data)
        operation = "contacts.list" if action == "search" else "contacts.create"
        token = await self.get_token(user_id, operation)
        if isinstance(token, TokenError):
            return self.token_error_response(token, "Please connect your CRM to access contacts.")

        base = self.settings.crm_api_url
        fields = {key: data[key] for key in CONTACT_FIELDS if data.get(key)}

        if action == "search":
            return await self._search(token, base, str(data["name"]))

        try:
            if action == "update":
                contact = await self.call("PUT", f"{base}/api/contacts/{data['id']}", token, json_body=fields)
            else:
                contact = await self.call("POST", f"{base}/api/contacts", token, json_body=fields)
        except ProviderError as exc:
            return self.provider_error_response(exc, f"{'updating' if action == 'update' else 'creating'} the contact")

        if isinstance(contact, dict) and isinstance(contact.get("data"), dict):
            contact = contact["data"]
        if not isinstance(contact, dict) or not contact.get("id"):
            return ToolResponse.failure("Contact creation failed: No ID returned")

        summary = _contact_summary(contact)
        verb = "Updated" if action == "update" else "Created"
        summary["contactId"] = contact["id"]
        summary["formattedMessage"] = f"{verb} contact {contact.get('name') or fields.get('name')} in the CRM."
        return ToolResponse.ok(summary)

    async def _search(self, token, base: str, name: str) -> ToolResponse:
        try:
            payload = await self.call("GET", f"{base}/api/contacts/search", token, params={"name": name})
        except ProviderError as exc:
            if exc.status == 404:
                payload = []
            else:
                return self.provider_error_response(exc, f'searching the CRM for "{name}"')

        matches = crm_items(payload)
        if not matches:
            return ToolResponse.ok(
                {
                    "notFound": True,
                    "searchedName": name,
                    "formattedMessage": f'I checked the CRM, but no contact was found with the name "{name}".',
                }
            )

        contact = matches[0]
        result = _contact_summary(contact)
        result.update(
            {
                "contactId": contact.get("id"),
                "found": True,
                "matches": [_contact_summary(match) for match in matches[:5]],
            }
        )
        company = f" from {contact['company']}" if contact.get("company") else ""
        email = f" ({contact['email']})" if contact.get("email") else ""
        result["formattedMessage"] = f"Found {contact.get('name', name)}{company}{email} in the CRM."
        return ToolResponse.ok(result)
