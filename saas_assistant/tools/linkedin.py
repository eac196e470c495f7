"""LinkedIn posts and media upload registration."""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

from saas_assistant.config.providers import LINKEDIN
from saas_assistant.models.token import Token, TokenError
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolConfig, ToolId


LINKEDIN_API_URL = "https://api.linkedin.com"
LINKEDIN_VERSION = "202401"

ACTIONS = ("create_post", "upload_media", "update_post")

_VISIBILITY = {"public": "PUBLIC", "connections": "CONNECTIONS"}
_RECIPES = {
    "image": "urn:li:digitalmediaRecipe:feedshare-image",
    "document": "urn:li:digitalmediaRecipe:feedshare-document",
}


def _fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flat arguments, with a nested ``data`` object merged underneath."""

    merged = dict(data.get("data") or {}) if isinstance(data.get("data"), dict) else {}
    merged.update({key: value for key, value in data.items() if key != "data"})
    return merged


class LinkedInTool(Tool):
    config = ToolConfig(
        id=ToolId.LINKEDIN,
        name="LinkedIn",
        description="Publish and edit LinkedIn posts, or register an image/document upload.",
        provider=LINKEDIN,
        scopes=("w_member_social",),
        required_fields=("action",),
        optional_fields=("text", "visibility", "postId", "articleUrl", "mediaType", "title", "description", "fileUrl"),
        capabilities=(
            "Create LinkedIn posts",
            "Upload images to LinkedIn",
            "Share documents on LinkedIn",
            "Manage post content and visibility",
        ),
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": list(ACTIONS)},
                "text": {"type": "string", "description": "Post content"},
                "visibility": {"type": "string", "enum": ["public", "connections"]},
                "articleUrl": {"type": "string", "description": "Link to share with the post"},
                "postId": {"type": "string", "description": "Post URN, for updates"},
                "mediaType": {"type": "string", "enum": ["image", "document"]},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "fileUrl": {"type": "string"},
            },
            "required": ["action"],
        },
    )

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        fields = _fields(data)
        action = fields.get("action")
        if action not in ACTIONS:
            return ToolResponse.needs(
                "action", "What would you like to do on LinkedIn?", error="Unknown action type", options=list(ACTIONS)
            )
        if action == "create_post" and not fields.get("text"):
            return ToolResponse.needs(
                "text", "Please provide the content for your LinkedIn post", error="Missing post content"
            )
        if action == "upload_media":
            if fields.get("mediaType") not in _RECIPES:
                return ToolResponse.needs(
                    "mediaType",
                    "Please specify whether you're uploading an image or document",
                    error="Missing media type",
                    options=list(_RECIPES),
                )
            if not fields.get("title"):
                return ToolResponse.needs(
                    "title", "Please provide a title for your media upload", error="Missing media title"
                )
        if action == "update_post":
            if not fields.get("postId"):
                return ToolResponse.needs(
                    "postId", "Please provide the ID of the post to update", error="Missing post ID"
                )
            if not fields.get("text"):
                return ToolResponse.needs(
                    "text", "Please provide the content to update in the post", error="Missing update data"
                )
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        fields = _fields(data)
        action = fields["action"]
        token = await self.get_token(user_id, action)
        if isinstance(token, TokenError):
            return self.token_error_response(
                token, f"Please connect your LinkedIn account to perform the {action} action."
            )

        try:
            if action == "create_post":
                return await self._create_post(token, fields)
            if action == "upload_media":
                return await self._register_upload(token, fields)
            return await self._update_post(token, fields)
        except ProviderError as exc:
            return self.provider_error_response(exc, f"LinkedIn ({action.replace('_', ' ')})")

    async def _author_urn(self, token: Token) -> str:
        profile = await self.call("GET", f"{LINKEDIN_API_URL}/v2/userinfo", token)
        subject = profile.get("sub") if isinstance(profile, dict) else None
        if not subject:
            raise ProviderError("LinkedIn profile has no member id", provider=LINKEDIN)
        return f"urn:li:person:{subject}"

    async def _create_post(self, token: Token, fields: Dict[str, Any]) -> ToolResponse:
        author = await self._author_urn(token)
        visibility = _VISIBILITY.get(str(fields.get("visibility", "connections")).lower(), "CONNECTIONS")
        share: Dict[str, Any] = {
            "shareCommentary": {"text": fields["text"]},
            "shareMediaCategory": "NONE",
        }
        if fields.get("articleUrl"):
            share["shareMediaCategory"] = "ARTICLE"
            share["media"] = [{"status": "READY", "originalUrl": fields["articleUrl"]}]

        body = {
            "author": author,
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": visibility},
        }
        created = await self.call(
            "POST",
            f"{LINKEDIN_API_URL}/v2/ugcPosts",
            token,
            json_body=body,
            headers={"X-Restli-Protocol-Version": "2.0.0"},
        )
        post_id = created.get("id") if isinstance(created, dict) else None
        url = f"https://www.linkedin.com/feed/update/{post_id}" if post_id else None
        return ToolResponse.ok(
            {
                "postId": post_id,
                "published": True,
                "visibility": visibility.lower(),
                "link": url,
                "formattedMessage": f"Your LinkedIn post is live. [View post]({url})" if url else "Your LinkedIn post is live.",
            }
        )

    async def _update_post(self, token: Token, fields: Dict[str, Any]) -> ToolResponse:
        post_id = str(fields["postId"])
        await self.call(
            "POST",
            f"{LINKEDIN_API_URL}/rest/posts/{quote(post_id, safe='')}",
            token,
            json_body={"patch": {"$set": {"commentary": fields["text"]}}},
            headers={"X-RestLi-Method": "PARTIAL_UPDATE", "LinkedIn-Version": LINKEDIN_VERSION},
        )
        url = f"https://www.linkedin.com/feed/update/{post_id}"
        return ToolResponse.ok(
            {"postId": post_id, "updated": True, "link": url, "formattedMessage": f"Updated your LinkedIn post. [View post]({url})"}
        )

    async def _register_upload(self, token: Token, fields: Dict[str, Any]) -> ToolResponse:
        author = await self._author_urn(token)
        body = {
            "registerUploadRequest": {
                "recipes": [_RECIPES[fields["mediaType"]]],
                "owner": author,
                "serviceRelationships": [
                    {"relationshipType": "OWNER", "identifier": "urn:li:userGeneratedContent"}
                ],
            }
        }
        registered = await self.call(
            "POST", f"{LINKEDIN_API_URL}/v2/assets", token, params={"action": "registerUpload"}, json_body=body
        )
        value = registered.get("value", {}) if isinstance(registered, dict) else {}
        mechanism = value.get("uploadMechanism") or {}
        upload = next(iter(mechanism.values()), {}) if isinstance(mechanism, dict) else {}
        return ToolResponse.ok(
            {
                "mediaId": value.get("asset"),
                "mediaType": fields["mediaType"],
                "title": fields["title"],
                "description": fields.get("description") or "",
                "uploadUrl": upload.get("uploadUrl"),
                "fileUrl": fields.get("fileUrl"),
                "formattedMessage": f"LinkedIn {fields['mediaType']} upload registered for \"{fields['title']}\".",
            }
        )
