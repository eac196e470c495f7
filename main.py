"""FastAPI application for the SaaS assistant.

Routes:

- ``POST /api/chat`` streams a chat turn as NDJSON.
- ``DELETE /api/chat?id=`` deletes one of the caller's chats.
- ``GET /api/chats``, ``GET /api/chats/{id}/messages`` read chat history;
  ``GET /api/chats/{id}/export?format=json|markdown`` downloads a transcript.
- ``GET /api/tools/actions`` lists recent tool actions for the caller.
- ``GET /api/oauth/connections``, ``POST /api/oauth/connect``,
  ``POST /api/oauth/disconnect`` manage provider connections;
  ``POST /api/oauth/validate-scopes`` checks a token against an operation.
"""

from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends
from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.responses import StreamingResponse

from saas_assistant.core.auth import UserSession
from saas_assistant.core.auth import refresh_token_from_request
from saas_assistant.core.chat import ChatAccessError
from saas_assistant.core.chat import ChatHandler
from saas_assistant.core.chat_export import JSON_FORMAT
from saas_assistant.core.chat_export import MARKDOWN_FORMAT
from saas_assistant.core.chat_export import export_document
from saas_assistant.core.chat_export import export_filename
from saas_assistant.core.chat_export import export_markdown
from saas_assistant.core.services import AppServices
from saas_assistant.core.services import get_services
from saas_assistant.models.chat import ChatRequest
from saas_assistant.services.analytics import track_error
from saas_assistant.services.http_client import ProviderError
from saas_assistant.utils.logger import generate_request_id
from saas_assistant.utils.logger import log_error
from saas_assistant.utils.logger import log_info


load_dotenv()

app = FastAPI(title="SaaS Assistant", version="0.1.0")

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def get_optional_user(
    request: Request,
    services: AppServices = Depends(get_services),
) -> Optional[UserSession]:
    return await services.sessions.from_request(request)


def _request_id(request: Request) -> str:
    request_id = generate_request_id()
    request.state.request_id = request_id
    return request_id


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict:
    return {"status": "ok"}


@app.post("/api/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    request_id = _request_id(request)
    user_id = user.user_id if user else None
    log_info("Chat request received", user_id=user_id, request_id=request_id, chat_id=body.id)

    if not body.messages:
        return _error("No messages provided", status.HTTP_400_BAD_REQUEST)

    handler = ChatHandler(services)
    try:
        turn = await handler.start_turn(body, user, request_id)
    except ChatAccessError:
        return _error("Forbidden", status.HTTP_403_FORBIDDEN)
    except Exception as exc:  # noqa: BLE001
        log_error("Error starting chat turn", user_id=user_id, request_id=request_id, error=repr(exc))
        track_error(exc, {"route": "/api/chat"}, user_id=user_id)
        return _error("An error occurred while processing your request", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return StreamingResponse(handler.stream(turn), media_type=NDJSON_MEDIA_TYPE)


@app.delete("/api/chat")
async def delete_chat(
    request: Request,
    id: Optional[str] = None,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if not id:
        return _error("Missing chat id", status.HTTP_400_BAD_REQUEST)
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)

    chat = await services.store.get_chat(id)
    if chat is None:
        return _error("Chat not found", status.HTTP_404_NOT_FOUND)
    if chat.user_id != user.user_id:
        log_info("Refused to delete another user's chat", user_id=user.user_id, chat_id=id)
        return _error("Forbidden", status.HTTP_403_FORBIDDEN)

    await services.store.delete_chat(id)
    return {"success": True, "message": "Chat deleted"}


@app.get("/api/chats")
async def list_chats(
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)
    chats = await services.store.list_chats(user.user_id)
    return {"chats": [chat.model_dump(mode="json", by_alias=True) for chat in chats]}


@app.get("/api/chats/{chat_id}/messages")
async def chat_messages(
    chat_id: str,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)
    chat = await services.store.get_chat(chat_id)
    if chat is None:
        return _error("Chat not found", status.HTTP_404_NOT_FOUND)
    if chat.user_id != user.user_id:
        return _error("Forbidden", status.HTTP_403_FORBIDDEN)
    messages = await services.store.get_messages(chat_id)
    return {"messages": [message.model_dump(mode="json", by_alias=True) for message in messages]}


@app.get("/api/chats/{chat_id}/export")
async def export_chat(
    chat_id: str,
    format: str = JSON_FORMAT,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)
    chat = await services.store.get_chat(chat_id)
    if chat is None:
        return _error("Chat not found", status.HTTP_404_NOT_FOUND)
    if chat.user_id != user.user_id:
        return _error("Forbidden", status.HTTP_403_FORBIDDEN)

    messages = await services.store.get_messages(chat_id)
    if format == MARKDOWN_FORMAT:
        return Response(
            content=export_markdown(chat, messages),
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{export_filename(chat, "md")}"'},
        )
    return JSONResponse(
        content=export_document(chat, messages),
        headers={"Content-Disposition": f'attachment; filename="{export_filename(chat, "json")}"'},
    )


@app.get("/api/tools/actions")
async def tool_actions(
    limit: int = 20,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)
    return {"actions": services.registry.history.get_recent(user.user_id, limit)}


@app.get("/api/oauth/connections")
async def oauth_connections(
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)
    connections = await services.connections.get_connections(user.user_id)
    return {"connections": connections}


@app.post("/api/oauth/connect")
async def oauth_connect(
    request: Request,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    payload: Dict[str, Any] = await _json_body(request)
    app_id = payload.get("appId")
    options = payload.get("options")
    if not app_id or not isinstance(options, dict) or not options.get("redirectUrl"):
        return _error("Missing required parameters", status.HTTP_400_BAD_REQUEST)

    refresh_token = refresh_token_from_request(request)
    if not refresh_token:
        return _error("No refresh token found", status.HTTP_401_UNAUTHORIZED)

    try:
        url = await services.connections.connect(user.user_id if user else None, app_id, options, refresh_token)
    except ProviderError as exc:
        log_error("Connect flow failed", provider=app_id, status=exc.status, error=exc.message)
        return _error(exc.message, exc.status or status.HTTP_500_INTERNAL_SERVER_ERROR)
    return {"url": url}


@app.post("/api/oauth/disconnect")
async def oauth_disconnect(
    request: Request,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Unauthorized", status.HTTP_401_UNAUTHORIZED)
    payload = await _json_body(request)
    provider_id = payload.get("providerId")
    if not provider_id:
        return _error("Provider ID is required", status.HTTP_400_BAD_REQUEST)

    result = await services.connections.disconnect(user.user_id, provider_id)
    if not result.get("success"):
        return _error(result.get("error") or "Failed to disconnect provider", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return {"success": True}


@app.post("/api/oauth/validate-scopes")
async def oauth_validate_scopes(
    request: Request,
    services: AppServices = Depends(get_services),
    user: Optional[UserSession] = Depends(get_optional_user),
):
    if user is None:
        return _error("Authentication required", status.HTTP_401_UNAUTHORIZED)
    payload = await _json_body(request)
    provider_id = payload.get("provider")
    operation = payload.get("operation")
    if not provider_id or not operation:
        return _error("Provider and operation are required", status.HTTP_400_BAD_REQUEST)

    try:
        token_error = await services.connections.validate_scopes(user.user_id, provider_id, operation)
    except ProviderError as exc:
        log_error("Scope validation failed", user_id=user.user_id, provider=provider_id, error=exc.message)
        return _error("Failed to validate scopes", status.HTTP_500_INTERNAL_SERVER_ERROR)
    if token_error is not None:
        content = token_error.model_dump(mode="json", by_alias=True, exclude_none=True)
        content["error"] = token_error.error
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=content)
    return {"success": True}


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for uncaught exceptions.

    Returns a 500 JSON error rather than crashing, and logs the error together
    with any request_id associated with the request.
    """

    request_id = getattr(request.state, "request_id", None)
    log_error("Unhandled exception", request_id=request_id, error=str(exc))
    track_error(exc, {"path": request.url.path})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )
