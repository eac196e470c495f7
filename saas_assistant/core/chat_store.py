"""Chat and message persistence.

``SupabaseChatStore`` talks to the ``chats`` and ``messages`` tables. The
Supabase client is synchronous, so every query runs in the default thread
pool. ``InMemoryChatStore`` backs local development and tests.

Supabase schema (must exist in the project):

    chats     id text pk, user_id text, title text, visibility text,
              created_at timestamptz
    messages  id text pk, chat_id text references chats(id) on delete cascade,
              role text, parts jsonb, attachments jsonb, created_at timestamptz
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar

from supabase import Client, create_client

from saas_assistant.config import Settings
from saas_assistant.models.chat import Chat, StoredMessage
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.chat_store")

T = TypeVar("T")

_ATTEMPTS = 3


class ChatStoreError(Exception):
    """Raised when the backing store keeps failing."""


class ChatStore:
    async def save_chat(self, chat: Chat) -> None:
        raise NotImplementedError

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        raise NotImplementedError

    async def list_chats(self, user_id: str, limit: int = 50) -> List[Chat]:
        raise NotImplementedError

    async def delete_chat(self, chat_id: str) -> bool:
        raise NotImplementedError

    async def save_messages(self, messages: List[StoredMessage]) -> None:
        raise NotImplementedError

    async def get_messages(self, chat_id: str) -> List[StoredMessage]:
        raise NotImplementedError


class InMemoryChatStore(ChatStore):
    def __init__(self) -> None:
        self._chats: Dict[str, Chat] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}

    async def save_chat(self, chat: Chat) -> None:
        self._chats.setdefault(chat.id, chat)

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        return self._chats.get(chat_id)

    async def list_chats(self, user_id: str, limit: int = 50) -> List[Chat]:
        chats = [chat for chat in self._chats.values() if chat.user_id == user_id]
        chats.sort(key=lambda chat: chat.created_at, reverse=True)
        return chats[:limit]

    async def delete_chat(self, chat_id: str) -> bool:
        self._messages.pop(chat_id, None)
        return self._chats.pop(chat_id, None) is not None

    async def save_messages(self, messages: List[StoredMessage]) -> None:
        for message in messages:
            bucket = self._messages.setdefault(message.chat_id, [])
            bucket[:] = [existing for existing in bucket if existing.id != message.id]
            bucket.append(message)

    async def get_messages(self, chat_id: str) -> List[StoredMessage]:
        return sorted(self._messages.get(chat_id, []), key=lambda message: message.created_at)


def _chat_row(chat: Chat) -> Dict[str, Any]:
    return {
        "id": chat.id,
        "user_id": chat.user_id,
        "title": chat.title,
        "visibility": chat.visibility,
        "created_at": chat.created_at.isoformat(),
    }


def _message_row(message: StoredMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "chat_id": message.chat_id,
        "role": message.role.value,
        "parts": message.parts,
        "attachments": message.attachments,
        "created_at": message.created_at.isoformat(),
    }


class SupabaseChatStore(ChatStore):
    def __init__(self, client: Client) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseChatStore":
        return cls(create_client(settings.supabase_url, settings.supabase_key))

    async def _run(self, description: str, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        for attempt in range(_ATTEMPTS):
            try:
                return await loop.run_in_executor(None, fn)
            except Exception as exc:  # noqa: BLE001
                if attempt < _ATTEMPTS - 1:
                    await asyncio.sleep(0.1 * (2 ** attempt))
                    continue
                logger.error("Error %s after %d attempts: %r", description, _ATTEMPTS, exc)
                raise ChatStoreError(f"Error {description}") from exc
        raise ChatStoreError(f"Error {description}")

    async def save_chat(self, chat: Chat) -> None:
        row = _chat_row(chat)

        def _upsert() -> None:
            self.client.table("chats").upsert(row, on_conflict="id", ignore_duplicates=True).execute()

        await self._run("saving chat", _upsert)

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        def _select() -> List[Dict[str, Any]]:
            resp = self.client.table("chats").select("*").eq("id", chat_id).limit(1).execute()
            return getattr(resp, "data", None) or []

        rows = await self._run("fetching chat", _select)
        return Chat.model_validate(rows[0]) if rows else None

    async def list_chats(self, user_id: str, limit: int = 50) -> List[Chat]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self.client.table("chats")
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            return getattr(resp, "data", None) or []

        rows = await self._run("listing chats", _select)
        return [Chat.model_validate(row) for row in rows]

    async def delete_chat(self, chat_id: str) -> bool:
        def _delete() -> List[Dict[str, Any]]:
            self.client.table("messages").delete().eq("chat_id", chat_id).execute()
            resp = self.client.table("chats").delete().eq("id", chat_id).execute()
            return getattr(resp, "data", None) or []

        return bool(await self._run("deleting chat", _delete))

    async def save_messages(self, messages: List[StoredMessage]) -> None:
        if not messages:
            return
        rows = [_message_row(message) for message in messages]

        def _upsert() -> None:
            self.client.table("messages").upsert(rows, on_conflict="id").execute()

        await self._run("saving messages", _upsert)

    async def get_messages(self, chat_id: str) -> List[StoredMessage]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self.client.table("messages")
                .select("*")
                .eq("chat_id", chat_id)
                .order("created_at")
                .execute()
            )
            return getattr(resp, "data", None) or []

        rows = await self._run("fetching messages", _select)
        return [StoredMessage.model_validate(row) for row in rows]


def build_chat_store(settings: Settings) -> ChatStore:
    if settings.has_supabase:
        return SupabaseChatStore.from_settings(settings)
    logger.warning(
        "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY/ANON_KEY are not fully configured; "
        "chats are kept in memory only."
    )
    return InMemoryChatStore()
