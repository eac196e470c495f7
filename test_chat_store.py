import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from saas_assistant.config import Settings
from saas_assistant.core.chat_store import (
    ChatStoreError,
    InMemoryChatStore,
    SupabaseChatStore,
    build_chat_store,
)
from saas_assistant.models.chat import Chat, MessageRole, StoredMessage


T0 = datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc)


def _message(message_id, text, offset=0):
    return StoredMessage(
        id=message_id,
        chat_id="c1",
        role=MessageRole.USER,
        parts=[{"type": "text", "text": text}],
        created_at=T0 + timedelta(seconds=offset),
    )


class TestInMemoryChatStore(unittest.TestCase):
    def test_chat_lifecycle(self):
        store = InMemoryChatStore()

        async def run():
            await store.save_chat(Chat(id="c1", user_id="u1", title="First", created_at=T0))
            await store.save_chat(Chat(id="c1", user_id="u1", title="Renamed"))
            await store.save_chat(Chat(id="c2", user_id="u1", created_at=T0 + timedelta(hours=1)))
            await store.save_chat(Chat(id="c3", user_id="u2"))
            listed = await store.list_chats("u1")
            first = await store.get_chat("c1")
            deleted = await store.delete_chat("c1")
            deleted_again = await store.delete_chat("c1")
            return listed, first, deleted, deleted_again

        listed, first, deleted, deleted_again = asyncio.run(run())
        self.assertEqual([chat.id for chat in listed], ["c2", "c1"])
        self.assertEqual(first.title, "First")
        self.assertTrue(deleted)
        self.assertFalse(deleted_again)

    def test_messages_are_upserted_and_ordered(self):
        store = InMemoryChatStore()

        async def run():
            await store.save_messages([_message("m2", "second", 5), _message("m1", "first", 0)])
            await store.save_messages([_message("m2", "second, edited", 5)])
            return await store.get_messages("c1")

        messages = asyncio.run(run())
        self.assertEqual([message.text() for message in messages], ["first", "second, edited"])


class TestSupabaseChatStore(unittest.TestCase):
    def test_get_chat_reads_snake_case_rows(self):
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value.data = [
            {"id": "c1", "user_id": "u1", "title": "Hello", "created_at": "2024-03-13T10:00:00+00:00"}
        ]

        chat = asyncio.run(SupabaseChatStore(client).get_chat("c1"))

        client.table.assert_called_with("chats")
        self.assertEqual(chat.user_id, "u1")
        self.assertEqual(chat.created_at, T0)

    def test_missing_chat(self):
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value.data = []
        self.assertIsNone(asyncio.run(SupabaseChatStore(client).get_chat("nope")))

    def test_save_messages_upserts_rows(self):
        client = MagicMock()
        asyncio.run(SupabaseChatStore(client).save_messages([_message("m1", "hi")]))

        rows = client.table.return_value.upsert.call_args.args[0]
        self.assertEqual(rows[0]["chat_id"], "c1")
        self.assertEqual(rows[0]["role"], "user")
        self.assertEqual(client.table.return_value.upsert.call_args.kwargs, {"on_conflict": "id"})

    def test_retries_then_raises(self):
        client = MagicMock()
        execute = client.table.return_value.upsert.return_value.execute
        execute.side_effect = RuntimeError("connection reset")

        with self.assertRaises(ChatStoreError):
            asyncio.run(SupabaseChatStore(client).save_chat(Chat(id="c1", user_id="u1")))
        self.assertEqual(execute.call_count, 3)

    def test_transient_failure_recovers(self):
        client = MagicMock()
        execute = client.table.return_value.upsert.return_value.execute
        execute.side_effect = [RuntimeError("blip"), MagicMock()]

        asyncio.run(SupabaseChatStore(client).save_chat(Chat(id="c1", user_id="u1")))
        self.assertEqual(execute.call_count, 2)


class TestBuildChatStore(unittest.TestCase):
    def test_falls_back_to_memory(self):
        self.assertIsInstance(build_chat_store(Settings()), InMemoryChatStore)


if __name__ == "__main__":
    unittest.main()
