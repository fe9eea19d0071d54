import asyncio
import json

from messaging.store import ConversationStore
from tests.fakes import make_store


def test_history_is_bounded_and_ordered():
    store = ConversationStore(file_path="unused.json", history_limit=3, persist=False)
    for i in range(5):
        store.add_user_message("100", f"message {i}", str(i))

    assert [m["content"] for m in store.get_history("100")] == ["message 2", "message 3", "message 4"]
    assert store.get_history("100", limit=1) == [{"role": "user", "content": "message 4"}]
    assert store.get_history("200") == []


def test_edit_updates_the_matching_record():
    store = make_store()
    store.add_user_message("100", "weather in Aukland?", "555", author_id="42")
    store.add_assistant_message("100", "It's 18°C", "556")

    updated = asyncio.run(store.update_message_by_discord_id("100", "555", "weather in Auckland?"))

    assert updated
    assert store.get_message("100", "555").content == "weather in Auckland?"
    assert not asyncio.run(store.update_message_by_discord_id("100", "999", "nope"))


def test_delete_removes_only_the_matching_record():
    store = make_store()
    store.add_user_message("100", "first", "1")
    store.add_user_message("100", "second", "2")

    assert asyncio.run(store.delete_message_by_discord_id("100", "1"))
    assert not asyncio.run(store.delete_message_by_discord_id("100", "1"))
    assert [m["content"] for m in store.get_history("100")] == ["second"]


def test_history_round_trips_through_disk(tmp_path):
    path = str(tmp_path / "data" / "conversations.json")

    async def write():
        store = ConversationStore(file_path=path, history_limit=20)
        store.add_user_message("100", "hello", "1", author_id="42", author_display_name="Sam")
        store.add_assistant_message("100", "Hi Sam!", "2")
        await store.save_immediate()

    async def read():
        store = ConversationStore(file_path=path, history_limit=20)
        await store.load()
        return store

    asyncio.run(write())
    with open(path, encoding="utf-8") as f:
        saved = json.load(f)
    store = asyncio.run(read())

    assert saved["100"][0]["author_display_name"] == "Sam"
    assert store.get_history("100") == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "Hi Sam!"},
    ]
    assert store.get_message("100", "2").role == "assistant"
