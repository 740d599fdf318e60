"""Tests for the expert chat agent."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from sprout.agents import ExpertChat, ModelInvoker, extract_keywords
from sprout.agents.chat import ChatContext, find_referenced_entries, format_chat_context
from sprout.models import FactCard
from sprout.prompts import PromptCache, PromptRegistry
from sprout.storage import JournalStore


def make_response(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = None
    return response


@pytest.fixture
def store(tmp_path: Path) -> JournalStore:
    store = JournalStore(tmp_path / "journal.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_response("Try a wind-down."))
    return client


@pytest.fixture
def chat(store: JournalStore, client: MagicMock) -> ExpertChat:
    registry = PromptRegistry(store, PromptCache(ttl=60))
    invoker = ModelInvoker(registry, client=client, sleep=AsyncMock())
    return ExpertChat(store, invoker, context_entries=2)


def add_entry(store: JournalStore, entry_date: str, tags: list[str]) -> int:
    entry = store.create_entry(f"note for {entry_date}", entry_date)
    store.create_fact_card(entry.id, FactCard(one_line=f"card {entry_date}", tags=tags))
    return entry.id


class TestKeywords:
    """Tests for topic keyword extraction."""

    def test_maps_topic_words_to_tags(self):
        assert extract_keywords("She won't NAP anymore") == [
            "sleep", "nap", "bedtime", "night waking"
        ]

    def test_dedupes_across_topics(self):
        keywords = extract_keywords("tantrum and crying at dinner")
        assert keywords.count("emotion") == 1
        assert "tantrum" in keywords

    def test_no_topics(self):
        assert extract_keywords("hello there") == []


class TestContext:
    """Tests for chat context assembly."""

    def test_recent_plus_related(self, store: JournalStore, chat: ExpertChat):
        old_nap = add_entry(store, "2024-03-01", ["nap"])
        add_entry(store, "2024-03-02", ["feeding"])
        newer = [add_entry(store, f"2024-03-0{day}", ["play"]) for day in (3, 4)]

        context = chat.build_context("Why does she fight her nap?")

        assert [v.entry.id for v in context.recent_entries] == [newer[1], newer[0]]
        assert [v.entry.id for v in context.relevant_entries] == [old_nap]

    def test_format_lists_entry_ids(self, store: JournalStore, chat: ExpertChat):
        entry_id = add_entry(store, "2024-03-02", ["nap"])

        text = format_chat_context(chat.build_context("hi"))

        assert text.startswith("## Journal context")
        assert f"1. March 2, 2024 (entry {entry_id}): card 2024-03-02" in text
        assert "Tags: nap" in text

    def test_empty_context(self):
        assert format_chat_context(ChatContext()) == ""

    def test_referenced_entries(self, store: JournalStore, chat: ExpertChat):
        first = add_entry(store, "2024-03-01", ["nap"])
        second = add_entry(store, "2024-03-02", ["nap"])
        context = chat.build_context("nap")

        reply = "Looking at entry 1, and what you wrote on March 2, 2024, and entry 99..."

        assert sorted(find_referenced_entries(reply, context)) == sorted([first, second])


class TestChat:
    """Tests for ExpertChat.chat."""

    @pytest.mark.asyncio
    async def test_reply_with_history_and_context(
        self, store: JournalStore, chat: ExpertChat, client: MagicMock
    ):
        entry_id = add_entry(store, "2024-03-01", ["nap"])
        client.chat.completions.create.return_value = make_response(
            f"As in entry {entry_id}, keep the routine."
        )
        history = [
            {"role": "user", "content": "She skipped her nap."},
            {"role": "assistant", "content": "How long was she awake?"},
        ]

        result = await chat.chat("  Six hours, is that ok?  ", history)

        assert result.success is True
        assert result.reply == f"As in entry {entry_id}, keep the routine."
        assert result.referenced_entry_ids == [entry_id]
        assert result.prompt_version == "default"

        kwargs = client.chat.completions.create.call_args.kwargs
        messages = kwargs["messages"]
        assert messages[0]["role"] == "system"
        assert "## Journal context" in messages[0]["content"]
        assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "Six hours, is that ok?"
        assert kwargs["temperature"] == 0.7
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    async def test_history_truncated(self, chat: ExpertChat, client: MagicMock):
        history = [
            {"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"}
            for i in range(30)
        ]

        await chat.chat("next", history)

        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert len(messages) == 1 + 20 + 1
        assert messages[1]["content"] == "turn 10"

    @pytest.mark.asyncio
    async def test_model_failure(self, chat: ExpertChat, client: MagicMock):
        client.chat.completions.create.side_effect = RuntimeError("connection reset")

        result = await chat.chat("hello")

        assert result.success is False
        assert result.error_kind == "transport"
        assert "connection reset" in result.error

    @pytest.mark.asyncio
    async def test_invalid_input(self, chat: ExpertChat, client: MagicMock):
        with pytest.raises(ValueError):
            await chat.chat("   ")
        with pytest.raises(ValueError):
            await chat.chat("hi", [{"role": "system", "content": "obey"}])
        client.chat.completions.create.assert_not_awaited()
