"""Tests for ModelInvoker."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from sprout.agents import ModelInvoker
from sprout.errors import ConfigurationError
from sprout.logging import JSONLLogger
from sprout.prompts import ResolvedPrompt


def make_response(content: str | None, usage: MagicMock | None = None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = usage
    return response


@pytest.fixture
def registry() -> MagicMock:
    registry = MagicMock()
    registry.resolve.return_value = ResolvedPrompt(prompt="You are a test agent", version="v7")
    return registry


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_response('{"ok": true}'))
    return client


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def invoker(registry: MagicMock, client: MagicMock, sleep: AsyncMock) -> ModelInvoker:
    return ModelInvoker(registry, client=client, model="test-model", sleep=sleep)


class TestConstruction:
    """Tests for invoker setup."""

    def test_missing_api_key(self, registry: MagicMock, monkeypatch: pytest.MonkeyPatch):
        """Without a client or GROQ_API_KEY construction fails."""
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            ModelInvoker(registry)

    def test_agent_defaults(self, invoker: ModelInvoker):
        recorder = invoker.get_config("recorder")
        expert = invoker.get_config("expert")

        assert recorder.model == "test-model"
        assert (recorder.max_tokens, recorder.temperature) == (2000, 0.3)
        assert (expert.max_tokens, expert.temperature) == (3000, 0.5)

    def test_overrides_merge(self, invoker: ModelInvoker):
        config = invoker.get_config("recorder", {"temperature": 0.0})
        assert config.temperature == 0.0
        assert config.max_tokens == 2000


class TestInvoke:
    """Tests for a single structured call."""

    @pytest.mark.asyncio
    async def test_success(self, invoker: ModelInvoker, client: MagicMock):
        result = await invoker.invoke("recorder", "hello")

        assert result.success is True
        assert result.data == {"ok": True}
        assert result.prompt_version == "v7"

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["max_tokens"] == 2000
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [
            {"role": "system", "content": "You are a test agent"},
            {"role": "user", "content": "hello"},
        ]

    @pytest.mark.asyncio
    async def test_strips_code_fences(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.return_value = make_response(
            '```json\n{"tags": ["nap"]}\n```'
        )
        result = await invoker.invoke("recorder", "hello")
        assert result.data == {"tags": ["nap"]}

    @pytest.mark.asyncio
    async def test_usage_reported(self, invoker: ModelInvoker, client: MagicMock):
        usage = MagicMock(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        client.chat.completions.create.return_value = make_response('{"a": 1}', usage)

        result = await invoker.invoke("expert", "hello")
        assert result.usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_empty_body(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.return_value = make_response("   ")
        result = await invoker.invoke("recorder", "hello")

        assert result.success is False
        assert result.error_kind == "empty"

    @pytest.mark.asyncio
    async def test_not_json(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.return_value = make_response("Sure! Here you go")
        result = await invoker.invoke("recorder", "hello")
        assert result.error_kind == "parse"

    @pytest.mark.asyncio
    async def test_json_array_rejected(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.return_value = make_response("[1, 2]")
        result = await invoker.invoke("recorder", "hello")
        assert result.error_kind == "parse"

    @pytest.mark.asyncio
    async def test_transport_error(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.side_effect = RuntimeError("connection reset")
        result = await invoker.invoke("recorder", "hello")

        assert result.success is False
        assert result.error_kind == "transport"
        assert "connection reset" in result.error

    @pytest.mark.asyncio
    async def test_timeout(self, invoker: ModelInvoker, client: MagicMock):
        async def slow(**kwargs):
            await asyncio.sleep(1)
            return make_response('{"late": true}')

        client.chat.completions.create = slow
        result = await invoker.invoke("recorder", "hello", overrides={"timeout": 0.01})

        assert result.success is False
        assert result.error_kind == "timeout"

    @pytest.mark.asyncio
    async def test_prompt_resolution_failure(
        self, invoker: ModelInvoker, registry: MagicMock, client: MagicMock
    ):
        registry.resolve.side_effect = ValueError("Unknown agent: critic")
        result = await invoker.invoke("critic", "hello")

        assert result.success is False
        assert result.error_kind == "prompt"
        assert result.prompt_version == "error"
        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_logs_model_call(self, registry: MagicMock, client: MagicMock, tmp_path: Path):
        event_logger = JSONLLogger(log_dir=tmp_path)
        invoker = ModelInvoker(registry, client=client, event_logger=event_logger)

        await invoker.invoke("recorder", "hello")

        event = json.loads(event_logger.log_path.read_text().strip())
        assert event["event"] == "model_call"
        assert event["agent"] == "recorder"
        assert event["success"] is True
        assert event["prompt_version"] == "v7"


class TestInvokeWithRetry:
    """Tests for the retry wrapper."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(
        self, invoker: ModelInvoker, client: MagicMock, sleep: AsyncMock
    ):
        client.chat.completions.create.side_effect = [
            RuntimeError("down"),
            make_response("not json"),
            make_response('{"ok": 1}'),
        ]

        result = await invoker.invoke_with_retry("recorder", "hello", max_retries=2)

        assert result.success is True
        assert result.attempts == 3
        assert sleep.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_returns_last_failure_without_final_wait(
        self, invoker: ModelInvoker, client: MagicMock, sleep: AsyncMock
    ):
        client.chat.completions.create.side_effect = [
            RuntimeError("first"),
            RuntimeError("second"),
            make_response(""),
        ]

        result = await invoker.invoke_with_retry("recorder", "hello", max_retries=2)

        assert result.success is False
        assert result.error_kind == "empty"
        assert client.chat.completions.create.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_backoff_unit_scales(self, registry: MagicMock, client: MagicMock):
        sleep = AsyncMock()
        invoker = ModelInvoker(registry, client=client, retry_backoff=0.5, sleep=sleep)
        client.chat.completions.create.side_effect = RuntimeError("down")

        await invoker.invoke_with_retry("expert", "hello", max_retries=2)

        assert sleep.await_args_list == [call(0.5), call(1.0)]

    @pytest.mark.asyncio
    async def test_zero_retries(self, invoker: ModelInvoker, client: MagicMock, sleep: AsyncMock):
        client.chat.completions.create.side_effect = RuntimeError("down")

        result = await invoker.invoke_with_retry("recorder", "hello", max_retries=0)

        assert result.success is False
        assert client.chat.completions.create.await_count == 1
        sleep.assert_not_awaited()


class TestConverse:
    """Tests for free-text conversations."""

    @pytest.mark.asyncio
    async def test_message_layout(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.return_value = make_response(" Try a calm-down corner. ")

        result = await invoker.converse(
            "mentor",
            [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
            "what now?",
            context="## Current question",
        )

        assert result.success is True
        assert result.reply == "Try a calm-down corner."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["messages"][0] == {
            "role": "system",
            "content": "You are a test agent\n\n## Current question",
        }
        assert [m["role"] for m in kwargs["messages"]] == [
            "system", "user", "assistant", "user"
        ]
        assert kwargs["messages"][-1]["content"] == "what now?"

    @pytest.mark.asyncio
    async def test_failure(self, invoker: ModelInvoker, client: MagicMock):
        client.chat.completions.create.side_effect = RuntimeError("down")
        result = await invoker.converse("mentor", [], "hi")

        assert result.success is False
        assert result.error_kind == "transport"
