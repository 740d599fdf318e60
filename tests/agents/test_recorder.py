"""Tests for the recorder stage."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sprout.agents import AgentCallResult, Recorder
from sprout.agents.recorder import build_recorder_message

VALID_CARD = {
    "oneLine": "Refused nap",
    "events": [{"type": "sleep", "description": "no nap"}],
    "tags": ["sleep", "nap"],
    "missingInfo": [],
}


@pytest.fixture
def invoker() -> MagicMock:
    invoker = MagicMock()
    invoker.invoke_with_retry = AsyncMock(
        return_value=AgentCallResult(success=True, prompt_version="default", data=VALID_CARD)
    )
    return invoker


class TestBuildMessage:
    """Tests for the recorder user message."""

    def test_sections(self):
        message = build_recorder_message("No nap today", "2024-03-01", "2y3m")

        assert "## Entry date\n2024-03-01" in message
        assert "## Child age\n2y3m" in message
        assert "## Raw entry\nNo nap today" in message
        assert message.index("## Entry date") < message.index("## Raw entry")

    def test_age_omitted(self):
        assert "## Child age" not in build_recorder_message("text", "2024-03-01")


class TestRecord:
    """Tests for Recorder.record."""

    @pytest.mark.asyncio
    async def test_success(self, invoker: MagicMock):
        recorder = Recorder(invoker, max_retries=1)
        result = await recorder.record("No nap today", "2024-03-01")

        assert result.success is True
        assert result.value.tags == ["sleep", "nap"]
        assert result.prompt_version == "default"
        args, kwargs = invoker.invoke_with_retry.call_args
        assert args[0] == "recorder"
        assert kwargs["max_retries"] == 1

    @pytest.mark.asyncio
    async def test_model_failure(self, invoker: MagicMock):
        invoker.invoke_with_retry.return_value = AgentCallResult(
            success=False, error="Model call failed: down", error_kind="transport"
        )
        result = await Recorder(invoker).record("text", "2024-03-01")

        assert result.success is False
        assert result.error_kind == "model"
        assert "down" in result.error

    @pytest.mark.asyncio
    async def test_validation_failure(self, invoker: MagicMock):
        invoker.invoke_with_retry.return_value = AgentCallResult(
            success=True, prompt_version="v2", data={**VALID_CARD, "oneLine": "x" * 150}
        )
        result = await Recorder(invoker).record("text", "2024-03-01")

        assert result.success is False
        assert result.error_kind == "validation"
        assert result.error.startswith("Invalid FactCard format:")
        assert result.prompt_version == "v2"
