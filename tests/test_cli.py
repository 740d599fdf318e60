"""Tests for the sprout CLI."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from sprout.cli import create_parser, run_cli
from sprout.config import SproutConfig
from sprout.journal import Journal

CARD = {
    "oneLine": "Refused nap",
    "events": [{"type": "sleep", "description": "no nap"}],
    "tags": ["sleep", "nap"],
    "missingInfo": [],
}
ANALYSIS = {
    "interpretation": "Common at this age",
    "suggestions": [{"category": "action", "content": "quiet time", "priority": "low"}],
    "riskFlags": [],
}


def make_response(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = None
    return response


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def journal(tmp_path: Path, client: MagicMock) -> Journal:
    journal = Journal(SproutConfig(data_dir=tmp_path), client=client, sleep=AsyncMock())
    yield journal
    journal.close()


class TestParser:
    """Tests for argument parsing."""

    def test_entry_add_defaults(self):
        args = create_parser().parse_args(["entry", "add", "No nap"])
        assert args.command == "entry"
        assert args.action == "add"
        assert args.age is None

    def test_rejects_unknown_agent(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["prompt", "show", "critic"])

    def test_no_command_prints_help(self, capsys):
        assert run_cli([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_missing_action(self, journal: Journal, capsys):
        assert run_cli(["entry"], journal=journal) == 1
        assert "Error" in capsys.readouterr().out


class TestEntryCommands:
    """Tests for 'sprout entry'."""

    def test_add_show_list(self, journal: Journal, client: MagicMock, capsys):
        client.chat.completions.create.side_effect = [
            make_response(json.dumps(CARD)), make_response(json.dumps(ANALYSIS))
        ]

        assert run_cli(["entry", "add", "She skipped her nap", "--date", "2024-03-01"],
                       journal=journal) == 0
        out = capsys.readouterr().out
        assert "recorder: ok (default)" in out
        assert "Refused nap" in out

        assert run_cli(["entry", "show", "1"], journal=journal) == 0
        assert "Common at this age" in capsys.readouterr().out

        assert run_cli(["entry", "list", "--tag", "nap"], journal=journal) == 0
        assert "2024-03-01" in capsys.readouterr().out

    def test_add_recorder_failure(self, journal: Journal, client: MagicMock, capsys):
        client.chat.completions.create.return_value = make_response("nope")

        assert run_cli(["entry", "add", "text", "--date", "2024-03-01"], journal=journal) == 1
        out = capsys.readouterr().out
        assert "expert: skipped" in out
        assert "Error: Recorder failed" in out

    def test_add_bad_date(self, journal: Journal, capsys):
        assert run_cli(["entry", "add", "text", "--date", "yesterday"], journal=journal) == 1
        assert "Error:" in capsys.readouterr().out

    def test_show_missing(self, journal: Journal, capsys):
        assert run_cli(["entry", "show", "42"], journal=journal) == 1


class TestQuestionCommands:
    """Tests for 'sprout question'."""

    def test_observe_moves_stage(self, journal: Journal, capsys):
        run_cli(["question", "add", "Screen time?"], journal=journal)
        for text in ("watched", "asked again", "tried a timer"):
            run_cli(["question", "observe", "1", text], journal=journal)

        assert "moved to: experimenting" in capsys.readouterr().out

        assert run_cli(["question", "show", "1"], journal=journal) == 0
        out = capsys.readouterr().out
        assert "Stage: experimenting" in out
        assert "tried a timer" in out

    def test_stage_command(self, journal: Journal, capsys):
        run_cli(["question", "add", "Biting?"], journal=journal)
        assert run_cli(["question", "stage", "1", "internalized"], journal=journal) == 0
        assert "now internalized" in capsys.readouterr().out

    def test_unknown_question(self, journal: Journal, capsys):
        assert run_cli(["question", "observe", "9", "hi"], journal=journal) == 1
        assert "Question not found: 9" in capsys.readouterr().out

    def test_discuss_accept(self, journal: Journal, client: MagicMock, capsys):
        client.chat.completions.create.return_value = make_response(
            "Conclusion: screens after dinner only"
        )
        run_cli(["question", "add", "Screen time?"], journal=journal)

        assert run_cli(["question", "discuss", "1", "ideas?", "--accept"], journal=journal) == 0
        assert journal.get_question(1).question.current_conclusion == "screens after dinner only"


class TestPromptAndStrategyCommands:
    """Tests for 'sprout prompt' and 'sprout strategy'."""

    def test_create_enable_show(self, journal: Journal, tmp_path: Path, capsys):
        prompt_file = tmp_path / "recorder_v2.md"
        prompt_file.write_text("New recorder prompt")

        assert run_cli(["prompt", "create", "recorder", "v2", str(prompt_file)],
                       journal=journal) == 0
        assert run_cli(["prompt", "enable", "recorder", "v2"], journal=journal) == 0
        assert run_cli(["prompt", "show", "recorder"], journal=journal) == 0

        out = capsys.readouterr().out
        assert "# recorder (v2)" in out
        assert "New recorder prompt" in out

    def test_enable_unknown_version(self, journal: Journal, capsys):
        assert run_cli(["prompt", "enable", "expert", "v9"], journal=journal) == 1
        assert "Error:" in capsys.readouterr().out

    def test_strategy_add_list(self, journal: Journal, capsys):
        run_cli(["strategy", "add", "sleep", "Dim the lights", "--conditions", "at bedtime"],
                journal=journal)
        assert run_cli(["strategy", "list", "--category", "sleep"], journal=journal) == 0
        assert "Dim the lights (when: at bedtime)" in capsys.readouterr().out


class TestChatCommand:
    """Tests for 'sprout chat'."""

    def test_chat_keeps_history_file(
        self, journal: Journal, client: MagicMock, tmp_path: Path, capsys
    ):
        client.chat.completions.create.return_value = make_response("Keep naps short.")
        history_file = tmp_path / "chat.json"

        assert run_cli(["chat", "Should she still nap?", "--history", str(history_file)],
                       journal=journal) == 0
        assert "Keep naps short." in capsys.readouterr().out

        assert run_cli(["chat", "How short?", "--history", str(history_file)],
                       journal=journal) == 0
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["content"] for m in messages[1:]] == [
            "Should she still nap?", "Keep naps short.", "How short?"
        ]
        assert len(json.loads(history_file.read_text())) == 4

    def test_chat_model_failure(self, journal: Journal, client: MagicMock, capsys):
        client.chat.completions.create.return_value = make_response("   ")

        assert run_cli(["chat", "hello"], journal=journal) == 1
        assert "Error: Empty response" in capsys.readouterr().out

    def test_chat_bad_history(self, journal: Journal, tmp_path: Path, capsys):
        history_file = tmp_path / "chat.json"
        history_file.write_text('{"role": "user"}')

        assert run_cli(["chat", "hi", "--history", str(history_file)], journal=journal) == 1
        assert "must be a JSON list" in capsys.readouterr().out
