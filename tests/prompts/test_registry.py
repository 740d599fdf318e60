"""Tests for PromptRegistry resolution and versioning."""

import json
from pathlib import Path

import pytest

from sprout.config import SproutConfig
from sprout.errors import NotFoundError
from sprout.logging import JSONLLogger
from sprout.prompts import (
    DEFAULT_PROMPTS,
    DEFAULT_VERSION,
    OVERRIDE_VERSION,
    PromptCache,
    PromptRegistry,
    ResolvedPrompt,
)
from sprout.storage import JournalStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store(tmp_path: Path) -> JournalStore:
    store = JournalStore(tmp_path / "journal.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def prompts_dir(tmp_path: Path) -> Path:
    path = tmp_path / "prompts"
    path.mkdir()
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def event_logger(tmp_path: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=tmp_path / "logs")


@pytest.fixture
def registry(
    store: JournalStore, prompts_dir: Path, clock: FakeClock, event_logger: JSONLLogger
) -> PromptRegistry:
    return PromptRegistry(store, PromptCache(ttl=60, clock=clock), prompts_dir, event_logger)


class TestResolve:
    """Tests for the override -> stored -> default resolution order."""

    def test_default_when_nothing_stored(self, registry: PromptRegistry):
        resolved = registry.resolve("recorder")
        assert resolved.version == DEFAULT_VERSION
        assert resolved.prompt == DEFAULT_PROMPTS["recorder"]

    def test_enabled_version_beats_default(self, registry: PromptRegistry):
        registry.create_version("recorder", "v2", "stored prompt", enable_immediately=True)

        resolved = registry.resolve("recorder")
        assert resolved == ResolvedPrompt(prompt="stored prompt", version="v2")

    def test_disabled_version_ignored(self, registry: PromptRegistry):
        registry.create_version("recorder", "v2", "stored prompt")
        assert registry.resolve("recorder").version == DEFAULT_VERSION

    def test_override_file_beats_storage(self, registry: PromptRegistry, prompts_dir: Path):
        registry.create_version("expert", "v3", "stored prompt", enable_immediately=True)
        (prompts_dir / "expert.md").write_text("Local expert prompt\n")

        registry.clear_cache()
        resolved = registry.resolve("expert")

        assert resolved.version == OVERRIDE_VERSION
        assert resolved.prompt == "Local expert prompt"

    def test_override_front_matter_stripped(self, registry: PromptRegistry, prompts_dir: Path):
        (prompts_dir / "recorder.md").write_text("---\nnote: testing\n---\nBody only\n")
        assert registry.resolve("recorder").prompt == "Body only"

    def test_disabled_override_skipped(self, registry: PromptRegistry, prompts_dir: Path):
        (prompts_dir / "recorder.md").write_text("---\nenabled: false\n---\nIgnored\n")
        assert registry.resolve("recorder").version == DEFAULT_VERSION

    def test_empty_override_skipped(self, registry: PromptRegistry, prompts_dir: Path):
        (prompts_dir / "mentor.md").write_text("   \n")
        assert registry.resolve("mentor").version == DEFAULT_VERSION

    def test_unknown_agent(self, registry: PromptRegistry):
        with pytest.raises(ValueError):
            registry.resolve("critic")


class TestCaching:
    """Tests for cache behavior during resolution."""

    def test_cached_until_ttl(
        self, registry: PromptRegistry, store: JournalStore, clock: FakeClock
    ):
        """A write that bypasses the registry is seen only after expiry."""
        assert registry.resolve("recorder").version == DEFAULT_VERSION

        store.create_prompt_version("recorder", "v2", "direct", enable=True)
        clock.now = 30
        assert registry.resolve("recorder").version == DEFAULT_VERSION

        clock.now = 61
        assert registry.resolve("recorder").version == "v2"

    def test_create_invalidates(self, registry: PromptRegistry):
        registry.resolve("recorder")
        registry.create_version("recorder", "v2", "new", enable_immediately=True)
        assert registry.resolve("recorder").version == "v2"

    def test_enable_invalidates(self, registry: PromptRegistry):
        registry.create_version("expert", "v1", "one", enable_immediately=True)
        registry.create_version("expert", "v2", "two")
        assert registry.resolve("expert").version == "v1"

        registry.enable_version("expert", "v2")
        assert registry.resolve("expert").version == "v2"

    def test_dev_mode_ttl_shorter(self, tmp_path: Path):
        dev = SproutConfig(data_dir=tmp_path, dev_mode=True)
        prod = SproutConfig(data_dir=tmp_path)
        assert dev.prompt_cache_ttl < prod.prompt_cache_ttl


class TestVersions:
    """Tests for version management."""

    def test_at_most_one_enabled(self, registry: PromptRegistry):
        registry.create_version("recorder", "v1", "one", enable_immediately=True)
        registry.create_version("recorder", "v2", "two", enable_immediately=True)
        registry.enable_version("recorder", "v1")

        versions = registry.list_versions("recorder")
        assert [v.version for v in versions if v.enabled] == ["v1"]

    def test_list_newest_first(self, registry: PromptRegistry):
        registry.create_version("mentor", "a", "one")
        registry.create_version("mentor", "b", "two")
        assert [v.version for v in registry.list_versions("mentor")] == ["b", "a"]

    def test_list_is_idempotent(self, registry: PromptRegistry):
        registry.create_version("expert", "v1", "one", release_notes="first")
        registry.create_version("expert", "v2", "two", enable_immediately=True)

        first = registry.list_versions("expert")
        second = registry.list_versions("expert")

        assert first == second
        assert registry.resolve("expert").version == "v2"
        assert registry.list_versions("expert") == first

    def test_enable_unknown_version(self, registry: PromptRegistry):
        registry.create_version("recorder", "v1", "one", enable_immediately=True)
        with pytest.raises(NotFoundError):
            registry.enable_version("recorder", "missing")
        assert registry.resolve("recorder").version == "v1"

    def test_rejects_empty_prompt(self, registry: PromptRegistry):
        with pytest.raises(ValueError):
            registry.create_version("recorder", "v1", "   ")

    def test_enable_logged(self, registry: PromptRegistry, event_logger: JSONLLogger):
        registry.create_version("recorder", "v1", "one")
        registry.enable_version("recorder", "v1")

        lines = event_logger.log_path.read_text().strip().split("\n")
        event = json.loads(lines[-1])
        assert event["event"] == "prompt_version_enabled"
        assert event["agent"] == "recorder"
        assert event["prompt_version"] == "v1"
