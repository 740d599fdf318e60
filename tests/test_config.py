"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from sprout.config import (
    DEFAULT_MODEL,
    SproutConfig,
    config_from_env,
    load_config,
    save_config,
)


class TestSproutConfig:
    """Tests for the SproutConfig dataclass."""

    def test_paths_derived_from_data_dir(self, tmp_path: Path) -> None:
        config = SproutConfig(data_dir=tmp_path)

        assert config.db_path == tmp_path / "journal.db"
        assert config.prompts_dir == tmp_path / "prompts"
        assert config.log_dir == tmp_path / "logs"

    def test_defaults(self) -> None:
        config = SproutConfig()

        assert config.model == DEFAULT_MODEL
        assert config.max_retries == 2
        assert config.retrieval_limit == 6
        assert config.prompt_cache_ttl == 60.0

    def test_dev_mode_ttl(self) -> None:
        assert SproutConfig(dev_mode=True).prompt_cache_ttl == 5.0

    def test_rejects_negative_retries(self) -> None:
        with pytest.raises(ValueError, match="max_retries"):
            SproutConfig(max_retries=-1)


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "missing.json")
        assert config.model == DEFAULT_MODEL

    def test_invalid_json_falls_back(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json")

        config = load_config(path)
        assert config.max_retries == 2

    def test_reads_sprout_section(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "sprout": {
                "data_dir": str(tmp_path / "data"),
                "model": "other-model",
                "max_retries": 4,
                "dev_mode": True,
            }
        }))

        config = load_config(path)

        assert config.model == "other-model"
        assert config.max_retries == 4
        assert config.dev_mode is True
        assert config.db_path == tmp_path / "data" / "journal.db"

    def test_wrong_types_fall_back_per_field(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "sprout": {"max_retries": "lots", "request_timeout": -3, "model": "kept"}
        }))

        config = load_config(path)

        assert config.max_retries == 2
        assert config.request_timeout == 60.0
        assert config.model == "kept"

    def test_save_roundtrip(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        save_config(SproutConfig(data_dir=tmp_path, retrieval_limit=8), path)

        data = json.loads(path.read_text())
        assert data["sprout"]["retrieval_limit"] == 8
        assert "model" not in data["sprout"]
        assert load_config(path).retrieval_limit == 8


class TestConfigFromEnv:
    """Tests for environment overrides."""

    def test_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPROUT_MODEL", "env-model")
        monkeypatch.setenv("SPROUT_DB_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("SPROUT_REQUEST_TIMEOUT", "12.5")
        monkeypatch.setenv("SPROUT_ENV", "development")

        config = config_from_env(SproutConfig(data_dir=tmp_path))

        assert config.model == "env-model"
        assert config.db_path == tmp_path / "env.db"
        assert config.request_timeout == 12.5
        assert config.dev_mode is True

    def test_invalid_timeout_ignored(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SPROUT_ENV", raising=False)
        monkeypatch.setenv("SPROUT_REQUEST_TIMEOUT", "soon")

        config = config_from_env(SproutConfig(data_dir=tmp_path))

        assert config.request_timeout == 60.0
        assert config.dev_mode is False

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_timeout_ignored(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("SPROUT_REQUEST_TIMEOUT", value)

        config = config_from_env(SproutConfig(data_dir=tmp_path))

        assert config.request_timeout == 60.0
