"""Configuration loader.

Loads settings from ~/.sprout/config.json and applies environment
variable overrides on top.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".sprout"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.json"
DEFAULT_MODEL = "llama-3.1-70b-versatile"

DEV_PROMPT_CACHE_TTL = 5.0
PROMPT_CACHE_TTL = 60.0


@dataclass
class SproutConfig:
    """Configuration for the journal.

    Attributes:
        data_dir: Base directory for everything Sprout writes.
        db_path: SQLite database file (data_dir/journal.db if None).
        prompts_dir: Directory of <agent>.md prompt override files
            (data_dir/prompts if None).
        log_dir: Directory for JSONL pipeline logs (data_dir/logs if None).
        model: Default model for every agent.
        request_timeout: Deadline in seconds for a single model call.
        max_retries: Extra attempts after a failed model call.
        retry_backoff: Base backoff unit in seconds between attempts.
        retrieval_limit: Total history entries handed to the expert.
        dev_mode: Use the short prompt cache TTL.
    """

    data_dir: Path = DEFAULT_DATA_DIR
    db_path: Path | None = None
    prompts_dir: Path | None = None
    log_dir: Path | None = None
    model: str = DEFAULT_MODEL
    request_timeout: float = 60.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    retrieval_limit: int = 6
    dev_mode: bool = False

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        self.data_dir = Path(self.data_dir).expanduser()
        if self.db_path is None:
            self.db_path = self.data_dir / "journal.db"
        if self.prompts_dir is None:
            self.prompts_dir = self.data_dir / "prompts"
        if self.log_dir is None:
            self.log_dir = self.data_dir / "logs"

        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retrieval_limit < 0:
            raise ValueError("retrieval_limit cannot be negative")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    @property
    def prompt_cache_ttl(self) -> float:
        """Seconds a resolved prompt stays cached."""
        return DEV_PROMPT_CACHE_TTL if self.dev_mode else PROMPT_CACHE_TTL


def load_config(config_path: Path | None = None) -> SproutConfig:
    """Load SproutConfig from a JSON file.

    The config file should have this structure:
    ```json
    {
      "sprout": {
        "data_dir": "~/.sprout",
        "model": "llama-3.1-70b-versatile",
        "request_timeout": 60,
        "max_retries": 2,
        "retrieval_limit": 6,
        "dev_mode": false
      }
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.

    Returns:
        SproutConfig instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return SproutConfig()

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        return SproutConfig()
    except OSError as e:
        logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        return SproutConfig()

    if not isinstance(data, dict):
        logger.warning("Config in %s is not an object. Using defaults.", path)
        return SproutConfig()

    return _parse_config(data)


def _number(value: Any, default: float, minimum: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        return default
    return float(value)


def _integer(value: Any, default: int, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        return default
    return value


def _path(value: Any) -> Path | None:
    if isinstance(value, str) and value.strip():
        return Path(value).expanduser()
    return None


def _parse_config(data: dict[str, Any]) -> SproutConfig:
    """Parse config dictionary into SproutConfig.

    Wrongly typed values fall back to their defaults.
    """
    section = data.get("sprout", {})
    if not isinstance(section, dict):
        section = {}

    defaults = SproutConfig()

    model = section.get("model")
    if not isinstance(model, str) or not model.strip():
        model = defaults.model

    dev_mode = section.get("dev_mode", False)
    if not isinstance(dev_mode, bool):
        dev_mode = False

    return SproutConfig(
        data_dir=_path(section.get("data_dir")) or DEFAULT_DATA_DIR,
        db_path=_path(section.get("db_path")),
        prompts_dir=_path(section.get("prompts_dir")),
        log_dir=_path(section.get("log_dir")),
        model=model.strip(),
        request_timeout=_number(section.get("request_timeout"), defaults.request_timeout, 0.001),
        max_retries=_integer(section.get("max_retries"), defaults.max_retries, 0),
        retry_backoff=_number(section.get("retry_backoff"), defaults.retry_backoff, 0),
        retrieval_limit=_integer(section.get("retrieval_limit"), defaults.retrieval_limit, 0),
        dev_mode=dev_mode,
    )


def config_from_env(config: SproutConfig | None = None) -> SproutConfig:
    """Apply environment variable overrides to a config.

    Recognized variables: SPROUT_MODEL, SPROUT_DB_PATH, SPROUT_PROMPTS_DIR,
    SPROUT_REQUEST_TIMEOUT and SPROUT_ENV ('development' enables dev mode).
    """
    config = config or SproutConfig()

    if os.getenv("SPROUT_MODEL"):
        config.model = os.environ["SPROUT_MODEL"]
    if os.getenv("SPROUT_DB_PATH"):
        config.db_path = Path(os.environ["SPROUT_DB_PATH"]).expanduser()
    if os.getenv("SPROUT_PROMPTS_DIR"):
        config.prompts_dir = Path(os.environ["SPROUT_PROMPTS_DIR"]).expanduser()
    if os.getenv("SPROUT_REQUEST_TIMEOUT"):
        try:
            timeout = float(os.environ["SPROUT_REQUEST_TIMEOUT"])
        except ValueError:
            timeout = 0.0
        if timeout > 0:
            config.request_timeout = timeout
        else:
            logger.warning("Ignoring invalid SPROUT_REQUEST_TIMEOUT")
    if os.getenv("SPROUT_ENV", "").lower() == "development":
        config.dev_mode = True

    return config


def save_config(config: SproutConfig, config_path: Path | None = None) -> None:
    """Save SproutConfig to a JSON file, writing only non-default values.

    Args:
        config: The config to save.
        config_path: Path to write to. Uses DEFAULT_CONFIG_PATH if None.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    path.parent.mkdir(parents=True, exist_ok=True)

    defaults = SproutConfig(data_dir=config.data_dir)
    section: dict[str, Any] = {}

    if config.data_dir != DEFAULT_DATA_DIR:
        section["data_dir"] = str(config.data_dir)
    for name in ("db_path", "prompts_dir", "log_dir"):
        value = getattr(config, name)
        if value != getattr(defaults, name):
            section[name] = str(value)
    for name in ("model", "request_timeout", "max_retries", "retry_backoff",
                 "retrieval_limit", "dev_mode"):
        value = getattr(config, name)
        if value != getattr(defaults, name):
            section[name] = value

    data: dict[str, Any] = {"sprout": section} if section else {}

    try:
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise
