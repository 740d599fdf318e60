"""Prompt registry: resolves and versions agent system prompts.

Resolution order, first hit wins:
1. Override file <prompts_dir>/<agent>.md, for fast local iteration
2. The latest enabled version stored in the database
3. The built-in default prompt
"""

import logging
from pathlib import Path
from typing import Any

import frontmatter

from ..logging import JSONLLogger
from ..models import AgentPrompt
from ..storage import JournalStore
from .cache import PromptCache, ResolvedPrompt
from .defaults import AGENT_NAMES, get_default_prompt

logger = logging.getLogger(__name__)

OVERRIDE_VERSION = "override"
DEFAULT_VERSION = "default"


def _is_enabled(value: Any) -> bool:
    """Interpret an 'enabled' front matter value, defaulting to True."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower().strip() not in ("false", "no", "0", "off")
    return True


class PromptRegistry:
    """Resolves the active prompt for each agent and manages versions."""

    def __init__(
        self,
        store: JournalStore,
        cache: PromptCache,
        prompts_dir: Path | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Durable store holding prompt versions.
            cache: Cache for resolved prompts.
            prompts_dir: Optional directory of override files.
            event_logger: Optional JSONL logger for version changes.
        """
        self.store = store
        self.cache = cache
        self.prompts_dir = prompts_dir
        self.event_logger = event_logger

    def _check_agent(self, agent_name: str) -> None:
        if agent_name not in AGENT_NAMES:
            raise ValueError(f"Unknown agent: {agent_name}")

    def resolve(self, agent_name: str) -> ResolvedPrompt:
        """Get the active system prompt and its version tag.

        Args:
            agent_name: One of the known agent roles.

        Returns:
            The resolved prompt, tagged 'override', a stored version
            string, or 'default'.

        Raises:
            ValueError: If the agent name is unknown.
        """
        self._check_agent(agent_name)

        cached = self.cache.get(agent_name)
        if cached is not None:
            return cached

        resolved: ResolvedPrompt
        override = self._load_override(agent_name)
        if override is not None:
            resolved = ResolvedPrompt(prompt=override, version=OVERRIDE_VERSION)
        else:
            record = self.store.get_enabled_prompt(agent_name)
            if record is not None:
                resolved = ResolvedPrompt(prompt=record.system_prompt, version=record.version)
            else:
                resolved = ResolvedPrompt(
                    prompt=get_default_prompt(agent_name), version=DEFAULT_VERSION
                )

        self.cache.set(agent_name, resolved)
        return resolved

    def _load_override(self, agent_name: str) -> str | None:
        """Read <prompts_dir>/<agent>.md, or None if absent or disabled."""
        if self.prompts_dir is None:
            return None

        path = self.prompts_dir / f"{agent_name}.md"
        if not path.is_file():
            return None

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot read prompt override %s: %s", path, e)
            return None

        try:
            post = frontmatter.loads(content)
            metadata, body = post.metadata, post.content
        except Exception as e:
            logger.warning("Invalid front matter in %s, using raw content: %s", path, e)
            metadata, body = {}, content

        if not _is_enabled(metadata.get("enabled", True)):
            logger.debug("Prompt override %s is disabled", path)
            return None

        body = body.strip()
        return body or None

    def create_version(
        self,
        agent_name: str,
        version: str,
        system_prompt: str,
        release_notes: str | None = None,
        enable_immediately: bool = False,
    ) -> AgentPrompt:
        """Store a new prompt version.

        Args:
            agent_name: The agent the prompt belongs to.
            version: Version label, unique per agent.
            system_prompt: The prompt body.
            release_notes: Optional description of the change.
            enable_immediately: Make this the only enabled version.

        Returns:
            The stored version.

        Raises:
            ValueError: If the agent is unknown or version/prompt is empty.
            sqlite3.IntegrityError: If the version already exists.
        """
        self._check_agent(agent_name)
        version = version.strip()
        if not version:
            raise ValueError("Prompt version cannot be empty")
        if not system_prompt.strip():
            raise ValueError("System prompt cannot be empty")

        record = self.store.create_prompt_version(
            agent_name,
            version,
            system_prompt,
            release_notes=release_notes,
            enable=enable_immediately,
        )
        self.cache.invalidate(agent_name)
        if enable_immediately and self.event_logger:
            self.event_logger.log(
                "prompt_version_enabled", agent=agent_name, prompt_version=version
            )
        return record

    def enable_version(self, agent_name: str, version: str) -> AgentPrompt:
        """Make one stored version the only enabled one for its agent.

        Raises:
            ValueError: If the agent is unknown.
            NotFoundError: If the version does not exist.
        """
        self._check_agent(agent_name)
        record = self.store.enable_prompt_version(agent_name, version)
        self.cache.invalidate(agent_name)
        if self.event_logger:
            self.event_logger.log(
                "prompt_version_enabled", agent=agent_name, prompt_version=version
            )
        return record

    def list_versions(self, agent_name: str) -> list[AgentPrompt]:
        """All stored versions for an agent, newest first."""
        self._check_agent(agent_name)
        return self.store.list_prompt_versions(agent_name)

    def clear_cache(self, agent_name: str | None = None) -> None:
        """Force the next resolve to hit the override file and storage."""
        self.cache.invalidate(agent_name)
