"""In-memory TTL cache for resolved prompts."""

import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class ResolvedPrompt:
    """A system prompt together with the version tag it came from."""

    prompt: str
    version: str


class PromptCache:
    """Per-agent cache of resolved prompts with time-based expiry.

    Last writer wins. Only successful resolutions are stored, so a miss
    always triggers a fresh lookup.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            ttl: Seconds an entry stays valid.
            clock: Monotonic time source, injectable for tests.
        """
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[ResolvedPrompt, float]] = {}
        self._lock = threading.Lock()

    def get(self, agent_name: str) -> ResolvedPrompt | None:
        """Return the cached prompt, or None if absent or expired."""
        with self._lock:
            item = self._entries.get(agent_name)
            if item is None:
                return None
            resolved, expires_at = item
            if self._clock() >= expires_at:
                del self._entries[agent_name]
                return None
            return resolved

    def set(self, agent_name: str, resolved: ResolvedPrompt) -> None:
        with self._lock:
            self._entries[agent_name] = (resolved, self._clock() + self.ttl)

    def invalidate(self, agent_name: str | None = None) -> None:
        """Drop one agent's entry, or every entry if agent_name is None."""
        with self._lock:
            if agent_name is None:
                self._entries.clear()
            else:
                self._entries.pop(agent_name, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
