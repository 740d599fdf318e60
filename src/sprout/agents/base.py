"""Model invoker: one structured-output LLM call per agent role.

Every call resolves the agent's active prompt, merges the agent's
default config with caller overrides and asks Groq for a single JSON
object. Failures come back as an unsuccessful AgentCallResult rather
than an exception, so stages can decide how fatal they are.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, TypeVar

from groq import AsyncGroq

from ..config import DEFAULT_MODEL
from ..errors import ConfigurationError, ModelError

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from ..prompts import PromptRegistry, ResolvedPrompt

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_VERSION = "error"


@dataclass(frozen=True)
class AgentConfig:
    """Model settings for one agent role."""

    name: str
    model: str = DEFAULT_MODEL
    max_tokens: int = 2000
    temperature: float = 0.5
    timeout: float = 60.0


DEFAULT_AGENT_CONFIGS: dict[str, AgentConfig] = {
    # Low temperature keeps extraction stable
    "recorder": AgentConfig(name="recorder", max_tokens=2000, temperature=0.3),
    "expert": AgentConfig(name="expert", max_tokens=3000, temperature=0.5),
    "mentor": AgentConfig(name="mentor", max_tokens=2000, temperature=0.7),
    "chat": AgentConfig(name="chat", max_tokens=2000, temperature=0.7),
}


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class AgentCallResult:
    """Result of a structured model call.

    Attributes:
        success: Whether a JSON object was obtained.
        data: The parsed JSON object on success.
        error: Failure message on failure.
        error_kind: ModelError kind on failure.
        prompt_version: Version tag of the prompt used, 'error' if the
            prompt could not be resolved.
        usage: Token counters when the provider reported them.
        attempts: Number of calls made (retry wrapper only).
    """

    success: bool
    prompt_version: str = ERROR_VERSION
    data: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None
    usage: TokenUsage | None = None
    attempts: int = 1


@dataclass
class ConversationResult:
    """Result of a free-text, multi-turn model call."""

    success: bool
    reply: str | None = None
    error: str | None = None
    error_kind: str | None = None
    prompt_version: str = ERROR_VERSION


@dataclass
class StageResult(Generic[T]):
    """Tagged outcome of a pipeline stage.

    error_kind is 'model' when the model call failed, 'validation'
    when the model answered with the wrong shape and 'storage' when the
    stage output could not be saved.
    """

    success: bool
    value: T | None = None
    error: str | None = None
    error_kind: str | None = None
    prompt_version: str | None = None
    usage: TokenUsage | None = None
    details: dict[str, Any] = field(default_factory=dict)


def parse_json_object(content: str) -> dict[str, Any]:
    """Parse model output into a JSON object.

    Markdown code fences around the JSON are removed first.

    Raises:
        ModelError: With kind 'parse' if the text is not a JSON object.
    """
    text = content.strip()
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelError(f"Response is not valid JSON: {e}", kind="parse") from e

    if not isinstance(data, dict):
        raise ModelError(
            f"Expected a JSON object, got {type(data).__name__}", kind="parse"
        )
    return data


class ModelInvoker:
    """Issues structured-output calls to Groq on behalf of agent roles."""

    def __init__(
        self,
        registry: PromptRegistry,
        client: AsyncGroq | None = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        retry_backoff: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the invoker.

        Args:
            registry: Resolves the active prompt for each agent.
            client: Groq client; built from GROQ_API_KEY if None.
            model: Default model for every agent.
            timeout: Per-call deadline in seconds.
            retry_backoff: Base wait unit between retry attempts.
            sleep: Awaitable sleep, injectable for tests.
            event_logger: Optional JSONL logger for model calls.

        Raises:
            ConfigurationError: If no client is given and GROQ_API_KEY is unset.
        """
        if client is None:
            api_key = os.getenv("GROQ_API_KEY")
            if not api_key:
                raise ConfigurationError("GROQ_API_KEY environment variable is not set")
            client = AsyncGroq(api_key=api_key)

        self.client = client
        self.registry = registry
        self.retry_backoff = retry_backoff
        self.event_logger = event_logger
        self._sleep = sleep
        self.configs = {
            name: replace(config, model=model, timeout=timeout)
            for name, config in DEFAULT_AGENT_CONFIGS.items()
        }

    def get_config(
        self, agent_name: str, overrides: dict[str, Any] | None = None
    ) -> AgentConfig:
        """Merge an agent's default config with caller overrides."""
        config = self.configs.get(agent_name) or AgentConfig(name=agent_name)
        if overrides:
            config = replace(config, **overrides)
        return config

    def _resolve(self, agent_name: str) -> ResolvedPrompt:
        try:
            return self.registry.resolve(agent_name)
        except Exception as e:
            raise ModelError(f"Prompt resolution failed: {e}", kind="prompt") from e

    async def _create(
        self,
        config: AgentConfig,
        messages: list[dict[str, Any]],
        json_mode: bool,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": messages,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            return await asyncio.wait_for(
                self.client.chat.completions.create(**kwargs),
                timeout=config.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ModelError(
                f"Model call timed out after {config.timeout}s", kind="timeout"
            ) from e
        except Exception as e:
            raise ModelError(f"Model call failed: {e}", kind="transport") from e

    @staticmethod
    def _content(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ModelError("Empty response from LLM", kind="empty")
        return content

    @staticmethod
    def _usage(response: Any) -> TokenUsage | None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return None
        try:
            return TokenUsage(
                prompt_tokens=int(usage.prompt_tokens),
                completion_tokens=int(usage.completion_tokens),
                total_tokens=int(usage.total_tokens),
            )
        except (AttributeError, TypeError, ValueError):
            return None

    async def invoke(
        self,
        agent_name: str,
        user_message: str,
        overrides: dict[str, Any] | None = None,
    ) -> AgentCallResult:
        """Make one structured-output call for an agent.

        Args:
            agent_name: The agent role, e.g. 'recorder'.
            user_message: The user turn sent after the system prompt.
            overrides: Optional AgentConfig field overrides.

        Returns:
            AgentCallResult with the parsed JSON object or the failure.
        """
        start_time = time.time()
        version = ERROR_VERSION
        try:
            resolved = self._resolve(agent_name)
            version = resolved.version
            config = self.get_config(agent_name, overrides)
            response = await self._create(
                config,
                [
                    {"role": "system", "content": resolved.prompt},
                    {"role": "user", "content": user_message},
                ],
                json_mode=True,
            )
            data = parse_json_object(self._content(response))
        except ModelError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning("Agent %s call failed (%s): %s", agent_name, e.kind, e)
            if self.event_logger:
                self.event_logger.log_model_call(
                    agent_name,
                    False,
                    prompt_version=version,
                    duration_ms=duration_ms,
                    error=str(e),
                    error_kind=e.kind,
                )
            return AgentCallResult(
                success=False,
                prompt_version=version,
                error=str(e),
                error_kind=e.kind,
            )

        usage = self._usage(response)
        if self.event_logger:
            self.event_logger.log_model_call(
                agent_name,
                True,
                prompt_version=version,
                duration_ms=(time.time() - start_time) * 1000,
                total_tokens=usage.total_tokens if usage else None,
            )
        return AgentCallResult(success=True, prompt_version=version, data=data, usage=usage)

    async def invoke_with_retry(
        self,
        agent_name: str,
        user_message: str,
        max_retries: int = 2,
        overrides: dict[str, Any] | None = None,
    ) -> AgentCallResult:
        """Call invoke up to max_retries + 1 times.

        Between attempts waits retry_backoff * attempt_number seconds;
        there is no wait after the last attempt.

        Returns:
            The first successful result, or the last failure.
        """
        result = AgentCallResult(success=False, error="Max retries exceeded")
        attempts = max_retries + 1

        for attempt in range(attempts):
            result = await self.invoke(agent_name, user_message, overrides)
            result.attempts = attempt + 1
            if result.success:
                return result

            logger.warning(
                "Agent %s attempt %d/%d failed: %s",
                agent_name,
                attempt + 1,
                attempts,
                result.error,
            )

            if attempt < max_retries:
                await self._sleep(self.retry_backoff * (attempt + 1))

        return result

    async def converse(
        self,
        agent_name: str,
        history: list[dict[str, str]],
        user_message: str,
        context: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConversationResult:
        """Free-text multi-turn call: system prompt, history, new message.

        Args:
            agent_name: The agent role whose prompt opens the conversation.
            history: Prior turns as {'role', 'content'} dicts, oldest first.
            user_message: The new user turn.
            context: Optional text appended to the system prompt.
            overrides: Optional AgentConfig field overrides.
        """
        version = ERROR_VERSION
        try:
            resolved = self._resolve(agent_name)
            version = resolved.version
            system = resolved.prompt
            if context:
                system += "\n\n" + context
            messages: list[dict[str, Any]] = [{"role": "system", "content": system}]
            messages.extend(
                {"role": turn["role"], "content": turn["content"]} for turn in history
            )
            messages.append({"role": "user", "content": user_message})

            response = await self._create(
                self.get_config(agent_name, overrides), messages, json_mode=False
            )
            reply = self._content(response)
        except ModelError as e:
            logger.warning("Agent %s conversation failed (%s): %s", agent_name, e.kind, e)
            return ConversationResult(
                success=False, error=str(e), error_kind=e.kind, prompt_version=version
            )

        return ConversationResult(success=True, reply=reply.strip(), prompt_version=version)
