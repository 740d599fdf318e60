"""Journal: wires storage, prompts, agents, chat and question tracking together."""

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable

from groq import AsyncGroq

from .agents import (
    ChatResult,
    EntryOrchestrator,
    Expert,
    ExpertChat,
    ModelInvoker,
    ProcessResult,
    Recorder,
    Retriever,
    SimilarityScorer,
)
from .config import SproutConfig, config_from_env, load_config
from .errors import NotFoundError
from .logging import JSONLLogger
from .models import (
    AgentPrompt,
    EntryWithAnalysis,
    FactCard,
    ParentingQuestion,
    RetrievalContext,
    StageRun,
    Strategy,
)
from .prompts import PromptCache, PromptRegistry, ResolvedPrompt
from .questions import DiscussionResult, ObservationOutcome, QuestionDetail, QuestionTracker
from .storage import JournalStore


class Journal:
    """Composition root for one journal database.

    The model invoker is built on first use, so storage-only operations
    work without GROQ_API_KEY.
    """

    def __init__(
        self,
        config: SproutConfig | None = None,
        client: AsyncGroq | None = None,
        event_logger: JSONLLogger | None = None,
        scorer: SimilarityScorer | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the journal.

        Args:
            config: Settings; loaded from ~/.sprout/config.json and the
                environment if None.
            client: Groq client; built from GROQ_API_KEY on first model use if None.
            event_logger: JSONL logger; one in config.log_dir if None.
            scorer: Similarity scorer for retrieval (tag overlap if None).
            sleep: Awaitable sleep used between retries.
        """
        self.config = config or config_from_env(load_config())
        self.event_logger = event_logger or JSONLLogger(log_dir=self.config.log_dir)

        self.store = JournalStore(self.config.db_path)
        self.store.init_db()

        self.cache = PromptCache(ttl=self.config.prompt_cache_ttl)
        self.registry = PromptRegistry(
            self.store, self.cache, self.config.prompts_dir, self.event_logger
        )
        self.retriever = Retriever(self.store, scorer=scorer)
        self.tracker = QuestionTracker(self.store, event_logger=self.event_logger)

        self._client = client
        self._sleep = sleep
        self._invoker: ModelInvoker | None = None
        self._orchestrator: EntryOrchestrator | None = None
        self._chat: ExpertChat | None = None

    @property
    def invoker(self) -> ModelInvoker:
        """The model invoker.

        Raises:
            ConfigurationError: If no client was given and GROQ_API_KEY is unset.
        """
        if self._invoker is None:
            self._invoker = ModelInvoker(
                self.registry,
                client=self._client,
                model=self.config.model,
                timeout=self.config.request_timeout,
                retry_backoff=self.config.retry_backoff,
                sleep=self._sleep,
                event_logger=self.event_logger,
            )
        return self._invoker

    @property
    def orchestrator(self) -> EntryOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = EntryOrchestrator(
                self.store,
                Recorder(self.invoker, max_retries=self.config.max_retries),
                Expert(self.invoker, max_retries=self.config.max_retries),
                self.retriever,
                retrieval_limit=self.config.retrieval_limit,
                event_logger=self.event_logger,
            )
        return self._orchestrator

    # Entries

    async def process_entry(
        self, raw_text: str, entry_date: str | date, child_age: str | None = None
    ) -> ProcessResult:
        return await self.orchestrator.process_entry(raw_text, entry_date, child_age)

    def get_entry(self, entry_id: int) -> EntryWithAnalysis | None:
        return self.store.get_entry(entry_id)

    def list_entries(
        self,
        limit: int = 20,
        offset: int = 0,
        tags: list[str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[EntryWithAnalysis]:
        return self.store.list_entries(
            limit=limit, offset=offset, tags=tags, start_date=start_date, end_date=end_date
        )

    def stage_runs(self, entry_id: int) -> list[StageRun]:
        return self.store.list_stage_runs(entry_id)

    def retrieve_context(
        self,
        entry_id: int | None = None,
        limit: int | None = None,
        fact_card: FactCard | None = None,
    ) -> RetrievalContext:
        """Retrieve the history the expert would see.

        Args:
            entry_id: Entry to exclude from history. When no fact_card is
                given, its stored fact card is used.
            limit: Total history entries; config.retrieval_limit if None.
            fact_card: A fact card to retrieve for, saved or not.

        Raises:
            NotFoundError: If entry_id is needed and the entry does not exist.
            ValueError: If neither argument is given, or the entry has no
                fact card yet.
        """
        if fact_card is None:
            if entry_id is None:
                raise ValueError("Either entry_id or fact_card is required")
            view = self.store.get_entry(entry_id)
            if view is None:
                raise NotFoundError("entry", entry_id)
            if view.fact_card is None:
                raise ValueError(f"Entry {entry_id} has no fact card")
            fact_card = view.fact_card
        return self.retriever.retrieve(
            fact_card,
            entry_id,
            limit=self.config.retrieval_limit if limit is None else limit,
        )

    # Chat

    async def chat(
        self, message: str, history: list[dict[str, str]] | None = None
    ) -> ChatResult:
        """One turn of free-form chat with the expert; history is caller-owned."""
        if self._chat is None:
            self._chat = ExpertChat(self.store, self.invoker)
        return await self._chat.chat(message, history)

    # Strategies

    def add_strategy(
        self,
        category: str,
        description: str,
        conditions: str | None = None,
        status: str = "active",
    ) -> Strategy:
        category, description = category.strip(), description.strip()
        if not category or not description:
            raise ValueError("Strategy category and description are required")
        if status not in ("active", "retired"):
            raise ValueError(f"Invalid strategy status: {status}")
        return self.store.add_strategy(
            Strategy(category=category, description=description, conditions=conditions,
                     status=status)
        )

    def list_strategies(
        self, category: str | None = None, status: str | None = None
    ) -> list[Strategy]:
        return self.store.list_strategies(
            categories=[category] if category else None, status=status
        )

    # Parenting questions

    def create_question(self, text: str) -> ParentingQuestion:
        return self.tracker.create_question(text)

    def get_question(self, question_id: int) -> QuestionDetail:
        return self.tracker.get_question(question_id)

    def list_questions(self) -> list[ParentingQuestion]:
        return self.tracker.list_questions()

    def update_question(self, question_id: int, **fields: Any) -> ParentingQuestion:
        return self.tracker.update_question(question_id, **fields)

    def delete_question(self, question_id: int) -> None:
        self.tracker.delete_question(question_id)

    def on_observation_added(
        self, question_id: int, content: str, entry_id: int | None = None
    ) -> ObservationOutcome:
        return self.tracker.on_observation_added(question_id, content, entry_id)

    async def discuss_question(self, question_id: int, message: str) -> DiscussionResult:
        if self.tracker.invoker is None:
            self.tracker.invoker = self.invoker
        return await self.tracker.discuss(question_id, message)

    # Prompts

    def resolve_prompt(self, agent_name: str) -> ResolvedPrompt:
        return self.registry.resolve(agent_name)

    def create_prompt_version(
        self,
        agent_name: str,
        version: str,
        system_prompt: str,
        release_notes: str | None = None,
        enable_immediately: bool = False,
    ) -> AgentPrompt:
        return self.registry.create_version(
            agent_name, version, system_prompt, release_notes, enable_immediately
        )

    def enable_prompt_version(self, agent_name: str, version: str) -> AgentPrompt:
        return self.registry.enable_version(agent_name, version)

    def list_prompt_versions(self, agent_name: str) -> list[AgentPrompt]:
        return self.registry.list_versions(agent_name)

    def clear_prompt_cache(self, agent_name: str | None = None) -> None:
        self.registry.clear_cache(agent_name)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "Journal":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
