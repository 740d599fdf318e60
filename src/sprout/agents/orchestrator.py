"""Entry orchestrator: the full pipeline for one journal entry.

Order of work:
1. Persist the bare entry (never rolled back)
2. Recorder stage; a failure ends the run
3. Persist the fact card and retrieve history
4. Expert stage; a failure still counts as a successful run
"""

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..logging import JSONLLogger, get_logger
from ..models import Entry, EntryWithAnalysis, FactCard, RetrievalContext, StageRun
from ..storage import JournalStore
from .base import StageResult
from .expert import Expert
from .recorder import Recorder
from .retrieval import Retriever

logger = logging.getLogger(__name__)


@dataclass
class StageStatus:
    """Per-stage outcome reported to the caller."""

    attempted: bool = False
    success: bool = False
    error: str | None = None
    error_kind: str | None = None
    prompt_version: str | None = None


@dataclass
class ProcessResult:
    """Outcome of processing one entry.

    Attributes:
        success: True once the recorder succeeded and the fact card was saved.
        stages: StageStatus for 'recorder' and 'expert'.
        entry_id: ID of the stored entry, None if it could not be saved.
        entry: The composed entry view.
        error: Failure message when success is False.
    """

    success: bool
    stages: dict[str, StageStatus] = field(default_factory=dict)
    entry_id: int | None = None
    entry: EntryWithAnalysis | None = None
    error: str | None = None


def _normalize_date(entry_date: str | date) -> str:
    if isinstance(entry_date, date):
        return entry_date.isoformat()
    try:
        return date.fromisoformat(entry_date.strip()).isoformat()
    except ValueError:
        raise ValueError(f"Invalid entry date (expected YYYY-MM-DD): {entry_date}") from None


class EntryOrchestrator:
    """Runs recorder, retrieval and expert for new entries."""

    def __init__(
        self,
        store: JournalStore,
        recorder: Recorder,
        expert: Expert,
        retriever: Retriever,
        retrieval_limit: int = 6,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.recorder = recorder
        self.expert = expert
        self.retriever = retriever
        self.retrieval_limit = retrieval_limit
        self.event_logger = event_logger or get_logger()

    async def process_entry(
        self,
        raw_text: str,
        entry_date: str | date,
        child_age: str | None = None,
    ) -> ProcessResult:
        """Process a new journal entry end to end.

        Args:
            raw_text: The parent's note.
            entry_date: ISO date (YYYY-MM-DD) the note is about.
            child_age: Optional free-form age label.

        Returns:
            ProcessResult with the composed entry and per-stage status.

        Raises:
            ValueError: If the text is empty or the date is not ISO.
        """
        if not raw_text.strip():
            raise ValueError("Entry text cannot be empty")
        entry_date = _normalize_date(entry_date)
        child_age = child_age.strip() if child_age and child_age.strip() else None

        stages = {"recorder": StageStatus(), "expert": StageStatus()}

        try:
            entry = self.store.create_entry(raw_text, entry_date, child_age)
        except sqlite3.Error as e:
            logger.error("Failed to save entry: %s", e)
            self.event_logger.log("error", stage="entry", error=str(e))
            return ProcessResult(success=False, stages=stages, error=f"Failed to save entry: {e}")

        assert entry.id is not None
        try:
            return await self._run_stages(entry, stages)
        except sqlite3.Error as e:
            logger.error("Storage failed while processing entry %s: %s", entry.id, e)
            self.event_logger.log("error", entry_id=entry.id, error=str(e))
            return ProcessResult(
                success=False,
                stages=stages,
                entry_id=entry.id,
                entry=self.store.get_entry(entry.id) or EntryWithAnalysis(entry=entry),
                error=f"Storage error: {e}",
            )

    async def _run_stages(self, entry: Entry, stages: dict[str, StageStatus]) -> ProcessResult:
        assert entry.id is not None

        start_time = time.time()
        recorded = await self.recorder.record(entry.raw_text, entry.entry_date, entry.child_age)
        self._finish_stage(entry.id, "recorder", recorded, stages, start_time)

        if not recorded.success or recorded.value is None:
            return ProcessResult(
                success=False,
                stages=stages,
                entry_id=entry.id,
                entry=EntryWithAnalysis(entry=entry),
                error=f"Recorder failed: {recorded.error}",
            )

        fact_card = self.store.create_fact_card(entry.id, recorded.value)
        context = self._retrieve(fact_card, entry.id)

        start_time = time.time()
        analyzed = await self.expert.analyze(fact_card, entry.id, context)

        analysis = None
        if analyzed.success and analyzed.value is not None:
            try:
                analysis = self.store.create_expert_analysis(fact_card.id, analyzed.value)
            except sqlite3.Error as e:
                logger.error("Failed to save analysis for entry %s: %s", entry.id, e)
                analyzed = StageResult(
                    success=False,
                    error=f"Failed to save analysis: {e}",
                    error_kind="storage",
                    prompt_version=analyzed.prompt_version,
                    usage=analyzed.usage,
                )
        self._finish_stage(entry.id, "expert", analyzed, stages, start_time)

        view = EntryWithAnalysis(
            entry=entry,
            fact_card=fact_card,
            expert_analysis=analysis,
            analysis_status="complete" if analysis is not None else "failed",
        )
        return ProcessResult(success=True, stages=stages, entry_id=entry.id, entry=view)

    def _retrieve(self, fact_card: FactCard, entry_id: int) -> RetrievalContext:
        """Retrieve history, degrading to empty context on any failure."""
        try:
            return self.retriever.retrieve(fact_card, entry_id, limit=self.retrieval_limit)
        except Exception as e:
            logger.warning("Retrieval failed for entry %s, continuing without history: %s",
                           entry_id, e)
            self.event_logger.log("retrieval_degraded", entry_id=entry_id, error=str(e))
            return RetrievalContext()

    def _finish_stage(
        self,
        entry_id: int,
        stage: str,
        result: StageResult[Any],
        stages: dict[str, StageStatus],
        start_time: float,
    ) -> None:
        stages[stage] = StageStatus(
            attempted=True,
            success=result.success,
            error=result.error,
            error_kind=result.error_kind,
            prompt_version=result.prompt_version,
        )
        try:
            self.store.record_stage_run(
                StageRun(
                    entry_id=entry_id,
                    stage=stage,
                    success=result.success,
                    error=result.error,
                    error_kind=result.error_kind,
                    prompt_version=result.prompt_version,
                )
            )
        except sqlite3.Error as e:
            # The stage outcome is still reported and logged below
            logger.error("Failed to record %s run for entry %s: %s", stage, entry_id, e)
            self.event_logger.log("error", entry_id=entry_id, stage=stage, error=str(e))
        self.event_logger.log_stage_result(
            stage,
            result.success,
            entry_id=entry_id,
            prompt_version=result.prompt_version,
            error=result.error,
            error_kind=result.error_kind,
            duration_ms=(time.time() - start_time) * 1000,
        )

    def get_entry_with_analysis(self, entry_id: int) -> EntryWithAnalysis | None:
        """The composed view of one entry, or None if it does not exist."""
        return self.store.get_entry(entry_id)

    def list_entries(
        self,
        limit: int = 20,
        offset: int = 0,
        tags: list[str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[EntryWithAnalysis]:
        """Composed entry views, newest first."""
        return self.store.list_entries(
            limit=limit, offset=offset, tags=tags, start_date=start_date, end_date=end_date
        )
