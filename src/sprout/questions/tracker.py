"""Parenting question tracking: observations, stage moves and discussion.

Questions advance observing -> experimenting automatically once enough
observations mention trying something. Every other transition is a
manual edit.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..agents.base import ModelInvoker
from ..errors import ModelError, NotFoundError
from ..logging import JSONLLogger, get_logger
from ..models import (
    ConclusionSource,
    ParentingQuestion,
    QuestionDiscussion,
    QuestionObservation,
    QuestionStage,
)
from ..storage import JournalStore

logger = logging.getLogger(__name__)

MENTOR_AGENT = "mentor"

EXPERIMENT_KEYWORDS = ("tried", "trying", "attempted", "attempting", "experiment", "testing", "tested")
OBSERVATION_THRESHOLD = 3
KEYWORD_WINDOW = 5

CONTEXT_OBSERVATIONS = 10
HISTORY_MESSAGES = 20

CONCLUSION_PATTERNS = (
    re.compile(r"(?:conclusion|suggestion|summary)\s*\**\s*[:：]\s*(.+)", re.IGNORECASE),
    re.compile(r"(you could consider\b.+)", re.IGNORECASE),
)

_UNSET: Any = object()


def has_experiment_keyword(text: str) -> bool:
    """Whether text mentions trying something, ignoring case."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in EXPERIMENT_KEYWORDS)


def extract_conclusion(reply: str) -> str | None:
    """Pull a conclusion suggestion out of a mentor reply, if there is one."""
    for pattern in CONCLUSION_PATTERNS:
        match = pattern.search(reply)
        if match:
            suggestion = match.group(1).strip().strip("*").strip()
            if suggestion:
                return suggestion
    return None


@dataclass
class ObservationOutcome:
    """A stored observation and the stage it moved the question to, if any."""

    observation: QuestionObservation
    stage_update: QuestionStage | None = None


@dataclass
class DiscussionResult:
    user_message: QuestionDiscussion
    assistant_message: QuestionDiscussion
    suggested_conclusion: str | None = None


@dataclass
class QuestionDetail:
    """A question with observations (newest first) and discussion (oldest first)."""

    question: ParentingQuestion
    observations: list[QuestionObservation] = field(default_factory=list)
    discussions: list[QuestionDiscussion] = field(default_factory=list)


class QuestionTracker:
    """Owns the stage machine and discussion for parenting questions."""

    def __init__(
        self,
        store: JournalStore,
        invoker: ModelInvoker | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            store: Durable store for questions and their history.
            invoker: Model invoker, only needed for discuss().
            event_logger: JSONL logger for stage transitions.
        """
        self.store = store
        self.invoker = invoker
        self.event_logger = event_logger or get_logger()

    def _require(self, question_id: int) -> ParentingQuestion:
        question = self.store.get_question(question_id)
        if question is None:
            raise NotFoundError("question", question_id)
        return question

    def create_question(self, text: str) -> ParentingQuestion:
        text = text.strip()
        if not text:
            raise ValueError("Question text cannot be empty")
        return self.store.create_question(text)

    def get_question(self, question_id: int) -> QuestionDetail:
        """Get a question with its observations and discussion.

        Raises:
            NotFoundError: If the question does not exist.
        """
        question = self._require(question_id)
        return QuestionDetail(
            question=question,
            observations=self.store.list_observations(question_id),
            discussions=self.store.list_discussions(question_id),
        )

    def list_questions(self) -> list[ParentingQuestion]:
        return self.store.list_questions()

    def update_question(
        self,
        question_id: int,
        *,
        question: str | None = None,
        stage: QuestionStage | str | None = None,
        current_conclusion: str | None = _UNSET,
        conclusion_source: ConclusionSource | str | None = _UNSET,
        display_order: int | None = None,
    ) -> ParentingQuestion:
        """Apply a manual edit. Any stage move is allowed, backwards included.

        Passing current_conclusion=None clears the conclusion.

        Raises:
            ValueError: On empty question text or an unknown stage/source.
            NotFoundError: If the question does not exist.
        """
        current = self._require(question_id)
        fields: dict[str, Any] = {}

        if question is not None:
            question = question.strip()
            if not question:
                raise ValueError("Question text cannot be empty")
            fields["question"] = question
        if stage is not None:
            fields["stage"] = QuestionStage(stage)
        if current_conclusion is not _UNSET:
            fields["current_conclusion"] = current_conclusion
        if conclusion_source is not _UNSET:
            fields["conclusion_source"] = (
                ConclusionSource(conclusion_source) if conclusion_source is not None else None
            )
        if display_order is not None:
            fields["display_order"] = display_order

        if not fields:
            return current

        updated = self.store.update_question(question_id, **fields)
        if updated.stage is not current.stage:
            self.event_logger.log_stage_transition(
                question_id, current.stage.value, updated.stage.value, reason="manual"
            )
        return updated

    def delete_question(self, question_id: int) -> None:
        """Delete a question with its observations and discussion.

        Raises:
            NotFoundError: If the question does not exist.
        """
        if not self.store.delete_question(question_id):
            raise NotFoundError("question", question_id)

    def on_observation_added(
        self, question_id: int, content: str, entry_id: int | None = None
    ) -> ObservationOutcome:
        """Record an observation and advance the stage when warranted.

        An observing question moves to experimenting once it has at least
        three observations and the new one, or one of the five most
        recent, mentions trying something.

        Args:
            question_id: The question observed.
            content: Observation text; surrounding whitespace is dropped.
            entry_id: Journal entry the observation came from, if any.

        Returns:
            ObservationOutcome with stage_update set only when the stage moved.

        Raises:
            ValueError: If content is empty.
            NotFoundError: If the question does not exist.
        """
        content = content.strip()
        if not content:
            raise ValueError("Observation content cannot be empty")

        question = self._require(question_id)
        observation = self.store.add_observation(
            QuestionObservation(
                question_id=question_id,
                content=content,
                source="entry" if entry_id is not None else "manual",
                entry_id=entry_id,
            )
        )

        if entry_id is not None and entry_id not in question.related_entry_ids:
            question = self.store.update_question(
                question_id, related_entry_ids=[*question.related_entry_ids, entry_id]
            )

        if question.stage is not QuestionStage.OBSERVING:
            return ObservationOutcome(observation=observation)
        if self.store.count_observations(question_id) < OBSERVATION_THRESHOLD:
            return ObservationOutcome(observation=observation)

        recent = self.store.list_observations(question_id, limit=KEYWORD_WINDOW)
        if not (
            has_experiment_keyword(content)
            or any(has_experiment_keyword(o.content) for o in recent)
        ):
            return ObservationOutcome(observation=observation)

        self.store.update_question(question_id, stage=QuestionStage.EXPERIMENTING)
        logger.info("Question %s moved to experimenting", question_id)
        self.event_logger.log_stage_transition(
            question_id,
            QuestionStage.OBSERVING.value,
            QuestionStage.EXPERIMENTING.value,
            reason="experiment keyword",
        )
        return ObservationOutcome(
            observation=observation, stage_update=QuestionStage.EXPERIMENTING
        )

    async def discuss(self, question_id: int, message: str) -> DiscussionResult:
        """Continue the mentor conversation about a question.

        Both messages are stored only if the model answered.

        Raises:
            ValueError: If message is empty or no invoker is configured.
            NotFoundError: If the question does not exist.
            ModelError: If the model call failed.
        """
        message = message.strip()
        if not message:
            raise ValueError("Message cannot be empty")
        if self.invoker is None:
            raise ValueError("Discussion needs a model invoker")

        question = self._require(question_id)
        observations = self.store.list_observations(question_id, limit=CONTEXT_OBSERVATIONS)
        history = self.store.list_discussions(question_id, limit=HISTORY_MESSAGES)

        result = await self.invoker.converse(
            MENTOR_AGENT,
            [{"role": d.role, "content": d.content} for d in history],
            message,
            context=build_question_context(question, observations),
        )
        if not result.success or result.reply is None:
            raise ModelError(
                result.error or "Discussion failed", kind=result.error_kind or "transport"
            )

        user_message = self.store.add_discussion(
            QuestionDiscussion(question_id=question_id, role="user", content=message)
        )
        assistant_message = self.store.add_discussion(
            QuestionDiscussion(question_id=question_id, role="assistant", content=result.reply)
        )
        return DiscussionResult(
            user_message=user_message,
            assistant_message=assistant_message,
            suggested_conclusion=extract_conclusion(result.reply),
        )


def build_question_context(
    question: ParentingQuestion, observations: list[QuestionObservation]
) -> str:
    """Describe a question for the mentor's system prompt."""
    lines = [
        "## Current question",
        f"Question: {question.question}",
        f"Stage: {question.stage.value}",
    ]
    if question.current_conclusion:
        lines.append(f"Current conclusion: {question.current_conclusion}")
    if observations:
        lines.append("")
        lines.append("## Recent observations")
        lines.extend(f"- {o.content}" for o in observations)
    return "\n".join(lines)
