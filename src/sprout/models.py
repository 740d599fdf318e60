"""Data models for journal entries, fact cards and parenting questions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ONE_LINE_MAX_LENGTH = 100


class EventType(Enum):
    """Category of an event extracted from an entry."""

    BEHAVIOR = "behavior"
    EMOTION = "emotion"
    MILESTONE = "milestone"
    HEALTH = "health"
    SOCIAL = "social"
    COGNITIVE = "cognitive"
    LANGUAGE = "language"
    MOTOR = "motor"
    SLEEP = "sleep"
    FEEDING = "feeding"
    OTHER = "other"


class Emotion(Enum):
    """Emotional valence of an event."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class AgeBucket(Enum):
    """Fixed age ranges used to bucket entries."""

    MONTHS_0_6 = "0-6m"
    MONTHS_6_12 = "6-12m"
    YEARS_1_2 = "1-2y"
    YEARS_2_3 = "2-3y"
    YEARS_3_4 = "3-4y"
    YEARS_4_5 = "4-5y"
    YEARS_5_6 = "5-6y"


class SuggestionCategory(Enum):
    ACTION = "action"
    OBSERVATION = "observation"
    RESOURCE = "resource"
    CAUTION = "caution"


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class QuestionStage(Enum):
    """Lifecycle stage of a parenting question, in order."""

    OBSERVING = "observing"
    EXPERIMENTING = "experimenting"
    INTERNALIZED = "internalized"

    @property
    def rank(self) -> int:
        """Position in the observing -> experimenting -> internalized order."""
        return list(QuestionStage).index(self)


class ConclusionSource(Enum):
    AI = "ai"
    USER = "user"
    AI_MODIFIED = "ai_modified"


@dataclass(frozen=True)
class Event:
    """A typed unit of what happened, nested inside a fact card."""

    type: EventType
    description: str
    emotion: Emotion | None = None
    context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "description": self.description}
        if self.emotion is not None:
            data["emotion"] = self.emotion.value
        if self.context is not None:
            data["context"] = self.context
        return data


@dataclass(frozen=True)
class FactCard:
    """Structured distillation of a raw journal entry.

    Attributes:
        one_line: Summary of at most 100 characters.
        events: Ordered events extracted from the entry.
        tags: Unique tags, in the order the recorder produced them.
        missing_info: Prompts for details the parent might add.
        age_bucket: Optional age range of the child.
        id: Database ID, None until persisted.
        entry_id: The entry this card belongs to, None until persisted.
        created_at: ISO timestamp when persisted.
    """

    one_line: str
    events: list[Event] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    missing_info: list[str] = field(default_factory=list)
    age_bucket: AgeBucket | None = None
    id: int | None = None
    entry_id: int | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "one_line": self.one_line,
            "events": [event.to_dict() for event in self.events],
            "tags": list(self.tags),
            "missing_info": list(self.missing_info),
            "age_bucket": self.age_bucket.value if self.age_bucket else None,
        }


@dataclass(frozen=True)
class Suggestion:
    category: SuggestionCategory
    content: str
    priority: Priority

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "content": self.content,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class Pattern:
    """A recurring pattern with the entry IDs that support it."""

    pattern: str
    evidence: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"pattern": self.pattern, "evidence": list(self.evidence)}


@dataclass(frozen=True)
class ExpertAnalysis:
    """Advisory output derived from a fact card and its history."""

    interpretation: str
    suggestions: list[Suggestion] = field(default_factory=list)
    patterns: list[Pattern] | None = None
    risk_flags: list[str] = field(default_factory=list)
    id: int | None = None
    fact_card_id: int | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "interpretation": self.interpretation,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "patterns": (
                [p.to_dict() for p in self.patterns] if self.patterns is not None else None
            ),
            "risk_flags": list(self.risk_flags),
        }


@dataclass(frozen=True)
class Entry:
    """A raw journal entry as the parent wrote it."""

    raw_text: str
    entry_date: str
    child_age: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Strategy:
    """A strategy hint the expert may draw on."""

    category: str
    description: str
    conditions: str | None = None
    status: str = "active"
    id: int | None = None


@dataclass(frozen=True)
class StageRun:
    """Outcome of one pipeline stage for one entry."""

    entry_id: int
    stage: str
    success: bool
    error: str | None = None
    error_kind: str | None = None
    prompt_version: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class EntryWithAnalysis:
    """Composed read view of an entry, its fact card and analysis.

    analysis_status is 'none' without a fact card, 'complete' when an
    analysis exists, 'failed' when the latest expert run failed and
    'pending' otherwise.
    """

    entry: Entry
    fact_card: FactCard | None = None
    expert_analysis: ExpertAnalysis | None = None
    analysis_status: str = "none"

    @property
    def id(self) -> int | None:
        return self.entry.id

    def to_dict(self) -> dict[str, Any]:
        fact_card = None
        if self.fact_card is not None:
            fact_card = self.fact_card.to_dict()
            fact_card["id"] = self.fact_card.id
            fact_card["expert_analysis"] = (
                self.expert_analysis.to_dict() if self.expert_analysis else None
            )
        return {
            "id": self.entry.id,
            "raw_text": self.entry.raw_text,
            "entry_date": self.entry.entry_date,
            "child_age": self.entry.child_age,
            "created_at": self.entry.created_at,
            "fact_card": fact_card,
            "analysis_status": self.analysis_status,
        }


@dataclass(frozen=True)
class RetrievalContext:
    """Historical context assembled for one expert call."""

    recent_entries: list[EntryWithAnalysis] = field(default_factory=list)
    similar_entries: list[EntryWithAnalysis] = field(default_factory=list)
    strategies: list[Strategy] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.recent_entries or self.similar_entries or self.strategies)


@dataclass(frozen=True)
class QuestionObservation:
    question_id: int
    content: str
    source: str = "manual"
    entry_id: int | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class QuestionDiscussion:
    question_id: int
    role: str
    content: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class ParentingQuestion:
    """A long-lived concern tracked across observing/experimenting/internalized."""

    question: str
    stage: QuestionStage = QuestionStage.OBSERVING
    current_conclusion: str | None = None
    conclusion_source: ConclusionSource | None = None
    display_order: int = 0
    related_entry_ids: list[int] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class AgentPrompt:
    """A stored, enable-able revision of an agent's system prompt."""

    agent_name: str
    version: str
    system_prompt: str
    enabled: bool = False
    release_notes: str | None = None
    id: int | None = None
    created_at: str | None = None
