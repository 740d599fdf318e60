"""Parenting question tracking."""

from .tracker import (
    DiscussionResult,
    ObservationOutcome,
    QuestionDetail,
    QuestionTracker,
    extract_conclusion,
    has_experiment_keyword,
)

__all__ = [
    "DiscussionResult",
    "ObservationOutcome",
    "QuestionDetail",
    "QuestionTracker",
    "extract_conclusion",
    "has_experiment_keyword",
]
