"""Retrieval of historical context for the expert stage.

Combines the most recent entries, entries similar to the current fact
card and strategy hints for the categories its tags fall into.
"""

import logging
import math
from abc import ABC, abstractmethod

from ..models import EntryWithAnalysis, FactCard, RetrievalContext, Strategy
from ..storage import JournalStore

logger = logging.getLogger(__name__)

STRATEGY_LIMIT = 5

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "sleep": ("sleep", "bedtime", "nap", "night waking", "early waking", "sleep regression"),
    "emotion": ("emotion", "tantrum", "anxiety", "fear", "happy", "crying", "separation anxiety"),
    "behavior": ("behavior", "hitting", "biting", "sharing", "conflict"),
    "feeding": ("eating", "feeding", "picky eating", "solids", "meal"),
    "social": ("social", "peers", "interaction", "daycare", "playdate"),
}


def infer_categories(tags: list[str]) -> list[str]:
    """Map tags to strategy categories.

    A tag matches a category when it contains one of the category's
    keywords or is contained in one, ignoring case.

    Returns:
        Matching category names in taxonomy order.
    """
    lowered = [tag.strip().lower() for tag in tags if tag.strip()]
    return [
        category
        for category, keywords in CATEGORY_KEYWORDS.items()
        if any(kw in tag or tag in kw for tag in lowered for kw in keywords)
    ]


class SimilarityScorer(ABC):
    """Finds past entries similar to a fact card."""

    @abstractmethod
    def find_similar(
        self, fact_card: FactCard, exclude_ids: list[int], limit: int
    ) -> list[EntryWithAnalysis]:
        """Return up to limit entries, most similar first."""


class TagOverlapScorer(SimilarityScorer):
    """Ranks entries by how many tags they share with the fact card."""

    def __init__(self, store: JournalStore, overfetch_factor: int = 2) -> None:
        self.store = store
        self.overfetch_factor = overfetch_factor

    def find_similar(
        self, fact_card: FactCard, exclude_ids: list[int], limit: int
    ) -> list[EntryWithAnalysis]:
        if limit <= 0 or not fact_card.tags:
            return []

        candidates = self.store.entries_sharing_tags(
            fact_card.tags, exclude_ids, limit * self.overfetch_factor
        )
        tags = set(fact_card.tags)

        def overlap(view: EntryWithAnalysis) -> int:
            if view.fact_card is None:
                return 0
            return len(tags.intersection(view.fact_card.tags))

        # sorted() is stable, so equal overlaps keep newest-first order
        ranked = sorted(candidates, key=overlap, reverse=True)
        return ranked[:limit]


class EmbeddingScorer(SimilarityScorer):
    """Semantic similarity over fact card embeddings."""

    def find_similar(
        self, fact_card: FactCard, exclude_ids: list[int], limit: int
    ) -> list[EntryWithAnalysis]:
        raise NotImplementedError("Embedding similarity is not available yet")


class Retriever:
    """Assembles a RetrievalContext from storage. Read-only."""

    def __init__(
        self,
        store: JournalStore,
        scorer: SimilarityScorer | None = None,
        strategy_limit: int = STRATEGY_LIMIT,
    ) -> None:
        self.store = store
        self.scorer = scorer or TagOverlapScorer(store)
        self.strategy_limit = strategy_limit

    def retrieve(
        self, fact_card: FactCard, current_entry_id: int | None, limit: int = 6
    ) -> RetrievalContext:
        """Collect recent entries, similar entries and strategy hints.

        Args:
            fact_card: The fact card being analyzed.
            current_entry_id: Entry to exclude from history, if any.
            limit: Total number of history entries. ceil(limit/2) go to
                recent entries and floor(limit/2) to similar ones.

        Returns:
            The assembled context. The current entry never appears in it
            and no entry appears in both lists.
        """
        recent_quota = math.ceil(limit / 2)
        similar_quota = limit // 2

        exclude = [current_entry_id] if current_entry_id is not None else []
        recent = self.store.recent_entries(exclude, recent_quota) if recent_quota > 0 else []

        exclude = exclude + [view.entry.id for view in recent if view.entry.id is not None]
        similar = self.scorer.find_similar(fact_card, exclude, similar_quota)

        return RetrievalContext(
            recent_entries=recent,
            similar_entries=similar,
            strategies=self._strategies(fact_card.tags),
        )

    def _strategies(self, tags: list[str]) -> list[Strategy]:
        categories = infer_categories(tags)
        if not categories:
            return []
        return self.store.list_strategies(
            categories=categories, status="active", limit=self.strategy_limit
        )
