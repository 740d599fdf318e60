"""Expert stage: fact card plus history to an expert analysis."""

import logging
from datetime import date

from ..errors import SchemaValidationError
from ..models import EntryWithAnalysis, ExpertAnalysis, FactCard, RetrievalContext
from .base import ModelInvoker, StageResult
from .schema import parse_expert_analysis

logger = logging.getLogger(__name__)

AGENT_NAME = "expert"


def format_date(value: str) -> str:
    """Render an ISO date as 'March 2, 2024'; other strings pass through."""
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        return value
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def _format_fact_card(card: FactCard) -> str:
    lines = ["## Current fact card", "", f"Summary: {card.one_line}", "", "Events:"]
    for i, event in enumerate(card.events, 1):
        line = f"{i}. [{event.type.value}] {event.description}"
        if event.emotion is not None:
            line += f" (emotion: {event.emotion.value})"
        if event.context:
            line += f" (context: {event.context})"
        lines.append(line)
    if not card.events:
        lines.append("(none)")
    lines.append("")
    lines.append(f"Tags: {', '.join(card.tags) if card.tags else '(none)'}")
    if card.age_bucket is not None:
        lines.append(f"Age bucket: {card.age_bucket.value}")
    return "\n".join(lines)


def _format_history(title: str, entries: list[EntryWithAnalysis]) -> str:
    lines = [f"### {title}"]
    for i, view in enumerate(entries, 1):
        lines.append(f"{i}. {format_date(view.entry.entry_date)} (entry {view.entry.id})")
        if view.fact_card is not None:
            lines.append(f"   Summary: {view.fact_card.one_line}")
            if view.fact_card.tags:
                lines.append(f"   Tags: {', '.join(view.fact_card.tags)}")
        else:
            lines.append(f"   Raw entry: {view.entry.raw_text}")
    return "\n".join(lines)


def build_expert_message(fact_card: FactCard, context: RetrievalContext | None = None) -> str:
    """Format a fact card and its retrieved history as the expert's user message."""
    sections = [_format_fact_card(fact_card)]

    if context is not None and not context.is_empty():
        history = ["## Historical context"]
        if context.recent_entries:
            history.append(_format_history("Recent entries", context.recent_entries))
        if context.similar_entries:
            history.append(_format_history("Similar entries", context.similar_entries))
        if context.strategies:
            lines = ["### Strategies tried before"]
            for i, strategy in enumerate(context.strategies, 1):
                line = f"{i}. [{strategy.category}] {strategy.description}"
                if strategy.conditions:
                    line += f" (when: {strategy.conditions})"
                lines.append(line)
            history.append("\n".join(lines))
        sections.append("\n\n".join(history))

    sections.append(
        "Analyze the current fact card in the light of this history and respond "
        "with the JSON analysis."
    )
    return "\n\n".join(sections)


class Expert:
    """Produces an ExpertAnalysis for a fact card. Does not persist anything."""

    def __init__(self, invoker: ModelInvoker, max_retries: int = 2) -> None:
        self.invoker = invoker
        self.max_retries = max_retries

    async def analyze(
        self,
        fact_card: FactCard,
        entry_id: int | None,
        context: RetrievalContext | None = None,
    ) -> StageResult[ExpertAnalysis]:
        """Interpret a fact card.

        Args:
            fact_card: The validated fact card.
            entry_id: The entry being analyzed, for logging.
            context: Optional retrieved history.

        Returns:
            StageResult with the ExpertAnalysis, or error_kind 'model' /
            'validation' on failure.
        """
        result = await self.invoker.invoke_with_retry(
            AGENT_NAME,
            build_expert_message(fact_card, context),
            max_retries=self.max_retries,
        )

        if not result.success:
            return StageResult(
                success=False,
                error=result.error or "Expert call failed",
                error_kind="model",
                prompt_version=result.prompt_version,
            )

        try:
            analysis = parse_expert_analysis(result.data)
        except SchemaValidationError as e:
            logger.warning("Expert returned an invalid analysis for entry %s: %s", entry_id, e)
            return StageResult(
                success=False,
                error=f"Invalid ExpertAnalysis format: {e}",
                error_kind="validation",
                prompt_version=result.prompt_version,
            )

        return StageResult(
            success=True,
            value=analysis,
            prompt_version=result.prompt_version,
            usage=result.usage,
        )
