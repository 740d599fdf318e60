"""Recorder stage: raw journal text to a validated fact card."""

import logging

from ..errors import SchemaValidationError
from ..models import FactCard
from .base import ModelInvoker, StageResult
from .schema import parse_fact_card

logger = logging.getLogger(__name__)

AGENT_NAME = "recorder"


def build_recorder_message(raw_text: str, entry_date: str, child_age: str | None = None) -> str:
    """Format an entry as the recorder's user message."""
    sections = [f"## Entry date\n{entry_date}"]
    if child_age:
        sections.append(f"## Child age\n{child_age}")
    sections.append(f"## Raw entry\n{raw_text}")
    sections.append("Extract a fact card from this entry.")
    return "\n\n".join(sections)


class Recorder:
    """Turns a raw entry into a FactCard. Does not persist anything."""

    def __init__(self, invoker: ModelInvoker, max_retries: int = 2) -> None:
        self.invoker = invoker
        self.max_retries = max_retries

    async def record(
        self, raw_text: str, entry_date: str, child_age: str | None = None
    ) -> StageResult[FactCard]:
        """Extract a fact card from a raw entry.

        Args:
            raw_text: The parent's note.
            entry_date: ISO date of the entry.
            child_age: Optional free-form age label.

        Returns:
            StageResult with the FactCard, or error_kind 'model' /
            'validation' on failure.
        """
        result = await self.invoker.invoke_with_retry(
            AGENT_NAME,
            build_recorder_message(raw_text, entry_date, child_age),
            max_retries=self.max_retries,
        )

        if not result.success:
            return StageResult(
                success=False,
                error=result.error or "Recorder call failed",
                error_kind="model",
                prompt_version=result.prompt_version,
            )

        try:
            card = parse_fact_card(result.data)
        except SchemaValidationError as e:
            logger.warning("Recorder returned an invalid fact card: %s", e)
            return StageResult(
                success=False,
                error=f"Invalid FactCard format: {e}",
                error_kind="validation",
                prompt_version=result.prompt_version,
            )

        return StageResult(
            success=True,
            value=card,
            prompt_version=result.prompt_version,
            usage=result.usage,
        )
