"""Expert chat: free-form questions answered with journal context.

The caller owns the conversation history; nothing here is persisted.
"""

import logging
import re
from dataclasses import dataclass, field

from ..models import EntryWithAnalysis
from ..storage import JournalStore
from .base import ModelInvoker
from .expert import format_date

logger = logging.getLogger(__name__)

AGENT_NAME = "chat"
CONTEXT_ENTRIES = 5
HISTORY_MESSAGES = 20

# Words in a message mapped to fact card tags worth searching for
TOPIC_KEYWORDS: dict[str, list[str]] = {
    "sleep": ["sleep", "nap", "bedtime", "night waking"],
    "nap": ["sleep", "nap", "bedtime", "night waking"],
    "bed": ["sleep", "nap", "bedtime", "night waking"],
    "cry": ["emotion", "crying", "tantrum"],
    "eat": ["feeding", "eating", "meals"],
    "food": ["feeding", "eating", "meals"],
    "play": ["play", "social"],
    "talk": ["language", "speech"],
    "word": ["language", "speech"],
    "walk": ["motor"],
    "anxi": ["separation anxiety", "anxiety", "emotion"],
    "tantrum": ["tantrum", "emotion", "behavior"],
    "temper": ["tantrum", "emotion", "behavior"],
}

ENTRY_REFERENCE = re.compile(r"\bentry\s*#?(\d+)", re.IGNORECASE)


def extract_keywords(text: str) -> list[str]:
    """Tags suggested by the topic words in a message, deduplicated in order."""
    lowered = text.lower()
    keywords: list[str] = []
    for word, tags in TOPIC_KEYWORDS.items():
        if word in lowered:
            keywords.extend(tag for tag in tags if tag not in keywords)
    return keywords


@dataclass
class ChatContext:
    """Journal entries shown to the chat agent."""

    recent_entries: list[EntryWithAnalysis] = field(default_factory=list)
    relevant_entries: list[EntryWithAnalysis] = field(default_factory=list)

    @property
    def entries(self) -> list[EntryWithAnalysis]:
        return self.recent_entries + self.relevant_entries


@dataclass
class ChatResult:
    """Outcome of one chat turn.

    Attributes:
        referenced_entry_ids: Context entries the reply cites, by id or date.
    """

    success: bool
    reply: str | None = None
    error: str | None = None
    error_kind: str | None = None
    prompt_version: str | None = None
    referenced_entry_ids: list[int] = field(default_factory=list)


def _summary(view: EntryWithAnalysis) -> str:
    if view.fact_card is not None:
        return view.fact_card.one_line
    return view.entry.raw_text[:50]


def _format_entries(title: str, entries: list[EntryWithAnalysis]) -> list[str]:
    lines = ["", title]
    for i, view in enumerate(entries, 1):
        lines.append(
            f"{i}. {format_date(view.entry.entry_date)} (entry {view.entry.id}): {_summary(view)}"
        )
        if view.fact_card is not None and view.fact_card.tags:
            lines.append(f"   Tags: {', '.join(view.fact_card.tags)}")
    return lines


def format_chat_context(context: ChatContext) -> str:
    """Render the context appended to the chat system prompt ('' if empty)."""
    if not context.entries:
        return ""
    lines = ["## Journal context"]
    if context.recent_entries:
        lines.extend(_format_entries("### Recent entries", context.recent_entries))
    if context.relevant_entries:
        lines.extend(_format_entries("### Related entries", context.relevant_entries))
    return "\n".join(lines)


def find_referenced_entries(reply: str, context: ChatContext) -> list[int]:
    """IDs of context entries the reply mentions as 'entry N' or by date."""
    cited = {int(match) for match in ENTRY_REFERENCE.findall(reply)}
    referenced: list[int] = []
    for view in context.entries:
        entry = view.entry
        if entry.id is None or entry.id in referenced:
            continue
        if (
            entry.id in cited
            or entry.entry_date in reply
            or format_date(entry.entry_date) in reply
        ):
            referenced.append(entry.id)
    return referenced


class ExpertChat:
    """Answers free-form parenting questions using recent and related entries."""

    def __init__(
        self,
        store: JournalStore,
        invoker: ModelInvoker,
        context_entries: int = CONTEXT_ENTRIES,
    ) -> None:
        self.store = store
        self.invoker = invoker
        self.context_entries = context_entries

    def build_context(self, message: str) -> ChatContext:
        """Recent entries plus older entries tagged with the message's topics."""
        recent = self.store.recent_entries([], self.context_entries)
        keywords = extract_keywords(message)
        exclude = [view.entry.id for view in recent if view.entry.id is not None]
        relevant = self.store.entries_sharing_tags(keywords, exclude, self.context_entries)
        return ChatContext(recent_entries=recent, relevant_entries=relevant)

    async def chat(
        self, message: str, history: list[dict[str, str]] | None = None
    ) -> ChatResult:
        """Answer one user turn.

        Args:
            message: The parent's new message.
            history: Prior turns as {'role', 'content'} dicts, oldest first.
                Only the most recent 20 are sent.

        Returns:
            ChatResult with the reply, or the model error.

        Raises:
            ValueError: If the message is empty or a history turn is malformed.
        """
        message = message.strip()
        if not message:
            raise ValueError("Chat message cannot be empty")

        turns = []
        for turn in (history or [])[-HISTORY_MESSAGES:]:
            if (
                not isinstance(turn, dict)
                or turn.get("role") not in ("user", "assistant")
                or not isinstance(turn.get("content"), str)
            ):
                raise ValueError(f"Invalid history turn: {turn!r}")
            turns.append({"role": turn["role"], "content": turn["content"]})

        context = self.build_context(message)
        result = await self.invoker.converse(
            AGENT_NAME, turns, message, context=format_chat_context(context) or None
        )
        if not result.success or result.reply is None:
            return ChatResult(
                success=False,
                error=result.error,
                error_kind=result.error_kind,
                prompt_version=result.prompt_version,
            )

        referenced = find_referenced_entries(result.reply, context)
        logger.info("Chat reply with %d context entries, %d cited",
                    len(context.entries), len(referenced))
        return ChatResult(
            success=True,
            reply=result.reply,
            prompt_version=result.prompt_version,
            referenced_entry_ids=referenced,
        )
