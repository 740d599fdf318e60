"""Command-line front end for the journal.

Provides entry, question, chat, strategy and prompt subcommands.
"""

import argparse
import asyncio
import json
import logging
import sqlite3
import sys
from datetime import date
from pathlib import Path

from .config import config_from_env, load_config
from .errors import SproutError
from .journal import Journal
from .logging import configure_logger
from .models import EntryWithAnalysis, QuestionStage
from .prompts import AGENT_NAMES


def _print_entry(view: EntryWithAnalysis, verbose: bool = False) -> None:
    entry = view.entry
    print(f"\nEntry #{entry.id}  {entry.entry_date}"
          + (f"  (age {entry.child_age})" if entry.child_age else ""))
    print("-" * 40)
    if verbose:
        print(entry.raw_text)
        print()

    card = view.fact_card
    if card is None:
        print("No fact card.")
        return

    print(f"Summary: {card.one_line}")
    if card.tags:
        print(f"Tags: {', '.join(card.tags)}")
    if not verbose:
        return

    for event in card.events:
        print(f"  - [{event.type.value}] {event.description}")
    if card.missing_info:
        print(f"Missing info: {'; '.join(card.missing_info)}")

    analysis = view.expert_analysis
    print(f"\nAnalysis: {view.analysis_status}")
    if analysis is None:
        return
    print(analysis.interpretation)
    for suggestion in analysis.suggestions:
        print(f"  * ({suggestion.priority.value}, {suggestion.category.value}) "
              f"{suggestion.content}")
    for pattern in analysis.patterns or []:
        print(f"  Pattern: {pattern.pattern} [entries {', '.join(pattern.evidence)}]")
    for flag in analysis.risk_flags:
        print(f"  ! {flag}")


# Entries


def cmd_entry_add(journal: Journal, args: argparse.Namespace) -> int:
    """Process a new entry through the pipeline."""
    result = asyncio.run(journal.process_entry(args.text, args.date, args.age))

    for name, stage in result.stages.items():
        if not stage.attempted:
            status = "skipped"
        elif stage.success:
            status = f"ok ({stage.prompt_version})"
        else:
            status = f"failed: {stage.error}"
        print(f"{name}: {status}")

    if result.entry is not None:
        _print_entry(result.entry, verbose=True)

    if not result.success:
        print(f"Error: {result.error}")
        return 1
    return 0


def cmd_entry_show(journal: Journal, args: argparse.Namespace) -> int:
    view = journal.get_entry(args.id)
    if view is None:
        print(f"Error: Entry {args.id} not found.")
        return 1
    _print_entry(view, verbose=True)
    return 0


def cmd_entry_list(journal: Journal, args: argparse.Namespace) -> int:
    entries = journal.list_entries(
        limit=args.limit,
        offset=args.offset,
        tags=args.tag,
        start_date=args.start,
        end_date=args.end,
    )
    if not entries:
        print("No entries found.")
        return 0

    print(f"\n{'ID':<6} {'Date':<12} {'Analysis':<10} Summary")
    print("-" * 80)
    for view in entries:
        summary = view.fact_card.one_line if view.fact_card else view.entry.raw_text
        if len(summary) > 50:
            summary = summary[:47] + "..."
        print(f"{view.entry.id:<6} {view.entry.entry_date:<12} {view.analysis_status:<10} {summary}")
    print(f"\nTotal: {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
    return 0


# Questions


def cmd_question_add(journal: Journal, args: argparse.Namespace) -> int:
    question = journal.create_question(args.text)
    print(f"Created question #{question.id} ({question.stage.value})")
    return 0


def cmd_question_list(journal: Journal, args: argparse.Namespace) -> int:
    questions = journal.list_questions()
    if not questions:
        print("No questions yet.")
        return 0

    print(f"\n{'ID':<6} {'Stage':<15} Question")
    print("-" * 80)
    for q in questions:
        print(f"{q.id:<6} {q.stage.value:<15} {q.question}")
    return 0


def cmd_question_show(journal: Journal, args: argparse.Namespace) -> int:
    detail = journal.get_question(args.id)
    q = detail.question
    print(f"\nQuestion #{q.id}: {q.question}")
    print("-" * 40)
    print(f"Stage: {q.stage.value}")
    if q.current_conclusion:
        source = f" ({q.conclusion_source.value})" if q.conclusion_source else ""
        print(f"Conclusion{source}: {q.current_conclusion}")
    if q.related_entry_ids:
        print(f"Related entries: {', '.join(str(i) for i in q.related_entry_ids)}")

    if detail.observations:
        print("\nObservations:")
        for o in detail.observations:
            print(f"  [{o.created_at}] ({o.source}) {o.content}")
    if detail.discussions:
        print("\nDiscussion:")
        for d in detail.discussions:
            print(f"  {d.role}: {d.content}")
    return 0


def cmd_question_observe(journal: Journal, args: argparse.Namespace) -> int:
    outcome = journal.on_observation_added(args.id, args.text, args.entry)
    print(f"Added observation #{outcome.observation.id}")
    if outcome.stage_update is not None:
        print(f"Question moved to: {outcome.stage_update.value}")
    return 0


def cmd_question_stage(journal: Journal, args: argparse.Namespace) -> int:
    question = journal.update_question(args.id, stage=args.stage)
    print(f"Question #{question.id} is now {question.stage.value}")
    return 0


def cmd_question_discuss(journal: Journal, args: argparse.Namespace) -> int:
    result = asyncio.run(journal.discuss_question(args.id, args.message))
    print(result.assistant_message.content)
    if result.suggested_conclusion:
        print(f"\nSuggested conclusion: {result.suggested_conclusion}")
        if args.accept:
            journal.update_question(
                args.id,
                current_conclusion=result.suggested_conclusion,
                conclusion_source="ai",
            )
            print("Saved as the current conclusion.")
    return 0


# Chat


def _load_history(path: Path | None) -> list[dict[str, str]]:
    if path is None or not path.exists():
        return []
    history = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(history, list):
        raise ValueError(f"Chat history in {path} must be a JSON list")
    return history


def cmd_chat(journal: Journal, args: argparse.Namespace) -> int:
    """Ask the expert a question; --history carries the conversation between runs."""
    history = _load_history(args.history)
    result = asyncio.run(journal.chat(args.message, history))
    if not result.success:
        print(f"Error: {result.error}")
        return 1

    print(result.reply)
    if result.referenced_entry_ids:
        print(f"\nReferenced entries: {', '.join(str(i) for i in result.referenced_entry_ids)}")

    if args.history is not None:
        history += [
            {"role": "user", "content": args.message.strip()},
            {"role": "assistant", "content": result.reply},
        ]
        args.history.write_text(json.dumps(history, indent=2, ensure_ascii=False),
                                encoding="utf-8")
    return 0


# Strategies


def cmd_strategy_add(journal: Journal, args: argparse.Namespace) -> int:
    strategy = journal.add_strategy(
        args.category,
        args.description,
        conditions=args.conditions,
        status="retired" if args.retired else "active",
    )
    print(f"Added strategy #{strategy.id} ({strategy.category})")
    return 0


def cmd_strategy_list(journal: Journal, args: argparse.Namespace) -> int:
    strategies = journal.list_strategies(category=args.category, status=args.status)
    if not strategies:
        print("No strategies found.")
        return 0
    for s in strategies:
        line = f"{s.id:<6} {s.category:<10} {s.status:<8} {s.description}"
        if s.conditions:
            line += f" (when: {s.conditions})"
        print(line)
    return 0


# Prompts


def cmd_prompt_list(journal: Journal, args: argparse.Namespace) -> int:
    versions = journal.list_prompt_versions(args.agent)
    if not versions:
        print(f"No stored versions for {args.agent}; using the default prompt.")
        return 0
    for p in versions:
        marker = "*" if p.enabled else " "
        notes = f"  {p.release_notes}" if p.release_notes else ""
        print(f"{marker} {p.version:<16} {p.created_at}{notes}")
    return 0


def cmd_prompt_show(journal: Journal, args: argparse.Namespace) -> int:
    resolved = journal.resolve_prompt(args.agent)
    print(f"# {args.agent} ({resolved.version})\n")
    print(resolved.prompt)
    return 0


def cmd_prompt_create(journal: Journal, args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    record = journal.create_prompt_version(
        args.agent, args.version, text, release_notes=args.notes, enable_immediately=args.enable
    )
    state = "enabled" if record.enabled else "stored"
    print(f"Created {args.agent} prompt {record.version} ({state})")
    return 0


def cmd_prompt_enable(journal: Journal, args: argparse.Namespace) -> int:
    record = journal.enable_prompt_version(args.agent, args.version)
    print(f"Enabled {args.agent} prompt {record.version}")
    return 0


def cmd_prompt_clear_cache(journal: Journal, args: argparse.Namespace) -> int:
    journal.clear_prompt_cache(args.agent)
    print("Prompt cache cleared.")
    return 0


COMMANDS = {
    ("entry", "add"): cmd_entry_add,
    ("entry", "show"): cmd_entry_show,
    ("entry", "list"): cmd_entry_list,
    ("question", "add"): cmd_question_add,
    ("question", "list"): cmd_question_list,
    ("question", "show"): cmd_question_show,
    ("question", "observe"): cmd_question_observe,
    ("question", "stage"): cmd_question_stage,
    ("question", "discuss"): cmd_question_discuss,
    ("chat", None): cmd_chat,
    ("strategy", "add"): cmd_strategy_add,
    ("strategy", "list"): cmd_strategy_list,
    ("prompt", "list"): cmd_prompt_list,
    ("prompt", "show"): cmd_prompt_show,
    ("prompt", "create"): cmd_prompt_create,
    ("prompt", "enable"): cmd_prompt_enable,
    ("prompt", "clear-cache"): cmd_prompt_clear_cache,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(prog="sprout", description="Parenting journal")
    parser.add_argument("--config", type=Path, help="Path to config.json")
    parser.add_argument("--db", type=Path, help="Override the database path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs")

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    # entry
    entry = subparsers.add_parser("entry", help="Journal entries")
    entry_sub = entry.add_subparsers(dest="action")

    add = entry_sub.add_parser("add", help="Add and analyze an entry")
    add.add_argument("text", help="What happened")
    add.add_argument("--date", default=date.today().isoformat(), help="Entry date (YYYY-MM-DD)")
    add.add_argument("--age", help="Child age, e.g. '2y3m'")

    show = entry_sub.add_parser("show", help="Show an entry with its analysis")
    show.add_argument("id", type=int)

    ls = entry_sub.add_parser("list", help="List entries")
    ls.add_argument("-n", "--limit", type=int, default=20)
    ls.add_argument("--offset", type=int, default=0)
    ls.add_argument("-t", "--tag", action="append", help="Require a tag (repeatable)")
    ls.add_argument("--from", dest="start", help="Earliest entry date")
    ls.add_argument("--to", dest="end", help="Latest entry date")

    # question
    question = subparsers.add_parser("question", help="Parenting questions")
    question_sub = question.add_subparsers(dest="action")

    q_add = question_sub.add_parser("add", help="Start tracking a question")
    q_add.add_argument("text")

    question_sub.add_parser("list", help="List questions")

    q_show = question_sub.add_parser("show", help="Show a question with its history")
    q_show.add_argument("id", type=int)

    q_observe = question_sub.add_parser("observe", help="Add an observation")
    q_observe.add_argument("id", type=int)
    q_observe.add_argument("text")
    q_observe.add_argument("--entry", type=int, help="Entry the observation came from")

    q_stage = question_sub.add_parser("stage", help="Set the stage manually")
    q_stage.add_argument("id", type=int)
    q_stage.add_argument("stage", choices=[s.value for s in QuestionStage])

    q_discuss = question_sub.add_parser("discuss", help="Talk a question through")
    q_discuss.add_argument("id", type=int)
    q_discuss.add_argument("message")
    q_discuss.add_argument(
        "--accept", action="store_true", help="Save a suggested conclusion"
    )

    # chat
    chat = subparsers.add_parser("chat", help="Ask the expert a free-form question")
    chat.add_argument("message")
    chat.add_argument(
        "--history", type=Path, help="JSON file holding the conversation so far (updated)"
    )

    # strategy
    strategy = subparsers.add_parser("strategy", help="Strategy hints")
    strategy_sub = strategy.add_subparsers(dest="action")

    s_add = strategy_sub.add_parser("add", help="Add a strategy")
    s_add.add_argument("category", help="e.g. sleep, emotion, behavior, feeding, social")
    s_add.add_argument("description")
    s_add.add_argument("--conditions", help="When the strategy applies")
    s_add.add_argument("--retired", action="store_true", help="Store as retired")

    s_list = strategy_sub.add_parser("list", help="List strategies")
    s_list.add_argument("--category")
    s_list.add_argument("--status", choices=["active", "retired"])

    # prompt
    prompt = subparsers.add_parser("prompt", help="Agent prompt versions")
    prompt_sub = prompt.add_subparsers(dest="action")

    p_list = prompt_sub.add_parser("list", help="List stored versions")
    p_list.add_argument("agent", choices=AGENT_NAMES)

    p_show = prompt_sub.add_parser("show", help="Show the active prompt")
    p_show.add_argument("agent", choices=AGENT_NAMES)

    p_create = prompt_sub.add_parser("create", help="Store a new version from a file")
    p_create.add_argument("agent", choices=AGENT_NAMES)
    p_create.add_argument("version")
    p_create.add_argument("file", help="File holding the prompt text")
    p_create.add_argument("--notes", help="Release notes")
    p_create.add_argument("--enable", action="store_true", help="Enable immediately")

    p_enable = prompt_sub.add_parser("enable", help="Enable a stored version")
    p_enable.add_argument("agent", choices=AGENT_NAMES)
    p_enable.add_argument("version")

    p_clear = prompt_sub.add_parser("clear-cache", help="Drop cached prompts")
    p_clear.add_argument("agent", nargs="?", choices=AGENT_NAMES)

    return parser


def run_cli(argv: list[str] | None = None, journal: Journal | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.
        journal: Journal to operate on; built from config if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    handler = COMMANDS.get((args.command, getattr(args, "action", None)))
    if handler is None:
        print(f"Error: '{args.command}' needs a sub-command. See 'sprout {args.command} --help'.")
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    owns_journal = journal is None
    if journal is None:
        config = config_from_env(load_config(args.config))
        if args.db:
            config.db_path = args.db
        journal = Journal(config, event_logger=configure_logger(config.log_dir))

    try:
        return handler(journal, args)
    except (SproutError, ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: {e}")
        return 1
    finally:
        if owns_journal:
            journal.close()


if __name__ == "__main__":
    sys.exit(run_cli())
