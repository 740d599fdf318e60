"""SQLite storage for journal entries, questions and prompt versions."""

import json
import sqlite3
from pathlib import Path
from typing import Any, Iterable

from ..errors import NotFoundError
from ..models import (
    AgeBucket,
    AgentPrompt,
    ConclusionSource,
    Emotion,
    Entry,
    EntryWithAnalysis,
    Event,
    EventType,
    ExpertAnalysis,
    FactCard,
    ParentingQuestion,
    Pattern,
    Priority,
    QuestionDiscussion,
    QuestionObservation,
    QuestionStage,
    StageRun,
    Strategy,
    Suggestion,
    SuggestionCategory,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    raw_text    TEXT NOT NULL,
    entry_date  TEXT NOT NULL,
    child_age   TEXT,
    created_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_entries_date ON entries(entry_date);

CREATE TABLE IF NOT EXISTS fact_cards (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id      INTEGER NOT NULL UNIQUE REFERENCES entries(id) ON DELETE CASCADE,
    one_line      TEXT NOT NULL,
    events        TEXT NOT NULL DEFAULT '[]',
    tags          TEXT NOT NULL DEFAULT '[]',
    missing_info  TEXT NOT NULL DEFAULT '[]',
    age_bucket    TEXT,
    created_at    TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS expert_analyses (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    fact_card_id    INTEGER NOT NULL UNIQUE REFERENCES fact_cards(id) ON DELETE CASCADE,
    interpretation  TEXT NOT NULL,
    suggestions     TEXT NOT NULL DEFAULT '[]',
    patterns        TEXT,
    risk_flags      TEXT NOT NULL DEFAULT '[]',
    created_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS stage_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id        INTEGER NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
    stage           TEXT NOT NULL,
    success         INTEGER NOT NULL,
    error           TEXT,
    error_kind      TEXT,
    prompt_version  TEXT,
    created_at      TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_stage_runs_entry ON stage_runs(entry_id, stage);

CREATE TABLE IF NOT EXISTS strategies (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    category     TEXT NOT NULL,
    description  TEXT NOT NULL,
    conditions   TEXT,
    status       TEXT NOT NULL DEFAULT 'active',
    created_at   TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS parenting_questions (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    question            TEXT NOT NULL,
    stage               TEXT NOT NULL DEFAULT 'observing',
    current_conclusion  TEXT,
    conclusion_source   TEXT,
    display_order       INTEGER NOT NULL DEFAULT 0,
    related_entry_ids   TEXT NOT NULL DEFAULT '[]',
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS question_observations (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    question_id  INTEGER NOT NULL REFERENCES parenting_questions(id) ON DELETE CASCADE,
    content      TEXT NOT NULL,
    source       TEXT NOT NULL DEFAULT 'manual',
    entry_id     INTEGER,
    created_at   TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_observations_question ON question_observations(question_id);

CREATE TABLE IF NOT EXISTS question_discussions (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    question_id  INTEGER NOT NULL REFERENCES parenting_questions(id) ON DELETE CASCADE,
    role         TEXT NOT NULL,
    content      TEXT NOT NULL,
    created_at   TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_discussions_question ON question_discussions(question_id);

CREATE TABLE IF NOT EXISTS agent_prompts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_name     TEXT NOT NULL,
    version        TEXT NOT NULL,
    system_prompt  TEXT NOT NULL,
    enabled        INTEGER NOT NULL DEFAULT 0,
    release_notes  TEXT,
    created_at     TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(agent_name, version)
);
"""

# The expert_success column holds the outcome of the latest expert run.
ENTRY_VIEW_SELECT = """
    SELECT
        e.id AS e_id, e.raw_text, e.entry_date, e.child_age, e.created_at AS e_created_at,
        f.id AS f_id, f.one_line, f.events, f.tags, f.missing_info, f.age_bucket,
        f.created_at AS f_created_at,
        a.id AS a_id, a.interpretation, a.suggestions, a.patterns, a.risk_flags,
        a.created_at AS a_created_at,
        (
            SELECT r.success FROM stage_runs r
            WHERE r.entry_id = e.id AND r.stage = 'expert'
            ORDER BY r.id DESC LIMIT 1
        ) AS expert_success
    FROM entries e
    LEFT JOIN fact_cards f ON f.entry_id = e.id
    LEFT JOIN expert_analyses a ON a.fact_card_id = f.id
"""

QUESTION_COLUMNS = (
    "id, question, stage, current_conclusion, conclusion_source, "
    "display_order, related_entry_ids, created_at, updated_at"
)

UPDATABLE_QUESTION_FIELDS = (
    "question",
    "stage",
    "current_conclusion",
    "conclusion_source",
    "display_order",
    "related_entry_ids",
)


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


class JournalStore:
    """Persistent storage for the journal using SQLite.

    All records live in a single local database. Writes commit
    immediately; prompt enablement runs inside one transaction so
    readers never observe two enabled versions for the same agent.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def init_db(self) -> None:
        """Create all tables if they don't exist."""
        conn = self._get_connection()
        conn.executescript(SCHEMA)
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def create_entry(self, raw_text: str, entry_date: str, child_age: str | None = None) -> Entry:
        """Insert a bare entry.

        Args:
            raw_text: The text as the parent wrote it.
            entry_date: ISO date (YYYY-MM-DD) the entry refers to.
            child_age: Optional free-form age label.

        Returns:
            The entry with its assigned id and created_at.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO entries (raw_text, entry_date, child_age)
            VALUES (?, ?, ?)
            RETURNING id, created_at
            """,
            (raw_text, entry_date, child_age),
        )
        row = cursor.fetchone()
        conn.commit()
        return Entry(
            id=row["id"],
            raw_text=raw_text,
            entry_date=entry_date,
            child_age=child_age,
            created_at=row["created_at"],
        )

    def get_entry(self, entry_id: int) -> EntryWithAnalysis | None:
        """Get an entry with its fact card and analysis, or None."""
        conn = self._get_connection()
        row = conn.execute(ENTRY_VIEW_SELECT + " WHERE e.id = ?", (entry_id,)).fetchone()
        return self._row_to_view(row) if row is not None else None

    def list_entries(
        self,
        limit: int = 20,
        offset: int = 0,
        tags: list[str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[EntryWithAnalysis]:
        """List entries newest first.

        Args:
            limit: Maximum number of entries.
            offset: Number of entries to skip.
            tags: If given, only entries whose fact card has every tag.
            start_date: Inclusive lower bound on entry_date.
            end_date: Inclusive upper bound on entry_date.

        Returns:
            Composed entry views ordered by entry_date descending.
        """
        clauses: list[str] = []
        params: list[Any] = []
        if start_date:
            clauses.append("e.entry_date >= ?")
            params.append(start_date)
        if end_date:
            clauses.append("e.entry_date <= ?")
            params.append(end_date)
        for tag in tags or []:
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(f.tags) WHERE json_each.value = ?)"
            )
            params.append(tag)
        return self._query_views(clauses, params, limit, offset)

    def recent_entries(self, exclude_ids: list[int], limit: int) -> list[EntryWithAnalysis]:
        """Most recent entries by entry_date, skipping the given ids."""
        if limit <= 0:
            return []
        clauses: list[str] = []
        params: list[Any] = []
        if exclude_ids:
            clauses.append(f"e.id NOT IN ({_placeholders(exclude_ids)})")
            params.extend(exclude_ids)
        return self._query_views(clauses, params, limit)

    def entries_sharing_tags(
        self, tags: list[str], exclude_ids: list[int], limit: int
    ) -> list[EntryWithAnalysis]:
        """Entries whose fact card has at least one of the tags, newest first."""
        if not tags or limit <= 0:
            return []
        clauses = [
            "EXISTS (SELECT 1 FROM json_each(f.tags) "
            f"WHERE json_each.value IN ({_placeholders(tags)}))"
        ]
        params: list[Any] = list(tags)
        if exclude_ids:
            clauses.append(f"e.id NOT IN ({_placeholders(exclude_ids)})")
            params.extend(exclude_ids)
        return self._query_views(clauses, params, limit)

    def _query_views(
        self,
        clauses: list[str],
        params: list[Any],
        limit: int,
        offset: int = 0,
    ) -> list[EntryWithAnalysis]:
        sql = ENTRY_VIEW_SELECT
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY e.entry_date DESC, e.id DESC LIMIT ? OFFSET ?"
        conn = self._get_connection()
        cursor = conn.execute(sql, (*params, limit, offset))
        return [self._row_to_view(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Fact cards and analyses
    # ------------------------------------------------------------------

    def create_fact_card(self, entry_id: int, card: FactCard) -> FactCard:
        """Persist a validated fact card for an existing entry.

        Raises:
            sqlite3.IntegrityError: If the entry does not exist or already
                has a fact card.
        """
        data = card.to_dict()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO fact_cards (entry_id, one_line, events, tags, missing_info, age_bucket)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id, created_at
            """,
            (
                entry_id,
                data["one_line"],
                json.dumps(data["events"], ensure_ascii=False),
                json.dumps(data["tags"], ensure_ascii=False),
                json.dumps(data["missing_info"], ensure_ascii=False),
                data["age_bucket"],
            ),
        )
        row = cursor.fetchone()
        conn.commit()
        return FactCard(
            one_line=card.one_line,
            events=list(card.events),
            tags=list(card.tags),
            missing_info=list(card.missing_info),
            age_bucket=card.age_bucket,
            id=row["id"],
            entry_id=entry_id,
            created_at=row["created_at"],
        )

    def get_fact_card(self, entry_id: int) -> FactCard | None:
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT id AS f_id, entry_id, one_line, events, tags, missing_info,
                   age_bucket, created_at AS f_created_at
            FROM fact_cards WHERE entry_id = ?
            """,
            (entry_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_fact_card(row, entry_id)

    def create_expert_analysis(self, fact_card_id: int, analysis: ExpertAnalysis) -> ExpertAnalysis:
        """Persist a validated expert analysis for an existing fact card."""
        data = analysis.to_dict()
        patterns = data["patterns"]
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO expert_analyses (fact_card_id, interpretation, suggestions, patterns, risk_flags)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id, created_at
            """,
            (
                fact_card_id,
                data["interpretation"],
                json.dumps(data["suggestions"], ensure_ascii=False),
                json.dumps(patterns, ensure_ascii=False) if patterns is not None else None,
                json.dumps(data["risk_flags"], ensure_ascii=False),
            ),
        )
        row = cursor.fetchone()
        conn.commit()
        return ExpertAnalysis(
            interpretation=analysis.interpretation,
            suggestions=list(analysis.suggestions),
            patterns=list(analysis.patterns) if analysis.patterns is not None else None,
            risk_flags=list(analysis.risk_flags),
            id=row["id"],
            fact_card_id=fact_card_id,
            created_at=row["created_at"],
        )

    def get_expert_analysis(self, fact_card_id: int) -> ExpertAnalysis | None:
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT id AS a_id, interpretation, suggestions, patterns, risk_flags,
                   created_at AS a_created_at
            FROM expert_analyses WHERE fact_card_id = ?
            """,
            (fact_card_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_analysis(row, fact_card_id)

    def record_stage_run(self, run: StageRun) -> StageRun:
        """Append a stage outcome to the entry's history."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO stage_runs (entry_id, stage, success, error, error_kind, prompt_version)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id, created_at
            """,
            (
                run.entry_id,
                run.stage,
                int(run.success),
                run.error,
                run.error_kind,
                run.prompt_version,
            ),
        )
        row = cursor.fetchone()
        conn.commit()
        return StageRun(
            entry_id=run.entry_id,
            stage=run.stage,
            success=run.success,
            error=run.error,
            error_kind=run.error_kind,
            prompt_version=run.prompt_version,
            id=row["id"],
            created_at=row["created_at"],
        )

    def list_stage_runs(self, entry_id: int) -> list[StageRun]:
        """Stage history for an entry, oldest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT id, entry_id, stage, success, error, error_kind, prompt_version, created_at
            FROM stage_runs WHERE entry_id = ? ORDER BY id
            """,
            (entry_id,),
        )
        return [
            StageRun(
                entry_id=row["entry_id"],
                stage=row["stage"],
                success=bool(row["success"]),
                error=row["error"],
                error_kind=row["error_kind"],
                prompt_version=row["prompt_version"],
                id=row["id"],
                created_at=row["created_at"],
            )
            for row in cursor.fetchall()
        ]

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def add_strategy(self, strategy: Strategy) -> Strategy:
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO strategies (category, description, conditions, status)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (strategy.category, strategy.description, strategy.conditions, strategy.status),
        )
        row = cursor.fetchone()
        conn.commit()
        return Strategy(
            id=row["id"],
            category=strategy.category,
            description=strategy.description,
            conditions=strategy.conditions,
            status=strategy.status,
        )

    def list_strategies(
        self,
        categories: list[str] | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[Strategy]:
        """List strategies, optionally filtered by category set and status.

        An empty categories list matches nothing; None matches everything.
        """
        if categories is not None and not categories:
            return []
        clauses: list[str] = []
        params: list[Any] = []
        if categories is not None:
            clauses.append(f"category IN ({_placeholders(categories)})")
            params.extend(categories)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        sql = "SELECT id, category, description, conditions, status FROM strategies"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        conn = self._get_connection()
        cursor = conn.execute(sql, params)
        return [
            Strategy(
                id=row["id"],
                category=row["category"],
                description=row["description"],
                conditions=row["conditions"],
                status=row["status"],
            )
            for row in cursor.fetchall()
        ]

    # ------------------------------------------------------------------
    # Parenting questions
    # ------------------------------------------------------------------

    def create_question(self, question: str) -> ParentingQuestion:
        """Insert a question in the observing stage at the end of the list."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            INSERT INTO parenting_questions (question, stage, display_order)
            VALUES (?, ?, (SELECT COALESCE(MAX(display_order), 0) + 1 FROM parenting_questions))
            RETURNING {QUESTION_COLUMNS}
            """,
            (question, QuestionStage.OBSERVING.value),
        )
        row = cursor.fetchone()
        conn.commit()
        return self._row_to_question(row)

    def get_question(self, question_id: int) -> ParentingQuestion | None:
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {QUESTION_COLUMNS} FROM parenting_questions WHERE id = ?",
            (question_id,),
        ).fetchone()
        return self._row_to_question(row) if row is not None else None

    def list_questions(self) -> list[ParentingQuestion]:
        """All questions by display order, newest first within the same order."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {QUESTION_COLUMNS} FROM parenting_questions
            ORDER BY display_order ASC, created_at DESC, id DESC
            """
        )
        return [self._row_to_question(row) for row in cursor.fetchall()]

    def update_question(self, question_id: int, **fields: Any) -> ParentingQuestion:
        """Update the given question fields and bump updated_at.

        Args:
            question_id: The question to update.
            **fields: Any of question, stage, current_conclusion,
                conclusion_source, display_order, related_entry_ids.
                Enum values are stored by value.

        Returns:
            The updated question.

        Raises:
            ValueError: If an unknown field is given.
            NotFoundError: If the question does not exist.
        """
        unknown = set(fields) - set(UPDATABLE_QUESTION_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update question fields: {', '.join(sorted(unknown))}")

        assignments = ["updated_at = datetime('now')"]
        params: list[Any] = []
        for name, value in fields.items():
            if isinstance(value, (QuestionStage, ConclusionSource)):
                value = value.value
            elif name == "related_entry_ids":
                value = json.dumps(list(value))
            assignments.append(f"{name} = ?")
            params.append(value)

        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            UPDATE parenting_questions SET {', '.join(assignments)}
            WHERE id = ?
            RETURNING {QUESTION_COLUMNS}
            """,
            (*params, question_id),
        )
        row = cursor.fetchone()
        conn.commit()
        if row is None:
            raise NotFoundError("question", question_id)
        return self._row_to_question(row)

    def delete_question(self, question_id: int) -> bool:
        """Delete a question with its observations and discussions."""
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM parenting_questions WHERE id = ?", (question_id,))
        conn.commit()
        return cursor.rowcount > 0

    def add_observation(self, observation: QuestionObservation) -> QuestionObservation:
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO question_observations (question_id, content, source, entry_id)
            VALUES (?, ?, ?, ?)
            RETURNING id, created_at
            """,
            (
                observation.question_id,
                observation.content,
                observation.source,
                observation.entry_id,
            ),
        )
        row = cursor.fetchone()
        conn.commit()
        return QuestionObservation(
            question_id=observation.question_id,
            content=observation.content,
            source=observation.source,
            entry_id=observation.entry_id,
            id=row["id"],
            created_at=row["created_at"],
        )

    def count_observations(self, question_id: int) -> int:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM question_observations WHERE question_id = ?",
            (question_id,),
        ).fetchone()
        return row["n"]

    def list_observations(
        self, question_id: int, limit: int | None = None
    ) -> list[QuestionObservation]:
        """Observations for a question, newest first."""
        sql = """
            SELECT id, question_id, content, source, entry_id, created_at
            FROM question_observations WHERE question_id = ?
            ORDER BY created_at DESC, id DESC
        """
        params: list[Any] = [question_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        conn = self._get_connection()
        cursor = conn.execute(sql, params)
        return [
            QuestionObservation(
                question_id=row["question_id"],
                content=row["content"],
                source=row["source"],
                entry_id=row["entry_id"],
                id=row["id"],
                created_at=row["created_at"],
            )
            for row in cursor.fetchall()
        ]

    def add_discussion(self, message: QuestionDiscussion) -> QuestionDiscussion:
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO question_discussions (question_id, role, content)
            VALUES (?, ?, ?)
            RETURNING id, created_at
            """,
            (message.question_id, message.role, message.content),
        )
        row = cursor.fetchone()
        conn.commit()
        return QuestionDiscussion(
            question_id=message.question_id,
            role=message.role,
            content=message.content,
            id=row["id"],
            created_at=row["created_at"],
        )

    def list_discussions(
        self, question_id: int, limit: int | None = None
    ) -> list[QuestionDiscussion]:
        """Discussion messages oldest first; with a limit, the latest ones."""
        sql = """
            SELECT id, question_id, role, content, created_at
            FROM question_discussions WHERE question_id = ?
            ORDER BY id DESC
        """
        params: list[Any] = [question_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        conn = self._get_connection()
        rows = conn.execute(sql, params).fetchall()
        return [
            QuestionDiscussion(
                question_id=row["question_id"],
                role=row["role"],
                content=row["content"],
                id=row["id"],
                created_at=row["created_at"],
            )
            for row in reversed(rows)
        ]

    # ------------------------------------------------------------------
    # Agent prompts
    # ------------------------------------------------------------------

    def create_prompt_version(
        self,
        agent_name: str,
        version: str,
        system_prompt: str,
        release_notes: str | None = None,
        enable: bool = False,
    ) -> AgentPrompt:
        """Insert a prompt version, optionally making it the only enabled one.

        Disabling the siblings and inserting the new row happen in one
        transaction.

        Raises:
            sqlite3.IntegrityError: If the version already exists.
        """
        conn = self._get_connection()
        with conn:
            if enable:
                conn.execute(
                    "UPDATE agent_prompts SET enabled = 0 WHERE agent_name = ?",
                    (agent_name,),
                )
            row = conn.execute(
                """
                INSERT INTO agent_prompts (agent_name, version, system_prompt, enabled, release_notes)
                VALUES (?, ?, ?, ?, ?)
                RETURNING id, created_at
                """,
                (agent_name, version, system_prompt, int(enable), release_notes),
            ).fetchone()
        return AgentPrompt(
            agent_name=agent_name,
            version=version,
            system_prompt=system_prompt,
            enabled=enable,
            release_notes=release_notes,
            id=row["id"],
            created_at=row["created_at"],
        )

    def enable_prompt_version(self, agent_name: str, version: str) -> AgentPrompt:
        """Atomically disable every version of an agent, then enable one.

        Raises:
            NotFoundError: If the version does not exist. Nothing changes.
        """
        conn = self._get_connection()
        with conn:
            conn.execute(
                "UPDATE agent_prompts SET enabled = 0 WHERE agent_name = ?",
                (agent_name,),
            )
            row = conn.execute(
                """
                UPDATE agent_prompts SET enabled = 1
                WHERE agent_name = ? AND version = ?
                RETURNING id, agent_name, version, system_prompt, enabled, release_notes, created_at
                """,
                (agent_name, version),
            ).fetchone()
            if row is None:
                raise NotFoundError("prompt version", f"{agent_name}@{version}")
        return self._row_to_prompt(row)

    def get_enabled_prompt(self, agent_name: str) -> AgentPrompt | None:
        """The most recently created enabled version for an agent."""
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT id, agent_name, version, system_prompt, enabled, release_notes, created_at
            FROM agent_prompts
            WHERE agent_name = ? AND enabled = 1
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (agent_name,),
        ).fetchone()
        return self._row_to_prompt(row) if row is not None else None

    def list_prompt_versions(self, agent_name: str) -> list[AgentPrompt]:
        """All versions for an agent, newest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT id, agent_name, version, system_prompt, enabled, release_notes, created_at
            FROM agent_prompts WHERE agent_name = ?
            ORDER BY created_at DESC, id DESC
            """,
            (agent_name,),
        )
        return [self._row_to_prompt(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _row_to_view(self, row: sqlite3.Row) -> EntryWithAnalysis:
        entry = Entry(
            id=row["e_id"],
            raw_text=row["raw_text"],
            entry_date=row["entry_date"],
            child_age=row["child_age"],
            created_at=row["e_created_at"],
        )
        if row["f_id"] is None:
            return EntryWithAnalysis(entry=entry)

        fact_card = self._row_to_fact_card(row, entry.id)
        analysis = None
        if row["a_id"] is not None:
            analysis = self._row_to_analysis(row, fact_card.id)

        if analysis is not None:
            status = "complete"
        elif row["expert_success"] is not None and not row["expert_success"]:
            status = "failed"
        else:
            status = "pending"
        return EntryWithAnalysis(
            entry=entry,
            fact_card=fact_card,
            expert_analysis=analysis,
            analysis_status=status,
        )

    def _row_to_fact_card(self, row: sqlite3.Row, entry_id: int | None) -> FactCard:
        events = [
            Event(
                type=EventType(item["type"]),
                description=item["description"],
                emotion=Emotion(item["emotion"]) if item.get("emotion") else None,
                context=item.get("context"),
            )
            for item in json.loads(row["events"])
        ]
        return FactCard(
            one_line=row["one_line"],
            events=events,
            tags=json.loads(row["tags"]),
            missing_info=json.loads(row["missing_info"]),
            age_bucket=AgeBucket(row["age_bucket"]) if row["age_bucket"] else None,
            id=row["f_id"],
            entry_id=entry_id,
            created_at=row["f_created_at"],
        )

    def _row_to_analysis(self, row: sqlite3.Row, fact_card_id: int | None) -> ExpertAnalysis:
        suggestions = [
            Suggestion(
                category=SuggestionCategory(item["category"]),
                content=item["content"],
                priority=Priority(item["priority"]),
            )
            for item in json.loads(row["suggestions"])
        ]
        patterns = None
        if row["patterns"] is not None:
            patterns = [
                Pattern(pattern=item["pattern"], evidence=item.get("evidence", []))
                for item in json.loads(row["patterns"])
            ]
        return ExpertAnalysis(
            interpretation=row["interpretation"],
            suggestions=suggestions,
            patterns=patterns,
            risk_flags=json.loads(row["risk_flags"]),
            id=row["a_id"],
            fact_card_id=fact_card_id,
            created_at=row["a_created_at"],
        )

    def _row_to_question(self, row: sqlite3.Row) -> ParentingQuestion:
        source = row["conclusion_source"]
        return ParentingQuestion(
            id=row["id"],
            question=row["question"],
            stage=QuestionStage(row["stage"]),
            current_conclusion=row["current_conclusion"],
            conclusion_source=ConclusionSource(source) if source else None,
            display_order=row["display_order"],
            related_entry_ids=json.loads(row["related_entry_ids"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_prompt(self, row: sqlite3.Row) -> AgentPrompt:
        return AgentPrompt(
            id=row["id"],
            agent_name=row["agent_name"],
            version=row["version"],
            system_prompt=row["system_prompt"],
            enabled=bool(row["enabled"]),
            release_notes=row["release_notes"],
            created_at=row["created_at"],
        )
