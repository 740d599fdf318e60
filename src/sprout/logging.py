"""JSONL logging of pipeline events for observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    entry_id: int | None = None
    question_id: int | None = None
    agent: str | None = None
    stage: str | None = None
    prompt_version: str | None = None
    success: bool | None = None
    duration_ms: float | None = None
    error: str | None = None
    error_kind: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured pipeline events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "pipeline.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".sprout" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        entry_id: int | None = None,
        question_id: int | None = None,
        agent: str | None = None,
        stage: str | None = None,
        prompt_version: str | None = None,
        success: bool | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        error_kind: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            entry_id=entry_id,
            question_id=question_id,
            agent=agent,
            stage=stage,
            prompt_version=prompt_version,
            success=success,
            duration_ms=duration_ms,
            error=error,
            error_kind=error_kind,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_stage_result(
        self,
        stage: str,
        success: bool,
        *,
        entry_id: int | None = None,
        prompt_version: str | None = None,
        error: str | None = None,
        error_kind: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log the outcome of one pipeline stage."""
        self.log(
            "stage_result",
            entry_id=entry_id,
            stage=stage,
            success=success,
            prompt_version=prompt_version,
            error=error if not success else None,
            error_kind=error_kind if not success else None,
            duration_ms=duration_ms,
        )

    def log_model_call(
        self,
        agent: str,
        success: bool,
        *,
        prompt_version: str | None = None,
        duration_ms: float | None = None,
        attempt: int | None = None,
        error: str | None = None,
        error_kind: str | None = None,
        total_tokens: int | None = None,
    ) -> None:
        """Log a single model call."""
        extra: dict[str, Any] = {}
        if attempt is not None:
            extra["attempt"] = attempt
        if total_tokens is not None:
            extra["total_tokens"] = total_tokens
        self.log(
            "model_call",
            agent=agent,
            success=success,
            prompt_version=prompt_version,
            duration_ms=duration_ms,
            error=error,
            error_kind=error_kind,
            **extra,
        )

    def log_stage_transition(
        self,
        question_id: int,
        from_stage: str,
        to_stage: str,
        *,
        reason: str | None = None,
    ) -> None:
        """Log a parenting question moving between stages."""
        self.log(
            "stage_transition",
            question_id=question_id,
            from_stage=from_stage,
            to_stage=to_stage,
            **({"reason": reason} if reason else {}),
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
