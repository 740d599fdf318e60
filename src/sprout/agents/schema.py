"""Validation of untrusted model JSON into fact cards and expert analyses.

Models are prompted with camelCase keys (oneLine, missingInfo, ageBucket,
riskFlags); snake_case keys are accepted too.
"""

from enum import Enum
from typing import Any, TypeVar

from ..errors import SchemaValidationError
from ..models import (
    ONE_LINE_MAX_LENGTH,
    AgeBucket,
    Emotion,
    Event,
    EventType,
    ExpertAnalysis,
    FactCard,
    Pattern,
    Priority,
    Suggestion,
    SuggestionCategory,
)

E = TypeVar("E", bound=Enum)

_MISSING = object()


def _field(data: dict[str, Any], *keys: str) -> Any:
    """Return the first present key's value, or _MISSING."""
    for key in keys:
        if key in data:
            return data[key]
    return _MISSING


def _object(value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SchemaValidationError("expected an object", path)
    return value


def _string(value: Any, path: str) -> str:
    if value is _MISSING:
        raise SchemaValidationError("required field missing", path)
    if not isinstance(value, str):
        raise SchemaValidationError(f"expected a string, got {type(value).__name__}", path)
    return value


def _optional_string(value: Any, path: str) -> str | None:
    if value is _MISSING or value is None:
        return None
    return _string(value, path)


def _string_list(value: Any, path: str) -> list[str]:
    if value is _MISSING:
        raise SchemaValidationError("required field missing", path)
    if not isinstance(value, list):
        raise SchemaValidationError("expected a list", path)
    return [_string(item, f"{path}[{i}]") for i, item in enumerate(value)]


def _list(value: Any, path: str) -> list[Any]:
    if value is _MISSING:
        raise SchemaValidationError("required field missing", path)
    if not isinstance(value, list):
        raise SchemaValidationError("expected a list", path)
    return value


def _enum(enum_cls: type[E], value: Any, path: str) -> E:
    raw = _string(value, path)
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise SchemaValidationError(f"'{raw}' is not one of: {allowed}", path) from None


def _parse_event(value: Any, path: str) -> Event:
    data = _object(value, path)
    emotion = _field(data, "emotion")
    return Event(
        type=_enum(EventType, _field(data, "type"), f"{path}.type"),
        description=_string(_field(data, "description"), f"{path}.description"),
        emotion=(
            None
            if emotion is _MISSING or emotion is None
            else _enum(Emotion, emotion, f"{path}.emotion")
        ),
        context=_optional_string(_field(data, "context"), f"{path}.context"),
    )


def parse_fact_card(data: Any) -> FactCard:
    """Validate recorder output into a FactCard.

    Args:
        data: The JSON object returned by the model.

    Returns:
        An unpersisted FactCard. Duplicate tags are collapsed in order.

    Raises:
        SchemaValidationError: On the first field that does not match.
    """
    data = _object(data, "$")

    one_line = _string(_field(data, "oneLine", "one_line"), "oneLine")
    if len(one_line) > ONE_LINE_MAX_LENGTH:
        raise SchemaValidationError(
            f"must be at most {ONE_LINE_MAX_LENGTH} characters, got {len(one_line)}",
            "oneLine",
        )

    events = [
        _parse_event(item, f"events[{i}]")
        for i, item in enumerate(_list(_field(data, "events"), "events"))
    ]
    tags = list(dict.fromkeys(_string_list(_field(data, "tags"), "tags")))
    missing_info = _string_list(_field(data, "missingInfo", "missing_info"), "missingInfo")

    age_bucket = _field(data, "ageBucket", "age_bucket")
    return FactCard(
        one_line=one_line,
        events=events,
        tags=tags,
        missing_info=missing_info,
        age_bucket=(
            None
            if age_bucket is _MISSING or age_bucket is None
            else _enum(AgeBucket, age_bucket, "ageBucket")
        ),
    )


def _parse_pattern(value: Any, path: str) -> Pattern:
    data = _object(value, path)
    evidence = _list(_field(data, "evidence"), f"{path}.evidence")
    items: list[str] = []
    for i, item in enumerate(evidence):
        # Models often cite entry IDs as bare numbers
        if isinstance(item, int) and not isinstance(item, bool):
            item = str(item)
        items.append(_string(item, f"{path}.evidence[{i}]"))
    return Pattern(
        pattern=_string(_field(data, "pattern"), f"{path}.pattern"),
        evidence=items,
    )


def parse_expert_analysis(data: Any) -> ExpertAnalysis:
    """Validate expert output into an ExpertAnalysis.

    Raises:
        SchemaValidationError: On the first field that does not match.
    """
    data = _object(data, "$")
    interpretation = _string(_field(data, "interpretation"), "interpretation")

    suggestions = []
    for i, item in enumerate(_list(_field(data, "suggestions"), "suggestions")):
        path = f"suggestions[{i}]"
        suggestion = _object(item, path)
        suggestions.append(
            Suggestion(
                category=_enum(
                    SuggestionCategory, _field(suggestion, "category"), f"{path}.category"
                ),
                content=_string(_field(suggestion, "content"), f"{path}.content"),
                priority=_enum(Priority, _field(suggestion, "priority"), f"{path}.priority"),
            )
        )

    raw_patterns = _field(data, "patterns")
    patterns = None
    if raw_patterns is not _MISSING and raw_patterns is not None:
        patterns = [
            _parse_pattern(item, f"patterns[{i}]")
            for i, item in enumerate(_list(raw_patterns, "patterns"))
        ]

    return ExpertAnalysis(
        interpretation=interpretation,
        suggestions=suggestions,
        patterns=patterns,
        risk_flags=_string_list(_field(data, "riskFlags", "risk_flags"), "riskFlags"),
    )
