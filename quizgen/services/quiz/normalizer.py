"""
Candidate -> GeneratedItem normalization.

Every function here is pure: malformed or partial candidates are absorbed with
defaults and nothing raises.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from quizgen.domain.schemas import CandidateItem, GeneratedItem
from quizgen.domain.types import ContentLanguage, ItemKind

MULTIPLE_CHOICE_OPTION_COUNT = 4
DEFAULT_POINTS = 10
DEFAULT_MC_DIFFICULTY = 2
TRUE_FALSE_DIFFICULTY = 1

TRUE_FALSE_LABELS: Dict[ContentLanguage, Tuple[str, str]] = {
    ContentLanguage.EN: ("True", "False"),
    ContentLanguage.FR: ("Vrai", "Faux"),
    ContentLanguage.DE: ("Wahr", "Falsch"),
}

_TRUTHY_STRINGS = {"true", "vrai", "wahr", "yes", "oui", "ja", "1"}
_ANSWER_FIELDS = ("expected_answer", "correctAnswer", "answer", "answer_text", "correct_answer")
_LIST_FIELDS = {"options", "accepted_answers", "concept_ids"}
_STRING_FIELDS = {
    "type", "prompt", "question", "statement", "sentence",
    "explanation", "source_reference", "cognitive_level",
}

CandidateLike = Union[CandidateItem, Mapping[str, Any]]


def coerce_candidate(raw: Any) -> Optional[CandidateItem]:
    """Returns None for anything that is not a mapping or a CandidateItem."""
    if isinstance(raw, CandidateItem):
        return raw
    if not isinstance(raw, Mapping):
        return None
    try:
        return CandidateItem.model_validate(dict(raw))
    except ValidationError:
        cleaned = {}
        for key, value in raw.items():
            if not isinstance(key, str):
                continue
            if key in _LIST_FIELDS and not isinstance(value, list):
                continue
            if key in _STRING_FIELDS and not isinstance(value, str):
                continue
            cleaned[key] = value
        try:
            return CandidateItem.model_validate(cleaned)
        except ValidationError:
            return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float, bool)):
        return str(value)
    return ""


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return False


def _placeholder(index: int) -> str:
    return f"Option {chr(ord('A') + index)}"


def normalize_options(raw_options: Optional[List[Any]]) -> List[str]:
    """Exactly four non-empty option strings: truncated, or padded with placeholders."""
    options = [_as_text(o) for o in (raw_options or [])]
    options = [o for o in options if o][:MULTIPLE_CHOICE_OPTION_COUNT]
    while len(options) < MULTIPLE_CHOICE_OPTION_COUNT:
        options.append(_placeholder(len(options)))
    return options


def resolve_correct_index(candidate: CandidateItem, options: List[str]) -> Tuple[int, bool]:
    """
    Returns (index, resolved). `resolved` is False when nothing in the
    candidate identified the correct option and index 0 was assumed.
    """
    explicit = _as_int(candidate.correct_option_index)
    if explicit is not None and 0 <= explicit < len(options):
        return explicit, True

    lowered = [o.lower() for o in options]
    for field_name in _ANSWER_FIELDS:
        text = _as_text(getattr(candidate, field_name, None)).lower()
        if not text:
            continue
        if text in lowered:
            return lowered.index(text), True
        # Single letter answers ("B") refer to option positions
        if len(text) == 1 and "a" <= text <= "z":
            position = ord(text) - ord("a")
            if position < len(options):
                return position, True
    return 0, False


def _points(candidate: CandidateItem) -> int:
    value = _as_int(candidate.points)
    return value if value is not None and value > 0 else DEFAULT_POINTS


def _difficulty(candidate: CandidateItem, default: int) -> int:
    extra = candidate.model_extra or {}
    value = _as_int(extra.get("difficulty"))
    if value is not None and 1 <= value <= 3:
        return value
    return default


def _optional_text(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text or None


def normalize(
    candidate: CandidateLike,
    new_id: str,
    unit_id: str,
    sequence_index: int,
    language: ContentLanguage = ContentLanguage.EN,
    concept_id: Optional[str] = None,
) -> GeneratedItem:
    item = coerce_candidate(candidate) or CandidateItem()
    language = ContentLanguage.normalize(language)
    kind = item.kind
    common: Dict[str, Any] = {
        "id": new_id,
        "unit_id": unit_id,
        "concept_id": concept_id,
        "sequence": int(sequence_index),
        "prompt": item.prompt_text,
        "kind": kind,
        "points": _points(item),
        "explanation": _optional_text(item.explanation),
        "source_excerpt": _optional_text(item.source_reference),
        "cognitive_level": _optional_text(item.cognitive_level),
    }

    if kind == ItemKind.TRUE_FALSE:
        true_label, false_label = TRUE_FALSE_LABELS[language]
        truth_source = item.correct_answer
        if truth_source is None:
            truth_source = item.answer if item.answer is not None else item.expected_answer
        is_true = _is_truthy(truth_source)
        return GeneratedItem(
            **common,
            options=[true_label, false_label],
            correct_option_index=0 if is_true else 1,
            answer="true" if is_true else "false",
            difficulty=TRUE_FALSE_DIFFICULTY,
        )

    if kind == ItemKind.FILL_BLANK:
        accepted: List[str] = []
        for value in [item.correct_answer, item.expected_answer, item.answer, *(item.accepted_answers or [])]:
            text = _as_text(value)
            if text and text not in accepted:
                accepted.append(text)
        return GeneratedItem(
            **common,
            options=[],
            correct_option_index=None,
            answer=json.dumps(accepted, ensure_ascii=False),
            difficulty=_difficulty(item, DEFAULT_MC_DIFFICULTY),
        )

    options = normalize_options(item.options)
    index, _ = resolve_correct_index(item, options)
    answer = _as_text(item.expected_answer) or options[index]
    return GeneratedItem(
        **common,
        options=options,
        correct_option_index=index,
        answer=answer,
        difficulty=_difficulty(item, DEFAULT_MC_DIFFICULTY),
    )


def has_resolved_answer(candidate: CandidateLike) -> bool:
    """False only for multiple-choice candidates whose correct option had to be assumed."""
    item = coerce_candidate(candidate)
    if item is None:
        return False
    if item.kind != ItemKind.MULTIPLE_CHOICE:
        return True
    _, resolved = resolve_correct_index(item, normalize_options(item.options))
    return resolved
