import json

from quizgen.domain.schemas import CandidateItem
from quizgen.domain.types import ContentLanguage, ItemKind
from quizgen.services.quiz.normalizer import (
    coerce_candidate,
    has_resolved_answer,
    normalize,
    normalize_options,
)


def _normalize(candidate, language=ContentLanguage.EN):
    return normalize(candidate, new_id="item-1", unit_id="unit-1", sequence_index=3, language=language)


def test_two_option_multiple_choice_is_padded_and_defaults_to_first_option() -> None:
    item = _normalize({"prompt": "Pick one", "options": ["A", "B"]})

    assert item.kind == ItemKind.MULTIPLE_CHOICE
    assert item.options == ["A", "B", "Option C", "Option D"]
    assert item.correct_option_index == 0
    assert item.answer == "A"
    assert item.difficulty == 2
    assert item.points == 10
    assert item.sequence == 3


def test_multiple_choice_with_too_many_options_is_truncated() -> None:
    item = _normalize(
        {"prompt": "Pick", "options": ["a", "b", "c", "d", "e", "f"], "correct_option_index": 2}
    )
    assert item.options == ["a", "b", "c", "d"]
    assert item.correct_option_index == 2


def test_out_of_range_index_falls_back_to_text_match() -> None:
    item = _normalize(
        {
            "prompt": "Capital of France?",
            "options": ["Berlin", "Paris", "Rome", "Madrid"],
            "correct_option_index": 9,
            "correctAnswer": "paris",
        }
    )
    assert item.correct_option_index == 1
    assert item.answer == "Paris"


def test_letter_answer_resolves_option_position() -> None:
    item = _normalize(
        {"prompt": "Pick", "options": ["w", "x", "y", "z"], "answer": "C"}
    )
    assert item.correct_option_index == 2


def test_true_false_uses_localized_labels() -> None:
    fr = _normalize({"type": "true_false", "statement": "Le ciel est bleu.", "correct_answer": True}, ContentLanguage.FR)
    de = _normalize({"type": "true_false", "statement": "Falsch.", "correct_answer": "falsch"}, ContentLanguage.DE)

    assert fr.options == ["Vrai", "Faux"]
    assert fr.correct_option_index == 0
    assert fr.answer == "true"
    assert fr.difficulty == 1
    assert de.options == ["Wahr", "Falsch"]
    assert de.correct_option_index == 1
    assert de.prompt == "Falsch."


def test_true_false_accepts_string_truth_values() -> None:
    item = _normalize({"type": "vrai_faux", "statement": "x", "correct_answer": "Vrai"})
    assert item.kind == ItemKind.TRUE_FALSE
    assert item.options == ["True", "False"]
    assert item.correct_option_index == 0


def test_fill_blank_serializes_accepted_answers() -> None:
    item = _normalize(
        {
            "type": "fill_blank",
            "sentence": "The ___ is the powerhouse of the cell.",
            "correct_answer": "mitochondrion",
            "accepted_answers": ["mitochondria", "mitochondrion"],
        }
    )
    assert item.kind == ItemKind.FILL_BLANK
    assert item.options == []
    assert item.correct_option_index is None
    assert json.loads(item.answer) == ["mitochondrion", "mitochondria"]


def test_malformed_fields_are_absorbed() -> None:
    item = _normalize(
        {
            "question": "What is ATP?",
            "options": "not a list",
            "points": "lots",
            "explanation": {"nested": True},
        }
    )
    assert item.prompt == "What is ATP?"
    assert item.options == ["Option A", "Option B", "Option C", "Option D"]
    assert item.points == 10
    assert item.explanation is None


def test_concept_id_and_candidate_model_are_accepted() -> None:
    item = normalize(
        CandidateItem(prompt="Q", options=["a", "b", "c", "d"], correct_option_index=3),
        new_id="i",
        unit_id="u",
        sequence_index=1,
        concept_id="concept-7",
    )
    assert item.concept_id == "concept-7"
    assert item.answer == "d"


def test_non_mapping_candidates_are_not_coerced() -> None:
    assert coerce_candidate("just text") is None
    assert coerce_candidate(["a"]) is None


def test_normalize_options_skips_blank_entries() -> None:
    assert normalize_options(["", "  ", "x"]) == ["x", "Option B", "Option C", "Option D"]


def test_has_resolved_answer_flags_guessed_multiple_choice_only() -> None:
    assert has_resolved_answer({"prompt": "Q", "options": ["a", "b"]}) is False
    assert has_resolved_answer({"prompt": "Q", "options": ["a", "b"], "correct_option_index": 1}) is True
    assert has_resolved_answer({"type": "true_false", "statement": "S"}) is True
