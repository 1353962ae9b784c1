"""
Centralized repository for quiz generation prompts.
"""

from typing import Any, Dict, List

from quizgen.domain.types import ContentLanguage, ItemKind, QuantityTier


class QuizGenerationPrompts:

    SYSTEM_PROMPT = """You are an expert teacher writing exam-grade quiz items from course material.

RULES:
1. SOURCE ONLY: every item must be answerable from the provided source text.
2. ACADEMIC CONTENT ONLY: never ask about course logistics (exam format, schedule,
   slides, materials, teaching staff, grading).
3. NO DUPLICATES: each item tests a different fact or concept.
4. TRACEABILITY: quote the supporting passage in "source_reference" and list the ids
   of the concepts each item tests in "concept_ids".

OUTPUT: JSON { "questions": [ ... ] }"""

    LANGUAGE_NAMES = {
        ContentLanguage.EN: "English",
        ContentLanguage.FR: "French",
        ContentLanguage.DE: "German",
    }

    TIER_GUIDANCE = {
        QuantityTier.SYNTHETIQUE: "Focus on the most essential concepts only: definitions, key formulas, main relationships.",
        QuantityTier.STANDARD: "Balanced coverage of all concepts, main ideas and important details.",
        QuantityTier.EXHAUSTIF: "Comprehensive coverage of every concept, including nuances, exceptions and edge cases.",
    }

    KIND_INSTRUCTIONS = {
        ItemKind.MULTIPLE_CHOICE: (
            '- "type": "multiple_choice", "prompt", "options" (exactly 4 distinct strings), '
            '"correct_option_index" (0-3), "explanation"'
        ),
        ItemKind.TRUE_FALSE: (
            '- "type": "true_false", "statement" (a clear affirmation), '
            '"correct_answer" (boolean), "explanation"'
        ),
        ItemKind.FILL_BLANK: (
            '- "type": "fill_blank", "sentence" (with "___" marking the blank), '
            '"correct_answer", "accepted_answers" (list of synonyms), "explanation"'
        ),
    }

    @classmethod
    def _concept_lines(cls, concepts: List[Dict[str, Any]]) -> str:
        if not concepts:
            return "(no concepts listed; leave concept_ids empty)"
        lines = []
        for concept in concepts:
            description = str(concept.get("description") or "").strip()
            suffix = f": {description}" if description else ""
            lines.append(f'- [{concept.get("id")}] {concept.get("title") or ""}{suffix}')
        return "\n".join(lines)

    @classmethod
    def build_user_prompt(
        cls,
        unit_context: Dict[str, Any],
        source_text: str,
        language: ContentLanguage,
        niveau: QuantityTier,
        kinds: List[ItemKind],
        requested_count: int,
        max_source_chars: int,
    ) -> str:
        truncated = (source_text or "")[:max_source_chars]
        kind_block = "\n".join(cls.KIND_INSTRUCTIONS[k] for k in kinds)
        return f"""Generate {requested_count} quiz items for chapter {unit_context.get("index", "")}: "{unit_context.get("title", "")}".

LANGUAGE: write every item in {cls.LANGUAGE_NAMES[language]}.
DIFFICULTY: {unit_context.get("difficulty") or "medium"}
SCOPE: {cls.TIER_GUIDANCE[niveau]}

CHAPTER SUMMARY:
{unit_context.get("short_summary") or "(none)"}

CONCEPTS (use these ids in "concept_ids"):
{cls._concept_lines(unit_context.get("concepts") or [])}

ALLOWED ITEM TYPES (spread items across them):
{kind_block}
Every item also carries "source_reference" (a short quote) and "cognitive_level"
(remember | understand | apply).

SOURCE TEXT:
\"\"\"
{truncated}
\"\"\""""
