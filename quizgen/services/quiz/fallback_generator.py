"""
Last-resort item source for units the generation service never served.

Turns sentences of the unit's own source text into true/false statements,
negating some of them with a fixed per-language template. Draws come from a
random generator seeded with the unit id, so the same unit always yields the
same items.
"""

from __future__ import annotations

import random
import re
import uuid
from typing import Dict, List, Optional

import structlog

from quizgen.core.observability.generation_logging import emit_event
from quizgen.core.settings import settings
from quizgen.domain.ports import IQuizRepository
from quizgen.domain.schemas import ContentUnit, GeneratedItem
from quizgen.domain.types import ContentLanguage, ItemKind, UnitStatus
from quizgen.services.quiz.item_writer import ResilientItemWriter
from quizgen.services.quiz.normalizer import normalize

logger = structlog.get_logger(__name__)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

NEGATION_TEMPLATES: Dict[ContentLanguage, str] = {
    ContentLanguage.EN: "It is false that: {sentence}",
    ContentLanguage.FR: "Il est faux d'affirmer que : {sentence}",
    ContentLanguage.DE: "Es ist falsch, dass: {sentence}",
}

EXPLANATION_TEMPLATES: Dict[ContentLanguage, str] = {
    ContentLanguage.EN: 'Statement taken from the chapter "{title}".',
    ContentLanguage.FR: "Affirmation tirée du chapitre « {title} ».",
    ContentLanguage.DE: 'Aussage aus dem Kapitel "{title}".',
}


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(" ".join((text or "").split())) if s.strip()]


class FallbackGenerator:
    def __init__(
        self,
        repository: IQuizRepository,
        writer: Optional[ResilientItemWriter] = None,
        min_source_chars: Optional[int] = None,
        max_items: Optional[int] = None,
        min_words: Optional[int] = None,
        max_words: Optional[int] = None,
        true_probability: Optional[float] = None,
    ):
        self.repository = repository
        self.writer = writer or ResilientItemWriter(
            repository, settings.ITEM_INSERT_FALLBACK_BATCH_SIZE
        )
        self.min_source_chars = settings.MIN_UNIT_SOURCE_CHARS if min_source_chars is None else min_source_chars
        self.max_items = settings.FALLBACK_MAX_ITEMS if max_items is None else max_items
        self.min_words = settings.FALLBACK_MIN_SENTENCE_WORDS if min_words is None else min_words
        self.max_words = settings.FALLBACK_MAX_SENTENCE_WORDS if max_words is None else max_words
        self.true_probability = (
            settings.FALLBACK_TRUE_PROBABILITY if true_probability is None else true_probability
        )

    def eligible_sentences(self, source_text: str) -> List[str]:
        picked = []
        for sentence in split_sentences(source_text):
            words = len(sentence.split())
            if self.min_words <= words <= self.max_words:
                picked.append(sentence)
            if len(picked) >= self.max_items:
                break
        return picked

    def build_items(self, unit: ContentUnit, language: ContentLanguage) -> List[GeneratedItem]:
        language = ContentLanguage.normalize(language)
        if len((unit.source_text or "").strip()) < self.min_source_chars:
            return []

        rng = random.Random(unit.id)
        explanation = EXPLANATION_TEMPLATES[language].format(title=unit.title or unit.id)
        items = []
        for position, sentence in enumerate(self.eligible_sentences(unit.source_text), start=1):
            keep_true = rng.random() < self.true_probability
            statement = sentence if keep_true else NEGATION_TEMPLATES[language].format(sentence=sentence)
            candidate = {
                "type": ItemKind.TRUE_FALSE.value,
                "statement": statement,
                "correct_answer": keep_true,
                "explanation": explanation,
                "source_reference": sentence,
            }
            items.append(
                normalize(
                    candidate,
                    new_id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"fallback:{unit.id}:{position}")),
                    unit_id=unit.id,
                    sequence_index=position,
                    language=language,
                )
            )
        return items

    async def generate(self, unit: ContentUnit, language: ContentLanguage) -> int:
        items = self.build_items(unit, language)
        if not items:
            emit_event(
                logger,
                "quiz_fallback_no_sentences",
                level="warning",
                unit_id=unit.id,
                source_chars=len(unit.source_text or ""),
            )
            return 0

        persisted = await self.writer.write(items, unit_id=unit.id)
        if persisted:
            await self.repository.update_unit_status(unit.id, UnitStatus.READY)
        emit_event(
            logger,
            "quiz_fallback_generated",
            unit_id=unit.id,
            item_count=len(persisted),
        )
        return len(persisted)
