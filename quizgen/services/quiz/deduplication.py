"""Run-wide near-duplicate detection for accepted item prompts."""

from __future__ import annotations

import asyncio
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import structlog

from quizgen.core.observability.generation_logging import emit_event

logger = structlog.get_logger(__name__)

_NON_WORD = re.compile(r"[^\w\s]", re.UNICODE)
_MIN_WORD_LEN = 3


def normalize_prompt(text: str) -> str:
    folded = unicodedata.normalize("NFKD", str(text or "").lower())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    folded = _NON_WORD.sub(" ", folded)
    return " ".join(folded.split())


def word_set(text: str) -> FrozenSet[str]:
    return frozenset(w for w in normalize_prompt(text).split() if len(w) >= _MIN_WORD_LEN)


def jaccard_similarity(left: FrozenSet[str], right: FrozenSet[str]) -> float:
    # Two prompts with no significant words cannot be told apart
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    intersection = len(left & right)
    union = len(left | right)
    return intersection / union if union else 0.0


@dataclass
class DedupResult:
    accepted: List[Dict[str, Any]] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    # Left unexamined once `limit` acceptances were reached
    overflow: List[Dict[str, Any]] = field(default_factory=list)


class DeduplicationTracker:
    """
    Remembers every prompt accepted during one generation run and rejects
    candidates that restate one of them.

    Memory only grows. `filter` holds the lock for the whole check-and-append
    so concurrent units never both accept the same restatement.
    """

    def __init__(self, similarity_threshold: float = 0.85):
        self.similarity_threshold = float(similarity_threshold)
        self._lock = asyncio.Lock()
        # (normalized text, word set, unit order index)
        self._accepted: List[Tuple[str, FrozenSet[str], int]] = []

    def __len__(self) -> int:
        return len(self._accepted)

    def _is_duplicate(self, normalized: str, words: FrozenSet[str]) -> Tuple[bool, float]:
        best = 0.0
        for known_text, known_words, _ in self._accepted:
            if normalized == known_text:
                return True, 1.0
            score = jaccard_similarity(words, known_words)
            if score > best:
                best = score
            if score >= self.similarity_threshold:
                return True, score
        return False, best

    async def filter(
        self,
        candidates: List[Dict[str, Any]],
        unit_order_index: int,
        limit: Optional[int] = None,
    ) -> DedupResult:
        result = DedupResult()
        async with self._lock:
            for position, candidate in enumerate(candidates):
                if limit is not None and len(result.accepted) >= limit:
                    result.overflow.extend(candidates[position:])
                    break
                prompt = str(candidate.get("prompt") or "")
                normalized = normalize_prompt(prompt)
                words = word_set(prompt)
                duplicate, _ = self._is_duplicate(normalized, words)
                if duplicate:
                    result.rejected.append(candidate)
                    continue
                self._accepted.append((normalized, words, unit_order_index))
                result.accepted.append(candidate)

        if result.rejected:
            emit_event(
                logger,
                "quiz_dedup_rejected",
                unit_order_index=unit_order_index,
                rejected=len(result.rejected),
                accepted=len(result.accepted),
                memory_size=len(self._accepted),
            )
        return result
