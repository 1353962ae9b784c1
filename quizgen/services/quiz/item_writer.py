from __future__ import annotations

from typing import List

import structlog

from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.domain.ports import IQuizRepository
from quizgen.domain.schemas import GeneratedItem

logger = structlog.get_logger(__name__)


class ResilientItemWriter:
    """
    Writes one pass worth of items as a single batch. When the batch write
    fails, re-attempts once in smaller sub-batches and drops the sub-batches
    that still fail. Returns the items that actually reached the store.
    """

    def __init__(self, repository: IQuizRepository, fallback_batch_size: int = 5):
        self.repository = repository
        self.fallback_batch_size = max(1, int(fallback_batch_size))

    async def write(self, items: List[GeneratedItem], unit_id: str) -> List[GeneratedItem]:
        if not items:
            return []
        try:
            await self.repository.insert_items(items)
            return list(items)
        except Exception as exc:
            emit_event(
                logger,
                "quiz_items_insert_failed",
                level="warning",
                unit_id=unit_id,
                item_count=len(items),
                error=compact_error(exc),
            )

        persisted: List[GeneratedItem] = []
        for start in range(0, len(items), self.fallback_batch_size):
            chunk = items[start : start + self.fallback_batch_size]
            try:
                await self.repository.insert_items(chunk)
                persisted.extend(chunk)
            except Exception as exc:
                emit_event(
                    logger,
                    "quiz_items_sub_batch_dropped",
                    level="error",
                    unit_id=unit_id,
                    dropped=len(chunk),
                    error=compact_error(exc),
                )
        emit_event(
            logger,
            "quiz_items_insert_recovered",
            unit_id=unit_id,
            persisted=len(persisted),
            dropped=len(items) - len(persisted),
        )
        return persisted
