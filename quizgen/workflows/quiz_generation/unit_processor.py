"""
Per-unit generation: repeated passes against the generation service until the
unit's quota or concept coverage target is reached.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.core.settings import settings
from quizgen.domain.exceptions import NonRetryableGenerationError, RunDeadlineExceeded
from quizgen.domain.outcomes import GenerationOutcome, UnitProcessingResult
from quizgen.domain.policies import QuotaPolicy, coverage_ratio
from quizgen.domain.ports import IQuizGenerationService, IQuizRepository
from quizgen.domain.run_context import RunContext
from quizgen.domain.schemas import (
    CandidateItem,
    ContentUnit,
    GeneratedItem,
    GenerationConfig,
    ItemConceptLink,
)
from quizgen.domain.types import PersistencePolicy, UnitStatus
from quizgen.infrastructure.state_management.progress_reporter import ProgressReporter
from quizgen.services.quiz.content_filters import match_administrative
from quizgen.services.quiz.deduplication import DeduplicationTracker
from quizgen.services.quiz.item_writer import ResilientItemWriter
from quizgen.services.quiz.normalizer import coerce_candidate, has_resolved_answer, normalize

logger = structlog.get_logger(__name__)


def _should_retry(exc: BaseException) -> bool:
    return not isinstance(exc, (NonRetryableGenerationError, RunDeadlineExceeded))


def extract_candidates(payload: Any) -> List[Any]:
    """Accepts a bare list or a {"questions": [...]} wrapper."""
    if isinstance(payload, dict):
        payload = payload.get("questions")
    if not isinstance(payload, list):
        return []
    return list(payload)


class UnitProcessor:
    """
    Drives one unit through up to `max_passes` generation passes.

    Shared run state (deduplication memory, progress) is injected, so one
    processor instance can serve every unit task of a run concurrently.
    """

    def __init__(
        self,
        repository: IQuizRepository,
        generation_service: IQuizGenerationService,
        dedup: DeduplicationTracker,
        progress: Optional[ProgressReporter] = None,
        quota_policy: Optional[QuotaPolicy] = None,
        writer: Optional[ResilientItemWriter] = None,
        max_passes: Optional[int] = None,
        max_attempts_per_pass: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        admin_filter_enabled: Optional[bool] = None,
        drop_unresolved_multiple_choice: Optional[bool] = None,
        persistence_policy: PersistencePolicy = PersistencePolicy.PER_PASS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.repository = repository
        self.generation_service = generation_service
        self.dedup = dedup
        self.progress = progress
        self.quota_policy = quota_policy or QuotaPolicy(
            base_quota=settings.BASE_ITEM_QUOTA,
            exhaustive_cap=settings.EXHAUSTIVE_ITEM_CAP,
            over_request_factor=settings.OVER_REQUEST_FACTOR,
            coverage_stop_ratio=settings.COVERAGE_STOP_RATIO,
        )
        self.writer = writer or ResilientItemWriter(
            repository, settings.ITEM_INSERT_FALLBACK_BATCH_SIZE
        )
        self.max_passes = max(1, int(settings.UNIT_MAX_PASSES if max_passes is None else max_passes))
        self.max_attempts_per_pass = max(
            1,
            int(
                settings.UNIT_MAX_ATTEMPTS_PER_PASS
                if max_attempts_per_pass is None
                else max_attempts_per_pass
            ),
        )
        self.retry_delay_seconds = float(
            settings.UNIT_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        )
        self.admin_filter_enabled = (
            settings.ADMIN_FILTER_ENABLED if admin_filter_enabled is None else admin_filter_enabled
        )
        self.drop_unresolved_multiple_choice = (
            settings.DROP_UNRESOLVED_MULTIPLE_CHOICE
            if drop_unresolved_multiple_choice is None
            else drop_unresolved_multiple_choice
        )
        self.persistence_policy = persistence_policy
        self._sleep = sleep

    async def process(
        self, unit: ContentUnit, config: GenerationConfig, run: RunContext
    ) -> UnitProcessingResult:
        quota = self.quota_policy.quota_for(config)
        concept_ids = unit.concept_ids
        coverage: Dict[str, int] = {cid: 0 for cid in concept_ids}
        result = UnitProcessingResult(unit_id=unit.id, concept_count=len(concept_ids))

        await self.repository.update_unit_status(unit.id, UnitStatus.PROCESSING)
        emit_event(
            logger,
            "quiz_unit_started",
            unit_id=unit.id,
            order_index=unit.order_index,
            quota=quota,
            concept_count=len(concept_ids),
            persistence_policy=self.persistence_policy.value,
        )

        for pass_index in range(self.max_passes):
            run.ensure_time_left()
            needed = quota - result.accepted_count
            if needed <= 0:
                break

            request_config = config.with_requested_count(self.quota_policy.request_size(needed))
            outcome = await self._request(unit, request_config, run)
            result.passes_run += 1
            result.service_calls += outcome.attempts

            if not outcome.ok:
                result.last_error = outcome.error
                emit_event(
                    logger,
                    "quiz_unit_pass_exhausted",
                    level="warning",
                    unit_id=unit.id,
                    pass_index=pass_index,
                    outcome=outcome.kind.value,
                    attempts=outcome.attempts,
                    error=outcome.error,
                )
                continue

            persisted = await self._accept_pass(
                unit,
                outcome.candidates,
                pass_index,
                needed,
                run,
                coverage,
                sequence_offset=result.accepted_count,
            )
            result.accepted_count += persisted
            result.covered_concepts = sum(1 for count in coverage.values() if count > 0)

            emit_event(
                logger,
                "quiz_unit_pass_completed",
                unit_id=unit.id,
                pass_index=pass_index,
                candidates=len(outcome.candidates),
                persisted=persisted,
                accepted_total=result.accepted_count,
                covered_concepts=result.covered_concepts,
            )

            if self.quota_policy.should_stop(
                result.accepted_count, quota, result.covered_concepts, result.concept_count
            ):
                break

        await self.repository.update_unit_coverage(
            unit.id,
            concept_count=result.concept_count,
            covered_concepts=result.covered_concepts,
            coverage_ratio=coverage_ratio(result.covered_concepts, result.concept_count),
        )
        if result.accepted_count > 0:
            await self.repository.update_unit_status(unit.id, UnitStatus.READY)

        emit_event(
            logger,
            "quiz_unit_finished",
            unit_id=unit.id,
            accepted=result.accepted_count,
            quota=quota,
            passes=result.passes_run,
            service_calls=result.service_calls,
            coverage_ratio=result.coverage_ratio,
        )
        return result

    async def _request(
        self, unit: ContentUnit, config: GenerationConfig, run: RunContext
    ) -> GenerationOutcome:
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts_per_pass),
                wait=wait_incrementing(
                    start=self.retry_delay_seconds, increment=self.retry_delay_seconds
                ),
                retry=retry_if_exception(_should_retry),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    run.ensure_time_left()
                    attempts += 1
                    payload = await self.generation_service.generate(
                        unit.context(),
                        unit.source_text,
                        run.language,
                        config,
                        {"pass_attempt": attempts, "requested_count": config.requested_count},
                    )
        except RunDeadlineExceeded:
            raise
        except NonRetryableGenerationError as exc:
            return GenerationOutcome.fatal_error(compact_error(exc), attempts)
        except Exception as exc:
            return GenerationOutcome.retryable_error(compact_error(exc), attempts)

        candidates = []
        for raw in extract_candidates(payload):
            if isinstance(raw, CandidateItem):
                candidates.append(raw.model_dump())
            elif isinstance(raw, dict):
                candidates.append(raw)
        return GenerationOutcome.success(candidates, attempts)

    def _screen(self, unit: ContentUnit, raw_candidates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        screened = []
        admin_dropped = 0
        unresolved_dropped = 0
        for raw in raw_candidates:
            candidate = coerce_candidate(raw)
            if candidate is None:
                continue
            prompt = candidate.prompt_text
            if not prompt:
                continue
            if self.admin_filter_enabled and match_administrative(prompt).is_admin:
                admin_dropped += 1
                continue
            if self.drop_unresolved_multiple_choice and not has_resolved_answer(candidate):
                unresolved_dropped += 1
                continue
            screened.append({"prompt": prompt, "candidate": candidate})

        if admin_dropped or unresolved_dropped:
            emit_event(
                logger,
                "quiz_candidates_screened",
                unit_id=unit.id,
                admin_dropped=admin_dropped,
                unresolved_dropped=unresolved_dropped,
                kept=len(screened),
            )
        return screened

    def _link_concepts(
        self, unit: ContentUnit, candidate: CandidateItem, position: int, pass_index: int
    ) -> List[str]:
        concept_ids = unit.concept_ids
        if not concept_ids:
            return []
        known = set(concept_ids)
        provided = []
        for raw_id in candidate.concept_ids or []:
            value = str(raw_id)
            if value in known and value not in provided:
                provided.append(value)
        if provided:
            return provided
        return [concept_ids[(position + pass_index) % len(concept_ids)]]

    async def _accept_pass(
        self,
        unit: ContentUnit,
        raw_candidates: List[Dict[str, Any]],
        pass_index: int,
        remaining: int,
        run: RunContext,
        coverage: Dict[str, int],
        sequence_offset: int = 0,
    ) -> int:
        screened = self._screen(unit, raw_candidates)
        dedup = await self.dedup.filter(screened, unit.order_index, limit=remaining)

        items: List[GeneratedItem] = []
        links: List[Tuple[str, List[str]]] = []
        for position, entry in enumerate(dedup.accepted):
            candidate: CandidateItem = entry["candidate"]
            concept_links = self._link_concepts(unit, candidate, position, pass_index)
            item = normalize(
                candidate,
                new_id=str(uuid.uuid4()),
                unit_id=unit.id,
                sequence_index=sequence_offset + position + 1,
                language=run.language,
                concept_id=concept_links[0] if concept_links else None,
            )
            items.append(item)
            links.append((item.id, concept_links))

        if not items:
            return 0

        persisted = await self.writer.write(items, unit_id=unit.id)
        persisted_ids = {item.id for item in persisted}

        link_rows = [
            ItemConceptLink(item_id=item_id, concept_id=concept_id)
            for item_id, concept_ids in links
            if item_id in persisted_ids
            for concept_id in concept_ids
        ]
        if link_rows:
            try:
                await self.repository.insert_concept_links(link_rows)
            except Exception as exc:
                emit_event(
                    logger,
                    "quiz_concept_links_dropped",
                    level="warning",
                    unit_id=unit.id,
                    link_count=len(link_rows),
                    error=compact_error(exc),
                )
        for item_id, concept_ids in links:
            if item_id not in persisted_ids:
                continue
            for concept_id in concept_ids:
                coverage[concept_id] = coverage.get(concept_id, 0) + 1

        if self.progress is not None and persisted:
            await self.progress.add_accepted(len(persisted))
        return len(persisted)
