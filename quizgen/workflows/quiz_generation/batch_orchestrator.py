import asyncio
import time
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import structlog

from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.core.settings import settings
from quizgen.domain.exceptions import NoEligibleUnitsError, RunDeadlineExceeded
from quizgen.domain.outcomes import UnitProcessingResult
from quizgen.domain.policies import (
    QuotaPolicy,
    filter_eligible_units,
    final_error_message,
    reconcile_run_status,
)
from quizgen.domain.ports import IQuizGenerationService, IQuizRepository
from quizgen.domain.run_context import RunContext
from quizgen.domain.schemas import ContentUnit, GenerationConfig, RunResult, UnitOutcome
from quizgen.domain.types import ContentLanguage, RunStage, RunStatus, UnitStatus
from quizgen.infrastructure.state_management.progress_reporter import ProgressReporter
from quizgen.services.quiz.deduplication import DeduplicationTracker
from quizgen.services.quiz.fallback_generator import FallbackGenerator
from quizgen.workflows.quiz_generation.contracts import (
    FallbackGeneratorProtocol,
    UnitProcessorProtocol,
)
from quizgen.workflows.quiz_generation.unit_processor import UnitProcessor

logger = structlog.get_logger(__name__)

ProcessorFactory = Callable[[DeduplicationTracker, ProgressReporter], UnitProcessorProtocol]


class BatchOrchestrator:
    """
    Runs one generation pass over every eligible unit of a document.

    Unit #1 runs alone so the learner sees a first chapter quickly; the rest
    run in bounded batches. Units left empty are retried in sequential sweeps,
    then served by the fallback generator. Never raises: every outcome ends in
    a terminal run status.
    """

    def __init__(
        self,
        repository: IQuizRepository,
        generation_service: IQuizGenerationService,
        fallback_generator: Optional[FallbackGeneratorProtocol] = None,
        processor_factory: Optional[ProcessorFactory] = None,
        quota_policy: Optional[QuotaPolicy] = None,
        min_unit_chars: Optional[int] = None,
        max_concurrent_units: Optional[int] = None,
        sweep_delays_seconds: Optional[Sequence[float]] = None,
        deadline_seconds: Optional[float] = None,
        similarity_threshold: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.generation_service = generation_service
        self.fallback_generator = fallback_generator or FallbackGenerator(repository)
        self.quota_policy = quota_policy or QuotaPolicy(
            base_quota=settings.BASE_ITEM_QUOTA,
            exhaustive_cap=settings.EXHAUSTIVE_ITEM_CAP,
            over_request_factor=settings.OVER_REQUEST_FACTOR,
            coverage_stop_ratio=settings.COVERAGE_STOP_RATIO,
        )
        self.processor_factory = processor_factory or self._default_processor
        self.min_unit_chars = settings.MIN_UNIT_SOURCE_CHARS if min_unit_chars is None else min_unit_chars
        self.max_concurrent_units = max(
            1, int(settings.MAX_CONCURRENT_UNITS if max_concurrent_units is None else max_concurrent_units)
        )
        self.sweep_delays_seconds = list(
            settings.RETRY_SWEEP_DELAYS_SECONDS if sweep_delays_seconds is None else sweep_delays_seconds
        )
        self.deadline_seconds = settings.RUN_DEADLINE_SECONDS if deadline_seconds is None else deadline_seconds
        self.similarity_threshold = (
            settings.DEDUP_SIMILARITY_THRESHOLD if similarity_threshold is None else similarity_threshold
        )
        self._sleep = sleep
        self._clock = clock

    def _default_processor(
        self, dedup: DeduplicationTracker, progress: ProgressReporter
    ) -> UnitProcessorProtocol:
        return UnitProcessor(
            repository=self.repository,
            generation_service=self.generation_service,
            dedup=dedup,
            progress=progress,
            quota_policy=self.quota_policy,
            sleep=self._sleep,
        )

    async def run(
        self,
        document_id: str,
        units: List[ContentUnit],
        config: GenerationConfig,
        language: ContentLanguage = ContentLanguage.EN,
        run_id: Optional[str] = None,
    ) -> RunResult:
        run = RunContext(
            document_id=document_id,
            run_id=run_id or str(uuid.uuid4()),
            language=language,
            deadline_seconds=self.deadline_seconds,
            clock=self._clock,
        )
        progress = ProgressReporter(self.repository, document_id)
        try:
            return await self._run(run, units, config, progress)
        except Exception as e:
            emit_event(
                logger,
                "quiz_run_crashed",
                level="error",
                document_id=document_id,
                run_id=run.run_id,
                error=compact_error(e),
            )
            accepted = progress.snapshot.accepted_count
            message = f"Quiz generation failed: {compact_error(e)}"
            await progress.finalize(RunStatus.FAILED, accepted, message)
            return RunResult(
                document_id=document_id,
                status=RunStatus.FAILED,
                accepted_count=accepted,
                target_count=progress.snapshot.target_count,
                error_message=message,
            )

    async def _run(
        self,
        run: RunContext,
        units: List[ContentUnit],
        config: GenerationConfig,
        progress: ProgressReporter,
    ) -> RunResult:
        eligible = filter_eligible_units(units, self.min_unit_chars)
        if not eligible:
            message = str(NoEligibleUnitsError(run.document_id, self.min_unit_chars))
            emit_event(
                logger,
                "quiz_run_no_eligible_units",
                level="warning",
                document_id=run.document_id,
                unit_count=len(units),
            )
            await progress.finalize(RunStatus.FAILED, 0, message)
            return RunResult(
                document_id=run.document_id,
                status=RunStatus.FAILED,
                error_message=message,
            )

        quota = self.quota_policy.quota_for(config)
        target = quota * len(eligible)
        emit_event(
            logger,
            "quiz_run_started",
            document_id=run.document_id,
            run_id=run.run_id,
            eligible_units=len(eligible),
            skipped_units=len(units) - len(eligible),
            quota_per_unit=quota,
            target=target,
            niveau=config.niveau.value,
            language=run.language.value,
        )
        await progress.report(RunStage.STARTING, target_count=target, status=RunStatus.GENERATING)
        await progress.report(RunStage.ANALYZING)
        await progress.report(RunStage.EXTRACTING)
        await progress.report(RunStage.GENERATING)

        dedup = DeduplicationTracker(self.similarity_threshold)
        processor = self.processor_factory(dedup, progress)
        statuses: Dict[str, UnitStatus] = {u.id: UnitStatus.PROCESSING for u in eligible}
        fallback_used: Dict[str, bool] = {}

        await self._generate_all(run, eligible, config, processor, statuses, progress)

        if not run.deadline_reached():
            await progress.report(RunStage.VALIDATING)
            await self._retry_sweeps(run, eligible, config, processor, statuses)
        if not run.deadline_reached():
            await self._fallback_sweep(run, eligible, statuses, fallback_used)

        return await self._reconcile(run, eligible, statuses, fallback_used, progress)

    async def _process_unit_safely(
        self,
        unit: ContentUnit,
        config: GenerationConfig,
        run: RunContext,
        processor: UnitProcessorProtocol,
    ) -> Optional[UnitProcessingResult]:
        """None means the unit raised and has been marked failed."""
        try:
            return await processor.process(unit, config, run)
        except RunDeadlineExceeded as e:
            emit_event(
                logger,
                "quiz_unit_deadline_exceeded",
                level="warning",
                unit_id=unit.id,
                error=compact_error(e),
            )
            return None
        except Exception as e:
            emit_event(
                logger,
                "quiz_unit_crashed",
                level="error",
                unit_id=unit.id,
                order_index=unit.order_index,
                error=compact_error(e),
            )
            await self._mark_unit(unit.id, UnitStatus.FAILED)
            return None

    async def _generate_all(
        self,
        run: RunContext,
        eligible: List[ContentUnit],
        config: GenerationConfig,
        processor: UnitProcessorProtocol,
        statuses: Dict[str, UnitStatus],
        progress: ProgressReporter,
    ) -> None:
        first, rest = eligible[0], eligible[1:]
        batches = [[first]] + [
            rest[i : i + self.max_concurrent_units]
            for i in range(0, len(rest), self.max_concurrent_units)
        ]
        done = 0
        for batch_index, batch in enumerate(batches):
            if run.deadline_reached():
                emit_event(
                    logger,
                    "quiz_run_deadline_stop",
                    level="warning",
                    document_id=run.document_id,
                    pending_units=sum(len(b) for b in batches[batch_index:]),
                )
                return
            results = await asyncio.gather(
                *(self._process_unit_safely(unit, config, run, processor) for unit in batch)
            )
            for unit, result in zip(batch, results):
                statuses[unit.id] = self._status_after(result)
                done += 1
                await progress.unit_completed(done, len(eligible))

    @staticmethod
    def _status_after(result: Optional[UnitProcessingResult]) -> UnitStatus:
        if result is None:
            return UnitStatus.FAILED
        return UnitStatus.READY if result.accepted_count > 0 else UnitStatus.PROCESSING

    async def _retry_sweeps(
        self,
        run: RunContext,
        eligible: List[ContentUnit],
        config: GenerationConfig,
        processor: UnitProcessorProtocol,
        statuses: Dict[str, UnitStatus],
    ) -> None:
        for sweep_index, delay in enumerate(self.sweep_delays_seconds, start=1):
            empty_units = await self._units_without_items(eligible)
            if not empty_units:
                return
            remaining = run.remaining()
            wait = float(delay) if remaining is None else min(float(delay), remaining)
            emit_event(
                logger,
                "quiz_retry_sweep_started",
                document_id=run.document_id,
                sweep=sweep_index,
                delay_seconds=wait,
                units=[u.id for u in empty_units],
            )
            await self._sleep(wait)
            for unit in empty_units:
                if run.deadline_reached():
                    return
                result = await self._process_unit_safely(unit, config, run, processor)
                statuses[unit.id] = self._status_after(result)

    async def _fallback_sweep(
        self,
        run: RunContext,
        eligible: List[ContentUnit],
        statuses: Dict[str, UnitStatus],
        fallback_used: Dict[str, bool],
    ) -> None:
        for unit in await self._units_without_items(eligible):
            if fallback_used.get(unit.id):
                continue
            fallback_used[unit.id] = True
            try:
                created = await self.fallback_generator.generate(unit, run.language)
            except Exception as e:
                emit_event(
                    logger,
                    "quiz_fallback_failed",
                    level="error",
                    unit_id=unit.id,
                    error=compact_error(e),
                )
                created = 0
            statuses[unit.id] = UnitStatus.READY if created > 0 else UnitStatus.FAILED
            if created <= 0:
                await self._mark_unit(unit.id, UnitStatus.FAILED)

    async def _reconcile(
        self,
        run: RunContext,
        eligible: List[ContentUnit],
        statuses: Dict[str, UnitStatus],
        fallback_used: Dict[str, bool],
        progress: ProgressReporter,
    ) -> RunResult:
        await progress.report(RunStage.SAVING)

        outcomes: List[UnitOutcome] = []
        total = 0
        for unit in eligible:
            count = await self._persisted_count(unit.id, default=0)
            total += count
            final = UnitStatus.READY if count > 0 else UnitStatus.FAILED
            if statuses.get(unit.id) != final:
                await self._mark_unit(unit.id, final)
            statuses[unit.id] = final
            outcomes.append(
                UnitOutcome(
                    unit_id=unit.id,
                    order_index=unit.order_index,
                    status=final,
                    item_count=count,
                    used_fallback=bool(fallback_used.get(unit.id)),
                )
            )

        status = reconcile_run_status(statuses, total)
        message = final_error_message(status, run.deadline_message)
        await progress.finalize(status, total, message)
        emit_event(
            logger,
            "quiz_run_finished",
            document_id=run.document_id,
            run_id=run.run_id,
            status=status.value,
            accepted=total,
            ready_units=sum(1 for o in outcomes if o.status == UnitStatus.READY),
            failed_units=sum(1 for o in outcomes if o.status == UnitStatus.FAILED),
            fallback_units=sum(1 for o in outcomes if o.used_fallback),
            elapsed_seconds=round(run.elapsed(), 2),
        )
        return RunResult(
            document_id=run.document_id,
            status=status,
            accepted_count=total,
            target_count=progress.snapshot.target_count,
            units=outcomes,
            error_message=message,
        )

    async def _units_without_items(self, units: List[ContentUnit]) -> List[ContentUnit]:
        empty = []
        for unit in units:
            if await self._persisted_count(unit.id, default=0) == 0:
                empty.append(unit)
        return empty

    async def _persisted_count(self, unit_id: str, default: int) -> int:
        try:
            return await self.repository.count_items(unit_id)
        except Exception as e:
            emit_event(
                logger,
                "quiz_item_count_failed",
                level="warning",
                unit_id=unit_id,
                error=compact_error(e),
            )
            return default

    async def _mark_unit(self, unit_id: str, status: UnitStatus) -> None:
        try:
            await self.repository.update_unit_status(unit_id, status)
        except Exception as e:
            emit_event(
                logger,
                "quiz_unit_status_write_failed",
                level="error",
                unit_id=unit_id,
                status=status.value,
                error=compact_error(e),
            )
