import asyncio
from typing import Dict, Optional

import structlog

from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.domain.ports import IQuizRepository
from quizgen.domain.schemas import RunProgress
from quizgen.domain.types import RunStage, RunStatus

logger = structlog.get_logger(__name__)

STAGE_MILESTONES: Dict[RunStage, int] = {
    RunStage.STARTING: 3,
    RunStage.ANALYZING: 8,
    RunStage.EXTRACTING: 15,
    RunStage.GENERATING: 20,
    RunStage.VALIDATING: 88,
    RunStage.SAVING: 95,
    RunStage.COMPLETE: 100,
}
GENERATION_SPAN = (20, 88)


class ProgressReporter:
    """
    Owns the externally visible progress of one run.

    The percent never goes down: a lower value is clamped to the high-water
    mark. Store write failures are logged and never interrupt generation.
    Every write happens under the lock, so the store sees snapshots in order.
    """

    def __init__(self, repository: IQuizRepository, document_id: str, target_count: int = 0):
        self.repository = repository
        self.document_id = document_id
        self._lock = asyncio.Lock()
        self._progress = RunProgress(target_count=target_count)

    @property
    def snapshot(self) -> RunProgress:
        return self._progress.model_copy()

    @property
    def percent(self) -> int:
        return self._progress.percent

    async def report(
        self,
        stage: RunStage,
        percent: Optional[int] = None,
        accepted_count: Optional[int] = None,
        target_count: Optional[int] = None,
        status: Optional[RunStatus] = None,
        error_message: Optional[str] = None,
    ) -> RunProgress:
        async with self._lock:
            requested = STAGE_MILESTONES.get(stage, 0) if percent is None else int(percent)
            requested = max(0, min(100, requested))
            update = {
                "percent": max(self._progress.percent, requested),
                "stage": stage,
            }
            if accepted_count is not None:
                update["accepted_count"] = max(0, int(accepted_count))
            if target_count is not None:
                update["target_count"] = max(0, int(target_count))
            if status is not None:
                update["status"] = status
            if error_message is not None:
                update["error_message"] = error_message
            self._progress = self._progress.model_copy(update=update)
            current = self._progress.model_copy()
            await self._write(current)
            return current

    async def add_accepted(self, count: int) -> RunProgress:
        """Counts newly persisted items without moving the stage or percent."""
        async with self._lock:
            if count <= 0:
                return self._progress.model_copy()
            self._progress = self._progress.model_copy(
                update={"accepted_count": self._progress.accepted_count + int(count)}
            )
            current = self._progress.model_copy()
            await self._write(current)
            return current

    async def unit_completed(self, done: int, total: int) -> RunProgress:
        low, high = GENERATION_SPAN
        fraction = (done / total) if total > 0 else 1.0
        percent = low + int(round((high - low) * min(1.0, max(0.0, fraction))))
        return await self.report(RunStage.GENERATING, percent=percent)

    async def finalize(
        self, status: RunStatus, accepted_count: int, error_message: Optional[str] = None
    ) -> RunProgress:
        if status == RunStatus.FAILED:
            progress = await self.report(
                RunStage.FAILED,
                percent=self._progress.percent,
                accepted_count=accepted_count,
                status=status,
                error_message=error_message,
            )
        else:
            progress = await self.report(
                RunStage.COMPLETE,
                accepted_count=accepted_count,
                status=status,
                error_message=error_message,
            )
        try:
            await self.repository.write_terminal_status(
                self.document_id, status, accepted_count, error_message
            )
        except Exception as e:
            emit_event(
                logger,
                "quiz_terminal_status_write_failed",
                level="error",
                document_id=self.document_id,
                status=status.value,
                error=compact_error(e),
            )
        return progress

    async def _write(self, progress: RunProgress) -> None:
        try:
            await self.repository.write_progress(self.document_id, progress)
        except Exception as e:
            emit_event(
                logger,
                "quiz_progress_write_failed",
                level="warning",
                document_id=self.document_id,
                percent=progress.percent,
                stage=progress.stage.value,
                error=compact_error(e),
            )
