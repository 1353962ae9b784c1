import uuid
from typing import List, Optional

import structlog

from quizgen.core.observability.context_vars import (
    bind_context,
    set_correlation_id,
    set_document_id,
)
from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.domain.exceptions import GenerationAlreadyRunningError
from quizgen.domain.ports import IQuizRepository
from quizgen.domain.schemas import ContentUnit, GenerationConfig, RunResult
from quizgen.domain.types import ContentLanguage, RunStatus
from quizgen.workflows.quiz_generation.batch_orchestrator import BatchOrchestrator

logger = structlog.get_logger(__name__)


class GenerateQuizUseCase:
    """
    Caller-facing entry point: claims the document, loads its units and runs
    the orchestrator to completion.

    The claim is the only guard against concurrent runs for one document.
    """

    def __init__(self, orchestrator: BatchOrchestrator, repository: IQuizRepository):
        self.orchestrator = orchestrator
        self.repository = repository

    async def execute(
        self,
        document_id: str,
        config: Optional[GenerationConfig] = None,
        language: ContentLanguage | str = ContentLanguage.EN,
        units: Optional[List[ContentUnit]] = None,
    ) -> RunResult:
        config = config or GenerationConfig()
        language = ContentLanguage.normalize(language)
        run_id = str(uuid.uuid4())
        set_correlation_id(run_id)
        set_document_id(document_id)
        bind_context(document_id=document_id, run_id=run_id)

        try:
            claimed = await self.repository.try_start_run(document_id)
        except Exception as e:
            message = f"Could not start quiz generation: {compact_error(e)}"
            emit_event(
                logger,
                "quiz_run_claim_failed",
                level="error",
                document_id=document_id,
                error=compact_error(e),
            )
            await self._write_failure(document_id, message)
            return RunResult(document_id=document_id, status=RunStatus.FAILED, error_message=message)

        if not claimed:
            current_status = await self._current_status(document_id)
            emit_event(
                logger,
                "quiz_run_rejected_duplicate",
                level="warning",
                document_id=document_id,
                current_status=current_status,
            )
            raise GenerationAlreadyRunningError(document_id, current_status)

        if units is None:
            try:
                units = await self.repository.list_units(document_id)
            except Exception as e:
                message = f"Could not load chapters: {compact_error(e)}"
                emit_event(
                    logger,
                    "quiz_units_load_failed",
                    level="error",
                    document_id=document_id,
                    error=compact_error(e),
                )
                await self._write_failure(document_id, message)
                return RunResult(
                    document_id=document_id, status=RunStatus.FAILED, error_message=message
                )

        return await self.orchestrator.run(
            document_id=document_id,
            units=units,
            config=config,
            language=language,
            run_id=run_id,
        )

    async def _current_status(self, document_id: str) -> Optional[str]:
        try:
            status = await self.repository.get_run_status(document_id)
        except Exception as e:
            emit_event(
                logger,
                "quiz_run_status_read_failed",
                level="warning",
                document_id=document_id,
                error=compact_error(e),
            )
            return None
        return status.value if status is not None else None

    async def _write_failure(self, document_id: str, message: str) -> None:
        try:
            await self.repository.write_terminal_status(document_id, RunStatus.FAILED, 0, message)
        except Exception as e:
            emit_event(
                logger,
                "quiz_terminal_status_write_failed",
                level="error",
                document_id=document_id,
                error=compact_error(e),
            )
