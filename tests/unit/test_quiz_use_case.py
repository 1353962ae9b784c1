import pytest

from quizgen.application.use_cases.generate_quiz_use_case import GenerateQuizUseCase
from quizgen.domain.exceptions import GenerationAlreadyRunningError
from quizgen.domain.schemas import GenerationConfig, RunResult
from quizgen.domain.types import ContentLanguage, RunStatus


class RecordingOrchestrator:
    def __init__(self):
        self.runs = []

    async def run(self, document_id, units, config, language, run_id):
        self.runs.append(
            {"document_id": document_id, "units": units, "language": language, "run_id": run_id}
        )
        return RunResult(document_id=document_id, status=RunStatus.READY, accepted_count=1)


@pytest.mark.asyncio
async def test_execute_loads_units_and_delegates(repo_factory, unit_factory) -> None:
    repo = repo_factory([unit_factory("u1", 0), unit_factory("u2", 1)])
    orchestrator = RecordingOrchestrator()

    result = await GenerateQuizUseCase(orchestrator, repo).execute("doc-1", language="fr")

    assert result.status == RunStatus.READY
    assert len(orchestrator.runs) == 1
    run = orchestrator.runs[0]
    assert [u.id for u in run["units"]] == ["u1", "u2"]
    assert run["language"] == ContentLanguage.FR
    assert run["run_id"]
    assert repo.run_status == RunStatus.GENERATING


@pytest.mark.asyncio
async def test_second_run_for_same_document_is_rejected(repo_factory) -> None:
    repo = repo_factory()
    repo.run_status = RunStatus.GENERATING
    orchestrator = RecordingOrchestrator()

    with pytest.raises(GenerationAlreadyRunningError) as exc_info:
        await GenerateQuizUseCase(orchestrator, repo).execute("doc-1", GenerationConfig())

    assert exc_info.value.current_status == "generating"
    assert orchestrator.runs == []


@pytest.mark.asyncio
async def test_unit_load_failure_ends_in_failed_run(repo_factory) -> None:
    repo = repo_factory()
    repo.fail_list_units = ConnectionError("store unreachable")
    orchestrator = RecordingOrchestrator()

    result = await GenerateQuizUseCase(orchestrator, repo).execute("doc-1")

    assert result.status == RunStatus.FAILED
    assert result.error_message == "Could not load chapters: store unreachable"
    assert repo.terminal_writes == [
        (RunStatus.FAILED, 0, "Could not load chapters: store unreachable")
    ]
    assert orchestrator.runs == []


@pytest.mark.asyncio
async def test_explicit_units_skip_the_store(repo_factory, unit_factory) -> None:
    repo = repo_factory()
    repo.fail_list_units = RuntimeError("must not be called")
    orchestrator = RecordingOrchestrator()

    await GenerateQuizUseCase(orchestrator, repo).execute("doc-1", units=[unit_factory("x", 3)])

    assert [u.id for u in orchestrator.runs[0]["units"]] == ["x"]


@pytest.mark.asyncio
async def test_claim_failure_ends_in_failed_run(repo_factory, unit_factory) -> None:
    repo = repo_factory([unit_factory("u1", 0)])
    repo.fail_try_start_run = ConnectionError("store unreachable")
    orchestrator = RecordingOrchestrator()

    result = await GenerateQuizUseCase(orchestrator, repo).execute("doc-1")

    assert result.status == RunStatus.FAILED
    assert result.error_message == "Could not start quiz generation: store unreachable"
    assert repo.terminal_writes == [
        (RunStatus.FAILED, 0, "Could not start quiz generation: store unreachable")
    ]
    assert orchestrator.runs == []
