import asyncio

import pytest

from quizgen.domain.types import RunStage, RunStatus
from quizgen.infrastructure.state_management.progress_reporter import ProgressReporter


@pytest.mark.asyncio
async def test_lower_percent_is_clamped_to_high_water_mark(repo_factory) -> None:
    repo = repo_factory()
    reporter = ProgressReporter(repo, "doc-1")

    await reporter.report(RunStage.GENERATING, percent=60)
    snapshot = await reporter.report(RunStage.VALIDATING, percent=40)

    assert snapshot.percent == 60
    assert snapshot.stage == RunStage.VALIDATING
    assert [p.percent for p in repo.progress_writes] == [60, 60]


@pytest.mark.asyncio
async def test_stage_milestones_are_used_when_percent_is_omitted(repo_factory) -> None:
    repo = repo_factory()
    reporter = ProgressReporter(repo, "doc-1")
    for stage in (RunStage.STARTING, RunStage.ANALYZING, RunStage.EXTRACTING, RunStage.GENERATING):
        await reporter.report(stage)

    assert [p.percent for p in repo.progress_writes] == [3, 8, 15, 20]


@pytest.mark.asyncio
async def test_unit_completion_spreads_across_generation_span(repo_factory) -> None:
    reporter = ProgressReporter(repo_factory(), "doc-1")
    assert (await reporter.unit_completed(1, 4)).percent == 37
    assert (await reporter.unit_completed(4, 4)).percent == 88


@pytest.mark.asyncio
async def test_store_failures_are_swallowed(repo_factory) -> None:
    repo = repo_factory()
    repo.fail_progress_writes = True
    reporter = ProgressReporter(repo, "doc-1")

    snapshot = await reporter.report(RunStage.SAVING)
    final = await reporter.finalize(RunStatus.READY, accepted_count=7)

    assert snapshot.percent == 95
    assert final.percent == 100
    assert repo.terminal_writes == [(RunStatus.READY, 7, None)]


@pytest.mark.asyncio
async def test_failed_finalize_keeps_current_percent(repo_factory) -> None:
    repo = repo_factory()
    reporter = ProgressReporter(repo, "doc-1")

    final = await reporter.finalize(RunStatus.FAILED, accepted_count=0, error_message="nothing")

    assert final.percent == 0
    assert final.stage == RunStage.FAILED
    assert final.error_message == "nothing"


def test_concurrent_reports_never_write_a_decreasing_percent(repo_factory) -> None:
    async def _run() -> None:
        repo = repo_factory()
        reporter = ProgressReporter(repo, "doc-1")
        await asyncio.gather(
            *(reporter.report(RunStage.GENERATING, percent=p) for p in (50, 30, 70, 20, 65, 88))
        )
        written = [p.percent for p in repo.progress_writes]
        assert written == sorted(written)
        assert written[-1] == 88

    asyncio.run(_run())


@pytest.mark.asyncio
async def test_add_accepted_accumulates(repo_factory) -> None:
    reporter = ProgressReporter(repo_factory(), "doc-1", target_count=20)
    await reporter.add_accepted(3)
    snapshot = await reporter.add_accepted(4)
    assert snapshot.accepted_count == 7
    assert snapshot.target_count == 20
