import pytest

from quizgen.domain.exceptions import RunDeadlineExceeded
from quizgen.domain.policies import (
    QuotaPolicy,
    coverage_ratio,
    filter_eligible_units,
    final_error_message,
    reconcile_run_status,
)
from quizgen.domain.run_context import RunContext
from quizgen.domain.schemas import GenerationConfig
from quizgen.domain.types import QuantityTier, RunStatus, UnitStatus


@pytest.mark.parametrize(
    "niveau,expected",
    [
        (QuantityTier.SYNTHETIQUE, 5),
        (QuantityTier.STANDARD, 10),
        (QuantityTier.EXHAUSTIF, 20),
    ],
)
def test_quota_follows_quantity_tier(niveau, expected) -> None:
    assert QuotaPolicy().quota_for(GenerationConfig(niveau=niveau)) == expected


def test_request_size_over_requests_and_rounds_up() -> None:
    policy = QuotaPolicy()
    assert policy.request_size(10) == 15
    assert policy.request_size(3) == 5
    assert policy.request_size(0) == 0


def test_should_stop_on_quota_or_coverage() -> None:
    policy = QuotaPolicy()
    assert policy.should_stop(accepted=10, quota=10, covered=0, concept_count=5)
    assert policy.should_stop(accepted=4, quota=10, covered=4, concept_count=5)
    assert not policy.should_stop(accepted=4, quota=10, covered=3, concept_count=5)
    assert not policy.should_stop(accepted=4, quota=10, covered=0, concept_count=0)


def test_coverage_ratio_handles_units_without_concepts() -> None:
    assert coverage_ratio(0, 0) == 0.0
    assert coverage_ratio(1, 3) == 0.3333


def test_filter_eligible_units_orders_by_reading_order(unit_factory) -> None:
    units = [
        unit_factory("c", 2),
        unit_factory("short", 0, source_text="   " + "x" * 49 + "   "),
        unit_factory("a", 0),
        unit_factory("b", 1),
    ]
    assert [u.id for u in filter_eligible_units(units, 50)] == ["a", "b", "c"]


def test_reconcile_run_status() -> None:
    ready = {"a": UnitStatus.READY, "b": UnitStatus.READY}
    mixed = {"a": UnitStatus.READY, "b": UnitStatus.FAILED}
    assert reconcile_run_status(ready, 12) == RunStatus.READY
    assert reconcile_run_status(mixed, 5) == RunStatus.PARTIAL
    assert reconcile_run_status(mixed, 0) == RunStatus.FAILED


def test_final_error_message_prefers_deadline_text() -> None:
    assert final_error_message(RunStatus.READY, None) is None
    assert final_error_message(RunStatus.PARTIAL, "deadline hit") == "deadline hit"
    assert final_error_message(RunStatus.FAILED, None).startswith("Quiz generation produced no items")


def test_run_context_deadline_tracking() -> None:
    now = [100.0]
    run = RunContext(document_id="doc-1", run_id="r", deadline_seconds=30, clock=lambda: now[0])

    now[0] = 110.0
    assert run.remaining() == 20.0
    assert not run.deadline_reached()

    now[0] = 131.0
    assert run.deadline_reached()
    assert "deadline of 30s" in run.deadline_message
    with pytest.raises(RunDeadlineExceeded):
        run.ensure_time_left()


def test_run_context_without_deadline_never_expires() -> None:
    run = RunContext(document_id="doc-1", run_id="r", language="de")
    assert run.remaining() is None
    assert not run.expired()
    assert run.language.value == "DE"
