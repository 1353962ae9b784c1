import math
from typing import Dict, Iterable, List, Optional

from quizgen.domain.schemas import ContentUnit, GenerationConfig
from quizgen.domain.types import QuantityTier, RunStatus, UnitStatus


class QuotaPolicy:
    """
    Domain Service that encapsulates how many items each unit should receive
    and when a unit has received enough.
    """

    TIER_MULTIPLIERS: Dict[QuantityTier, float] = {
        QuantityTier.SYNTHETIQUE: 0.5,
        QuantityTier.STANDARD: 1.0,
    }

    def __init__(
        self,
        base_quota: int = 10,
        exhaustive_cap: int = 20,
        over_request_factor: float = 1.5,
        coverage_stop_ratio: float = 0.80,
    ):
        self.base_quota = base_quota
        self.exhaustive_cap = exhaustive_cap
        self.over_request_factor = over_request_factor
        self.coverage_stop_ratio = coverage_stop_ratio

    def quota_for(self, config: GenerationConfig) -> int:
        if config.niveau == QuantityTier.EXHAUSTIF:
            return max(1, int(self.exhaustive_cap))
        multiplier = self.TIER_MULTIPLIERS.get(config.niveau, 1.0)
        return max(1, int(round(self.base_quota * multiplier)))

    def request_size(self, needed: int) -> int:
        """Over-requests to absorb duplicates and rejected candidates."""
        if needed <= 0:
            return 0
        return int(math.ceil(needed * self.over_request_factor))

    def should_stop(self, accepted: int, quota: int, covered: int, concept_count: int) -> bool:
        if accepted >= quota:
            return True
        if concept_count <= 0:
            return False
        return (covered / concept_count) >= self.coverage_stop_ratio


def coverage_ratio(covered: int, concept_count: int) -> float:
    if concept_count <= 0:
        return 0.0
    return round(covered / concept_count, 4)


def filter_eligible_units(units: Iterable[ContentUnit], min_chars: int) -> List[ContentUnit]:
    """Units with enough source text, in reading order."""
    eligible = [u for u in units if len((u.source_text or "").strip()) >= min_chars]
    return sorted(eligible, key=lambda u: u.order_index)


def reconcile_run_status(
    unit_statuses: Dict[str, UnitStatus],
    total_items: int,
) -> RunStatus:
    if total_items <= 0:
        return RunStatus.FAILED
    if unit_statuses and all(status == UnitStatus.READY for status in unit_statuses.values()):
        return RunStatus.READY
    return RunStatus.PARTIAL


def final_error_message(status: RunStatus, deadline_message: Optional[str]) -> Optional[str]:
    if status == RunStatus.FAILED:
        return deadline_message or "Quiz generation produced no items for any chapter"
    return deadline_message
