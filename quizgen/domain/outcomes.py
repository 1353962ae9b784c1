from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE_ERROR = "retryable_error"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class GenerationOutcome:
    """
    Result of one generation pass request after its retries.

    `fatal_error` means the remaining attempts of the pass were abandoned;
    the unit itself stays eligible for later passes and sweeps.
    """

    kind: OutcomeKind
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None

    @classmethod
    def success(cls, candidates: List[Dict[str, Any]], attempts: int) -> "GenerationOutcome":
        return cls(kind=OutcomeKind.SUCCESS, candidates=list(candidates), attempts=attempts)

    @classmethod
    def retryable_error(cls, error: str, attempts: int) -> "GenerationOutcome":
        return cls(kind=OutcomeKind.RETRYABLE_ERROR, attempts=attempts, error=error)

    @classmethod
    def fatal_error(cls, error: str, attempts: int) -> "GenerationOutcome":
        return cls(kind=OutcomeKind.FATAL_ERROR, attempts=attempts, error=error)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


@dataclass
class UnitProcessingResult:
    unit_id: str
    accepted_count: int = 0
    passes_run: int = 0
    service_calls: int = 0
    covered_concepts: int = 0
    concept_count: int = 0
    last_error: Optional[str] = None

    @property
    def coverage_ratio(self) -> float:
        if self.concept_count <= 0:
            return 0.0
        return self.covered_concepts / self.concept_count
