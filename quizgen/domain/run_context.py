import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from quizgen.domain.exceptions import RunDeadlineExceeded
from quizgen.domain.types import ContentLanguage


@dataclass
class RunContext:
    """
    Per-run bookkeeping shared by the orchestrator and its unit tasks.
    The deadline is measured on a monotonic clock from construction.
    """

    document_id: str
    run_id: str
    language: ContentLanguage = ContentLanguage.EN
    deadline_seconds: Optional[float] = None
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)
    deadline_message: Optional[str] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.language = ContentLanguage.normalize(self.language)
        self.started_at = self.clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> Optional[float]:
        if self.deadline_seconds is None:
            return None
        return max(0.0, self.deadline_seconds - self.elapsed())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def ensure_time_left(self) -> None:
        if self.expired():
            error = RunDeadlineExceeded(self.elapsed(), float(self.deadline_seconds or 0.0))
            self.deadline_message = str(error)
            raise error

    def deadline_reached(self) -> bool:
        """Like `ensure_time_left` but reports instead of raising."""
        try:
            self.ensure_time_left()
        except RunDeadlineExceeded:
            return True
        return False
