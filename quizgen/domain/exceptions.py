from typing import Optional


class QuizGenerationError(Exception):
    """Base error for the quiz generation pipeline."""


class GenerationServiceError(QuizGenerationError):
    """
    Transient failure of the generation service (timeout, rate limit, malformed
    response). Eligible for retry within the current pass.
    """


class NonRetryableGenerationError(QuizGenerationError):
    """
    Failure that repeating the same request cannot fix, such as a content
    policy refusal or an invalid credential.
    """

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or "non_retryable"


class RunDeadlineExceeded(QuizGenerationError):
    def __init__(self, elapsed_seconds: float, deadline_seconds: float):
        super().__init__(
            f"Generation run exceeded its deadline of {deadline_seconds:.0f}s "
            f"(elapsed {elapsed_seconds:.0f}s)"
        )
        self.elapsed_seconds = elapsed_seconds
        self.deadline_seconds = deadline_seconds


class GenerationAlreadyRunningError(QuizGenerationError):
    def __init__(self, document_id: str, current_status: Optional[str] = None):
        super().__init__(f"A quiz generation run is already in progress for document {document_id}")
        self.document_id = document_id
        self.current_status = current_status


class NoEligibleUnitsError(QuizGenerationError):
    def __init__(self, document_id: str, min_chars: int):
        super().__init__(
            f"No content unit of document {document_id} has at least {min_chars} "
            "characters of source text"
        )
        self.document_id = document_id
        self.min_chars = min_chars
