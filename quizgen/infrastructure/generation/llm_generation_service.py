"""LLM-backed implementation of the quiz generation service."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, List, Optional

import openai
import structlog
from pydantic import BaseModel, Field

from quizgen.core.ai_models import AIModelConfig
from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.core.prompts.quiz_generation import QuizGenerationPrompts
from quizgen.core.settings import settings
from quizgen.core.structured_generation import StrictEngine, get_strict_engine
from quizgen.domain.exceptions import GenerationServiceError, NonRetryableGenerationError
from quizgen.domain.ports import IQuizGenerationService
from quizgen.domain.schemas import CandidateItem, GenerationConfig
from quizgen.domain.types import ContentLanguage

logger = structlog.get_logger(__name__)

_CREDENTIAL_MARKERS = (
    "invalid_api_key",
    "incorrect api key",
    "invalid api key",
    "permission denied",
)
_CONTENT_POLICY_MARKERS = (
    "content_policy",
    "content_filter",
    "content management policy",
)
_AUTH_STATUS = re.compile(r"\b(?:error code|status(?: code)?)\s*[:=]?\s*(40[13])\b")
_STATUS_REASONS = {401: "invalid_credential", 403: "permission_denied"}


class QuizItemsResponse(BaseModel):
    questions: List[CandidateItem] = Field(default_factory=list)


def classify_non_retryable(err: Exception) -> Optional[str]:
    """Returns a reason when repeating the request cannot succeed, else None."""
    if isinstance(err, openai.AuthenticationError):
        return "invalid_credential"
    if isinstance(err, openai.PermissionDeniedError):
        return "permission_denied"
    status_code = getattr(err, "status_code", None)
    if isinstance(status_code, int):
        if status_code in _STATUS_REASONS:
            return _STATUS_REASONS[status_code]
        if status_code == 429 or status_code >= 500:
            return None

    text = str(err or "").lower()
    if any(marker in text for marker in _CONTENT_POLICY_MARKERS):
        return "content_policy"
    if any(marker in text for marker in _CREDENTIAL_MARKERS):
        return "invalid_credential"
    match = _AUTH_STATUS.search(text)
    if match:
        return _STATUS_REASONS[int(match.group(1))]
    return None


class LLMQuizGenerationService(IQuizGenerationService):
    """
    One call to `generate` is one provider request. Retrying belongs to the
    unit processor; this adapter only classifies failures.
    """

    def __init__(
        self,
        strict_engine: Optional[StrictEngine] = None,
        timeout_seconds: Optional[float] = None,
        max_source_chars: Optional[int] = None,
    ):
        self._strict_engine = strict_engine or get_strict_engine()
        self._timeout_seconds = (
            settings.GENERATION_CALL_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._max_source_chars = (
            AIModelConfig.MAX_SOURCE_CHARS_PER_PROMPT if max_source_chars is None else max_source_chars
        )

    async def generate(
        self,
        unit_context: Dict[str, Any],
        source_text: str,
        language: ContentLanguage,
        config: GenerationConfig,
        options: Optional[Dict[str, Any]] = None,
    ) -> List[CandidateItem]:
        language = ContentLanguage.normalize(language)
        requested = int(config.requested_count or (options or {}).get("requested_count") or 10)
        prompt = QuizGenerationPrompts.build_user_prompt(
            unit_context=unit_context,
            source_text=source_text,
            language=language,
            niveau=config.niveau,
            kinds=config.types.enabled_kinds(),
            requested_count=requested,
            max_source_chars=self._max_source_chars,
        )

        try:
            response = await asyncio.wait_for(
                self._strict_engine.agenerate(
                    prompt=prompt,
                    schema=QuizItemsResponse,
                    system_prompt=QuizGenerationPrompts.SYSTEM_PROMPT,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationServiceError(
                f"Generation call timed out after {self._timeout_seconds:.0f}s"
            ) from exc
        except Exception as exc:
            reason = classify_non_retryable(exc)
            if reason:
                emit_event(
                    logger,
                    "quiz_generation_non_retryable",
                    level="error",
                    reason=reason,
                    unit_title=unit_context.get("title"),
                    error=compact_error(exc),
                )
                raise NonRetryableGenerationError(compact_error(exc), reason=reason) from exc
            raise GenerationServiceError(compact_error(exc)) from exc

        emit_event(
            logger,
            "quiz_generation_response",
            unit_title=unit_context.get("title"),
            requested=requested,
            returned=len(response.questions),
        )
        return list(response.questions)
