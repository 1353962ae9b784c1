"""
Structured Generation Engine - Constrained Decoding for LLM Outputs.

StrictEngine guarantees that LLM outputs conform to Pydantic schemas using the
`instructor` library. It makes exactly one provider call per `agenerate`
(instructor's schema-validation re-asks aside): transient failures surface
to the caller, which owns the retry budget.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from quizgen.core.ai_models import AIModelConfig
from quizgen.core.settings import settings
from quizgen.infrastructure.ai.instructor_factory import create_async_instructor_client

logger = logging.getLogger(__name__)


def _compact_error(err: Exception, limit: int = 320) -> str:
    text = str(err or "").replace("\n", " ").strip()
    lowered = text.lower()
    if "max_tokens length limit" in lowered:
        return "max_tokens_length_limit"
    if "json_validate_failed" in lowered:
        return "json_validate_failed"
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


T = TypeVar("T", bound=BaseModel)


class StrictEngine:
    """
    Structured generation engine with constrained decoding.
    """

    def __init__(
        self,
        max_retries: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Optional[Any] = None,
        model: Optional[str] = None,
    ):
        self.max_retries = (
            settings.STRICT_ENGINE_VALIDATION_RETRIES if max_retries is None else max_retries
        )
        self.temperature = (
            AIModelConfig.DEFAULT_TEMPERATURE_GENERATION if temperature is None else temperature
        )
        self.max_tokens = (
            int(settings.STRICT_ENGINE_MAX_TOKENS) if settings.STRICT_ENGINE_MAX_TOKENS else None
        )
        self._client = client
        self._model = model

    def _ensure_client(self) -> None:
        if self._client is None or self._model is None:
            self._client, self._model = create_async_instructor_client()

    def _build_messages(
        self, prompt: str, system_prompt: Optional[str] = None, context: Optional[str] = None
    ) -> List[Dict[str, str]]:
        messages = []
        messages.append(
            {
                "role": "system",
                "content": system_prompt
                or (
                    "You are an expert assistant producing structured answers. "
                    "Your reply MUST be a single valid JSON object matching the provided "
                    "schema exactly. Do NOT add text before or after the JSON."
                ),
            }
        )

        user_content = prompt
        if context:
            user_content = f"CONTEXT:\n{context}\n\n---\n\nREQUEST:\n{prompt}"

        messages.append({"role": "user", "content": user_content})
        return messages

    async def agenerate(
        self,
        prompt: str,
        schema: Type[T],
        system_prompt: Optional[str] = None,
        context: Optional[str] = None,
    ) -> T:
        self._ensure_client()
        messages = self._build_messages(prompt, system_prompt, context)
        try:
            return await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                response_model=schema,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                max_retries=self.max_retries,
            )
        except Exception as e:
            logger.error("StrictEngine (Async) failed: %s", _compact_error(e))
            raise


_default_engine: Optional[StrictEngine] = None


def get_strict_engine() -> StrictEngine:
    """Get or create a singleton StrictEngine instance."""
    global _default_engine
    if _default_engine is None:
        _default_engine = StrictEngine()
    return _default_engine
