import logging
from typing import Any, Tuple

from quizgen.core.ai_models import AIModelConfig
from quizgen.core.settings import settings

logger = logging.getLogger(__name__)


def _create_async_openai_client(instructor_module: Any) -> Tuple[Any, str]:
    if not AIModelConfig.is_openai_available():
        raise ValueError("Missing OPENAI_API_KEY")

    from openai import AsyncOpenAI

    client = instructor_module.from_openai(
        AsyncOpenAI(
            api_key=AIModelConfig.OPENAI_API_KEY,
            timeout=settings.GENERATION_CALL_TIMEOUT_SECONDS,
            max_retries=0,
        )
    )
    return client, AIModelConfig.OPENAI_QUIZ_MODEL


def _create_async_groq_client(instructor_module: Any) -> Tuple[Any, str]:
    if not AIModelConfig.is_groq_available():
        raise ValueError("Missing GROQ_API_KEY")

    from groq import AsyncGroq

    client = instructor_module.from_groq(
        AsyncGroq(
            api_key=AIModelConfig.GROQ_API_KEY,
            timeout=settings.GENERATION_CALL_TIMEOUT_SECONDS,
            max_retries=0,
        ),
        mode=instructor_module.Mode.JSON,
    )
    return client, AIModelConfig.GROQ_QUIZ_MODEL


_PROVIDER_BUILDERS = {
    "openai": _create_async_openai_client,
    "groq": _create_async_groq_client,
}


def create_async_instructor_client() -> Tuple[Any, str]:
    """
    Create and return an async instructor client and model name.
    Providers are tried in QUIZ_PROVIDER_PREFERENCE order; SDK-level retries
    are disabled because retrying is owned by the unit processor.
    """
    import instructor

    errors = []
    for provider in AIModelConfig.provider_order(settings.QUIZ_PROVIDER_PREFERENCE):
        try:
            client, model = _PROVIDER_BUILDERS[provider](instructor)
            logger.debug("Instructor client using %s: %s", provider, model)
            return client, model
        except ValueError as exc:
            errors.append(f"{provider}: {exc}")

    raise ValueError(
        "No valid AI provider found for instructor client. "
        "Set OPENAI_API_KEY or GROQ_API_KEY. (" + "; ".join(errors) + ")"
    )
