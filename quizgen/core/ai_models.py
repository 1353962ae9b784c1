"""
Centralized AI model configuration for quiz generation.
All provider keys, model names and default temperatures live here.
"""

from quizgen.core.settings import settings


class AIModelConfig:
    # OpenAI Configuration
    OPENAI_API_KEY = settings.OPENAI_API_KEY
    OPENAI_QUIZ_MODEL = settings.OPENAI_QUIZ_MODEL

    # Groq Configuration
    GROQ_API_KEY = settings.GROQ_API_KEY
    GROQ_QUIZ_MODEL = settings.GROQ_QUIZ_MODEL

    # Text Processing Limits
    MAX_SOURCE_CHARS_PER_PROMPT = settings.QUIZ_PROMPT_MAX_SOURCE_CHARS

    # Default Temperatures
    DEFAULT_TEMPERATURE_GENERATION = settings.QUIZ_GENERATION_TEMPERATURE

    @classmethod
    def is_openai_available(cls) -> bool:
        return bool(cls.OPENAI_API_KEY)

    @classmethod
    def is_groq_available(cls) -> bool:
        return bool(cls.GROQ_API_KEY)

    @classmethod
    def provider_order(cls, preference: str = "auto") -> list[str]:
        normalized = (preference or "auto").strip().lower()
        if normalized == "groq":
            return ["groq", "openai"]
        return ["openai", "groq"]
