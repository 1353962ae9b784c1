import logging
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


PROJECT_ROOT = Path(__file__).resolve().parents[2]
ROOT_ENV = PROJECT_ROOT / ".env"
ROOT_ENV_LOCAL = PROJECT_ROOT / ".env.local"


class Settings(BaseSettings):
    """
    Quiz generation service - Global Configuration Registry
    Centralizes all environment variables using Pydantic Settings.
    """

    model_config = SettingsConfigDict(
        env_file=(
            str(ROOT_ENV),
            str(ROOT_ENV_LOCAL),
        ),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Infrastructure
    SUPABASE_URL: Optional[str] = Field(
        None, validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    )
    SUPABASE_SERVICE_KEY: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY"),
    )

    # AI Models & Services
    OPENAI_API_KEY: Optional[str] = None
    GROQ_API_KEY: Optional[str] = None
    OPENAI_QUIZ_MODEL: str = "gpt-4o"
    GROQ_QUIZ_MODEL: str = "openai/gpt-oss-120b"
    QUIZ_PROVIDER_PREFERENCE: Literal["auto", "openai", "groq"] = "auto"
    STRICT_ENGINE_MAX_TOKENS: Optional[int] = 4096
    STRICT_ENGINE_VALIDATION_RETRIES: int = 1
    QUIZ_GENERATION_TEMPERATURE: float = 0.6
    QUIZ_PROMPT_MAX_SOURCE_CHARS: int = 12000
    GENERATION_CALL_TIMEOUT_SECONDS: float = 120.0

    # API Config
    LOG_LEVEL: str = "INFO"

    # Unit processing
    MIN_UNIT_SOURCE_CHARS: int = 50
    BASE_ITEM_QUOTA: int = 10
    EXHAUSTIVE_ITEM_CAP: int = 20
    OVER_REQUEST_FACTOR: float = 1.5
    UNIT_MAX_PASSES: int = 2
    UNIT_MAX_ATTEMPTS_PER_PASS: int = 3
    UNIT_RETRY_DELAY_SECONDS: float = 2.0
    COVERAGE_STOP_RATIO: float = 0.80
    DEDUP_SIMILARITY_THRESHOLD: float = 0.85
    ADMIN_FILTER_ENABLED: bool = True
    DROP_UNRESOLVED_MULTIPLE_CHOICE: bool = False
    ITEM_INSERT_FALLBACK_BATCH_SIZE: int = 5

    # Run orchestration
    MAX_CONCURRENT_UNITS: int = 3
    RETRY_SWEEP_DELAYS_SECONDS: List[float] = [5.0, 10.0, 20.0]
    RUN_DEADLINE_SECONDS: Optional[float] = 780.0

    # Fallback content
    FALLBACK_MAX_ITEMS: int = 5
    FALLBACK_MIN_SENTENCE_WORDS: int = 8
    FALLBACK_MAX_SENTENCE_WORDS: int = 40
    FALLBACK_TRUE_PROBABILITY: float = 0.7

    @field_validator("QUIZ_PROVIDER_PREFERENCE", mode="before")
    @classmethod
    def _normalize_provider_preference(cls, value: str | None) -> str:
        return str(value or "auto").strip().lower()

    @model_validator(mode="after")
    def _enforce_generation_bounds(self) -> "Settings":
        if self.UNIT_MAX_ATTEMPTS_PER_PASS < 1:
            logger.warning(
                "UNIT_MAX_ATTEMPTS_PER_PASS below 1 is not allowed; forcing 1",
                extra={"value": self.UNIT_MAX_ATTEMPTS_PER_PASS},
            )
            self.UNIT_MAX_ATTEMPTS_PER_PASS = 1
        self.MAX_CONCURRENT_UNITS = max(1, int(self.MAX_CONCURRENT_UNITS))
        self.UNIT_MAX_PASSES = max(1, int(self.UNIT_MAX_PASSES))
        if self.RUN_DEADLINE_SECONDS is not None and self.RUN_DEADLINE_SECONDS <= 0:
            self.RUN_DEADLINE_SECONDS = None
        return self


settings = Settings()  # type: ignore[call-arg]
