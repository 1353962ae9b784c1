from enum import Enum


class UnitStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class RunStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    PARTIAL = "partial"
    FAILED = "failed"


class RunStage(str, Enum):
    STARTING = "starting"
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    GENERATING = "generating"
    VALIDATING = "validating"
    SAVING = "saving"
    COMPLETE = "complete"
    FAILED = "failed"


class ItemKind(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"


class QuantityTier(str, Enum):
    SYNTHETIQUE = "synthetique"
    STANDARD = "standard"
    EXHAUSTIF = "exhaustif"


class ContentLanguage(str, Enum):
    EN = "EN"
    FR = "FR"
    DE = "DE"

    @classmethod
    def normalize(cls, value: object) -> "ContentLanguage":
        lowered = str(getattr(value, "value", value) or "").strip().lower()
        if lowered in {"fr", "fr-fr", "french", "français"}:
            return cls.FR
        if lowered in {"de", "de-de", "german", "deutsch"}:
            return cls.DE
        return cls.EN


class PersistencePolicy(str, Enum):
    """Granularity at which accepted items reach the store."""

    PER_PASS = "per_pass"
