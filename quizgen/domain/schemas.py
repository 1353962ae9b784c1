"""
Domain schemas for quiz generation using Pydantic.

Units and concepts come from the upstream ingestion pipeline; candidate items
come from the generation service; generated items are what gets persisted.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from quizgen.domain.types import ItemKind, QuantityTier, RunStage, RunStatus, UnitStatus


class Concept(BaseModel):
    """Sub-topic of a unit, used only to measure coverage."""

    id: str
    title: str = ""
    description: str = ""
    importance: int = 1

    model_config = ConfigDict(frozen=True)


class ContentUnit(BaseModel):
    """
    One chapter of a document.
    Everything but `status` and the coverage counters is read-only here.
    """

    id: str
    title: str = ""
    order_index: int = 0
    difficulty: str = "medium"
    summary: str = ""
    source_text: str = ""
    concepts: List[Concept] = Field(default_factory=list)
    status: UnitStatus = UnitStatus.PENDING
    concept_count: int = 0
    covered_concepts: int = 0
    coverage_ratio: float = 0.0

    @property
    def concept_ids(self) -> List[str]:
        return [concept.id for concept in self.concepts]

    def context(self) -> Dict[str, Any]:
        """Metadata handed to the generation service alongside the source text."""
        return {
            "index": self.order_index + 1,
            "title": self.title,
            "short_summary": self.summary,
            "difficulty": self.difficulty,
            "concepts": [
                {"id": c.id, "title": c.title, "description": c.description}
                for c in self.concepts
            ],
        }


class ItemTypeFlags(BaseModel):
    qcm: bool = True
    vrai_faux: bool = False
    texte_trous: bool = False

    model_config = ConfigDict(frozen=True)

    def enabled_kinds(self) -> List[ItemKind]:
        kinds = []
        if self.qcm:
            kinds.append(ItemKind.MULTIPLE_CHOICE)
        if self.vrai_faux:
            kinds.append(ItemKind.TRUE_FALSE)
        if self.texte_trous:
            kinds.append(ItemKind.FILL_BLANK)
        return kinds or [ItemKind.MULTIPLE_CHOICE]


class GenerationConfig(BaseModel):
    niveau: QuantityTier = QuantityTier.STANDARD
    types: ItemTypeFlags = Field(default_factory=ItemTypeFlags)
    # Advisory over-request hint, rewritten per call
    requested_count: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    def with_requested_count(self, count: int) -> "GenerationConfig":
        return self.model_copy(update={"requested_count": int(count)})


class CandidateItem(BaseModel):
    """
    Raw, unvalidated output of the generation service.
    Accepts every known item shape; unknown keys are kept.
    """

    type: Optional[str] = None
    prompt: Optional[str] = None
    question: Optional[str] = None
    statement: Optional[str] = None
    sentence: Optional[str] = None
    options: Optional[List[Any]] = None
    correct_option_index: Optional[Any] = None
    correct_answer: Optional[Any] = None
    expected_answer: Optional[Any] = None
    correctAnswer: Optional[Any] = None
    answer: Optional[Any] = None
    answer_text: Optional[Any] = None
    accepted_answers: Optional[List[Any]] = None
    explanation: Optional[str] = None
    source_reference: Optional[str] = None
    cognitive_level: Optional[str] = None
    concept_ids: Optional[List[Any]] = None
    points: Optional[Any] = None

    model_config = ConfigDict(extra="allow")

    @property
    def kind(self) -> ItemKind:
        raw = str(self.type or "").strip().lower().replace("-", "_")
        if raw in {"true_false", "truefalse", "vrai_faux", "boolean"}:
            return ItemKind.TRUE_FALSE
        if raw in {"fill_blank", "fill_in_blank", "texte_trous", "cloze"}:
            return ItemKind.FILL_BLANK
        return ItemKind.MULTIPLE_CHOICE

    @property
    def prompt_text(self) -> str:
        for value in (self.prompt, self.question, self.statement, self.sentence):
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""


class GeneratedItem(BaseModel):
    """Canonical persisted quiz item. Written once, never mutated."""

    id: str
    unit_id: str
    concept_id: Optional[str] = None
    sequence: int
    prompt: str
    answer: str
    options: List[str] = Field(default_factory=list)
    kind: ItemKind
    difficulty: int
    points: int = 10
    correct_option_index: Optional[int] = None
    explanation: Optional[str] = None
    source_excerpt: Optional[str] = None
    cognitive_level: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ItemConceptLink(BaseModel):
    item_id: str
    concept_id: str


class RunProgress(BaseModel):
    percent: int = 0
    stage: RunStage = RunStage.STARTING
    accepted_count: int = 0
    target_count: int = 0
    status: RunStatus = RunStatus.GENERATING
    error_message: Optional[str] = None


class UnitOutcome(BaseModel):
    unit_id: str
    order_index: int
    status: UnitStatus
    item_count: int = 0
    used_fallback: bool = False


class RunResult(BaseModel):
    document_id: str
    status: RunStatus
    accepted_count: int = 0
    target_count: int = 0
    units: List[UnitOutcome] = Field(default_factory=list)
    error_message: Optional[str] = None
