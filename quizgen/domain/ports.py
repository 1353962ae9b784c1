from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from quizgen.domain.schemas import (
    CandidateItem,
    ContentUnit,
    GeneratedItem,
    GenerationConfig,
    ItemConceptLink,
    RunProgress,
)
from quizgen.domain.types import ContentLanguage, RunStatus, UnitStatus

GenerationPayload = Union[List[Union[CandidateItem, Dict[str, Any]]], Dict[str, Any]]


class IQuizGenerationService(ABC):
    @abstractmethod
    async def generate(
        self,
        unit_context: Dict[str, Any],
        source_text: str,
        language: ContentLanguage,
        config: GenerationConfig,
        options: Optional[Dict[str, Any]] = None,
    ) -> GenerationPayload:
        """
        Returns candidate items, either as a list or wrapped as {"questions": [...]}.
        Raises NonRetryableGenerationError for failures a retry cannot fix; any
        other exception is treated as transient.
        """


class IQuizRepository(ABC):
    @abstractmethod
    async def list_units(self, document_id: str) -> List[ContentUnit]:
        pass

    @abstractmethod
    async def count_items(self, unit_id: str) -> int:
        pass

    @abstractmethod
    async def insert_items(self, items: List[GeneratedItem]) -> None:
        pass

    @abstractmethod
    async def insert_concept_links(self, links: List[ItemConceptLink]) -> None:
        pass

    @abstractmethod
    async def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        pass

    @abstractmethod
    async def update_unit_coverage(
        self, unit_id: str, concept_count: int, covered_concepts: int, coverage_ratio: float
    ) -> None:
        pass

    @abstractmethod
    async def write_progress(self, document_id: str, progress: RunProgress) -> None:
        pass

    @abstractmethod
    async def write_terminal_status(
        self,
        document_id: str,
        status: RunStatus,
        accepted_count: int,
        error_message: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    async def get_run_status(self, document_id: str) -> Optional[RunStatus]:
        pass

    @abstractmethod
    async def try_start_run(self, document_id: str, target_count: int = 0) -> bool:
        """Atomically claims the document for a new run. False if one is already generating."""
