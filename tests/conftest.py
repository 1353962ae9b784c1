from typing import Any, Callable, Dict, List, Optional

import pytest

from quizgen.domain.exceptions import NonRetryableGenerationError
from quizgen.domain.ports import IQuizGenerationService, IQuizRepository
from quizgen.domain.schemas import (
    Concept,
    ContentUnit,
    GeneratedItem,
    GenerationConfig,
    ItemConceptLink,
    RunProgress,
)
from quizgen.domain.types import ContentLanguage, RunStatus, UnitStatus

LONG_TEXT = (
    "Photosynthesis converts light energy into chemical energy stored in glucose molecules. "
    "Chlorophyll pigments absorb mostly blue and red wavelengths of visible light. "
    "The light dependent reactions take place in the thylakoid membranes of the chloroplast. "
    "The Calvin cycle fixes atmospheric carbon dioxide into three carbon sugars. "
    "Oxygen released during photosynthesis comes from the splitting of water molecules. "
    "Stomata regulate gas exchange between the leaf interior and the surrounding air. "
    "Short one."
)


class InMemoryQuizRepository(IQuizRepository):
    def __init__(self, units: Optional[List[ContentUnit]] = None):
        self.units = list(units or [])
        self.items: Dict[str, List[GeneratedItem]] = {}
        self.links: List[ItemConceptLink] = []
        self.unit_status_writes: List[tuple] = []
        self.coverage_writes: Dict[str, tuple] = {}
        self.progress_writes: List[RunProgress] = []
        self.terminal_writes: List[tuple] = []
        self.insert_calls: List[int] = []
        self.run_status: Optional[RunStatus] = None
        self.fail_inserts_larger_than: Optional[int] = None
        self.fail_progress_writes = False
        self.fail_list_units: Optional[Exception] = None
        self.fail_try_start_run: Optional[Exception] = None

    async def list_units(self, document_id: str) -> List[ContentUnit]:
        if self.fail_list_units is not None:
            raise self.fail_list_units
        return list(self.units)

    async def count_items(self, unit_id: str) -> int:
        return len(self.items.get(unit_id, []))

    async def insert_items(self, items: List[GeneratedItem]) -> None:
        self.insert_calls.append(len(items))
        if self.fail_inserts_larger_than is not None and len(items) > self.fail_inserts_larger_than:
            raise RuntimeError("payload too large")
        for item in items:
            self.items.setdefault(item.unit_id, []).append(item)

    async def insert_concept_links(self, links: List[ItemConceptLink]) -> None:
        self.links.extend(links)

    async def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        self.unit_status_writes.append((unit_id, status))

    async def update_unit_coverage(
        self, unit_id: str, concept_count: int, covered_concepts: int, coverage_ratio: float
    ) -> None:
        self.coverage_writes[unit_id] = (concept_count, covered_concepts, coverage_ratio)

    async def write_progress(self, document_id: str, progress: RunProgress) -> None:
        if self.fail_progress_writes:
            raise ConnectionError("store unavailable")
        self.progress_writes.append(progress)

    async def write_terminal_status(
        self,
        document_id: str,
        status: RunStatus,
        accepted_count: int,
        error_message: Optional[str] = None,
    ) -> None:
        self.terminal_writes.append((status, accepted_count, error_message))
        self.run_status = status

    async def get_run_status(self, document_id: str) -> Optional[RunStatus]:
        return self.run_status

    async def try_start_run(self, document_id: str, target_count: int = 0) -> bool:
        if self.fail_try_start_run is not None:
            raise self.fail_try_start_run
        if self.run_status == RunStatus.GENERATING:
            return False
        self.run_status = RunStatus.GENERATING
        return True

    def last_status(self, unit_id: str) -> Optional[UnitStatus]:
        for written_id, status in reversed(self.unit_status_writes):
            if written_id == unit_id:
                return status
        return None


Behavior = Callable[[Dict[str, Any], GenerationConfig, int], Any]


class ScriptedGenerationService(IQuizGenerationService):
    """Delegates to `behavior(unit_context, config, call_number)`; raises what it returns if it is an exception."""

    def __init__(self, behavior: Behavior):
        self.behavior = behavior
        self.calls: List[Dict[str, Any]] = []

    def calls_for(self, title: str) -> int:
        return sum(1 for call in self.calls if call["title"] == title)

    async def generate(
        self,
        unit_context: Dict[str, Any],
        source_text: str,
        language: ContentLanguage,
        config: GenerationConfig,
        options: Optional[Dict[str, Any]] = None,
    ):
        self.calls.append(
            {"title": unit_context.get("title"), "requested": config.requested_count, "language": language}
        )
        outcome = self.behavior(unit_context, config, len(self.calls))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def mc_items(prefix: str, count: int, concept_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Multiple-choice candidates whose prompts stay well below the duplicate threshold."""
    items = []
    for i in range(count):
        tag = f"{prefix}{i}"
        items.append(
            {
                "type": "multiple_choice",
                "prompt": f"Which statement about {tag}alpha {tag}beta {tag}gamma holds?",
                "options": [f"{tag} one", f"{tag} two", f"{tag} three", f"{tag} four"],
                "correct_option_index": 1,
                "explanation": f"Because of {tag}.",
                "concept_ids": concept_ids or [],
            }
        )
    return items


def make_unit(
    unit_id: str,
    order_index: int,
    source_text: str = LONG_TEXT,
    concepts: Optional[List[str]] = None,
) -> ContentUnit:
    return ContentUnit(
        id=unit_id,
        title=f"Chapter {unit_id}",
        order_index=order_index,
        summary="Summary",
        source_text=source_text,
        concepts=[Concept(id=cid, title=cid) for cid in (concepts or [])],
    )


@pytest.fixture
def repo_factory():
    return InMemoryQuizRepository


@pytest.fixture
def service_factory():
    return ScriptedGenerationService


@pytest.fixture
def unit_factory():
    return make_unit


@pytest.fixture
def candidates_factory():
    return mc_items


@pytest.fixture
def non_retryable_error():
    return NonRetryableGenerationError("content_policy violation", reason="content_policy")


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def instant_sleep():
    return no_sleep
