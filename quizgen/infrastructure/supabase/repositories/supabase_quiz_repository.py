from typing import Any, Dict, List, Optional

import structlog

from quizgen.core.observability.generation_logging import compact_error, emit_event
from quizgen.domain.ports import IQuizRepository
from quizgen.domain.schemas import (
    Concept,
    ContentUnit,
    GeneratedItem,
    ItemConceptLink,
    RunProgress,
)
from quizgen.domain.types import ItemKind, RunStage, RunStatus, UnitStatus
from quizgen.infrastructure.supabase.client import get_async_supabase_client

logger = structlog.get_logger(__name__)

_DIFFICULTY_LABELS = {1: "easy", 2: "medium", 3: "hard"}
_UNIT_COLUMNS = (
    "id,title,summary,order_index,difficulty,source_text,status,"
    "concept_count,covered_concepts,coverage_ratio"
)


def _difficulty_label(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return _DIFFICULTY_LABELS.get(value, "medium")
    text = str(value or "").strip().lower()
    return text if text in {"easy", "medium", "hard"} else "medium"


def _unit_status(value: Any) -> UnitStatus:
    try:
        return UnitStatus(str(value or "").strip().lower())
    except ValueError:
        return UnitStatus.PENDING


def item_to_row(item: GeneratedItem) -> Dict[str, Any]:
    """Maps a GeneratedItem onto the `questions` table."""
    return {
        "id": item.id,
        "chapter_id": item.unit_id,
        "concept_id": item.concept_id,
        "question_number": item.sequence,
        "question_text": item.prompt,
        "answer_text": item.answer,
        "options": item.options or None,
        "type": "open" if item.kind == ItemKind.FILL_BLANK else "mcq",
        "phase": item.kind.value,
        "difficulty": item.difficulty,
        "points": item.points,
        "correct_option_index": item.correct_option_index,
        "explanation": item.explanation,
        "source_excerpt": item.source_excerpt,
        "cognitive_level": item.cognitive_level,
    }


class SupabaseQuizRepository(IQuizRepository):
    """
    Concrete implementation of IQuizRepository for Supabase.
    Documents are `courses`, units are `chapters`, items are `questions`.
    """

    def __init__(self, client: Optional[Any] = None):
        self._supabase = client

    async def get_client(self):
        if self._supabase is None:
            self._supabase = await get_async_supabase_client()
        return self._supabase

    async def list_units(self, document_id: str) -> List[ContentUnit]:
        client = await self.get_client()
        chapters = await (
            client.table("chapters")
            .select(_UNIT_COLUMNS)
            .eq("course_id", document_id)
            .order("order_index")
            .execute()
        )
        concepts = await (
            client.table("concepts")
            .select("id,chapter_id,title,description,importance")
            .eq("course_id", document_id)
            .execute()
        )

        by_unit: Dict[str, List[Concept]] = {}
        for row in concepts.data or []:
            chapter_id = row.get("chapter_id")
            if not chapter_id:
                continue
            by_unit.setdefault(str(chapter_id), []).append(
                Concept(
                    id=str(row["id"]),
                    title=row.get("title") or "",
                    description=row.get("description") or "",
                    importance=int(row.get("importance") or 1),
                )
            )

        units = []
        for row in chapters.data or []:
            unit_id = str(row["id"])
            units.append(
                ContentUnit(
                    id=unit_id,
                    title=row.get("title") or "",
                    order_index=int(row.get("order_index") or 0),
                    difficulty=_difficulty_label(row.get("difficulty")),
                    summary=row.get("summary") or "",
                    source_text=row.get("source_text") or "",
                    concepts=by_unit.get(unit_id, []),
                    status=_unit_status(row.get("status")),
                    concept_count=int(row.get("concept_count") or 0),
                    covered_concepts=int(row.get("covered_concepts") or 0),
                    coverage_ratio=float(row.get("coverage_ratio") or 0.0),
                )
            )
        emit_event(
            logger,
            "quiz_units_loaded",
            document_id=document_id,
            unit_count=len(units),
            concept_count=sum(len(v) for v in by_unit.values()),
        )
        return units

    async def count_items(self, unit_id: str) -> int:
        client = await self.get_client()
        res = await (
            client.table("questions")
            .select("id", count="exact")
            .eq("chapter_id", unit_id)
            .limit(1)
            .execute()
        )
        if res.count is not None:
            return int(res.count)
        return len(res.data or [])

    async def insert_items(self, items: List[GeneratedItem]) -> None:
        if not items:
            return
        client = await self.get_client()
        await client.table("questions").insert([item_to_row(i) for i in items]).execute()

    async def insert_concept_links(self, links: List[ItemConceptLink]) -> None:
        if not links:
            return
        client = await self.get_client()
        rows = [{"question_id": l.item_id, "concept_id": l.concept_id} for l in links]
        try:
            await client.table("question_concepts").insert(rows).execute()
        except Exception as e:
            emit_event(
                logger,
                "quiz_concept_links_insert_failed",
                level="error",
                link_count=len(rows),
                error=compact_error(e),
            )
            raise e

    async def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        client = await self.get_client()
        await client.table("chapters").update({"status": status.value}).eq("id", unit_id).execute()

    async def update_unit_coverage(
        self, unit_id: str, concept_count: int, covered_concepts: int, coverage_ratio: float
    ) -> None:
        client = await self.get_client()
        await (
            client.table("chapters")
            .update(
                {
                    "concept_count": concept_count,
                    "covered_concepts": covered_concepts,
                    "coverage_ratio": coverage_ratio,
                }
            )
            .eq("id", unit_id)
            .execute()
        )

    async def write_progress(self, document_id: str, progress: RunProgress) -> None:
        client = await self.get_client()
        await (
            client.table("courses")
            .update(
                {
                    "quiz_status": progress.status.value,
                    "quiz_progress": progress.percent,
                    "quiz_stage": progress.stage.value,
                    "quiz_questions_generated": progress.accepted_count,
                    "quiz_target_count": progress.target_count,
                    "quiz_error_message": progress.error_message,
                }
            )
            .eq("id", document_id)
            .execute()
        )

    async def write_terminal_status(
        self,
        document_id: str,
        status: RunStatus,
        accepted_count: int,
        error_message: Optional[str] = None,
    ) -> None:
        client = await self.get_client()
        stage = RunStage.FAILED if status == RunStatus.FAILED else RunStage.COMPLETE
        payload: Dict[str, Any] = {
            "quiz_status": status.value,
            "quiz_stage": stage.value,
            "quiz_questions_generated": accepted_count,
            "quiz_error_message": error_message,
        }
        if status != RunStatus.FAILED:
            payload["quiz_progress"] = 100
        await client.table("courses").update(payload).eq("id", document_id).execute()

    async def get_run_status(self, document_id: str) -> Optional[RunStatus]:
        client = await self.get_client()
        res = await (
            client.table("courses").select("quiz_status").eq("id", document_id).limit(1).execute()
        )
        if not res.data:
            return None
        raw = res.data[0].get("quiz_status")
        try:
            return RunStatus(str(raw)) if raw else None
        except ValueError:
            return None

    async def try_start_run(self, document_id: str, target_count: int = 0) -> bool:
        client = await self.get_client()
        res = await (
            client.table("courses")
            .update(
                {
                    "quiz_status": RunStatus.GENERATING.value,
                    "quiz_progress": 0,
                    "quiz_stage": RunStage.STARTING.value,
                    "quiz_questions_generated": 0,
                    "quiz_target_count": target_count,
                    "quiz_error_message": None,
                }
            )
            .eq("id", document_id)
            .or_(f"quiz_status.is.null,quiz_status.neq.{RunStatus.GENERATING.value}")
            .execute()
        )
        claimed = bool(res.data)
        emit_event(logger, "quiz_run_claim", document_id=document_id, claimed=claimed)
        return claimed
