import asyncio

import pytest

from quizgen.core.prompts.quiz_generation import QuizGenerationPrompts
from quizgen.core.structured_generation import StrictEngine
from quizgen.domain.exceptions import GenerationServiceError, NonRetryableGenerationError
from quizgen.domain.schemas import CandidateItem, GeneratedItem, GenerationConfig, ItemTypeFlags
from quizgen.domain.types import ContentLanguage, ItemKind, QuantityTier
from quizgen.infrastructure.generation.llm_generation_service import (
    LLMQuizGenerationService,
    QuizItemsResponse,
    classify_non_retryable,
)
from quizgen.infrastructure.supabase.repositories.supabase_quiz_repository import item_to_row


class FakeEngine:
    def __init__(self, outcome):
        self.outcome = outcome
        self.prompts = []

    async def agenerate(self, prompt, schema, system_prompt=None, context=None):
        self.prompts.append(prompt)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class SlowEngine:
    async def agenerate(self, prompt, schema, system_prompt=None, context=None):
        await asyncio.sleep(5)


UNIT_CONTEXT = {
    "index": 2,
    "title": "Photosynthesis",
    "short_summary": "How plants store light energy.",
    "difficulty": "hard",
    "concepts": [{"id": "c1", "title": "Chlorophyll", "description": "Green pigment"}],
}


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Error code: 401 - invalid_api_key", "invalid_credential"),
        ("Request blocked by content_filter", "content_policy"),
        ("permission denied for model", "invalid_credential"),
        ("Rate limit reached, retry in 2s", None),
        ("Read timed out", None),
        ("Error code: 403 - forbidden", "permission_denied"),
        ("Error code: 503 - upstream timeout after 4013 ms", None),
        ("Rate limit exceeded for request req_a4031b", None),
        ("status 500: worker 401 restarted", None),
    ],
)
def test_classify_non_retryable_markers(message, expected) -> None:
    assert classify_non_retryable(RuntimeError(message)) == expected


class _StatusError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def test_classify_non_retryable_prefers_status_code() -> None:
    assert classify_non_retryable(_StatusError("unauthorized", 401)) == "invalid_credential"
    assert classify_non_retryable(_StatusError("forbidden", 403)) == "permission_denied"
    assert classify_non_retryable(_StatusError("Error code: 401 in upstream log", 503)) is None
    assert classify_non_retryable(_StatusError("slow down", 429)) is None


def test_generate_returns_candidates_and_builds_prompt() -> None:
    async def _run() -> None:
        engine = FakeEngine(
            QuizItemsResponse(questions=[CandidateItem(type="multiple_choice", prompt="What is chlorophyll?")])
        )
        service = LLMQuizGenerationService(strict_engine=engine, timeout_seconds=5, max_source_chars=40)
        config = GenerationConfig(types=ItemTypeFlags(qcm=True, vrai_faux=True)).with_requested_count(15)

        items = await service.generate(UNIT_CONTEXT, "x" * 100, "fr", config)

        assert [i.prompt for i in items] == ["What is chlorophyll?"]
        prompt = engine.prompts[0]
        assert prompt.startswith('Generate 15 quiz items for chapter 2: "Photosynthesis"')
        assert "write every item in French" in prompt
        assert "[c1] Chlorophyll: Green pigment" in prompt
        assert '"type": "true_false"' in prompt
        assert '"type": "fill_blank"' not in prompt
        assert "x" * 40 in prompt and "x" * 41 not in prompt

    asyncio.run(_run())


def test_generate_raises_non_retryable_for_policy_refusal() -> None:
    async def _run() -> None:
        service = LLMQuizGenerationService(
            strict_engine=FakeEngine(RuntimeError("content_policy_violation")), timeout_seconds=5
        )
        with pytest.raises(NonRetryableGenerationError) as exc_info:
            await service.generate(UNIT_CONTEXT, "text", ContentLanguage.EN, GenerationConfig())
        assert exc_info.value.reason == "content_policy"

    asyncio.run(_run())


def test_generate_wraps_transient_failures() -> None:
    async def _run() -> None:
        service = LLMQuizGenerationService(
            strict_engine=FakeEngine(ConnectionError("connection reset")), timeout_seconds=5
        )
        with pytest.raises(GenerationServiceError, match="connection reset"):
            await service.generate(UNIT_CONTEXT, "text", ContentLanguage.EN, GenerationConfig())

    asyncio.run(_run())


def test_generate_times_out_as_retryable_failure() -> None:
    async def _run() -> None:
        service = LLMQuizGenerationService(strict_engine=SlowEngine(), timeout_seconds=0.01)
        with pytest.raises(GenerationServiceError, match="timed out"):
            await service.generate(UNIT_CONTEXT, "text", ContentLanguage.EN, GenerationConfig())

    asyncio.run(_run())


def test_strict_engine_passes_schema_and_messages_to_client() -> None:
    calls = []

    class _Completions:
        async def create(self, **kwargs):
            calls.append(kwargs)
            return QuizItemsResponse()

    class _Chat:
        completions = _Completions()

    class _Client:
        chat = _Chat()

    async def _run() -> None:
        engine = StrictEngine(max_retries=1, temperature=0.2, client=_Client(), model="test-model")
        result = await engine.agenerate("Make items", QuizItemsResponse, system_prompt="SYS")

        assert isinstance(result, QuizItemsResponse)
        assert calls[0]["model"] == "test-model"
        assert calls[0]["response_model"] is QuizItemsResponse
        assert calls[0]["max_retries"] == 1
        assert calls[0]["messages"][0] == {"role": "system", "content": "SYS"}
        assert calls[0]["messages"][1] == {"role": "user", "content": "Make items"}

    asyncio.run(_run())


def test_prompt_lists_placeholder_when_unit_has_no_concepts() -> None:
    prompt = QuizGenerationPrompts.build_user_prompt(
        unit_context={"index": 1, "title": "Intro"},
        source_text="Body",
        language=ContentLanguage.DE,
        niveau=QuantityTier.EXHAUSTIF,
        kinds=[ItemKind.MULTIPLE_CHOICE],
        requested_count=30,
        max_source_chars=1000,
    )
    assert "leave concept_ids empty" in prompt
    assert "German" in prompt
    assert "Comprehensive coverage" in prompt


def test_item_to_row_maps_kinds_onto_question_types() -> None:
    fill = GeneratedItem(
        id="i1",
        unit_id="u1",
        sequence=3,
        prompt="Light is absorbed by ___.",
        answer='["chlorophyll"]',
        kind=ItemKind.FILL_BLANK,
        difficulty=2,
    )
    tf = fill.model_copy(
        update={"id": "i2", "kind": ItemKind.TRUE_FALSE, "options": ["True", "False"], "correct_option_index": 0}
    )

    fill_row = item_to_row(fill)
    tf_row = item_to_row(tf)

    assert fill_row["type"] == "open"
    assert fill_row["phase"] == "fill_blank"
    assert fill_row["options"] is None
    assert fill_row["question_number"] == 3
    assert tf_row["type"] == "mcq"
    assert tf_row["phase"] == "true_false"
    assert tf_row["options"] == ["True", "False"]
