from typing import Protocol

from quizgen.domain.outcomes import UnitProcessingResult
from quizgen.domain.run_context import RunContext
from quizgen.domain.schemas import ContentUnit, GenerationConfig
from quizgen.domain.types import ContentLanguage


class UnitProcessorProtocol(Protocol):
    async def process(
        self, unit: ContentUnit, config: GenerationConfig, run: RunContext
    ) -> UnitProcessingResult: ...


class FallbackGeneratorProtocol(Protocol):
    async def generate(self, unit: ContentUnit, language: ContentLanguage) -> int: ...
