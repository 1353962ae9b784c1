"""
Quiz generation container.

Centralizes service instantiation and dependency injection.
"""

from typing import Optional

from quizgen.application.use_cases.generate_quiz_use_case import GenerateQuizUseCase
from quizgen.domain.ports import IQuizGenerationService, IQuizRepository
from quizgen.infrastructure.generation.llm_generation_service import LLMQuizGenerationService
from quizgen.infrastructure.supabase.repositories.supabase_quiz_repository import (
    SupabaseQuizRepository,
)
from quizgen.services.quiz.fallback_generator import FallbackGenerator
from quizgen.workflows.quiz_generation.batch_orchestrator import BatchOrchestrator


class QuizGenerationContainer:
    """
    IoC Container for quiz generation services.
    """

    def __init__(
        self,
        repository: Optional[IQuizRepository] = None,
        generation_service: Optional[IQuizGenerationService] = None,
    ):
        # Lazy initialization of services
        self._repository = repository
        self._generation_service = generation_service
        self._fallback_generator = None
        self._orchestrator = None
        self._use_case = None

    @property
    def repository(self) -> IQuizRepository:
        if self._repository is None:
            self._repository = SupabaseQuizRepository()
        return self._repository

    @property
    def generation_service(self) -> IQuizGenerationService:
        if self._generation_service is None:
            self._generation_service = LLMQuizGenerationService()
        return self._generation_service

    @property
    def fallback_generator(self) -> FallbackGenerator:
        if self._fallback_generator is None:
            self._fallback_generator = FallbackGenerator(self.repository)
        return self._fallback_generator

    @property
    def orchestrator(self) -> BatchOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = BatchOrchestrator(
                repository=self.repository,
                generation_service=self.generation_service,
                fallback_generator=self.fallback_generator,
            )
        return self._orchestrator

    @property
    def generate_quiz_use_case(self) -> GenerateQuizUseCase:
        if self._use_case is None:
            self._use_case = GenerateQuizUseCase(self.orchestrator, self.repository)
        return self._use_case
