"""Quiz generation job - pipeline run plus persistence for one session."""

import logging
from dataclasses import dataclass

from backend.app.db.repositories import QuestionStore
from backend.app.generation.chunk_generator import CancelToken
from backend.app.generation.orchestrator import EventSink, GenerationOrchestrator
from backend.app.models.events import ProgressEvent, QuestionEvent, QuestionPayload
from backend.app.models.questions import Difficulty

logger = logging.getLogger(__name__)


@dataclass
class QuizGenerationJob:
    """Everything needed to turn one upload into stored questions.

    Called by the session registry with the session's event sink and
    cancel token; returns the number of questions stored.
    """

    generation_id: str
    user_id: str
    content: str
    topic: str
    question_count: int
    difficulty: Difficulty
    source_file: str | None
    orchestrator: GenerationOrchestrator
    store: QuestionStore

    async def __call__(self, emit: EventSink, cancel_token: CancelToken) -> int:
        await emit(ProgressEvent(progress=10, message="Extracting text from file..."))
        await emit(ProgressEvent(progress=20, message="Generating questions with AI..."))

        questions = await self.orchestrator.run(
            self.content,
            self.question_count,
            self.difficulty,
            sink=emit,
            generation_id=self.generation_id,
            cancel_token=cancel_token,
        )
        logger.info(f"[{self.generation_id}] AI generated {len(questions)} questions")

        # Last point where cancellation leaves prior questions untouched
        cancel_token.throw_if_cancelled()

        await emit(ProgressEvent(progress=60, message="Deactivating old questions..."))
        deactivated = await self.store.replace_prior_questions(self.user_id)
        logger.info(f"[{self.generation_id}] Deactivated {deactivated} old questions")

        await emit(ProgressEvent(progress=70, message="Saving questions..."))
        saved = await self.store.save_questions(
            self.user_id,
            self.generation_id,
            questions,
            topic=self.topic,
            source_file=self.source_file,
        )

        total = len(saved)
        for number, stored in enumerate(saved, start=1):
            await emit(
                QuestionEvent(
                    question=QuestionPayload.from_stored(stored),
                    question_number=number,
                    total_questions=total,
                    progress=min(70 + round(number / total * 30), 99),
                )
            )

        return total
