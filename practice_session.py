"""
Practice mode — untimed drilling with instant feedback.

Unlike exam mode, each answer is scored and stored with its correctness the
moment it is given, and the explanation is returned straight away.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field

from errors import InsufficientQuestionsError, InvalidAnswerError, NotFoundError, ValidationError
from helpers import now_iso, parse_iso, percentage
from local_store import LocalStore
from models import DIFFICULTIES, ExplanationBlock, PracticeAnswer, PracticeSession, Question
from scoring import is_answer_correct

logger = logging.getLogger(__name__)


@dataclass
class PracticeFeedback:
    question_id: str
    is_correct: bool
    correct_answers: list[str]
    explanation: str
    explanation_blocks: list[ExplanationBlock] | None = None


@dataclass
class PracticeRun:
    session: PracticeSession
    question_ids: list[str] = field(default_factory=list)


class PracticeSessionManager:
    def __init__(self, store: LocalStore, rng: random.Random | None = None):
        self.store = store
        self.rng = rng or random.Random()

    def start(self, domain: str | None = None, difficulty: str | None = None,
              count: int = 10) -> PracticeRun:
        """Open a session and draw up to `count` questions matching the filters."""
        if difficulty is not None and difficulty not in DIFFICULTIES:
            raise ValidationError(f"Unknown difficulty: {difficulty}")
        if count < 1:
            raise ValidationError("Practice sessions need at least one question")

        pool = self.store.list_question_ids(domain=domain, difficulty=difficulty)
        if not pool:
            raise InsufficientQuestionsError(1, 0, domain=domain)
        question_ids = self.rng.sample(pool, min(count, len(pool)))

        session = PracticeSession(
            id=str(uuid.uuid4()), started_at=now_iso(), domain=domain, difficulty=difficulty,
        )
        self.store.create_practice_session(session)
        logger.info("Started practice session %s (%d questions, domain=%s, difficulty=%s)",
                    session.id, len(question_ids), domain or "any", difficulty or "any")
        return PracticeRun(session=session, question_ids=question_ids)

    def answer(self, session_id: str, question_id: str, selected: list[str]) -> PracticeFeedback:
        session = self._open_session(session_id)
        question: Question | None = self.store.get_question(question_id)
        if question is None:
            raise InvalidAnswerError(f"Unknown question {question_id}")
        selected = list(dict.fromkeys(selected))
        if not selected:
            raise InvalidAnswerError("Select at least one option")
        unknown = [opt for opt in selected if opt not in question.option_ids]
        if unknown:
            raise InvalidAnswerError(f"Options {unknown} do not belong to question {question_id}")

        correct = is_answer_correct(selected, question.correct_answers)
        self.store.add_practice_answer(PracticeAnswer(
            id=str(uuid.uuid4()),
            session_id=session.id,
            question_id=question_id,
            selected_answers=selected,
            is_correct=correct,
            answered_at=now_iso(),
        ))
        return PracticeFeedback(
            question_id=question_id,
            is_correct=correct,
            correct_answers=list(question.correct_answers),
            explanation=question.explanation,
            explanation_blocks=question.explanation_blocks,
        )

    def complete(self, session_id: str) -> dict:
        """Close the session and return its summary."""
        session = self._open_session(session_id)
        completed_at = now_iso()
        self.store.complete_practice_session(session_id, completed_at)
        session = self.store.get_practice_session(session_id)

        elapsed_ms = int((parse_iso(completed_at) - parse_iso(session.started_at)).total_seconds() * 1000)
        self.store.record_activity(
            practice=1, questions=session.questions_count, time_spent_ms=elapsed_ms, at=completed_at,
        )
        logger.info("Completed practice session %s: %d/%d correct",
                    session_id, session.correct_count, session.questions_count)
        return {
            "session_id": session_id,
            "questions_count": session.questions_count,
            "correct_count": session.correct_count,
            "accuracy": percentage(session.correct_count, session.questions_count),
            "time_spent_ms": elapsed_ms,
            "completed_at": completed_at,
        }

    def _open_session(self, session_id: str) -> PracticeSession:
        session = self.store.get_practice_session(session_id)
        if session is None:
            raise NotFoundError(f"Practice session {session_id} not found")
        if session.completed_at is not None:
            raise ValidationError(f"Practice session {session_id} is already completed")
        return session
