"""
Exam Session — state machine for a timed, scored exam attempt.

    NoAttempt --start--> InProgress --submit/expire--> Completed
                             |
                             +--abandon--> Abandoned

At most one attempt is in progress at a time. The question order is fixed
at start (order_index) and survives restarts. In exam mode correctness is
not revealed or stored until submission.

The countdown is owned here: advance_clock() feeds elapsed time through the
pure exam_timer.tick(), persists the remaining time on a throttle, and
submits automatically when it reaches zero. Persistence of the countdown is
best-effort; a failed write is logged and never interrupts the exam.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from errors import (
    DataCorruptionError,
    ExamInProgressError,
    InvalidAnswerError,
    LocalStoreError,
    NoActiveExamError,
    ValidationError,
)
from exam_timer import PersistThrottle, tick
from helpers import iso_after, to_iso, utcnow
from local_store import LocalStore
from models import (
    ATTEMPT_IN_PROGRESS,
    ExamAnswer,
    ExamAttempt,
    ExamResult,
    ExamTypeConfig,
    Question,
)
from question_selection import select_exam_questions
from scoring import score_answers

logger = logging.getLogger(__name__)


@dataclass
class ExamSessionState:
    """In-memory view of the active attempt."""

    attempt: ExamAttempt
    answers: list[ExamAnswer]
    questions: dict[str, Question]
    current_index: int = 0
    _by_question: dict[str, ExamAnswer] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_question = {a.question_id: a for a in self.answers}

    @property
    def question_ids(self) -> list[str]:
        return [a.question_id for a in self.answers]

    @property
    def current_question(self) -> Question:
        return self.questions[self.answers[self.current_index].question_id]

    @property
    def current_answer(self) -> ExamAnswer:
        return self.answers[self.current_index]

    def answer_for(self, question_id: str) -> ExamAnswer | None:
        return self._by_question.get(question_id)

    def go_to(self, index: int) -> Question:
        if not 0 <= index < len(self.answers):
            raise ValidationError(f"Question index {index} is out of range 0..{len(self.answers) - 1}")
        self.current_index = index
        return self.current_question

    def next_question(self) -> Question:
        return self.go_to(min(self.current_index + 1, len(self.answers) - 1))

    def previous_question(self) -> Question:
        return self.go_to(max(self.current_index - 1, 0))

    def first_unanswered_index(self) -> int:
        for index, answer in enumerate(self.answers):
            if not answer.is_answered:
                return index
        return 0

    def progress(self) -> dict:
        answered = sum(1 for a in self.answers if a.is_answered)
        return {
            "answered": answered,
            "flagged": sum(1 for a in self.answers if a.is_flagged),
            "unanswered": len(self.answers) - answered,
            "total": len(self.answers),
            "current_index": self.current_index,
            "remaining_time_ms": self.attempt.remaining_time_ms,
        }


@dataclass
class TickOutcome:
    remaining_ms: int
    expired: bool
    persisted: bool = False
    result: Optional[ExamResult] = None


class ExamSessionMachine:
    """Drives exam attempts against a LocalStore."""

    def __init__(self, store: LocalStore, exam_type: ExamTypeConfig, *,
                 persist_interval_ms: int = 30_000, rng: random.Random | None = None,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.exam_type = exam_type
        self.rng = rng or random.Random()
        self.clock = clock
        self._throttle = PersistThrottle(persist_interval_ms)
        self._state: ExamSessionState | None = None

    @property
    def state(self) -> ExamSessionState | None:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is not None

    def _now(self) -> str:
        return to_iso(self.clock())

    def _require_active(self) -> ExamSessionState:
        if self._state is None:
            raise NoActiveExamError("No exam attempt is in progress")
        return self._state

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> ExamSessionState:
        """Begin a new attempt with a stratified random selection of questions."""
        existing = self.store.get_in_progress_attempt()
        if self._state is not None or existing is not None:
            attempt_id = existing.id if existing else self._state.attempt.id
            raise ExamInProgressError(
                f"Attempt {attempt_id} is already in progress; resume or abandon it first"
            )

        question_ids = select_exam_questions(self.store.question_ids_by_domain(), self.exam_type, self.rng)

        started_at = self._now()
        attempt = ExamAttempt(
            id=str(uuid.uuid4()),
            exam_type_id=self.exam_type.id,
            started_at=started_at,
            status=ATTEMPT_IN_PROGRESS,
            total_questions=len(question_ids),
            remaining_time_ms=self.exam_type.time_limit_ms,
            expires_at=iso_after(started_at, self.exam_type.time_limit_ms),
        )
        answers = self.store.create_attempt(attempt, question_ids)
        self._state = ExamSessionState(
            attempt=attempt,
            answers=answers,
            questions=self._load_questions(question_ids),
        )
        self._throttle.reset()
        logger.info("Started exam attempt %s (%d questions, %d min)",
                    attempt.id, attempt.total_questions, self.exam_type.time_limit_minutes)
        return self._state

    def resume(self) -> ExamSessionState | None:
        """Reload the in-progress attempt after a restart.

        Returns None when there is nothing to resume. An attempt whose
        countdown already reached zero is submitted and None is returned.
        """
        if self._state is not None:
            return self._state
        attempt = self.store.get_in_progress_attempt()
        if attempt is None:
            return None
        if attempt.exam_type_id and attempt.exam_type_id != self.exam_type.id:
            raise ExamInProgressError(
                f"Attempt {attempt.id} belongs to exam type {attempt.exam_type_id}"
            )

        answers = self.store.get_answers(attempt.id)
        self._state = ExamSessionState(
            attempt=attempt,
            answers=answers,
            questions=self._load_questions([a.question_id for a in answers]),
        )
        self._throttle.reset()

        if attempt.remaining_time_ms <= 0:
            logger.info("Attempt %s expired while suspended; submitting", attempt.id)
            self.submit(expired=True)
            return None

        self._state.current_index = self._state.first_unanswered_index()
        logger.info("Resumed exam attempt %s at question %d with %d ms left",
                    attempt.id, self._state.current_index + 1, attempt.remaining_time_ms)
        return self._state

    def _load_questions(self, question_ids: list[str]) -> dict[str, Question]:
        questions = self.store.get_questions(question_ids)
        missing = [qid for qid in question_ids if qid not in questions]
        if missing:
            raise DataCorruptionError(f"Attempt references missing questions: {missing[:5]}")
        return questions

    # ── Answering ────────────────────────────────────────────────────

    def select_answer(self, question_id: str, answers: list[str]) -> ExamAnswer:
        """Record the selected option ids for a question.

        An empty selection clears the answer. Correctness is not evaluated
        until submission.
        """
        state = self._require_active()
        answer = state.answer_for(question_id)
        if answer is None:
            raise InvalidAnswerError(f"Question {question_id} is not part of attempt {state.attempt.id}")
        question = state.questions[question_id]

        selected = list(dict.fromkeys(answers))
        unknown = [opt for opt in selected if opt not in question.option_ids]
        if unknown:
            raise InvalidAnswerError(f"Options {unknown} do not belong to question {question_id}")
        if question.type != "multiple-choice" and len(selected) > 1:
            raise InvalidAnswerError(f"Question {question_id} accepts a single answer")

        if not selected:
            answered_at = None
        else:
            answered_at = answer.answered_at or self._now()
        self.store.save_answer_selection(answer.id, selected, answered_at)
        answer.selected_answers = selected
        answer.answered_at = answered_at
        return answer

    def toggle_flag(self, question_id: str) -> bool:
        state = self._require_active()
        answer = state.answer_for(question_id)
        if answer is None:
            raise InvalidAnswerError(f"Question {question_id} is not part of attempt {state.attempt.id}")
        flagged = self.store.toggle_flag(state.attempt.id, question_id)
        answer.is_flagged = bool(flagged)
        return answer.is_flagged

    def progress(self) -> dict:
        return self._require_active().progress()

    # ── Clock ────────────────────────────────────────────────────────

    def persist_remaining_time(self, remaining_ms: int | None = None) -> bool:
        """Write the countdown to the store. Best-effort: returns False on failure."""
        state = self._require_active()
        if remaining_ms is not None:
            state.attempt.remaining_time_ms = max(0, int(remaining_ms))
        try:
            self.store.update_remaining_time(state.attempt.id, state.attempt.remaining_time_ms)
        except LocalStoreError as exc:
            logger.warning("Could not persist remaining time for %s: %s", state.attempt.id, exc)
            return False
        return True

    def advance_clock(self, elapsed_ms: int) -> TickOutcome:
        """Apply elapsed wall time to the countdown.

        Persists every persist_interval_ms of accumulated time and submits
        the attempt when the countdown reaches zero.
        """
        state = self._require_active()
        result = tick(state.attempt.remaining_time_ms, elapsed_ms)
        state.attempt.remaining_time_ms = result.remaining_ms

        if result.expired:
            logger.info("Time expired for attempt %s", state.attempt.id)
            exam_result = self.submit(expired=True)
            return TickOutcome(remaining_ms=0, expired=True, persisted=True, result=exam_result)

        persisted = False
        if self._throttle.advance(elapsed_ms):
            persisted = self.persist_remaining_time()
            if persisted:
                self._throttle.reset()
        return TickOutcome(remaining_ms=result.remaining_ms, expired=False, persisted=persisted)

    def suspend(self) -> bool:
        """Persist the countdown now (app going to background or closing)."""
        persisted = self.persist_remaining_time()
        self._throttle.reset()
        return persisted

    # ── Completion ───────────────────────────────────────────────────

    def submit(self, expired: bool = False) -> ExamResult:
        """Score every answer and complete the attempt."""
        state = self._require_active()
        attempt = state.attempt
        summary = score_answers(
            state.answers, state.questions, self.exam_type.passing_score,
            domain_order=[d.id for d in self.exam_type.domains],
        )
        completed_at = self._now()
        remaining_ms = 0 if expired else attempt.remaining_time_ms
        time_spent_ms = max(0, self.exam_type.time_limit_ms - remaining_ms)

        self.store.complete_attempt(
            attempt.id,
            completed_at=completed_at,
            score=summary.score,
            passed=summary.passed,
            remaining_ms=remaining_ms,
            correctness=summary.correctness,
        )
        for answer in state.answers:
            answer.is_correct = summary.correctness.get(answer.id, False)
        self._state = None

        try:
            self.store.record_activity(
                exams=1, questions=summary.total, time_spent_ms=time_spent_ms, at=completed_at,
            )
        except LocalStoreError as exc:
            logger.warning("Could not update user stats after attempt %s: %s", attempt.id, exc)

        logger.info("Submitted attempt %s: %d%% (%d/%d) %s%s",
                    attempt.id, summary.score, summary.correct_count, summary.total,
                    "PASS" if summary.passed else "FAIL", " [time expired]" if expired else "")
        return ExamResult(
            attempt_id=attempt.id,
            score=summary.score,
            passed=summary.passed,
            correct_count=summary.correct_count,
            total_questions=summary.total,
            passing_score=self.exam_type.passing_score,
            time_spent_ms=time_spent_ms,
            domain_breakdown=summary.domain_breakdown,
            completed_at=completed_at,
            expired=expired,
        )

    def abandon(self) -> None:
        """Discard the active attempt without scoring it."""
        state = self._require_active()
        self.store.abandon_attempt(state.attempt.id, self._now())
        self._state = None
        logger.info("Abandoned exam attempt %s", state.attempt.id)
