"""Tests for practice_session.py — instant-feedback drilling."""

from __future__ import annotations

import random

import pytest

from errors import InsufficientQuestionsError, InvalidAnswerError, NotFoundError, ValidationError
from practice_session import PracticeSessionManager


@pytest.fixture
def manager(seeded_store):
    return PracticeSessionManager(seeded_store, rng=random.Random(3))


class TestStart:
    def test_draws_from_domain(self, manager, seeded_store):
        run = manager.start(domain="billing", count=5)
        assert len(run.question_ids) == 5
        assert {seeded_store.get_question(qid).domain for qid in run.question_ids} == {"billing"}
        assert seeded_store.get_practice_session(run.session.id).domain == "billing"

    def test_count_capped_by_pool(self, manager):
        run = manager.start(domain="billing", count=50)
        assert len(run.question_ids) == 10

    def test_empty_pool(self, manager):
        with pytest.raises(InsufficientQuestionsError):
            manager.start(difficulty="hard")

    def test_bad_arguments(self, manager):
        with pytest.raises(ValidationError):
            manager.start(difficulty="impossible")
        with pytest.raises(ValidationError):
            manager.start(count=0)


class TestAnswer:
    def test_immediate_feedback(self, manager, seeded_store):
        run = manager.start(count=2)
        first, second = run.question_ids

        right = manager.answer(run.session.id, first, ["a"])
        assert right.is_correct is True
        assert right.correct_answers == ["a"]
        assert right.explanation == f"Explanation for {first}"

        wrong = manager.answer(run.session.id, second, ["c"])
        assert wrong.is_correct is False

        stored = seeded_store.get_practice_answers(run.session.id)
        assert [a.is_correct for a in stored] == [True, False]
        session = seeded_store.get_practice_session(run.session.id)
        assert (session.questions_count, session.correct_count) == (2, 1)

    def test_rejects_bad_input(self, manager):
        run = manager.start(count=1)
        qid = run.question_ids[0]
        with pytest.raises(InvalidAnswerError):
            manager.answer(run.session.id, qid, [])
        with pytest.raises(InvalidAnswerError):
            manager.answer(run.session.id, qid, ["x"])
        with pytest.raises(InvalidAnswerError):
            manager.answer(run.session.id, "missing", ["a"])

    def test_unknown_session(self, manager):
        with pytest.raises(NotFoundError):
            manager.answer("nope", "q", ["a"])


class TestComplete:
    def test_summary_and_stats(self, manager, seeded_store):
        run = manager.start(count=4)
        for i, qid in enumerate(run.question_ids):
            manager.answer(run.session.id, qid, ["a"] if i < 3 else ["b"])

        summary = manager.complete(run.session.id)
        assert summary["questions_count"] == 4
        assert summary["correct_count"] == 3
        assert summary["accuracy"] == 75
        assert seeded_store.get_practice_session(run.session.id).completed_at is not None

        stats = seeded_store.get_user_stats()
        assert stats.total_practice == 1
        assert stats.total_questions == 4
        assert stats.last_activity_at is not None

    def test_completed_session_is_closed(self, manager):
        run = manager.start(count=1)
        manager.complete(run.session.id)
        with pytest.raises(ValidationError):
            manager.answer(run.session.id, run.question_ids[0], ["a"])
        with pytest.raises(ValidationError):
            manager.complete(run.session.id)
