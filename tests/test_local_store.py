"""Tests for local_store.py — schema, question upserts, attempts, meta, stats."""

from __future__ import annotations

import sqlite3

import pytest

from errors import DataCorruptionError, LocalStoreError
from local_store import LocalStore
from models import (
    ATTEMPT_IN_PROGRESS,
    LAST_SYNC_VERSION,
    UPLOAD_PENDING,
    UPLOAD_SYNCED,
    ExamAttempt,
    PracticeAnswer,
    PracticeSession,
    UserStats,
)


def _attempt(attempt_id: str = "att-1", remaining: int = 5_400_000) -> ExamAttempt:
    return ExamAttempt(
        id=attempt_id,
        exam_type_id="aws-ccp",
        started_at="2026-03-01T10:00:00.000+00:00",
        status=ATTEMPT_IN_PROGRESS,
        total_questions=3,
        remaining_time_ms=remaining,
        expires_at="2026-03-01T11:30:00.000+00:00",
    )


class TestSchema:
    def test_tables_exist(self, store):
        tables = {r["name"] for r in store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()}
        for t in ("questions", "exam_attempts", "exam_answers", "practice_sessions",
                  "practice_answers", "sync_meta", "user_stats"):
            assert t in tables, f"Table {t} not found"

    def test_foreign_keys_enabled(self, store):
        assert store._conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_reopen_keeps_data(self, tmp_path, make_question):
        path = tmp_path / "reopen.db"
        with LocalStore(path) as s:
            s.upsert_questions([make_question("q1")])
        with LocalStore(path) as s:
            assert s.count_questions() == 1

    def test_closed_store_raises(self, tmp_path):
        s = LocalStore(tmp_path / "closed.db")
        s.close()
        with pytest.raises(LocalStoreError):
            s.count_questions()

    def test_reset_drops_everything(self, seeded_store):
        seeded_store.set_meta(LAST_SYNC_VERSION, 9)
        seeded_store.reset()
        assert seeded_store.count_questions() == 0
        assert seeded_store.get_meta(LAST_SYNC_VERSION) is None
        assert seeded_store.get_user_stats() == UserStats()


class TestQuestionUpsert:
    def test_insert_then_update_counts(self, store, make_question):
        added, updated = store.upsert_questions([make_question("q1"), make_question("q2")])
        assert (added, updated) == (2, 0)
        added, updated = store.upsert_questions([make_question("q2", version=2), make_question("q3")])
        assert (added, updated) == (1, 1)
        assert store.count_questions() == 3
        assert store.get_question("q2").version == 2

    def test_idempotent(self, store, make_question):
        batch = [make_question("q1", version=3), make_question("q2", version=4)]
        store.upsert_questions(batch)
        before = store.list_questions()
        store.upsert_questions(batch)
        assert store.list_questions() == before

    def test_never_lowers_version(self, store, make_question):
        store.upsert_questions([make_question("q1", version=5, text="new text")])
        added, updated = store.upsert_questions([make_question("q1", version=2, text="stale text")])
        assert (added, updated) == (0, 0)
        q = store.get_question("q1")
        assert q.version == 5
        assert q.text == "new text"

    def test_insert_if_absent_keeps_existing(self, store, make_question):
        store.upsert_questions([make_question("q1", version=7, text="synced")])
        inserted = store.insert_questions_if_absent([
            make_question("q1", version=1, text="bundled"), make_question("q2"),
        ])
        assert inserted == 1
        assert store.get_question("q1").text == "synced"

    def test_filters_and_grouping(self, store, make_question):
        store.upsert_questions([
            make_question("a1", domain="security", difficulty="hard"),
            make_question("a2", domain="security"),
            make_question("b1", domain="billing"),
        ])
        assert store.count_questions(domain="security") == 2
        assert store.count_questions(domain="security", difficulty="hard") == 1
        assert store.question_ids_by_domain() == {"billing": ["b1"], "security": ["a1", "a2"]}
        assert store.max_question_version() == 1

    def test_round_trips_payloads(self, store, make_question):
        q = make_question("m1", qtype="multiple-choice", correct=("a", "c"))
        store.upsert_questions([q])
        assert store.get_question("m1") == q

    def test_corrupt_payload_raises(self, store, make_question):
        store.upsert_questions([make_question("q1")])
        store._conn.execute("UPDATE questions SET options = '{not json' WHERE id = 'q1'")
        store._conn.commit()
        with pytest.raises(DataCorruptionError):
            store.get_question("q1")

    def test_check_constraint_surfaces_as_store_error(self, store):
        with pytest.raises(LocalStoreError):
            with store._transaction("bad insert") as conn:
                conn.execute(
                    "INSERT INTO questions (id, text, type, domain, difficulty, options, "
                    "correct_answers, created_at, updated_at) "
                    "VALUES ('x', 't', 'essay', 'd', 'easy', '[]', '[]', '', '')"
                )


class TestSyncMeta:
    def test_set_and_get(self, store):
        assert store.get_meta_int(LAST_SYNC_VERSION) is None
        store.set_meta(LAST_SYNC_VERSION, 12)
        assert store.get_meta_int(LAST_SYNC_VERSION) == 12
        assert store.get_meta_updated_at(LAST_SYNC_VERSION) is not None

    def test_set_if_absent(self, store):
        assert store.set_meta_if_absent("K", "1") is True
        assert store.set_meta_if_absent("K", "2") is False
        assert store.get_meta("K") == "1"

    def test_non_integer_is_corruption(self, store):
        store.set_meta(LAST_SYNC_VERSION, "abc")
        with pytest.raises(DataCorruptionError):
            store.get_meta_int(LAST_SYNC_VERSION)


class TestAttempts:
    def test_create_attempt_orders_answers(self, seeded_store):
        ids = seeded_store.list_question_ids()[:3]
        answers = seeded_store.create_attempt(_attempt(), ids)
        assert [a.order_index for a in answers] == [0, 1, 2]
        stored = seeded_store.get_answers("att-1")
        assert [a.question_id for a in stored] == ids
        assert all(a.selected_answers == [] and a.answered_at is None for a in stored)

    def test_only_one_in_progress_row(self, seeded_store):
        ids = seeded_store.list_question_ids()[:3]
        seeded_store.create_attempt(_attempt("att-1"), ids)
        with pytest.raises(LocalStoreError):
            seeded_store.create_attempt(_attempt("att-2"), ids)

    def test_complete_marks_pending_upload(self, seeded_store):
        ids = seeded_store.list_question_ids()[:3]
        answers = seeded_store.create_attempt(_attempt(), ids)
        seeded_store.complete_attempt(
            "att-1", completed_at="2026-03-01T10:30:00.000+00:00", score=67, passed=False,
            remaining_ms=100, correctness={answers[0].id: True, answers[1].id: True, answers[2].id: False},
        )
        attempt = seeded_store.get_attempt("att-1")
        assert attempt.status == "completed"
        assert attempt.sync_status == UPLOAD_PENDING
        assert [a.is_correct for a in seeded_store.get_answers("att-1")] == [True, True, False]
        assert [a.id for a in seeded_store.list_attempts_pending_upload()] == ["att-1"]

        seeded_store.mark_attempt_uploaded("att-1")
        assert seeded_store.get_attempt("att-1").sync_status == UPLOAD_SYNCED
        assert seeded_store.list_attempts_pending_upload() == []

    def test_complete_twice_fails(self, seeded_store):
        seeded_store.create_attempt(_attempt(), seeded_store.list_question_ids()[:3])
        kwargs = dict(completed_at="2026-03-01T10:30:00.000+00:00", score=0, passed=False,
                      remaining_ms=0, correctness={})
        seeded_store.complete_attempt("att-1", **kwargs)
        with pytest.raises(LocalStoreError):
            seeded_store.complete_attempt("att-1", **kwargs)

    def test_update_remaining_time_only_in_progress(self, seeded_store):
        seeded_store.create_attempt(_attempt(), seeded_store.list_question_ids()[:3])
        assert seeded_store.update_remaining_time("att-1", 1234) is True
        assert seeded_store.get_attempt("att-1").remaining_time_ms == 1234
        seeded_store.abandon_attempt("att-1", "2026-03-01T10:05:00.000+00:00")
        assert seeded_store.update_remaining_time("att-1", 1) is False

    def test_answers_cascade_on_delete(self, seeded_store):
        seeded_store.create_attempt(_attempt(), seeded_store.list_question_ids()[:3])
        assert seeded_store.delete_attempt("att-1") is True
        assert seeded_store.get_answers("att-1") == []

    def test_toggle_flag(self, seeded_store):
        ids = seeded_store.list_question_ids()[:3]
        seeded_store.create_attempt(_attempt(), ids)
        assert seeded_store.toggle_flag("att-1", ids[1]) is True
        assert seeded_store.toggle_flag("att-1", ids[1]) is False
        assert seeded_store.toggle_flag("att-1", "missing") is None

    def test_answer_progress(self, seeded_store):
        ids = seeded_store.list_question_ids()[:3]
        answers = seeded_store.create_attempt(_attempt(), ids)
        seeded_store.save_answer_selection(answers[0].id, ["a"], "2026-03-01T10:01:00.000+00:00")
        seeded_store.toggle_flag("att-1", ids[2])
        assert seeded_store.answer_progress("att-1") == {"total": 3, "answered": 1, "flagged": 1}


class TestPractice:
    def test_answers_update_counters(self, seeded_store):
        qid = seeded_store.list_question_ids()[0]
        seeded_store.create_practice_session(PracticeSession(id="p1", started_at="2026-03-01T10:00:00.000+00:00"))
        for i, ok in enumerate((True, False, True)):
            seeded_store.add_practice_answer(PracticeAnswer(
                id=f"pa{i}", session_id="p1", question_id=qid, selected_answers=["a"],
                is_correct=ok, answered_at=f"2026-03-01T10:0{i}:00.000+00:00",
            ))
        session = seeded_store.get_practice_session("p1")
        assert (session.questions_count, session.correct_count) == (3, 2)
        assert [a.id for a in seeded_store.get_practice_answers("p1")] == ["pa0", "pa1", "pa2"]
        assert seeded_store.complete_practice_session("p1", "2026-03-01T10:10:00.000+00:00") is True
        assert seeded_store.complete_practice_session("p1", "2026-03-01T10:11:00.000+00:00") is False


class TestUserStats:
    def test_record_activity_accumulates(self, store):
        store.record_activity(exams=1, questions=65, time_spent_ms=1000, at="2026-03-01T10:00:00.000+00:00")
        store.record_activity(practice=1, questions=10, time_spent_ms=500, at="2026-03-02T10:00:00.000+00:00")
        stats = store.get_user_stats()
        assert (stats.total_exams, stats.total_practice, stats.total_questions) == (1, 1, 75)
        assert stats.total_time_spent_ms == 1500
        assert stats.last_activity_at == "2026-03-02T10:00:00.000+00:00"

    def test_merge_takes_max(self, store):
        store.record_activity(exams=3, questions=10, at="2026-03-05T10:00:00.000+00:00")
        merged = store.merge_user_stats(UserStats(total_exams=1, total_questions=50,
                                                  last_activity_at="2026-03-01T00:00:00.000+00:00"))
        assert merged.total_exams == 3
        assert merged.total_questions == 50
        assert merged.last_activity_at == "2026-03-05T10:00:00.000+00:00"
        assert store.get_user_stats() == merged


def test_open_failure_is_store_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises((LocalStoreError, sqlite3.Error, OSError)):
        LocalStore(str(blocker / "nested" / "db.sqlite"))
