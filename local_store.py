"""
Local Store — embedded SQLite database on the client device.

Holds the cached question bank, exam attempts and answers, practice
sessions, the sync-metadata key/value table and the single user-stats row.

The store is an explicitly owned handle: open it with a path, use it as a
context manager, close it at shutdown. All sqlite3 failures are re-raised
as LocalStoreError; payload decode failures as DataCorruptionError.
Writes go through one transaction per call.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from errors import DataCorruptionError, LocalStoreError
from helpers import now_iso
from models import (
    ATTEMPT_ABANDONED,
    ATTEMPT_COMPLETED,
    ATTEMPT_IN_PROGRESS,
    UPLOAD_PENDING,
    UPLOAD_SYNCED,
    ExamAnswer,
    ExamAttempt,
    PracticeAnswer,
    PracticeSession,
    Question,
    UserStats,
)
from question_codec import (
    QUESTION_COLUMNS,
    decode_selected,
    encode_selected,
    question_from_row,
    question_to_row,
)
from user_stats import merge_stats

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; IN (...) lookups are chunked.
_CHUNK = 500


SCHEMA = """
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    text TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('single-choice', 'multiple-choice', 'true-false')),
    domain TEXT NOT NULL,
    difficulty TEXT NOT NULL CHECK (difficulty IN ('easy', 'medium', 'hard')),
    options TEXT NOT NULL,
    correct_answers TEXT NOT NULL,
    explanation TEXT NOT NULL DEFAULT '',
    explanation_blocks TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_questions_domain ON questions(domain);
CREATE INDEX IF NOT EXISTS idx_questions_difficulty ON questions(difficulty);
CREATE INDEX IF NOT EXISTS idx_questions_version ON questions(version);

CREATE TABLE IF NOT EXISTS exam_attempts (
    id TEXT PRIMARY KEY,
    exam_type_id TEXT NOT NULL DEFAULT '',
    started_at TEXT NOT NULL,
    completed_at TEXT,
    status TEXT NOT NULL DEFAULT 'in-progress'
        CHECK (status IN ('in-progress', 'completed', 'abandoned')),
    score INTEGER,
    passed INTEGER,
    total_questions INTEGER NOT NULL,
    remaining_time_ms INTEGER NOT NULL,
    expires_at TEXT NOT NULL,
    sync_status TEXT NOT NULL DEFAULT 'none'
        CHECK (sync_status IN ('none', 'pending', 'synced'))
);
CREATE INDEX IF NOT EXISTS idx_exam_attempts_status ON exam_attempts(status);
CREATE INDEX IF NOT EXISTS idx_exam_attempts_started_at ON exam_attempts(started_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_exam_attempts_single_active
    ON exam_attempts(status) WHERE status = 'in-progress';

CREATE TABLE IF NOT EXISTS exam_answers (
    id TEXT PRIMARY KEY,
    exam_attempt_id TEXT NOT NULL REFERENCES exam_attempts(id) ON DELETE CASCADE,
    question_id TEXT NOT NULL REFERENCES questions(id),
    selected_answers TEXT NOT NULL DEFAULT '[]',
    is_correct INTEGER,
    is_flagged INTEGER NOT NULL DEFAULT 0,
    order_index INTEGER NOT NULL,
    answered_at TEXT,
    UNIQUE (exam_attempt_id, question_id),
    UNIQUE (exam_attempt_id, order_index)
);
CREATE INDEX IF NOT EXISTS idx_exam_answers_attempt ON exam_answers(exam_attempt_id);
CREATE INDEX IF NOT EXISTS idx_exam_answers_question ON exam_answers(question_id);

CREATE TABLE IF NOT EXISTS practice_sessions (
    id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    domain TEXT,
    difficulty TEXT CHECK (difficulty IS NULL OR difficulty IN ('easy', 'medium', 'hard')),
    questions_count INTEGER NOT NULL DEFAULT 0,
    correct_count INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_practice_sessions_started_at ON practice_sessions(started_at);
CREATE INDEX IF NOT EXISTS idx_practice_sessions_domain ON practice_sessions(domain);

CREATE TABLE IF NOT EXISTS practice_answers (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL REFERENCES practice_sessions(id) ON DELETE CASCADE,
    question_id TEXT NOT NULL REFERENCES questions(id),
    selected_answers TEXT NOT NULL DEFAULT '[]',
    is_correct INTEGER NOT NULL,
    answered_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_practice_answers_session ON practice_answers(session_id);
CREATE INDEX IF NOT EXISTS idx_practice_answers_question ON practice_answers(question_id);

CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_stats (
    id INTEGER PRIMARY KEY DEFAULT 1 CHECK (id = 1),
    total_exams INTEGER NOT NULL DEFAULT 0,
    total_practice INTEGER NOT NULL DEFAULT 0,
    total_questions INTEGER NOT NULL DEFAULT 0,
    total_time_spent_ms INTEGER NOT NULL DEFAULT 0,
    last_activity_at TEXT
);
INSERT OR IGNORE INTO user_stats (id) VALUES (1);
"""

_TABLES = (
    "practice_answers", "practice_sessions", "exam_answers", "exam_attempts",
    "questions", "sync_meta", "user_stats",
)

_UPSERT_QUESTION = f"""
    INSERT INTO questions ({", ".join(QUESTION_COLUMNS)})
    VALUES ({", ".join("?" for _ in QUESTION_COLUMNS)})
    ON CONFLICT(id) DO UPDATE SET
        text = excluded.text,
        type = excluded.type,
        domain = excluded.domain,
        difficulty = excluded.difficulty,
        options = excluded.options,
        correct_answers = excluded.correct_answers,
        explanation = excluded.explanation,
        explanation_blocks = excluded.explanation_blocks,
        version = excluded.version,
        created_at = excluded.created_at,
        updated_at = excluded.updated_at
    WHERE excluded.version >= questions.version
"""

_INSERT_QUESTION_IF_ABSENT = f"""
    INSERT OR IGNORE INTO questions ({", ".join(QUESTION_COLUMNS)})
    VALUES ({", ".join("?" for _ in QUESTION_COLUMNS)})
"""


def _chunks(items: list, size: int = _CHUNK) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class LocalStore:
    """Database access layer for the offline client."""

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        """Open (creating if needed) the database and its schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        target = str(db_path)
        try:
            self._conn = sqlite3.connect(target)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON")
            if target != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Could not open local store at {target}: {exc}") from exc
        self.path = target
        self._closed = False
        self.initialize()

    # ── Lifecycle ────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Create all tables and indexes if absent."""
        try:
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Schema creation failed: {exc}") from exc

    def reset(self) -> None:
        """Drop every table and recreate the schema. Deletes all local data."""
        with self._transaction("reset") as conn:
            for table in _TABLES:
                conn.execute(f"DROP TABLE IF EXISTS {table}")
        self.initialize()
        logger.warning("Local store reset: all tables dropped and recreated")

    def close(self) -> None:
        if not self._closed:
            self._conn.close()
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> LocalStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise LocalStoreError(f"{action}: local store is closed")
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as exc:
            raise LocalStoreError(f"{action} failed: {exc}") from exc

    def _fetchall(self, action: str, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        if self._closed:
            raise LocalStoreError(f"{action}: local store is closed")
        try:
            return self._conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise LocalStoreError(f"{action} failed: {exc}") from exc

    def _fetchone(self, action: str, sql: str, params: Iterable = ()) -> Optional[sqlite3.Row]:
        rows = self._fetchall(action, sql, params)
        return rows[0] if rows else None

    # ── Questions ────────────────────────────────────────────────────

    def upsert_questions(self, questions: list[Question]) -> tuple[int, int]:
        """Insert new questions and overwrite existing ones by id.

        A stored row is never replaced by a lower version; such rows are
        counted in neither total. Returns (added, updated) counts of
        distinct ids.
        """
        if not questions:
            return (0, 0)
        incoming: dict[str, int] = {}
        for q in questions:
            incoming[q.id] = max(q.version, incoming.get(q.id, q.version))
        ids = list(incoming)
        with self._transaction("upsert questions") as conn:
            stored: dict[str, int] = {}
            for chunk in _chunks(ids):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT id, version FROM questions WHERE id IN ({placeholders})", chunk
                ).fetchall()
                stored.update((row["id"], int(row["version"])) for row in rows)
            conn.executemany(_UPSERT_QUESTION, [question_to_row(q) for q in questions])
        added = sum(1 for qid in ids if qid not in stored)
        updated = sum(1 for qid, version in stored.items() if version <= incoming[qid])
        return (added, updated)

    def insert_questions_if_absent(self, questions: list[Question]) -> int:
        """INSERT OR IGNORE every question. Returns the number actually inserted."""
        if not questions:
            return 0
        with self._transaction("insert questions") as conn:
            before = conn.total_changes
            conn.executemany(_INSERT_QUESTION_IF_ABSENT, [question_to_row(q) for q in questions])
            inserted = conn.total_changes - before
        return inserted

    def get_question(self, question_id: str) -> Optional[Question]:
        row = self._fetchone("get question", "SELECT * FROM questions WHERE id = ?", (question_id,))
        return question_from_row(row) if row else None

    def get_questions(self, question_ids: list[str]) -> dict[str, Question]:
        """Return {id: Question} for the ids that exist."""
        found: dict[str, Question] = {}
        for chunk in _chunks(list(question_ids)):
            placeholders = ", ".join("?" for _ in chunk)
            rows = self._fetchall(
                "get questions", f"SELECT * FROM questions WHERE id IN ({placeholders})", chunk
            )
            for row in rows:
                found[row["id"]] = question_from_row(row)
        return found

    def list_questions(self, domain: str | None = None, difficulty: str | None = None) -> list[Question]:
        where, params = self._question_filter(domain, difficulty)
        rows = self._fetchall(
            "list questions", f"SELECT * FROM questions {where} ORDER BY version, id", params
        )
        return [question_from_row(row) for row in rows]

    def list_question_ids(self, domain: str | None = None, difficulty: str | None = None) -> list[str]:
        where, params = self._question_filter(domain, difficulty)
        rows = self._fetchall("list question ids", f"SELECT id FROM questions {where} ORDER BY id", params)
        return [row["id"] for row in rows]

    def count_questions(self, domain: str | None = None, difficulty: str | None = None) -> int:
        where, params = self._question_filter(domain, difficulty)
        row = self._fetchone("count questions", f"SELECT COUNT(*) AS c FROM questions {where}", params)
        return int(row["c"]) if row else 0

    def question_ids_by_domain(self) -> dict[str, list[str]]:
        rows = self._fetchall("group questions", "SELECT id, domain FROM questions ORDER BY domain, id")
        grouped: dict[str, list[str]] = {}
        for row in rows:
            grouped.setdefault(row["domain"], []).append(row["id"])
        return grouped

    def max_question_version(self) -> int:
        row = self._fetchone("max version", "SELECT MAX(version) AS v FROM questions")
        return int(row["v"]) if row and row["v"] is not None else 0

    @staticmethod
    def _question_filter(domain: str | None, difficulty: str | None) -> tuple[str, list]:
        clauses, params = [], []
        if domain:
            clauses.append("domain = ?")
            params.append(domain)
        if difficulty:
            clauses.append("difficulty = ?")
            params.append(difficulty)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    # ── Sync metadata ────────────────────────────────────────────────

    def get_meta(self, key: str) -> Optional[str]:
        row = self._fetchone("get sync meta", "SELECT value FROM sync_meta WHERE key = ?", (key,))
        return row["value"] if row else None

    def get_meta_int(self, key: str) -> Optional[int]:
        value = self.get_meta(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError as exc:
            raise DataCorruptionError(f"sync_meta {key} is not an integer: {value!r}") from exc

    def get_meta_updated_at(self, key: str) -> Optional[str]:
        row = self._fetchone("get sync meta", "SELECT updated_at FROM sync_meta WHERE key = ?", (key,))
        return row["updated_at"] if row else None

    def set_meta(self, key: str, value: str | int) -> None:
        with self._transaction(f"set sync meta {key}") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                (key, str(value), now_iso()),
            )

    def set_meta_if_absent(self, key: str, value: str | int) -> bool:
        """Write the key only when unset. Returns True if written."""
        with self._transaction(f"set sync meta {key}") as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                (key, str(value), now_iso()),
            )
        return cursor.rowcount > 0

    # ── Exam attempts ────────────────────────────────────────────────

    def create_attempt(self, attempt: ExamAttempt, question_ids: list[str]) -> list[ExamAnswer]:
        """Insert the attempt and one answer row per question, in order."""
        answers = [
            ExamAnswer(
                id=str(uuid.uuid4()),
                exam_attempt_id=attempt.id,
                question_id=qid,
                order_index=index,
            )
            for index, qid in enumerate(question_ids)
        ]
        with self._transaction("create exam attempt") as conn:
            conn.execute(
                """
                INSERT INTO exam_attempts (
                    id, exam_type_id, started_at, completed_at, status, score, passed,
                    total_questions, remaining_time_ms, expires_at, sync_status
                )
                VALUES (?, ?, ?, NULL, ?, NULL, NULL, ?, ?, ?, 'none')
                """,
                (
                    attempt.id, attempt.exam_type_id, attempt.started_at, attempt.status,
                    attempt.total_questions, attempt.remaining_time_ms, attempt.expires_at,
                ),
            )
            conn.executemany(
                """
                INSERT INTO exam_answers (
                    id, exam_attempt_id, question_id, selected_answers,
                    is_correct, is_flagged, order_index, answered_at
                )
                VALUES (?, ?, ?, '[]', NULL, 0, ?, NULL)
                """,
                [(a.id, a.exam_attempt_id, a.question_id, a.order_index) for a in answers],
            )
        return answers

    def get_attempt(self, attempt_id: str) -> Optional[ExamAttempt]:
        row = self._fetchone("get attempt", "SELECT * FROM exam_attempts WHERE id = ?", (attempt_id,))
        return _attempt_from_row(row) if row else None

    def get_in_progress_attempt(self) -> Optional[ExamAttempt]:
        row = self._fetchone(
            "get in-progress attempt",
            "SELECT * FROM exam_attempts WHERE status = ? ORDER BY started_at DESC LIMIT 1",
            (ATTEMPT_IN_PROGRESS,),
        )
        return _attempt_from_row(row) if row else None

    def list_attempts(self, status: str | None = None, limit: int | None = None) -> list[ExamAttempt]:
        sql = "SELECT * FROM exam_attempts"
        params: list = []
        if status:
            sql += " WHERE status = ?"
            params.append(status)
        sql += " ORDER BY started_at DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        return [_attempt_from_row(row) for row in self._fetchall("list attempts", sql, params)]

    def update_remaining_time(self, attempt_id: str, remaining_ms: int) -> bool:
        """Persist the countdown of an in-progress attempt. Returns False if not in progress."""
        with self._transaction("persist remaining time") as conn:
            cursor = conn.execute(
                "UPDATE exam_attempts SET remaining_time_ms = ? WHERE id = ? AND status = ?",
                (max(0, int(remaining_ms)), attempt_id, ATTEMPT_IN_PROGRESS),
            )
        return cursor.rowcount > 0

    def complete_attempt(self, attempt_id: str, *, completed_at: str, score: int, passed: bool,
                         remaining_ms: int, correctness: dict[str, bool]) -> None:
        """Score the answers and close the attempt, queueing it for upload.

        correctness maps answer id -> is_correct.
        """
        with self._transaction("complete attempt") as conn:
            conn.executemany(
                "UPDATE exam_answers SET is_correct = ? WHERE id = ? AND exam_attempt_id = ?",
                [(int(ok), answer_id, attempt_id) for answer_id, ok in correctness.items()],
            )
            cursor = conn.execute(
                """
                UPDATE exam_attempts
                SET status = ?, completed_at = ?, score = ?, passed = ?,
                    remaining_time_ms = ?, sync_status = ?
                WHERE id = ? AND status = ?
                """,
                (ATTEMPT_COMPLETED, completed_at, score, int(passed), max(0, int(remaining_ms)),
                 UPLOAD_PENDING, attempt_id, ATTEMPT_IN_PROGRESS),
            )
            if cursor.rowcount == 0:
                raise LocalStoreError(f"complete attempt failed: {attempt_id} is not in progress")

    def abandon_attempt(self, attempt_id: str, abandoned_at: str) -> bool:
        with self._transaction("abandon attempt") as conn:
            cursor = conn.execute(
                "UPDATE exam_attempts SET status = ?, completed_at = ? WHERE id = ? AND status = ?",
                (ATTEMPT_ABANDONED, abandoned_at, attempt_id, ATTEMPT_IN_PROGRESS),
            )
        return cursor.rowcount > 0

    def list_attempts_pending_upload(self) -> list[ExamAttempt]:
        rows = self._fetchall(
            "list pending uploads",
            "SELECT * FROM exam_attempts WHERE status = ? AND sync_status = ? ORDER BY completed_at",
            (ATTEMPT_COMPLETED, UPLOAD_PENDING),
        )
        return [_attempt_from_row(row) for row in rows]

    def mark_attempt_uploaded(self, attempt_id: str) -> None:
        with self._transaction("mark attempt uploaded") as conn:
            conn.execute(
                "UPDATE exam_attempts SET sync_status = ? WHERE id = ?",
                (UPLOAD_SYNCED, attempt_id),
            )

    def delete_attempt(self, attempt_id: str) -> bool:
        with self._transaction("delete attempt") as conn:
            cursor = conn.execute("DELETE FROM exam_attempts WHERE id = ?", (attempt_id,))
        return cursor.rowcount > 0

    # ── Exam answers ─────────────────────────────────────────────────

    def get_answers(self, attempt_id: str) -> list[ExamAnswer]:
        """Answers of an attempt in their fixed order_index sequence."""
        rows = self._fetchall(
            "get answers",
            "SELECT * FROM exam_answers WHERE exam_attempt_id = ? ORDER BY order_index",
            (attempt_id,),
        )
        return [_answer_from_row(row) for row in rows]

    def get_answer(self, attempt_id: str, question_id: str) -> Optional[ExamAnswer]:
        row = self._fetchone(
            "get answer",
            "SELECT * FROM exam_answers WHERE exam_attempt_id = ? AND question_id = ?",
            (attempt_id, question_id),
        )
        return _answer_from_row(row) if row else None

    def save_answer_selection(self, answer_id: str, selected: list[str], answered_at: str | None,
                              is_correct: bool | None = None) -> None:
        with self._transaction("save answer") as conn:
            conn.execute(
                """
                UPDATE exam_answers
                SET selected_answers = ?, answered_at = ?, is_correct = ?
                WHERE id = ?
                """,
                (encode_selected(selected), answered_at,
                 None if is_correct is None else int(is_correct), answer_id),
            )

    def toggle_flag(self, attempt_id: str, question_id: str) -> Optional[bool]:
        """Flip is_flagged. Returns the new value, or None if no such answer."""
        with self._transaction("toggle flag") as conn:
            cursor = conn.execute(
                """
                UPDATE exam_answers SET is_flagged = 1 - is_flagged
                WHERE exam_attempt_id = ? AND question_id = ?
                """,
                (attempt_id, question_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT is_flagged FROM exam_answers WHERE exam_attempt_id = ? AND question_id = ?",
                (attempt_id, question_id),
            ).fetchone()
        return bool(row["is_flagged"])

    def answer_progress(self, attempt_id: str) -> dict[str, int]:
        row = self._fetchone(
            "answer progress",
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(CASE WHEN answered_at IS NOT NULL THEN 1 ELSE 0 END), 0) AS answered,
                   COALESCE(SUM(is_flagged), 0) AS flagged
            FROM exam_answers WHERE exam_attempt_id = ?
            """,
            (attempt_id,),
        )
        return {"total": int(row["total"]), "answered": int(row["answered"]), "flagged": int(row["flagged"])}

    # ── Practice ─────────────────────────────────────────────────────

    def create_practice_session(self, session: PracticeSession) -> None:
        with self._transaction("create practice session") as conn:
            conn.execute(
                """
                INSERT INTO practice_sessions (
                    id, started_at, completed_at, domain, difficulty, questions_count, correct_count
                )
                VALUES (?, ?, NULL, ?, ?, 0, 0)
                """,
                (session.id, session.started_at, session.domain, session.difficulty),
            )

    def get_practice_session(self, session_id: str) -> Optional[PracticeSession]:
        row = self._fetchone(
            "get practice session", "SELECT * FROM practice_sessions WHERE id = ?", (session_id,)
        )
        if row is None:
            return None
        return PracticeSession(
            id=row["id"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            domain=row["domain"],
            difficulty=row["difficulty"],
            questions_count=int(row["questions_count"]),
            correct_count=int(row["correct_count"]),
        )

    def add_practice_answer(self, answer: PracticeAnswer) -> None:
        """Record a scored practice answer and bump the session counters."""
        with self._transaction("add practice answer") as conn:
            conn.execute(
                """
                INSERT INTO practice_answers (
                    id, session_id, question_id, selected_answers, is_correct, answered_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (answer.id, answer.session_id, answer.question_id,
                 encode_selected(answer.selected_answers), int(answer.is_correct), answer.answered_at),
            )
            conn.execute(
                """
                UPDATE practice_sessions
                SET questions_count = questions_count + 1,
                    correct_count = correct_count + ?
                WHERE id = ?
                """,
                (int(answer.is_correct), answer.session_id),
            )

    def get_practice_answers(self, session_id: str) -> list[PracticeAnswer]:
        rows = self._fetchall(
            "get practice answers",
            "SELECT * FROM practice_answers WHERE session_id = ? ORDER BY answered_at, rowid",
            (session_id,),
        )
        return [
            PracticeAnswer(
                id=row["id"],
                session_id=row["session_id"],
                question_id=row["question_id"],
                selected_answers=decode_selected(row["selected_answers"], f"practice answer {row['id']}"),
                is_correct=bool(row["is_correct"]),
                answered_at=row["answered_at"],
            )
            for row in rows
        ]

    def complete_practice_session(self, session_id: str, completed_at: str) -> bool:
        with self._transaction("complete practice session") as conn:
            cursor = conn.execute(
                "UPDATE practice_sessions SET completed_at = ? WHERE id = ? AND completed_at IS NULL",
                (completed_at, session_id),
            )
        return cursor.rowcount > 0

    # ── User stats ───────────────────────────────────────────────────

    def get_user_stats(self) -> UserStats:
        row = self._fetchone("get user stats", "SELECT * FROM user_stats WHERE id = 1")
        if row is None:
            return UserStats()
        return UserStats(
            total_exams=int(row["total_exams"]),
            total_practice=int(row["total_practice"]),
            total_questions=int(row["total_questions"]),
            total_time_spent_ms=int(row["total_time_spent_ms"]),
            last_activity_at=row["last_activity_at"],
        )

    def record_activity(self, *, exams: int = 0, practice: int = 0, questions: int = 0,
                        time_spent_ms: int = 0, at: str | None = None) -> None:
        with self._transaction("record activity") as conn:
            conn.execute(
                """
                UPDATE user_stats
                SET total_exams = total_exams + ?,
                    total_practice = total_practice + ?,
                    total_questions = total_questions + ?,
                    total_time_spent_ms = total_time_spent_ms + ?,
                    last_activity_at = ?
                WHERE id = 1
                """,
                (exams, practice, questions, max(0, int(time_spent_ms)), at or now_iso()),
            )

    def merge_user_stats(self, remote: UserStats) -> UserStats:
        """MAX-merge counters held elsewhere (e.g. the server) into the local row."""
        merged = merge_stats(self.get_user_stats(), remote)
        with self._transaction("merge user stats") as conn:
            conn.execute(
                """
                UPDATE user_stats
                SET total_exams = ?, total_practice = ?, total_questions = ?,
                    total_time_spent_ms = ?, last_activity_at = ?
                WHERE id = 1
                """,
                (merged.total_exams, merged.total_practice, merged.total_questions,
                 merged.total_time_spent_ms, merged.last_activity_at),
            )
        return merged


def _attempt_from_row(row: sqlite3.Row) -> ExamAttempt:
    return ExamAttempt(
        id=row["id"],
        exam_type_id=row["exam_type_id"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        status=row["status"],
        score=int(row["score"]) if row["score"] is not None else None,
        passed=bool(row["passed"]) if row["passed"] is not None else None,
        total_questions=int(row["total_questions"]),
        remaining_time_ms=int(row["remaining_time_ms"]),
        expires_at=row["expires_at"],
        sync_status=row["sync_status"],
    )


def _answer_from_row(row: sqlite3.Row) -> ExamAnswer:
    return ExamAnswer(
        id=row["id"],
        exam_attempt_id=row["exam_attempt_id"],
        question_id=row["question_id"],
        order_index=int(row["order_index"]),
        selected_answers=decode_selected(row["selected_answers"], f"exam answer {row['id']}"),
        is_correct=bool(row["is_correct"]) if row["is_correct"] is not None else None,
        is_flagged=bool(row["is_flagged"]),
        answered_at=row["answered_at"],
    )
