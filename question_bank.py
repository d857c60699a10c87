"""
Question bank service — server-side question feed and exam type catalogue.

The feed returns approved questions with version > since in ascending
(version, id) order. A page never splits a group of questions that share a
version: clients resume from `nextSince` with a strict `version > since`
filter, so a split group would lose its tail. The trailing partial group is
dropped from the page instead, or, when one group alone exceeds the limit,
the page is widened to hold that whole group.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from errors import NotFoundError, ValidationError
from exam_config import exam_type_from_dict
from helpers import now_iso
from models import ExamTypeConfig, Question, QuestionPage
from question_codec import QUESTION_COLUMNS, question_from_row, question_to_row

logger = logging.getLogger(__name__)

QUESTION_STATUSES = ("draft", "pending", "approved", "archived")
APPROVED = "approved"


class QuestionBankService:
    def __init__(self, db: sqlite3.Connection, default_limit: int = 100, max_limit: int = 500):
        self.db = db
        self.default_limit = default_limit
        self.max_limit = max_limit

    # ── Exam types ───────────────────────────────────────────────────

    def get_exam_type(self, exam_type_id: str) -> ExamTypeConfig:
        row = self.db.execute("SELECT * FROM exam_types WHERE id = ?", (exam_type_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Exam type '{exam_type_id}' not found")
        return exam_type_from_dict({
            "id": row["id"],
            "name": row["name"],
            "displayName": row["display_name"] or row["name"],
            "description": row["description"],
            "domains": json.loads(row["domains"]),
            "passingScore": row["passing_score"],
            "timeLimit": row["time_limit"],
            "questionCount": row["question_count"],
            "isActive": bool(row["is_active"]),
        })

    def upsert_exam_type(self, exam_type: ExamTypeConfig) -> None:
        now = now_iso()
        domains = [
            {"id": d.id, "name": d.name, "weight": d.weight, "questionCount": d.question_count}
            for d in exam_type.domains
        ]
        self.db.execute(
            """
            INSERT INTO exam_types (
                id, name, display_name, description, domains, passing_score,
                time_limit, question_count, is_active, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                display_name = excluded.display_name,
                description = excluded.description,
                domains = excluded.domains,
                passing_score = excluded.passing_score,
                time_limit = excluded.time_limit,
                question_count = excluded.question_count,
                is_active = excluded.is_active,
                updated_at = excluded.updated_at
            """,
            (exam_type.id, exam_type.name, exam_type.display_name, exam_type.description,
             json.dumps(domains), exam_type.passing_score, exam_type.time_limit_minutes,
             exam_type.question_count, int(exam_type.is_active), now, now),
        )
        self.db.commit()

    def _require_exam_type(self, exam_type_id: str) -> None:
        row = self.db.execute("SELECT 1 FROM exam_types WHERE id = ?", (exam_type_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Exam type '{exam_type_id}' not found")

    # ── Question feed ────────────────────────────────────────────────

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(int(limit), self.max_limit))

    def latest_version(self, exam_type_id: str) -> int:
        row = self.db.execute(
            "SELECT MAX(version) AS v FROM questions WHERE exam_type_id = ? AND status = ?",
            (exam_type_id, APPROVED),
        ).fetchone()
        return int(row["v"]) if row["v"] is not None else 0

    def get_questions(self, exam_type_id: str, since: int = 0, limit: int | None = None) -> QuestionPage:
        """One page of approved questions with version > since."""
        self._require_exam_type(exam_type_id)
        if since < 0:
            raise ValidationError("'since' must be >= 0")
        limit = self.clamp_limit(limit)

        rows = self.db.execute(
            """
            SELECT * FROM questions
            WHERE exam_type_id = ? AND status = ? AND version > ?
            ORDER BY version, id
            LIMIT ?
            """,
            (exam_type_id, APPROVED, since, limit + 1),
        ).fetchall()

        has_more = len(rows) > limit
        page = rows[:limit]
        if has_more:
            boundary = page[-1]["version"]
            if rows[limit]["version"] == boundary:
                kept = [r for r in page if r["version"] != boundary]
                if kept:
                    page = kept
                else:
                    page, has_more = self._whole_version_group(exam_type_id, boundary)

        next_since = page[-1]["version"] if has_more else None
        return QuestionPage(
            questions=[question_from_row(r) for r in page],
            latest_version=self.latest_version(exam_type_id),
            has_more=has_more,
            next_since=next_since,
        )

    def _whole_version_group(self, exam_type_id: str, version: int) -> tuple[list, bool]:
        rows = self.db.execute(
            "SELECT * FROM questions WHERE exam_type_id = ? AND status = ? AND version = ? ORDER BY id",
            (exam_type_id, APPROVED, version),
        ).fetchall()
        later = self.db.execute(
            "SELECT 1 FROM questions WHERE exam_type_id = ? AND status = ? AND version > ? LIMIT 1",
            (exam_type_id, APPROVED, version),
        ).fetchone()
        logger.info("Widened feed page to %d questions sharing v%d", len(rows), version)
        return rows, later is not None

    def get_version(self, exam_type_id: str) -> dict:
        self._require_exam_type(exam_type_id)
        row = self.db.execute(
            """
            SELECT MAX(version) AS v, COUNT(*) AS c, MAX(updated_at) AS u
            FROM questions WHERE exam_type_id = ? AND status = ?
            """,
            (exam_type_id, APPROVED),
        ).fetchone()
        return {
            "latestVersion": int(row["v"]) if row["v"] is not None else 0,
            "questionCount": int(row["c"]),
            "lastUpdatedAt": row["u"],
        }

    # ── Authoring ────────────────────────────────────────────────────

    def upsert_question(self, question: Question, exam_type_id: str, status: str = APPROVED,
                        created_by: str | None = None) -> None:
        if status not in QUESTION_STATUSES:
            raise ValidationError(f"Unknown question status: {status}")
        columns = ("exam_type_id", "status", "created_by") + QUESTION_COLUMNS
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c not in ("id", "created_by"))
        self.db.execute(
            f"""
            INSERT INTO questions ({", ".join(columns)})
            VALUES ({", ".join("?" for _ in columns)})
            ON CONFLICT(id) DO UPDATE SET {updates}
            """,
            (exam_type_id, status, created_by) + question_to_row(question),
        )
        self.db.commit()

    def approve_question(self, question_id: str, approved_by: str | None = None) -> int:
        """Approve a question and give it the next feed version. Returns that version."""
        row = self.db.execute(
            "SELECT exam_type_id FROM questions WHERE id = ?", (question_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Question '{question_id}' not found")
        top = self.db.execute(
            "SELECT MAX(version) AS v FROM questions WHERE exam_type_id = ?", (row["exam_type_id"],)
        ).fetchone()["v"]
        version = (top or 0) + 1
        now = now_iso()
        self.db.execute(
            """
            UPDATE questions
            SET status = ?, version = ?, approved_by = ?, approved_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (APPROVED, version, approved_by, now, now, question_id),
        )
        self.db.commit()
        logger.info("Approved question %s at v%d", question_id, version)
        return version

    def archive_question(self, question_id: str) -> None:
        cursor = self.db.execute(
            "UPDATE questions SET status = 'archived', updated_at = ? WHERE id = ?",
            (now_iso(), question_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Question '{question_id}' not found")
        self.db.commit()
