"""
Server-side store for exam attempts uploaded by devices.

An attempt arrives once (POST /exam-attempts, idempotent on id) with
sync_status 'pending'; the cloud sync pipeline then moves it to 'synced'
or 'failed' and counts retries.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Optional

from errors import ValidationError
from helpers import now_iso, parse_iso
from models import SYNC_FAILED, SYNC_PENDING, SYNC_STATUSES, SYNC_SYNCED

logger = logging.getLogger(__name__)


def validate_attempt_payload(data: dict) -> dict:
    """Check a camelCase upload body and return normalized column values."""
    if not isinstance(data, dict):
        raise ValidationError("Attempt payload must be a JSON object")
    missing = [k for k in ("id", "examTypeId", "startedAt", "completedAt", "totalQuestions", "answers")
               if data.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    for key in ("startedAt", "completedAt"):
        try:
            parse_iso(str(data[key]))
        except ValueError:
            raise ValidationError(f"'{key}' must be an ISO-8601 timestamp")
    total = data["totalQuestions"]
    if isinstance(total, bool) or not isinstance(total, int) or total < 1:
        raise ValidationError("'totalQuestions' must be a positive integer")
    answers = data["answers"]
    if not isinstance(answers, list):
        raise ValidationError("'answers' must be a list")
    for answer in answers:
        if not isinstance(answer, dict) or not answer.get("questionId"):
            raise ValidationError("Each answer needs a questionId")
    score = data.get("score")
    if score is not None and (isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100):
        raise ValidationError("'score' must be an integer between 0 and 100")
    return {
        "id": str(data["id"]),
        "exam_type_id": str(data["examTypeId"]),
        "started_at": str(data["startedAt"]),
        "completed_at": str(data["completedAt"]),
        "score": score,
        "passed": None if data.get("passed") is None else int(bool(data["passed"])),
        "total_questions": total,
        "remaining_time_ms": int(data.get("remainingTimeMs") or 0),
        "answers": json.dumps(answers, sort_keys=True),
        "domain_breakdown": json.dumps(data.get("domainBreakdown") or [], sort_keys=True),
    }


def attempt_record(row: sqlite3.Row) -> dict:
    """camelCase document for an attempt row (API responses and cloud archive)."""
    return {
        "id": row["id"],
        "userId": row["user_id"],
        "examTypeId": row["exam_type_id"],
        "startedAt": row["started_at"],
        "completedAt": row["completed_at"],
        "score": row["score"],
        "passed": None if row["passed"] is None else bool(row["passed"]),
        "totalQuestions": row["total_questions"],
        "remainingTimeMs": row["remaining_time_ms"],
        "answers": json.loads(row["answers"]),
        "domainBreakdown": json.loads(row["domain_breakdown"]),
        "syncStatus": row["sync_status"],
        "syncRetries": row["sync_retries"],
        "syncedAt": row["synced_at"],
        "syncError": row["sync_error"],
        "receivedAt": row["received_at"],
    }


class ExamAttemptStore:
    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def save_attempt(self, user_id: str, data: dict) -> tuple[dict, bool]:
        """Store an uploaded attempt as pending. Returns (record, created).

        Re-uploading the same id is a no-op and returns the stored record.
        """
        values = validate_attempt_payload(data)
        existing = self.db.execute("SELECT * FROM exam_attempts WHERE id = ?", (values["id"],)).fetchone()
        if existing is not None:
            if existing["user_id"] != user_id:
                raise ValidationError(f"Attempt id {values['id']} is already taken")
            return attempt_record(existing), False

        self.db.execute(
            """
            INSERT INTO exam_attempts (
                id, user_id, exam_type_id, started_at, completed_at, score, passed,
                total_questions, remaining_time_ms, answers, domain_breakdown,
                sync_status, sync_retries, received_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (values["id"], user_id, values["exam_type_id"], values["started_at"],
             values["completed_at"], values["score"], values["passed"], values["total_questions"],
             values["remaining_time_ms"], values["answers"], values["domain_breakdown"],
             SYNC_PENDING, now_iso()),
        )
        self.db.commit()
        logger.info("Received attempt %s from user %s", values["id"], user_id)
        return self.get(values["id"]), True

    def get(self, attempt_id: str) -> Optional[dict]:
        row = self.db.execute("SELECT * FROM exam_attempts WHERE id = ?", (attempt_id,)).fetchone()
        return attempt_record(row) if row else None

    def list_for_user(self, user_id: str, limit: int = 50) -> list[dict]:
        rows = self.db.execute(
            "SELECT * FROM exam_attempts WHERE user_id = ? ORDER BY completed_at DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [attempt_record(r) for r in rows]

    # ── Sync pipeline access ─────────────────────────────────────────

    def list_pending(self, limit: int) -> list[dict]:
        rows = self.db.execute(
            "SELECT * FROM exam_attempts WHERE sync_status = ? ORDER BY received_at, id LIMIT ?",
            (SYNC_PENDING, limit),
        ).fetchall()
        return [attempt_record(r) for r in rows]

    def list_retryable(self, max_retries: int, limit: int) -> list[dict]:
        rows = self.db.execute(
            """
            SELECT * FROM exam_attempts
            WHERE sync_status = ? AND sync_retries < ?
            ORDER BY sync_retries, received_at, id
            LIMIT ?
            """,
            (SYNC_FAILED, max_retries, limit),
        ).fetchall()
        return [attempt_record(r) for r in rows]

    def mark_synced(self, attempt_id: str) -> None:
        now = now_iso()
        self.db.execute(
            """
            UPDATE exam_attempts
            SET sync_status = ?, synced_at = ?, sync_error = NULL, last_sync_attempt_at = ?
            WHERE id = ?
            """,
            (SYNC_SYNCED, now, now, attempt_id),
        )
        self.db.commit()

    def mark_failed(self, attempt_id: str, error: str, increment_retries: bool = False) -> None:
        self.db.execute(
            f"""
            UPDATE exam_attempts
            SET sync_status = ?, sync_error = ?, last_sync_attempt_at = ?
                {", sync_retries = sync_retries + 1" if increment_retries else ""}
            WHERE id = ?
            """,
            (SYNC_FAILED, error[:1000], now_iso(), attempt_id),
        )
        self.db.commit()

    def statistics(self) -> dict[str, int]:
        counts = {status: 0 for status in SYNC_STATUSES}
        for row in self.db.execute(
            "SELECT sync_status, COUNT(*) AS c FROM exam_attempts GROUP BY sync_status"
        ).fetchall():
            counts[row["sync_status"]] = int(row["c"])
        return counts

    def delete_synced_before(self, cutoff_iso: str) -> int:
        cursor = self.db.execute(
            "DELETE FROM exam_attempts WHERE sync_status = ? AND synced_at IS NOT NULL AND synced_at < ?",
            (SYNC_SYNCED, cutoff_iso),
        )
        self.db.commit()
        return cursor.rowcount
