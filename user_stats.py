"""
User statistics — lifetime counters kept on both the device and the server.

Counters only ever grow, so two copies are reconciled by taking the
maximum of each field (and the later last-activity timestamp). Applying
the merge repeatedly, in any order, converges to the same row.
"""

from __future__ import annotations

import logging
import sqlite3

from errors import ValidationError
from helpers import now_iso, parse_iso
from models import UserStats

logger = logging.getLogger(__name__)

_COUNTERS = ("total_exams", "total_practice", "total_questions", "total_time_spent_ms")


def _later(a: str | None, b: str | None) -> str | None:
    if a is None:
        return b
    if b is None:
        return a
    return a if parse_iso(a) >= parse_iso(b) else b


def merge_stats(current: UserStats, incoming: UserStats) -> UserStats:
    """Field-wise MAX of two stat rows."""
    return UserStats(
        total_exams=max(current.total_exams, incoming.total_exams),
        total_practice=max(current.total_practice, incoming.total_practice),
        total_questions=max(current.total_questions, incoming.total_questions),
        total_time_spent_ms=max(current.total_time_spent_ms, incoming.total_time_spent_ms),
        last_activity_at=_later(current.last_activity_at, incoming.last_activity_at),
    )


def stats_from_dict(data: dict) -> UserStats:
    """Parse a camelCase stats payload (PUT /user-stats/me or the API response)."""
    if not isinstance(data, dict):
        raise ValidationError("User stats payload must be a JSON object")
    values = {}
    for field, key in zip(_COUNTERS, ("totalExams", "totalPractice", "totalQuestions", "totalTimeSpentMs")):
        raw = data.get(key, 0)
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
            raise ValidationError(f"'{key}' must be a non-negative integer")
        values[field] = raw
    last = data.get("lastActivityAt")
    if last is not None:
        try:
            parse_iso(str(last))
        except ValueError:
            raise ValidationError("'lastActivityAt' must be an ISO-8601 timestamp")
        last = str(last)
    return UserStats(last_activity_at=last, **values)


class UserStatsStore:
    """Per-user stats rows in the server database."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def get(self, user_id: str) -> UserStats:
        row = self.db.execute(
            "SELECT * FROM user_stats WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return UserStats()
        return UserStats(
            total_exams=row["total_exams"],
            total_practice=row["total_practice"],
            total_questions=row["total_questions"],
            total_time_spent_ms=row["total_time_spent_ms"],
            last_activity_at=row["last_activity_at"],
        )

    def merge(self, user_id: str, incoming: UserStats) -> UserStats:
        merged = merge_stats(self.get(user_id), incoming)
        self.db.execute(
            """
            INSERT INTO user_stats (
                user_id, total_exams, total_practice, total_questions,
                total_time_spent_ms, last_activity_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                total_exams = excluded.total_exams,
                total_practice = excluded.total_practice,
                total_questions = excluded.total_questions,
                total_time_spent_ms = excluded.total_time_spent_ms,
                last_activity_at = excluded.last_activity_at,
                updated_at = excluded.updated_at
            """,
            (user_id, merged.total_exams, merged.total_practice, merged.total_questions,
             merged.total_time_spent_ms, merged.last_activity_at, now_iso()),
        )
        self.db.commit()
        logger.debug("Merged stats for user %s", user_id)
        return merged
