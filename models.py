"""
Domain dataclasses for the question bank, exam attempts and practice sessions.

Field names are snake_case; the camelCase wire format used by the HTTP API
and the bundle files is handled in question_codec.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

QUESTION_TYPES = ("single-choice", "multiple-choice", "true-false")
DIFFICULTIES = ("easy", "medium", "hard")
BLOCK_TYPES = ("paragraph", "link", "image", "bullet_list", "code", "separator")

ATTEMPT_IN_PROGRESS = "in-progress"
ATTEMPT_COMPLETED = "completed"
ATTEMPT_ABANDONED = "abandoned"
ATTEMPT_STATUSES = (ATTEMPT_IN_PROGRESS, ATTEMPT_COMPLETED, ATTEMPT_ABANDONED)

# Client-side upload state of a finished attempt
UPLOAD_NONE = "none"
UPLOAD_PENDING = "pending"
UPLOAD_SYNCED = "synced"

# Server-side cloud sync state
SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"
SYNC_STATUSES = (SYNC_PENDING, SYNC_SYNCED, SYNC_FAILED)

BUNDLED_VERSION = "BUNDLED_VERSION"
LAST_SYNC_VERSION = "LAST_SYNC_VERSION"
LAST_SYNC_AT = "LAST_SYNC_AT"


@dataclass(frozen=True)
class QuestionOption:
    id: str
    text: str


@dataclass(frozen=True)
class ExplanationBlock:
    type: str  # one of BLOCK_TYPES
    content: str
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    type: str
    domain: str
    difficulty: str
    options: list[QuestionOption]
    correct_answers: list[str]
    explanation: str
    version: int
    created_at: str
    updated_at: str
    explanation_blocks: Optional[list[ExplanationBlock]] = None

    @property
    def option_ids(self) -> list[str]:
        return [o.id for o in self.options]


@dataclass(frozen=True)
class QuestionPage:
    """One page of the version-ordered question feed."""

    questions: list[Question]
    latest_version: int
    has_more: bool
    next_since: Optional[int] = None


@dataclass(frozen=True)
class DomainConfig:
    id: str
    name: str
    weight: int
    question_count: int


@dataclass(frozen=True)
class ExamTypeConfig:
    id: str
    name: str
    display_name: str
    description: str
    domains: list[DomainConfig]
    passing_score: int  # percent
    time_limit_minutes: int
    question_count: int
    is_active: bool = True

    @property
    def time_limit_ms(self) -> int:
        return self.time_limit_minutes * 60 * 1000


@dataclass
class ExamAttempt:
    id: str
    started_at: str
    status: str
    total_questions: int
    remaining_time_ms: int
    expires_at: str
    completed_at: Optional[str] = None
    score: Optional[int] = None
    passed: Optional[bool] = None
    exam_type_id: str = ""
    sync_status: str = UPLOAD_NONE


@dataclass
class ExamAnswer:
    id: str
    exam_attempt_id: str
    question_id: str
    order_index: int
    selected_answers: list[str] = field(default_factory=list)
    is_correct: Optional[bool] = None
    is_flagged: bool = False
    answered_at: Optional[str] = None

    @property
    def is_answered(self) -> bool:
        return self.answered_at is not None


@dataclass
class DomainScore:
    domain: str
    correct: int
    total: int
    percentage: int


@dataclass
class ExamResult:
    attempt_id: str
    score: int
    passed: bool
    correct_count: int
    total_questions: int
    passing_score: int
    time_spent_ms: int
    domain_breakdown: list[DomainScore]
    completed_at: str
    expired: bool = False

    def to_dict(self) -> dict:
        return {
            "attemptId": self.attempt_id,
            "score": self.score,
            "passed": self.passed,
            "correctCount": self.correct_count,
            "totalQuestions": self.total_questions,
            "passingScore": self.passing_score,
            "timeSpentMs": self.time_spent_ms,
            "completedAt": self.completed_at,
            "expired": self.expired,
            "domainBreakdown": [
                {"domain": d.domain, "correct": d.correct, "total": d.total,
                 "percentage": d.percentage}
                for d in self.domain_breakdown
            ],
        }


@dataclass
class PracticeSession:
    id: str
    started_at: str
    domain: Optional[str] = None
    difficulty: Optional[str] = None
    questions_count: int = 0
    correct_count: int = 0
    completed_at: Optional[str] = None


@dataclass
class PracticeAnswer:
    id: str
    session_id: str
    question_id: str
    selected_answers: list[str]
    is_correct: bool
    answered_at: str


@dataclass
class UserStats:
    total_exams: int = 0
    total_practice: int = 0
    total_questions: int = 0
    total_time_spent_ms: int = 0
    last_activity_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "totalExams": self.total_exams,
            "totalPractice": self.total_practice,
            "totalQuestions": self.total_questions,
            "totalTimeSpentMs": self.total_time_spent_ms,
            "lastActivityAt": self.last_activity_at,
        }


@dataclass
class SyncResult:
    """Outcome of one cloud-sync pass."""

    synced: int = 0
    failed: int = 0
    retried: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "retried": self.retried,
            "errors": list(self.errors),
        }
