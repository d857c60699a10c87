"""
Test fixtures for CloudPrep.

Provides app, client, db and auth_headers fixtures for the API (file-based
SQLite), and store / seeded_store fixtures for the offline client.
Question builders are exposed as factory fixtures.
"""

from __future__ import annotations

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import Question, QuestionOption  # noqa: E402

TEST_JWT_SECRET = "test-jwt-secret"
TEST_USER = "user-1"

# More than the AWS CCP per-domain targets (16/20/22/7)
SEEDED_BANK = {"cloud-concepts": 20, "security": 24, "technology": 26, "billing": 10}


def build_question(qid: str, domain: str = "cloud-concepts", version: int = 1,
                   qtype: str = "single-choice", correct: tuple = ("a",),
                   difficulty: str = "easy", text: str | None = None) -> Question:
    if qtype == "true-false":
        options = [QuestionOption("true", "True"), QuestionOption("false", "False")]
    else:
        options = [QuestionOption(o, f"Option {o.upper()}") for o in ("a", "b", "c", "d")]
    return Question(
        id=qid,
        text=text or f"Question {qid}?",
        type=qtype,
        domain=domain,
        difficulty=difficulty,
        options=options,
        correct_answers=list(correct),
        explanation=f"Explanation for {qid}",
        version=version,
        created_at="2026-01-01T00:00:00.000+00:00",
        updated_at="2026-01-01T00:00:00.000+00:00",
    )


def build_bank(per_domain: dict[str, int], version: int = 1, prefix: str = "q") -> list[Question]:
    questions = []
    for domain, count in per_domain.items():
        for i in range(count):
            questions.append(build_question(f"{prefix}-{domain}-{i:03d}", domain=domain, version=version))
    return questions


def build_attempt_payload(attempt_id: str = "attempt-1", score: int = 71, **overrides) -> dict:
    """camelCase upload body as sent by a device."""
    payload = {
        "id": attempt_id,
        "examTypeId": "aws-ccp",
        "startedAt": "2026-03-01T10:00:00.000+00:00",
        "completedAt": "2026-03-01T11:10:00.000+00:00",
        "score": score,
        "passed": score >= 70,
        "totalQuestions": 2,
        "remainingTimeMs": 1_200_000,
        "answers": [
            {"questionId": "q1", "selectedAnswers": ["a"], "isCorrect": True, "isFlagged": False},
            {"questionId": "q2", "selectedAnswers": ["c"], "isCorrect": False, "isFlagged": True},
        ],
        "domainBreakdown": [{"domain": "security", "correct": 1, "total": 2, "percentage": 50}],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_question():
    return build_question


@pytest.fixture
def make_bank():
    return build_bank


@pytest.fixture
def make_attempt_payload():
    return build_attempt_payload


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "JWT_SECRET": TEST_JWT_SECRET,
        "SCHEDULER_ENABLED": False,
        "CLOUD_STORAGE_BACKEND": "filesystem",
        "CLOUD_STORAGE_DIR": str(tmp_path / "archive"),
    })

    with app.app_context():
        from database import init_db, run_migrations, get_db
        from exam_config import AWS_CCP
        from question_bank import QuestionBankService

        init_db()
        run_migrations()
        QuestionBankService(get_db()).upsert_exam_type(AWS_CCP)

        yield app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()


@pytest.fixture
def auth_headers():
    from auth import create_access_token
    token = create_access_token(TEST_USER, TEST_JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store(tmp_path):
    """Client-side local store on a temp file."""
    from local_store import LocalStore

    with LocalStore(tmp_path / "client" / "local.db") as s:
        yield s


@pytest.fixture
def seeded_store(store):
    """Local store holding enough questions for a full AWS CCP exam."""
    store.upsert_questions(build_bank(SEEDED_BANK))
    return store
