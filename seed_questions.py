"""
Seed Questions — load the catalogue and a question bundle into the server DB.

Registers every configured exam type, then upserts the bundle's questions as
approved at their bundled versions.

Usage:
    python seed_questions.py                       # Seed from BUNDLE_PATH
    python seed_questions.py path/to/bundle.json   # Seed from a specific file
    python seed_questions.py --token USER_ID       # Print a dev bearer token
"""

from __future__ import annotations

import sys

from bundle_loader import read_bundle
from config import ClientConfig
from exam_config import EXAM_TYPES
from question_bank import QuestionBankService


def seed(db, bundle_path: str | None = None) -> dict:
    """Seed exam types and bundled questions. Returns summary dict."""
    service = QuestionBankService(db)
    for exam_type in EXAM_TYPES.values():
        service.upsert_exam_type(exam_type)

    bundle = read_bundle(bundle_path or ClientConfig.from_env().bundle_path)
    if bundle.exam_type_id not in EXAM_TYPES:
        raise ValueError(f"Bundle targets unknown exam type '{bundle.exam_type_id}'")
    for question in bundle.questions:
        service.upsert_question(question, bundle.exam_type_id, status="approved", created_by="seed")

    return {
        "exam_types": len(EXAM_TYPES),
        "questions": len(bundle.questions),
        "bundle_version": bundle.version,
        "latest_version": service.latest_version(bundle.exam_type_id),
    }


def build_app():
    """API app for one-off CLI use: no background scheduler."""
    from app import create_app

    return create_app(overrides={"SCHEDULER_ENABLED": False})


if __name__ == "__main__":
    from database import ensure_db, get_db

    app = build_app()
    with app.app_context():
        if "--token" in sys.argv:
            from auth import create_access_token
            user_id = sys.argv[sys.argv.index("--token") + 1]
            print(create_access_token(user_id, app.config["JWT_SECRET"], app.config["JWT_ALGORITHM"],
                                      app.config["JWT_TTL_MINUTES"]))
            sys.exit(0)
        ensure_db()
        paths = [a for a in sys.argv[1:] if not a.startswith("--")]
        result = seed(get_db(), paths[0] if paths else None)
        print(f"[Seed] Done: {result}")
