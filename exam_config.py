"""
Exam Type Catalogue — certification tracks, their domains and exam rules.

Each exam type carries a per-domain question target; the targets of a
track sum to its question_count and drive stratified question selection.
"""

from __future__ import annotations

from models import DomainConfig, ExamTypeConfig


# ── AWS Certified Cloud Practitioner ──────────────────────────────────

AWS_CCP = ExamTypeConfig(
    id="aws-ccp",
    name="AWS Certified Cloud Practitioner",
    display_name="AWS CCP",
    description=(
        "The AWS Certified Cloud Practitioner validates foundational, high-level "
        "understanding of AWS Cloud, services, and terminology."
    ),
    domains=[
        DomainConfig(id="cloud-concepts", name="Cloud Concepts", weight=24, question_count=16),
        DomainConfig(id="security", name="Security and Compliance", weight=30, question_count=20),
        DomainConfig(id="technology", name="Technology", weight=34, question_count=22),
        DomainConfig(id="billing", name="Billing and Pricing", weight=12, question_count=7),
    ],
    passing_score=70,
    time_limit_minutes=90,
    question_count=65,
)

EXAM_TYPES: dict[str, ExamTypeConfig] = {
    AWS_CCP.id: AWS_CCP,
}


def get_exam_type(exam_type_id: str) -> ExamTypeConfig | None:
    """Look up an exam type by id. Returns None if not configured."""
    return EXAM_TYPES.get(exam_type_id)


def exam_type_to_dict(exam_type: ExamTypeConfig) -> dict:
    """camelCase wire representation used by GET /exam-types/<id>."""
    return {
        "id": exam_type.id,
        "name": exam_type.name,
        "displayName": exam_type.display_name,
        "description": exam_type.description,
        "domains": [
            {"id": d.id, "name": d.name, "weight": d.weight, "questionCount": d.question_count}
            for d in exam_type.domains
        ],
        "passingScore": exam_type.passing_score,
        "timeLimit": exam_type.time_limit_minutes,
        "questionCount": exam_type.question_count,
        "isActive": exam_type.is_active,
    }


def exam_type_from_dict(data: dict) -> ExamTypeConfig:
    return ExamTypeConfig(
        id=data["id"],
        name=data["name"],
        display_name=data.get("displayName", data["name"]),
        description=data.get("description", ""),
        domains=[
            DomainConfig(
                id=d["id"], name=d["name"], weight=int(d.get("weight", 0)),
                question_count=int(d["questionCount"]),
            )
            for d in data.get("domains", [])
        ],
        passing_score=int(data["passingScore"]),
        time_limit_minutes=int(data["timeLimit"]),
        question_count=int(data["questionCount"]),
        is_active=bool(data.get("isActive", True)),
    )
