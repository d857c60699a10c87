"""
Exam scoring — pure functions over answers and their questions.

score = round-half-up(100 * correct / total), where total counts every
question in the attempt, answered or not. An unanswered question is
incorrect.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from errors import DataCorruptionError
from helpers import percentage
from models import DomainScore, ExamAnswer, Question


@dataclass
class ScoreSummary:
    score: int
    passed: bool
    correct_count: int
    total: int
    correctness: dict[str, bool] = field(default_factory=dict)  # answer id -> correct
    domain_breakdown: list[DomainScore] = field(default_factory=list)


def is_answer_correct(selected: list[str], correct: list[str]) -> bool:
    """Exact set match; an empty selection is never correct."""
    return bool(selected) and set(selected) == set(correct)


def compute_score(correct_count: int, total: int) -> int:
    return percentage(correct_count, total)


def score_answers(answers: list[ExamAnswer], questions: dict[str, Question], passing_score: int,
                  domain_order: list[str] | None = None) -> ScoreSummary:
    """Score a full attempt.

    domain_order fixes the order of the per-domain breakdown; domains not
    listed follow in order of first appearance.
    """
    correctness: dict[str, bool] = {}
    per_domain: dict[str, list[int]] = {d: [0, 0] for d in (domain_order or [])}
    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            raise DataCorruptionError(
                f"Answer {answer.id} references missing question {answer.question_id}"
            )
        ok = is_answer_correct(answer.selected_answers, question.correct_answers)
        correctness[answer.id] = ok
        tally = per_domain.setdefault(question.domain, [0, 0])
        tally[0] += int(ok)
        tally[1] += 1

    correct_count = sum(correctness.values())
    total = len(answers)
    score = compute_score(correct_count, total)
    breakdown = [
        DomainScore(domain=domain, correct=c, total=t, percentage=percentage(c, t))
        for domain, (c, t) in per_domain.items()
        if t
    ]
    return ScoreSummary(
        score=score,
        passed=score >= passing_score,
        correct_count=correct_count,
        total=total,
        correctness=correctness,
        domain_breakdown=breakdown,
    )
