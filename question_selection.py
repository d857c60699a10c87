"""
Stratified question selection for exam attempts.

Every domain of the exam type contributes exactly its configured
question_count, drawn at random from that domain's questions. If the
targets sum to less than the exam length, the remainder is filled at
random from the questions not yet chosen. The final list is shuffled
once; its order then becomes the attempt's fixed order_index sequence.
"""

from __future__ import annotations

import logging
import random

from errors import InsufficientQuestionsError
from models import ExamTypeConfig

logger = logging.getLogger(__name__)


def select_exam_questions(ids_by_domain: dict[str, list[str]], exam_type: ExamTypeConfig,
                          rng: random.Random | None = None) -> list[str]:
    """Pick exam_type.question_count question ids.

    Raises InsufficientQuestionsError when the bank is smaller than the
    exam, or when a domain cannot meet its target.
    """
    rng = rng or random.Random()
    required = exam_type.question_count
    available = sum(len(ids) for ids in ids_by_domain.values())
    if available < required:
        raise InsufficientQuestionsError(required, available)

    targeted = sum(d.question_count for d in exam_type.domains)
    if targeted > required:
        raise ValueError(
            f"Exam type {exam_type.id}: domain targets ({targeted}) exceed question count ({required})"
        )

    chosen: list[str] = []
    for domain in exam_type.domains:
        pool = ids_by_domain.get(domain.id, [])
        if len(pool) < domain.question_count:
            raise InsufficientQuestionsError(domain.question_count, len(pool), domain=domain.id)
        chosen.extend(rng.sample(pool, domain.question_count))

    remainder = required - len(chosen)
    if remainder:
        taken = set(chosen)
        leftovers = sorted(qid for ids in ids_by_domain.values() for qid in ids if qid not in taken)
        chosen.extend(rng.sample(leftovers, remainder))

    rng.shuffle(chosen)
    logger.debug("Selected %d questions for %s from %d available", len(chosen), exam_type.id, available)
    return chosen
