"""
Serialization boundary for question payloads.

Structured fields (options, correct answers, explanation blocks, selected
answers) are stored as canonical JSON text: sorted keys, compact separators.
Decoding validates shape and invariants; any failure raises
DataCorruptionError instead of falling back to a default.

The wire format (HTTP API and bundle files) uses camelCase keys. Bundles
produced by the admin tooling may carry upper-case enum spellings
("SINGLE_CHOICE", "EASY"); both spellings are accepted.
"""

from __future__ import annotations

import json
from typing import Any

from errors import DataCorruptionError
from models import (
    BLOCK_TYPES,
    DIFFICULTIES,
    QUESTION_TYPES,
    ExplanationBlock,
    Question,
    QuestionOption,
)

QUESTION_COLUMNS = (
    "id", "text", "type", "domain", "difficulty", "options", "correct_answers",
    "explanation", "explanation_blocks", "version", "created_at", "updated_at",
)


def encode_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def decode_json(raw: Any, what: str) -> Any:
    if not isinstance(raw, str):
        raise DataCorruptionError(f"{what}: expected JSON text, got {type(raw).__name__}")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        raise DataCorruptionError(f"{what}: invalid JSON ({exc})") from exc


def normalize_type(value: Any) -> str:
    text = str(value).strip().lower().replace("_", "-")
    if text not in QUESTION_TYPES:
        raise DataCorruptionError(f"Unknown question type: {value!r}")
    return text


def normalize_difficulty(value: Any) -> str:
    text = str(value).strip().lower()
    if text not in DIFFICULTIES:
        raise DataCorruptionError(f"Unknown difficulty: {value!r}")
    return text


def _options_from_list(items: Any, qid: str) -> list[QuestionOption]:
    if not isinstance(items, list) or not items:
        raise DataCorruptionError(f"Question {qid}: options must be a non-empty list")
    options = []
    for item in items:
        if not isinstance(item, dict) or "id" not in item or "text" not in item:
            raise DataCorruptionError(f"Question {qid}: malformed option {item!r}")
        options.append(QuestionOption(id=str(item["id"]), text=str(item["text"])))
    return options


def _blocks_from_list(items: Any, qid: str) -> list[ExplanationBlock] | None:
    if items is None:
        return None
    if not isinstance(items, list):
        raise DataCorruptionError(f"Question {qid}: explanation blocks must be a list")
    blocks = []
    for item in items:
        if not isinstance(item, dict) or item.get("type") not in BLOCK_TYPES:
            raise DataCorruptionError(f"Question {qid}: malformed explanation block {item!r}")
        meta = item.get("meta") or {}
        if not isinstance(meta, dict):
            raise DataCorruptionError(f"Question {qid}: explanation block meta must be an object")
        blocks.append(ExplanationBlock(type=item["type"], content=str(item.get("content", "")), meta=meta))
    return blocks


def _answers_from_list(items: Any, qid: str) -> list[str]:
    if not isinstance(items, list) or not all(isinstance(a, str) for a in items):
        raise DataCorruptionError(f"Question {qid}: correct answers must be a list of option ids")
    return list(items)


def validate_question(question: Question) -> Question:
    """Check correct_answers is a non-empty subset of the option ids."""
    if not question.correct_answers:
        raise DataCorruptionError(f"Question {question.id}: no correct answers")
    unknown = set(question.correct_answers) - set(question.option_ids)
    if unknown:
        raise DataCorruptionError(
            f"Question {question.id}: correct answers {sorted(unknown)} are not options"
        )
    if question.type != "multiple-choice" and len(set(question.correct_answers)) != 1:
        raise DataCorruptionError(f"Question {question.id}: {question.type} needs exactly one answer")
    return question


def question_from_dict(data: dict) -> Question:
    """Build a Question from a camelCase API or bundle record."""
    if not isinstance(data, dict):
        raise DataCorruptionError(f"Question record must be an object, got {type(data).__name__}")
    qid = str(data.get("id", ""))
    if not qid:
        raise DataCorruptionError("Question record has no id")
    try:
        version = int(data["version"])
        question = Question(
            id=qid,
            text=str(data["text"]),
            type=normalize_type(data["type"]),
            domain=str(data["domain"]),
            difficulty=normalize_difficulty(data["difficulty"]),
            options=_options_from_list(data["options"], qid),
            correct_answers=_answers_from_list(data["correctAnswers"], qid),
            explanation=str(data.get("explanation") or ""),
            explanation_blocks=_blocks_from_list(data.get("explanationBlocks"), qid),
            version=version,
            created_at=str(data.get("createdAt") or ""),
            updated_at=str(data.get("updatedAt") or ""),
        )
    except KeyError as exc:
        raise DataCorruptionError(f"Question {qid}: missing field {exc.args[0]}") from exc
    except (TypeError, ValueError) as exc:
        raise DataCorruptionError(f"Question {qid}: {exc}") from exc
    return validate_question(question)


def question_to_dict(question: Question) -> dict:
    data = {
        "id": question.id,
        "text": question.text,
        "type": question.type,
        "domain": question.domain,
        "difficulty": question.difficulty,
        "options": [{"id": o.id, "text": o.text} for o in question.options],
        "correctAnswers": list(question.correct_answers),
        "explanation": question.explanation,
        "explanationBlocks": _blocks_to_list(question.explanation_blocks),
        "version": question.version,
        "createdAt": question.created_at,
        "updatedAt": question.updated_at,
    }
    return data


def _blocks_to_list(blocks: list[ExplanationBlock] | None) -> list[dict] | None:
    if blocks is None:
        return None
    return [{"type": b.type, "content": b.content, "meta": dict(b.meta)} for b in blocks]


def question_to_row(question: Question) -> tuple:
    """Column values in QUESTION_COLUMNS order."""
    blocks = _blocks_to_list(question.explanation_blocks)
    return (
        question.id,
        question.text,
        question.type,
        question.domain,
        question.difficulty,
        encode_json([{"id": o.id, "text": o.text} for o in question.options]),
        encode_json(list(question.correct_answers)),
        question.explanation,
        encode_json(blocks) if blocks is not None else None,
        question.version,
        question.created_at,
        question.updated_at,
    )


def question_from_row(row) -> Question:
    """Decode a questions-table row; raises DataCorruptionError on bad payloads."""
    qid = row["id"]
    blocks_raw = row["explanation_blocks"]
    question = Question(
        id=qid,
        text=row["text"],
        type=normalize_type(row["type"]),
        domain=row["domain"],
        difficulty=normalize_difficulty(row["difficulty"]),
        options=_options_from_list(decode_json(row["options"], f"question {qid} options"), qid),
        correct_answers=_answers_from_list(
            decode_json(row["correct_answers"], f"question {qid} correct answers"), qid
        ),
        explanation=row["explanation"],
        explanation_blocks=_blocks_from_list(
            decode_json(blocks_raw, f"question {qid} explanation blocks") if blocks_raw is not None else None,
            qid,
        ),
        version=int(row["version"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
    return validate_question(question)


def encode_selected(answers: list[str]) -> str:
    return encode_json(list(answers))


def decode_selected(raw: Any, what: str = "selected answers") -> list[str]:
    value = decode_json(raw, what)
    if not isinstance(value, list) or not all(isinstance(a, str) for a in value):
        raise DataCorruptionError(f"{what}: expected a list of option ids")
    return value
