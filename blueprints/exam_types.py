"""Exam type and question feed routes."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from auth import jwt_required
from database import get_db
from exam_config import exam_type_to_dict
from helpers import int_arg
from question_bank import QuestionBankService
from question_codec import question_to_dict

logger = logging.getLogger(__name__)

bp = Blueprint("exam_types", __name__)


def _service() -> QuestionBankService:
    return QuestionBankService(
        get_db(),
        default_limit=current_app.config.get("QUESTIONS_DEFAULT_LIMIT", 100),
        max_limit=current_app.config.get("QUESTIONS_MAX_LIMIT", 500),
    )


@bp.route("/exam-types/<exam_type_id>", methods=["GET"])
@jwt_required
def get_exam_type(exam_type_id):
    return jsonify(exam_type_to_dict(_service().get_exam_type(exam_type_id)))


@bp.route("/exam-types/<exam_type_id>/questions", methods=["GET"])
@jwt_required
def get_questions(exam_type_id):
    service = _service()
    since = int_arg(request.args, "since", 0, minimum=0)
    limit = int_arg(request.args, "limit", service.default_limit,
                    minimum=1, maximum=service.max_limit, clamp=True)

    page = service.get_questions(exam_type_id, since=since, limit=limit)
    body = {
        "questions": [question_to_dict(q) for q in page.questions],
        "latestVersion": page.latest_version,
        "hasMore": page.has_more,
    }
    if page.next_since is not None:
        body["nextSince"] = page.next_since
    logger.debug("Served %d questions for %s since v%d", len(page.questions), exam_type_id, since)
    return jsonify(body)


@bp.route("/exam-types/<exam_type_id>/questions/version", methods=["GET"])
@jwt_required
def get_question_version(exam_type_id):
    return jsonify(_service().get_version(exam_type_id))
