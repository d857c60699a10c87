"""Exam attempt upload and cloud sync status routes."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, request

from attempt_store import ExamAttemptStore
from auth import jwt_required
from cloud_sync import SyncService
from database import get_db
from errors import NotFoundError, ValidationError
from helpers import int_arg

logger = logging.getLogger(__name__)

bp = Blueprint("exam_attempts", __name__)


@bp.route("/exam-attempts", methods=["POST"])
@jwt_required
def create_attempt():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    record, created = ExamAttemptStore(get_db()).save_attempt(g.user_id, data)
    return jsonify(record), 201 if created else 200


@bp.route("/exam-attempts", methods=["GET"])
@jwt_required
def list_attempts():
    limit = int_arg(request.args, "limit", 50, minimum=1, maximum=200, clamp=True)
    return jsonify({"attempts": ExamAttemptStore(get_db()).list_for_user(g.user_id, limit)})


@bp.route("/exam-attempts/<attempt_id>", methods=["GET"])
@jwt_required
def get_attempt(attempt_id):
    record = ExamAttemptStore(get_db()).get(attempt_id)
    if record is None or record["userId"] != g.user_id:
        raise NotFoundError(f"Attempt {attempt_id} not found")
    return jsonify(record)


@bp.route("/exam-attempts/sync/stats", methods=["GET"])
@jwt_required
def sync_stats():
    service = SyncService.from_config(current_app.config, get_db())
    return jsonify(service.get_sync_statistics())
