"""User statistics routes (MAX-merged across devices)."""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from auth import jwt_required
from database import get_db
from errors import ValidationError
from user_stats import UserStatsStore, stats_from_dict

bp = Blueprint("stats", __name__)


@bp.route("/user-stats/me", methods=["GET"])
@jwt_required
def get_my_stats():
    return jsonify(UserStatsStore(get_db()).get(g.user_id).to_dict())


@bp.route("/user-stats/me", methods=["PUT"])
@jwt_required
def put_my_stats():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    merged = UserStatsStore(get_db()).merge(g.user_id, stats_from_dict(data))
    return jsonify(merged.to_dict())
