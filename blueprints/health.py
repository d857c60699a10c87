"""Liveness check."""

from __future__ import annotations

import logging
import sqlite3

from flask import Blueprint, jsonify

from database import get_db
from extensions import limiter

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)


@bp.route("/health", methods=["GET"])
@limiter.exempt
def health():
    try:
        get_db().execute("SELECT 1").fetchone()
    except sqlite3.Error as e:
        logger.error("Health check database error: %s", e)
        return jsonify({"status": "error", "database": "unavailable"}), 503
    return jsonify({"status": "ok", "database": "ok"})
