"""
Error taxonomy shared by the client core and the Flask API.

Client code raises these directly; the API maps them to JSON error
responses via register_error_handlers().
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class CloudPrepError(Exception):
    """Base class for all application errors."""

    status_code = 500


class LocalStoreError(CloudPrepError):
    """A local database operation failed."""


class DataCorruptionError(CloudPrepError):
    """A stored or received payload could not be decoded or validated."""


class SyncError(CloudPrepError):
    """A question-bank pull or attempt upload failed (network, HTTP or parse)."""

    status_code = 502

    def __init__(self, message: str = "", http_status: int | None = None):
        super().__init__(message)
        self.http_status = http_status


class RejectedError(SyncError):
    """The server refused this particular request (4xx); retrying it will not help."""


class InsufficientQuestionsError(CloudPrepError):
    """The local bank holds too few questions to build an exam."""

    status_code = 409

    def __init__(self, required: int, available: int, domain: str | None = None):
        self.required = required
        self.available = available
        self.domain = domain
        if domain:
            msg = (f"Domain '{domain}' needs {required} questions "
                   f"but only {available} are available")
        else:
            msg = f"Exam needs {required} questions but only {available} are available"
        super().__init__(msg)


class ExamInProgressError(CloudPrepError):
    """Another attempt is already in progress; resume or abandon it first."""

    status_code = 409


class NoActiveExamError(CloudPrepError):
    """The operation needs an in-progress attempt and there is none."""

    status_code = 409


class InvalidAnswerError(CloudPrepError):
    """An answer references a question or option outside the attempt."""

    status_code = 400


class NotFoundError(CloudPrepError):
    status_code = 404


class ValidationError(CloudPrepError):
    status_code = 400


class AuthError(CloudPrepError):
    status_code = 401


def register_error_handlers(app) -> None:
    """Render CloudPrepError subclasses as JSON error responses."""
    from flask import jsonify

    @app.errorhandler(CloudPrepError)
    def _handle_app_error(exc: CloudPrepError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc)
        else:
            logger.info("%s: %s", type(exc).__name__, exc)
        return jsonify({"error": str(exc), "type": type(exc).__name__}), exc.status_code

    @app.errorhandler(404)
    def _handle_not_found(exc):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def _handle_method_not_allowed(exc):
        return jsonify({"error": "Method not allowed"}), 405
