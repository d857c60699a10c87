"""
API Client — HTTP access to the CloudPrep server for the offline client.

Wraps a requests.Session with bearer auth and tenacity retries on transient
failures (connection errors, timeouts, 429 and 5xx). Anything that still
fails, plus non-retryable HTTP errors and malformed payloads, is raised as
SyncError so callers have a single failure type to handle. A 4xx other than
401/403 is raised as the RejectedError subclass.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from errors import DataCorruptionError, RejectedError, SyncError, ValidationError
from exam_config import exam_type_from_dict
from models import ExamTypeConfig, QuestionPage, UserStats
from question_codec import question_from_dict
from user_stats import stats_from_dict

logger = logging.getLogger(__name__)

_RETRY_STATUSES = {429, 500, 502, 503, 504}
_AUTH_STATUSES = {401, 403}


class TransientHTTPError(Exception):
    """A request failure worth retrying."""


class ApiClient:
    """Thin client for the question feed, attempt upload and stats endpoints."""

    def __init__(self, base_url: str, token: str = "", *, timeout: float = 15.0,
                 max_attempts: int = 3, backoff_multiplier: float = 1.0,
                 session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        self._retrying = Retrying(
            retry=retry_if_exception_type(TransientHTTPError),
            wait=wait_exponential(multiplier=backoff_multiplier, min=0, max=30),
            stop=stop_after_attempt(max_attempts),
            reraise=True,
        )

    @classmethod
    def from_config(cls, config) -> ApiClient:
        return cls(config.api_base_url, config.api_token, timeout=config.http_timeout_seconds)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Transport ────────────────────────────────────────────────────

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransientHTTPError(str(exc)) from exc
        if response.status_code in _RETRY_STATUSES:
            logger.warning("%s %s returned %s", method, path, response.status_code)
            raise TransientHTTPError(f"HTTP {response.status_code} from {path}")
        return response

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send with retries and decode the JSON body. Raises SyncError."""
        try:
            response = self._retrying(self._send, method, path, **kwargs)
        except TransientHTTPError as exc:
            raise SyncError(f"{method} {path} failed after retries: {exc}") from exc
        except requests.RequestException as exc:
            raise SyncError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            detail = payload.get("error", "") if isinstance(payload, dict) else response.text[:200]
            message = f"{method} {path} returned HTTP {response.status_code}: {detail}"
            if response.status_code < 500 and response.status_code not in _AUTH_STATUSES:
                raise RejectedError(message, http_status=response.status_code)
            raise SyncError(message, http_status=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise SyncError(f"{method} {path} returned a non-JSON body") from exc

    # ── Endpoints ────────────────────────────────────────────────────

    def fetch_questions(self, exam_type_id: str, since: int, limit: int) -> QuestionPage:
        """GET one page of approved questions with version > since."""
        body = self._request(
            "GET", f"/exam-types/{exam_type_id}/questions",
            params={"since": since, "limit": limit},
        )
        return parse_question_page(body)

    def get_question_version(self, exam_type_id: str) -> dict:
        body = self._request("GET", f"/exam-types/{exam_type_id}/questions/version")
        try:
            return {
                "latest_version": int(body["latestVersion"]),
                "question_count": int(body.get("questionCount", 0)),
                "last_updated_at": body.get("lastUpdatedAt"),
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise SyncError(f"Malformed version response: {exc}") from exc

    def get_exam_type(self, exam_type_id: str) -> ExamTypeConfig:
        body = self._request("GET", f"/exam-types/{exam_type_id}")
        try:
            return exam_type_from_dict(body)
        except (KeyError, TypeError, ValueError) as exc:
            raise SyncError(f"Malformed exam type response: {exc}") from exc

    def submit_attempt(self, payload: dict) -> dict:
        return self._request("POST", "/exam-attempts", json=payload)

    def get_user_stats(self) -> UserStats:
        return self._parse_stats(self._request("GET", "/user-stats/me"))

    def put_user_stats(self, stats: UserStats) -> UserStats:
        return self._parse_stats(self._request("PUT", "/user-stats/me", json=stats.to_dict()))

    @staticmethod
    def _parse_stats(body: Any) -> UserStats:
        try:
            return stats_from_dict(body)
        except ValidationError as exc:
            raise SyncError(f"Malformed user stats response: {exc}") from exc


def parse_question_page(body: Any) -> QuestionPage:
    """Validate a question-feed response body. Raises SyncError before any write."""
    if not isinstance(body, dict):
        raise SyncError("Question feed response is not an object")
    try:
        questions = [question_from_dict(item) for item in body["questions"]]
        latest_version = int(body["latestVersion"])
        has_more = body["hasMore"]
        next_since = body.get("nextSince")
    except DataCorruptionError as exc:
        raise SyncError(f"Question feed contains an invalid question: {exc}") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise SyncError(f"Malformed question feed response: {exc!r}") from exc

    if not isinstance(has_more, bool):
        raise SyncError("Malformed question feed response: hasMore is not a boolean")
    if next_since is not None:
        if isinstance(next_since, bool) or not isinstance(next_since, int):
            raise SyncError("Malformed question feed response: nextSince is not an integer")
    if has_more and next_since is None:
        raise SyncError("Question feed reports more pages but no nextSince")
    return QuestionPage(
        questions=questions,
        latest_version=latest_version,
        has_more=has_more,
        next_since=next_since if has_more else None,
    )
