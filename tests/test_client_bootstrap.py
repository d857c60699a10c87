"""Tests for client_bootstrap.py — the startup sequence."""

from __future__ import annotations

import random
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from attempt_store import validate_attempt_payload
from client_bootstrap import (
    NO_QUESTIONS_WARNING,
    attempt_payload,
    exam_session_for,
    initialize_client,
    sync_user_stats,
    upload_pending_attempts,
)
from config import ClientConfig
from errors import NotFoundError, RejectedError, SyncError
from exam_config import AWS_CCP
from exam_session import ExamSessionMachine
from models import UPLOAD_PENDING, UPLOAD_SYNCED, QuestionPage, UserStats

SHIPPED_BUNDLE = Path(__file__).parent.parent / "bundles" / "aws-ccp-bundle.json"


@pytest.fixture
def offline_api():
    api = MagicMock()
    api.fetch_questions.side_effect = SyncError("Network unreachable")
    return api


@pytest.fixture
def online_api():
    api = MagicMock()
    api.fetch_questions.return_value = QuestionPage(questions=[], latest_version=0, has_more=False)
    api.submit_attempt.return_value = {"syncStatus": "pending"}
    api.get_user_stats.return_value = UserStats()
    api.put_user_stats.side_effect = lambda stats: stats
    return api


def _complete_attempts(store, count):
    machine = ExamSessionMachine(store, AWS_CCP, rng=random.Random(5))
    ids = []
    for _ in range(count):
        state = machine.start()
        machine.select_answer(state.question_ids[0], ["a"])
        ids.append(machine.submit().attempt_id)
    return ids


class TestInitializeClient:
    def test_offline_and_empty_warns(self, store, offline_api, tmp_path):
        config = ClientConfig(bundle_path=str(tmp_path / "missing.json"))
        report = initialize_client(store, offline_api, config)
        assert report.warning == NO_QUESTIONS_WARNING
        assert report.ready is False
        assert len(report.errors) == 2
        offline_api.submit_attempt.assert_not_called()

    def test_offline_with_bundle_is_silent(self, store, offline_api):
        report = initialize_client(store, offline_api, ClientConfig(bundle_path=str(SHIPPED_BUNDLE)))
        assert report.warning is None
        assert report.bundle.loaded is True
        assert report.question_count == report.bundle.count
        assert report.ready is True
        assert report.sync.success is False

    def test_offline_with_cached_questions_is_silent(self, seeded_store, offline_api, tmp_path):
        report = initialize_client(seeded_store, offline_api, ClientConfig(bundle_path=str(tmp_path / "none.json")))
        assert report.warning is None
        assert report.question_count == 80

    def test_online_uploads_pending_attempts(self, seeded_store, online_api, tmp_path):
        ids = _complete_attempts(seeded_store, 2)
        report = initialize_client(seeded_store, online_api, ClientConfig(bundle_path=str(SHIPPED_BUNDLE)))
        assert report.sync.success is True
        assert report.uploaded_attempts == 2
        assert online_api.submit_attempt.call_count == 2
        assert {seeded_store.get_attempt(i).sync_status for i in ids} == {UPLOAD_SYNCED}

    def test_online_merges_user_stats_both_ways(self, seeded_store, online_api):
        _complete_attempts(seeded_store, 2)
        online_api.get_user_stats.return_value = UserStats(
            total_exams=9, total_questions=40, last_activity_at="2020-01-01T00:00:00.000+00:00",
        )
        report = initialize_client(seeded_store, online_api, ClientConfig(bundle_path=str(SHIPPED_BUNDLE)))
        assert report.stats_synced is True
        online_api.get_user_stats.assert_called_once_with()
        online_api.put_user_stats.assert_called_once()
        local = seeded_store.get_user_stats()
        assert local.total_exams == 9
        assert local.total_questions == 130
        assert online_api.put_user_stats.call_args.args[0] == local

    def test_stats_failure_does_not_abort_startup(self, seeded_store, online_api):
        online_api.get_user_stats.side_effect = SyncError("HTTP 503")
        report = initialize_client(seeded_store, online_api, ClientConfig(bundle_path=str(SHIPPED_BUNDLE)))
        assert report.stats_synced is False
        assert report.ready is True
        online_api.put_user_stats.assert_not_called()

    def test_offline_keeps_attempts_pending(self, seeded_store, offline_api, tmp_path):
        ids = _complete_attempts(seeded_store, 1)
        initialize_client(seeded_store, offline_api, ClientConfig(bundle_path=str(tmp_path / "none.json")))
        assert seeded_store.get_attempt(ids[0]).sync_status == UPLOAD_PENDING


class TestUploadPendingAttempts:
    def test_stops_at_first_failure(self, seeded_store, online_api):
        ids = _complete_attempts(seeded_store, 2)
        online_api.submit_attempt.side_effect = SyncError("HTTP 503")
        assert upload_pending_attempts(seeded_store, online_api) == 0
        assert online_api.submit_attempt.call_count == 1
        assert len(seeded_store.list_attempts_pending_upload()) == len(ids)

    def test_rejected_attempt_is_skipped(self, seeded_store, online_api):
        ids = _complete_attempts(seeded_store, 2)
        online_api.submit_attempt.side_effect = [
            RejectedError("POST /exam-attempts returned HTTP 400: bad payload", http_status=400),
            {"syncStatus": "pending"},
        ]
        assert upload_pending_attempts(seeded_store, online_api) == 1
        assert online_api.submit_attempt.call_count == 2
        assert seeded_store.get_attempt(ids[0]).sync_status == UPLOAD_PENDING
        assert seeded_store.get_attempt(ids[1]).sync_status == UPLOAD_SYNCED

    def test_abandoned_attempts_never_upload(self, seeded_store, online_api):
        machine = ExamSessionMachine(seeded_store, AWS_CCP)
        machine.start()
        machine.abandon()
        assert upload_pending_attempts(seeded_store, online_api) == 0
        online_api.submit_attempt.assert_not_called()

    def test_payload_is_accepted_by_server_validation(self, seeded_store):
        attempt_id = _complete_attempts(seeded_store, 1)[0]
        payload = attempt_payload(seeded_store, seeded_store.get_attempt(attempt_id))
        assert len(payload["answers"]) == 65
        assert payload["answers"][0]["selectedAnswers"] == ["a"]
        assert payload["answers"][0]["isCorrect"] is True
        values = validate_attempt_payload(payload)
        assert values["id"] == attempt_id
        assert values["total_questions"] == 65
        breakdown = payload["domainBreakdown"]
        assert [d["domain"] for d in breakdown] == [d.id for d in AWS_CCP.domains]
        assert sum(d["total"] for d in breakdown) == 65
        assert sum(d["correct"] for d in breakdown) == 1
        assert values["domain_breakdown"] != "[]"


class TestSyncUserStats:
    def test_local_counters_survive_lower_server_values(self, store, online_api):
        store.record_activity(exams=4, questions=200, at="2026-03-05T10:00:00.000+00:00")
        online_api.get_user_stats.return_value = UserStats(total_exams=1, total_practice=3)
        assert sync_user_stats(store, online_api) is True
        pushed = online_api.put_user_stats.call_args.args[0]
        assert (pushed.total_exams, pushed.total_practice, pushed.total_questions) == (4, 3, 200)

    def test_put_failure_keeps_local_merge(self, store, online_api):
        online_api.get_user_stats.return_value = UserStats(total_exams=6)
        online_api.put_user_stats.side_effect = SyncError("HTTP 502")
        assert sync_user_stats(store, online_api) is False
        assert store.get_user_stats().total_exams == 6


class TestExamSessionFor:
    def test_uses_configured_persist_interval(self, seeded_store):
        config = ClientConfig(timer_persist_interval_ms=1000)
        machine = exam_session_for(seeded_store, config, rng=random.Random(3))
        assert machine.exam_type is AWS_CCP
        machine.start()
        assert machine.advance_clock(999).persisted is False
        assert machine.advance_clock(1).persisted is True

    def test_unknown_exam_type(self, store):
        with pytest.raises(NotFoundError):
            exam_session_for(store, ClientConfig(exam_type_id="gcp-ace"))
