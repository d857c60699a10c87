"""Tests for question_bank.py and the exam-types blueprint."""

from __future__ import annotations

import pytest

from errors import NotFoundError
from question_bank import QuestionBankService


@pytest.fixture
def bank(db):
    return QuestionBankService(db)


def _seed(bank, make_question, versions, status="approved"):
    for i, v in enumerate(versions):
        bank.upsert_question(make_question(f"q{i:03d}", version=v), "aws-ccp", status=status)


class TestGetQuestions:
    def test_filters_by_status_and_since(self, bank, make_question):
        _seed(bank, make_question, [1, 2, 3])
        bank.upsert_question(make_question("draft-1", version=9), "aws-ccp", status="draft")
        page = bank.get_questions("aws-ccp", since=1, limit=10)
        assert [q.id for q in page.questions] == ["q001", "q002"]
        assert page.has_more is False
        assert page.next_since is None
        assert page.latest_version == 3

    def test_ascending_version_order(self, bank, make_question):
        _seed(bank, make_question, [5, 2, 9, 1])
        page = bank.get_questions("aws-ccp", since=0, limit=10)
        assert [q.version for q in page.questions] == [1, 2, 5, 9]

    def test_limit_plus_one_pagination(self, bank, make_question):
        _seed(bank, make_question, [1, 2, 3, 4, 5])
        page = bank.get_questions("aws-ccp", since=0, limit=2)
        assert [q.version for q in page.questions] == [1, 2]
        assert page.has_more is True
        assert page.next_since == 2
        assert page.latest_version == 5

        page = bank.get_questions("aws-ccp", since=page.next_since, limit=2)
        assert [q.version for q in page.questions] == [3, 4]
        page = bank.get_questions("aws-ccp", since=page.next_since, limit=2)
        assert [q.version for q in page.questions] == [5]
        assert page.has_more is False

    def test_exact_fit_has_no_more(self, bank, make_question):
        _seed(bank, make_question, [1, 2])
        page = bank.get_questions("aws-ccp", since=0, limit=2)
        assert len(page.questions) == 2
        assert page.has_more is False

    def test_page_never_splits_a_version_group(self, bank, make_question):
        _seed(bank, make_question, [1, 2, 2, 2, 3])
        page = bank.get_questions("aws-ccp", since=0, limit=3)
        assert [q.version for q in page.questions] == [1]
        assert page.next_since == 1

        page = bank.get_questions("aws-ccp", since=1, limit=3)
        assert [q.version for q in page.questions] == [2, 2, 2]
        assert page.has_more is True
        assert page.next_since == 2

    def test_oversized_version_group_widens_page(self, bank, make_question):
        _seed(bank, make_question, [1] * 5 + [2])
        page = bank.get_questions("aws-ccp", since=0, limit=2)
        assert len(page.questions) == 5
        assert page.has_more is True
        assert page.next_since == 1

        page = bank.get_questions("aws-ccp", since=1, limit=2)
        assert [q.version for q in page.questions] == [2]
        assert page.has_more is False

    def test_paging_collects_every_question(self, bank, make_question):
        versions = [1, 1, 1, 2, 3, 3, 4, 4, 4, 4, 5]
        _seed(bank, make_question, versions)
        seen, since = [], 0
        while True:
            page = bank.get_questions("aws-ccp", since=since, limit=3)
            seen.extend(q.id for q in page.questions)
            if not page.has_more:
                break
            since = page.next_since
        assert sorted(seen) == sorted(f"q{i:03d}" for i in range(len(versions)))

    @pytest.mark.parametrize("requested,expected", [(None, 100), (0, 1), (-5, 1), (10_000, 500), (42, 42)])
    def test_limit_clamped(self, bank, requested, expected):
        assert bank.clamp_limit(requested) == expected

    def test_unknown_exam_type(self, bank):
        with pytest.raises(NotFoundError):
            bank.get_questions("gcp-ace", since=0)

    def test_empty_bank(self, bank):
        page = bank.get_questions("aws-ccp", since=0)
        assert page.questions == []
        assert page.latest_version == 0
        assert page.has_more is False


class TestAuthoring:
    def test_approve_assigns_next_version(self, bank, make_question):
        _seed(bank, make_question, [3])
        bank.upsert_question(make_question("new"), "aws-ccp", status="pending")
        assert bank.approve_question("new", approved_by="admin") == 4
        page = bank.get_questions("aws-ccp", since=3)
        assert [q.id for q in page.questions] == ["new"]

    def test_archive_hides_question(self, bank, make_question):
        _seed(bank, make_question, [1, 2])
        bank.archive_question("q001")
        assert bank.get_version("aws-ccp")["questionCount"] == 1

    def test_get_exam_type(self, bank):
        exam_type = bank.get_exam_type("aws-ccp")
        assert exam_type.question_count == 65
        assert [d.question_count for d in exam_type.domains] == [16, 20, 22, 7]


class TestExamTypeRoutes:
    def test_requires_token(self, client):
        resp = client.get("/exam-types/aws-ccp/questions")
        assert resp.status_code == 401

    def test_rejects_bad_token(self, client):
        resp = client.get("/exam-types/aws-ccp", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_exam_type(self, client, auth_headers):
        resp = client.get("/exam-types/aws-ccp", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["passingScore"] == 70
        assert data["timeLimit"] == 90
        assert {d["id"] for d in data["domains"]} == {"cloud-concepts", "security", "technology", "billing"}

    def test_unknown_exam_type_404(self, client, auth_headers):
        resp = client.get("/exam-types/nope", headers=auth_headers)
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_questions_wire_format(self, client, auth_headers, bank, make_question):
        _seed(bank, make_question, [1, 2, 3])
        resp = client.get("/exam-types/aws-ccp/questions?since=0&limit=2", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["hasMore"] is True
        assert data["nextSince"] == 2
        assert data["latestVersion"] == 3
        assert set(data["questions"][0]) >= {"id", "correctAnswers", "version", "options"}

    def test_last_page_omits_next_since(self, client, auth_headers, bank, make_question):
        _seed(bank, make_question, [1])
        data = client.get("/exam-types/aws-ccp/questions", headers=auth_headers).get_json()
        assert data["hasMore"] is False
        assert "nextSince" not in data

    def test_limit_clamped_not_rejected(self, client, auth_headers):
        resp = client.get("/exam-types/aws-ccp/questions?limit=9999", headers=auth_headers)
        assert resp.status_code == 200

    def test_non_numeric_since_400(self, client, auth_headers):
        resp = client.get("/exam-types/aws-ccp/questions?since=abc", headers=auth_headers)
        assert resp.status_code == 400

    def test_version_endpoint(self, client, auth_headers, bank, make_question):
        _seed(bank, make_question, [1, 7])
        data = client.get("/exam-types/aws-ccp/questions/version", headers=auth_headers).get_json()
        assert data["latestVersion"] == 7
        assert data["questionCount"] == 2


class TestSeed:
    def test_seeds_shipped_bundle(self, db, bank):
        from pathlib import Path
        from seed_questions import seed

        bundle = Path(__file__).parent.parent / "bundles" / "aws-ccp-bundle.json"
        result = seed(db, str(bundle))
        assert result["questions"] == 12
        assert result["latest_version"] == result["bundle_version"]
        assert bank.get_version("aws-ccp")["questionCount"] == 12

        again = seed(db, str(bundle))
        assert again["latest_version"] == result["latest_version"]
        assert bank.get_version("aws-ccp")["questionCount"] == 12

    def test_cli_app_has_no_scheduler(self, monkeypatch):
        from seed_questions import build_app

        monkeypatch.setenv("FLASK_ENV", "development")
        cli_app = build_app()
        assert cli_app.config["TESTING"] is False
        assert cli_app.config["SCHEDULER_ENABLED"] is False
        assert cli_app.extensions["scheduler"] is None
