"""
Question Sync Engine — version-bounded incremental pull of the question bank.

Each pull asks the server for approved questions with version > since,
upserts them into the local store, and only then advances the
LAST_SYNC_VERSION watermark. The watermark never moves backwards, so a
pull that fails mid-way can simply be retried with the same `since`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from errors import CloudPrepError, SyncError
from helpers import now_iso
from local_store import LocalStore
from models import LAST_SYNC_AT, LAST_SYNC_VERSION, QuestionPage

logger = logging.getLogger(__name__)


@dataclass
class PullResult:
    page: QuestionPage
    added: int
    updated: int
    watermark: int


@dataclass
class SyncOutcome:
    success: bool
    questions_added: int = 0
    questions_updated: int = 0
    latest_version: int = 0
    pages: int = 0
    error: Optional[str] = None


class QuestionSyncEngine:
    """Pulls question pages from the API into a LocalStore."""

    MAX_PAGES = 1000

    def __init__(self, store: LocalStore, api, exam_type_id: str, page_size: int = 100):
        self.store = store
        self.api = api
        self.exam_type_id = exam_type_id
        self.page_size = page_size

    def get_latest_local_version(self) -> int:
        """Current LAST_SYNC_VERSION watermark, 0 when never synced."""
        return self.store.get_meta_int(LAST_SYNC_VERSION) or 0

    def pull(self, exam_type_id: str | None = None, since: int | None = None,
             limit: int | None = None) -> PullResult:
        """Fetch and apply one page.

        Raises SyncError on network, HTTP or payload failure; in that case
        neither the questions nor the watermark have been touched.
        """
        exam_type_id = exam_type_id or self.exam_type_id
        if since is None:
            since = self.get_latest_local_version()
        limit = limit or self.page_size

        page = self.api.fetch_questions(exam_type_id, since, limit)
        added, updated = self.store.upsert_questions(page.questions)

        target = page.next_since if page.has_more else page.latest_version
        watermark = self.get_latest_local_version()
        if target is not None and target > watermark:
            self.store.set_meta(LAST_SYNC_VERSION, target)
            watermark = target
        self.store.set_meta(LAST_SYNC_AT, now_iso())

        logger.info(
            "Pulled %d questions for %s since v%d (added=%d updated=%d, watermark=v%d, more=%s)",
            len(page.questions), exam_type_id, since, added, updated, watermark, page.has_more,
        )
        return PullResult(page=page, added=added, updated=updated, watermark=watermark)

    def sync_all(self) -> SyncOutcome:
        """Pull pages until the feed reports no more. Never raises for sync failures."""
        outcome = SyncOutcome(success=False)
        since = self.get_latest_local_version()
        try:
            while outcome.pages < self.MAX_PAGES:
                result = self.pull(since=since)
                outcome.pages += 1
                outcome.questions_added += result.added
                outcome.questions_updated += result.updated
                outcome.latest_version = result.page.latest_version
                if not result.page.has_more:
                    break
                if result.page.next_since <= since:
                    raise SyncError(
                        f"Question feed did not advance past v{since}"
                    )
                since = result.page.next_since
            else:
                raise SyncError(f"Question feed exceeded {self.MAX_PAGES} pages")
        except CloudPrepError as exc:
            outcome.error = str(exc)
            logger.warning("Question sync failed after %d page(s): %s", outcome.pages, exc)
            return outcome

        outcome.success = True
        logger.info(
            "Question sync complete: %d page(s), %d added, %d updated, latest v%d",
            outcome.pages, outcome.questions_added, outcome.questions_updated, outcome.latest_version,
        )
        return outcome

    def check_for_updates(self) -> dict:
        """Compare the server's latest version with the local watermark.

        Raises SyncError when the server cannot be reached.
        """
        remote = self.api.get_question_version(self.exam_type_id)
        local = self.get_latest_local_version()
        return {
            "has_updates": remote["latest_version"] > local,
            "latest_version": remote["latest_version"],
            "local_version": local,
            "question_count": remote["question_count"],
        }
