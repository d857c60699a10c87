"""
Cloud Sync Service — moves uploaded exam attempts into durable storage.

Two passes, both safe to rerun because they select by sync_status:

  process_pending_sync()  pending attempts, written in groups of
                          SYNC_CONCURRENCY; a group fully settles before
                          the next one starts.
  process_failed_sync()   failed attempts with sync_retries below
                          SYNC_MAX_RETRIES, one at a time, each preceded by
                          an exponential delay (base * 2^retries).

Storage writes run on worker threads; every database read and write stays
on the calling thread.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Callable

from attempt_store import ExamAttemptStore
from helpers import to_iso, utcnow
from models import SyncResult

logger = logging.getLogger(__name__)


class SyncService:
    def __init__(self, store: ExamAttemptStore, storage, *, batch_size: int = 100,
                 concurrency: int = 10, max_retries: int = 12, base_delay_ms: int = 5000,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.storage = storage
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.sleep = sleep

    @classmethod
    def from_config(cls, config, db) -> SyncService:
        from cloud_storage import get_cloud_storage

        return cls(
            ExamAttemptStore(db),
            get_cloud_storage(config),
            batch_size=config.get("SYNC_BATCH_SIZE", 100),
            concurrency=config.get("SYNC_CONCURRENCY", 10),
            max_retries=config.get("SYNC_MAX_RETRIES", 12),
            base_delay_ms=config.get("SYNC_RETRY_BASE_DELAY_MS", 5000),
        )

    def retry_delay_ms(self, retries: int) -> int:
        return self.base_delay_ms * (2 ** retries)

    def sync_attempt(self, attempt: dict, result: SyncResult | None = None,
                     increment_retries: bool = False) -> bool:
        """Archive a single attempt and record the outcome."""
        result = result if result is not None else SyncResult()
        try:
            self.storage.write(attempt)
        except Exception as exc:
            logger.warning("Cloud sync failed for attempt %s: %s", attempt["id"], exc)
            return self._settle(attempt, exc, result, increment_retries)
        return self._settle(attempt, None, result, increment_retries)

    def _settle(self, attempt: dict, exc: BaseException | None, result: SyncResult,
                increment_retries: bool = False) -> bool:
        if exc is None:
            self.store.mark_synced(attempt["id"])
            result.synced += 1
            return True
        self.store.mark_failed(attempt["id"], str(exc), increment_retries=increment_retries)
        result.failed += 1
        result.errors.append({"attemptId": attempt["id"], "error": str(exc)})
        return False

    def process_pending_sync(self) -> SyncResult:
        result = SyncResult()
        attempts = self.store.list_pending(self.batch_size)
        if not attempts:
            return result

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="cloud-sync") as pool:
            for start in range(0, len(attempts), self.concurrency):
                group = attempts[start:start + self.concurrency]
                futures = [(attempt, pool.submit(self.storage.write, attempt)) for attempt in group]
                for attempt, future in futures:
                    self._settle(attempt, future.exception(), result)

        logger.info("Pending sync pass: %d synced, %d failed", result.synced, result.failed)
        return result

    def process_failed_sync(self) -> SyncResult:
        result = SyncResult()
        attempts = self.store.list_retryable(self.max_retries, self.batch_size)
        for attempt in attempts:
            delay_ms = self.retry_delay_ms(attempt["syncRetries"])
            if delay_ms:
                self.sleep(delay_ms / 1000)
            if self.sync_attempt(attempt, result, increment_retries=True):
                result.retried += 1
            elif attempt["syncRetries"] + 1 >= self.max_retries:
                logger.error("Attempt %s exhausted %d sync retries: %s",
                             attempt["id"], self.max_retries, result.errors[-1]["error"])

        if attempts:
            logger.info("Failed sync pass: %d recovered, %d still failing", result.synced, result.failed)
        return result

    def get_sync_statistics(self) -> dict[str, int]:
        return self.store.statistics()

    def cleanup_old_synced_records(self, days_old: int = 30) -> int:
        cutoff = to_iso(utcnow() - timedelta(days=days_old))
        deleted = self.store.delete_synced_before(cutoff)
        if deleted:
            logger.info("Deleted %d synced attempts older than %d days", deleted, days_old)
        return deleted


# ── Scheduler entry points ──────────────────────────────────

def _run(app, action: str) -> None:
    with app.app_context():
        from database import ensure_db, get_db

        try:
            ensure_db()
            service = SyncService.from_config(app.config, get_db())
            if action == "pending":
                service.process_pending_sync()
            elif action == "failed":
                service.process_failed_sync()
            else:
                service.cleanup_old_synced_records(app.config.get("SYNC_RETENTION_DAYS", 30))
        except Exception as e:
            app.logger.error("Cloud sync job '%s' failed: %s", action, e)


def run_pending_sync(app) -> None:
    _run(app, "pending")


def run_failed_sync(app) -> None:
    _run(app, "failed")


def run_cleanup(app) -> None:
    _run(app, "cleanup")
