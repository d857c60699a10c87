"""
Client startup sequence.

1. Import the bundled question bank on first launch.
2. Pull question updates from the server.
3. Upload completed exam attempts that are waiting for the server.
4. Merge the user stats row with the server's copy.

Network failures never abort startup. Only when the sync fails *and* the
device holds no questions at all does the report carry a warning, because
no exam can be started until a sync succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

from api_client import ApiClient
from bundle_loader import BundleLoader, BundleLoadResult
from config import ClientConfig
from errors import DataCorruptionError, NotFoundError, RejectedError, SyncError
from exam_config import get_exam_type
from exam_session import ExamSessionMachine
from local_store import LocalStore
from logging_config import configure_logging
from models import ExamAttempt, ExamTypeConfig
from question_sync import QuestionSyncEngine, SyncOutcome
from scoring import score_answers

logger = logging.getLogger(__name__)

NO_QUESTIONS_WARNING = (
    "No questions are available offline and the question bank could not be "
    "downloaded. Connect to the internet and try again."
)


@dataclass
class StartupReport:
    bundle: Optional[BundleLoadResult] = None
    sync: Optional[SyncOutcome] = None
    question_count: int = 0
    uploaded_attempts: int = 0
    stats_synced: bool = False
    warning: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return self.question_count > 0


def attempt_payload(store: LocalStore, attempt: ExamAttempt) -> dict:
    """camelCase body for POST /exam-attempts.

    The per-domain breakdown is rebuilt from the stored answers. Raises
    DataCorruptionError when an answer points at a question no longer in
    the local bank.
    """
    answers = store.get_answers(attempt.id)
    exam_type = get_exam_type(attempt.exam_type_id)
    summary = score_answers(
        answers,
        store.get_questions([a.question_id for a in answers]),
        exam_type.passing_score if exam_type else 0,
        domain_order=[d.id for d in exam_type.domains] if exam_type else None,
    )
    return {
        "id": attempt.id,
        "examTypeId": attempt.exam_type_id,
        "startedAt": attempt.started_at,
        "completedAt": attempt.completed_at,
        "score": attempt.score,
        "passed": attempt.passed,
        "totalQuestions": attempt.total_questions,
        "remainingTimeMs": attempt.remaining_time_ms,
        "answers": [
            {
                "questionId": a.question_id,
                "orderIndex": a.order_index,
                "selectedAnswers": a.selected_answers,
                "isCorrect": bool(a.is_correct),
                "isFlagged": a.is_flagged,
                "answeredAt": a.answered_at,
            }
            for a in answers
        ],
        "domainBreakdown": [asdict(d) for d in summary.domain_breakdown],
    }


def upload_pending_attempts(store: LocalStore, api: ApiClient) -> int:
    """POST every completed attempt not yet accepted by the server.

    An attempt the server rejects (4xx) or that cannot be rebuilt is skipped
    and stays pending. Any other failure stops the run; the remaining
    attempts stay pending for the next one.
    """
    uploaded = 0
    for attempt in store.list_attempts_pending_upload():
        try:
            api.submit_attempt(attempt_payload(store, attempt))
        except (RejectedError, DataCorruptionError) as exc:
            logger.warning("Attempt %s skipped: %s", attempt.id, exc)
            continue
        except SyncError as exc:
            logger.info("Attempt upload deferred (%d uploaded): %s", uploaded, exc)
            break
        store.mark_attempt_uploaded(attempt.id)
        uploaded += 1
    if uploaded:
        logger.info("Uploaded %d completed attempt(s)", uploaded)
    return uploaded


def sync_user_stats(store: LocalStore, api: ApiClient) -> bool:
    """Merge the server's stats row into the local one and push the result back."""
    try:
        remote = api.get_user_stats()
        merged = store.merge_user_stats(remote)
        api.put_user_stats(merged)
    except SyncError as exc:
        logger.info("User stats sync deferred: %s", exc)
        return False
    logger.info("User stats synced: %d exams, %d practice sessions, %d questions",
                merged.total_exams, merged.total_practice, merged.total_questions)
    return True


def exam_session_for(store: LocalStore, config: ClientConfig,
                     exam_type: ExamTypeConfig | None = None, **kwargs) -> ExamSessionMachine:
    """ExamSessionMachine for the configured exam type and timer persist interval."""
    exam_type = exam_type or get_exam_type(config.exam_type_id)
    if exam_type is None:
        raise NotFoundError(f"Exam type {config.exam_type_id} is not configured")
    return ExamSessionMachine(store, exam_type, persist_interval_ms=config.timer_persist_interval_ms,
                              **kwargs)


def initialize_client(store: LocalStore, api: ApiClient, config: ClientConfig,
                      bundle_loader: BundleLoader | None = None) -> StartupReport:
    report = StartupReport()

    loader = bundle_loader or BundleLoader(store, config.bundle_path)
    try:
        report.bundle = loader.load_bundled_questions()
    except DataCorruptionError as exc:
        logger.error("Bundled question bank could not be loaded: %s", exc)
        report.errors.append(str(exc))

    engine = QuestionSyncEngine(store, api, config.exam_type_id, page_size=config.sync_page_size)
    report.sync = engine.sync_all()
    report.question_count = store.count_questions()

    if not report.sync.success:
        report.errors.append(report.sync.error or "sync failed")
        if report.question_count == 0:
            report.warning = NO_QUESTIONS_WARNING
            logger.warning("Startup sync failed with an empty question bank: %s", report.sync.error)
        else:
            logger.info("Startup sync failed; continuing offline with %d cached questions",
                        report.question_count)
    else:
        report.uploaded_attempts = upload_pending_attempts(store, api)
        report.stats_synced = sync_user_stats(store, api)

    return report


def main() -> None:
    config = ClientConfig.from_env()
    configure_logging(config.log_format, config.log_level)
    with LocalStore(config.local_db_path) as store, ApiClient.from_config(config) as api:
        report = initialize_client(store, api, config)
    if report.warning:
        logger.warning(report.warning)
    logger.info("Client ready: %d questions, %d attempt(s) uploaded",
                report.question_count, report.uploaded_attempts)


if __name__ == "__main__":
    main()
