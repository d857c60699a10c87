"""
Centralized Scheduler — Registers all periodic background jobs.

Jobs:
  - Pending attempt cloud sync (every 5 minutes)
  - Failed attempt sync retry (every 1 hour)
  - Synced attempt cleanup (3 AM)
"""

from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler

from cloud_sync import run_cleanup, run_failed_sync, run_pending_sync


def init_scheduler(app):
    """Start a centralized background scheduler for all periodic jobs.

    Returns the scheduler instance, or None when SCHEDULER_ENABLED is off.
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        app.logger.info("Scheduler disabled by config.")
        return None

    scheduler = BackgroundScheduler(daemon=True)

    # 1. Pending attempts: every 5 minutes
    scheduler.add_job(
        func=run_pending_sync,
        args=[app],
        trigger="interval",
        minutes=5,
        id="cloud_sync_pending",
        max_instances=1,
        replace_existing=True,
    )

    # 2. Failed attempts with retries left: every hour
    scheduler.add_job(
        func=run_failed_sync,
        args=[app],
        trigger="interval",
        hours=1,
        id="cloud_sync_failed",
        max_instances=1,
        replace_existing=True,
    )

    # 3. Drop old synced attempts: cron at 3 AM
    scheduler.add_job(
        func=run_cleanup,
        args=[app],
        trigger="cron",
        hour=3,
        id="cloud_sync_cleanup",
        replace_existing=True,
    )

    scheduler.start()
    app.logger.info("Centralized scheduler started (pending sync, failed retry, cleanup)")
    return scheduler
