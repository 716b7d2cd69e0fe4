"""Dedicated APScheduler worker process."""
from __future__ import annotations

import logging
import signal
import threading
from time import perf_counter

from apscheduler.schedulers.background import BackgroundScheduler

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.job_runner import run_scheduling_for_all_users


logger = logging.getLogger(__name__)

NIGHTLY_JOB_ID = "nightly_scheduling_job"


def main() -> None:
    configure_logging(log_level=settings.log_level, scheduling_log_level=settings.scheduling_log_level)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        register_jobs(scheduler)
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running scheduling job once on startup")
            run_nightly_scheduling_job()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        run_nightly_scheduling_job,
        trigger="cron",
        hour=settings.nightly_job_hour,
        minute=settings.nightly_job_minute,
        id=NIGHTLY_JOB_ID,
        replace_existing=True,
    )
    logger.info(
        "Registered nightly scheduling job (time=%02d:%02d %s)",
        settings.nightly_job_hour,
        settings.nightly_job_minute,
        settings.scheduler_timezone,
    )


def run_nightly_scheduling_job() -> None:
    session = SessionLocal()
    start = perf_counter()
    try:
        with trace("scheduling.nightly", metadata={"job": NIGHTLY_JOB_ID}):
            result = run_scheduling_for_all_users(session)
        log_metric("scheduling.nightly.latency_ms", (perf_counter() - start) * 1000)
        log_metric("scheduling.nightly.occurrences_written", result.occurrences_written)
        logger.info(
            "Nightly scheduling complete: users=%s, occurrences=%s, too_tight=%s, failed=%s",
            result.users_processed,
            result.occurrences_written,
            result.dreams_too_tight,
            result.users_failed,
        )
    except Exception:  # pragma: no cover - defensive guard
        logger.exception("Nightly scheduling job failed")
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
