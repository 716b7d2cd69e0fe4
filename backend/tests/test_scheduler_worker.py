from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler

from app.services.job_runner import JobRunResult
from app.worker import scheduler_main


class _DummySession:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_register_jobs_adds_nightly_cron(monkeypatch) -> None:
    monkeypatch.setattr(scheduler_main.settings, "nightly_job_hour", 3)
    monkeypatch.setattr(scheduler_main.settings, "nightly_job_minute", 15)
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler_main.register_jobs(scheduler)

    job = scheduler.get_job(scheduler_main.NIGHTLY_JOB_ID)
    assert job is not None
    assert "hour='3'" in str(job.trigger)
    assert "minute='15'" in str(job.trigger)


def test_nightly_job_runs_all_users_and_closes_session(monkeypatch) -> None:
    session = _DummySession()
    calls = []

    def fake_run(db):
        calls.append(db)
        return JobRunResult(users_processed=2, occurrences_written=9)

    monkeypatch.setattr(scheduler_main, "SessionLocal", lambda: session)
    monkeypatch.setattr(scheduler_main, "run_scheduling_for_all_users", fake_run)

    scheduler_main.run_nightly_scheduling_job()

    assert calls == [session]
    assert session.closed is True


def test_nightly_job_failure_is_logged_not_raised(monkeypatch) -> None:
    session = _DummySession()

    def broken_run(db):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(scheduler_main, "SessionLocal", lambda: session)
    monkeypatch.setattr(scheduler_main, "run_scheduling_for_all_users", broken_run)

    scheduler_main.run_nightly_scheduling_job()

    assert session.closed is True
