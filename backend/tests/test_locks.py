from __future__ import annotations

import gc
import threading
import time
from uuid import UUID, uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.services import locks
from app.services.locks import advisory_key, user_schedule_lock


def _session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def test_advisory_key_fits_signed_bigint() -> None:
    for user_id in (uuid4(), UUID(int=(1 << 128) - 1), UUID(int=0)):
        key = advisory_key(user_id)
        assert -(1 << 63) <= key < (1 << 63)
    assert advisory_key(UUID(int=5)) == 5
    assert advisory_key(UUID(int=(1 << 64) - 1)) == -1


def test_same_user_runs_are_serialized() -> None:
    Session = _session()
    user_id = uuid4()
    events: list[str] = []

    def worker(name: str) -> None:
        session = Session()
        try:
            with user_schedule_lock(session, user_id):
                events.append(f"{name}:enter")
                time.sleep(0.05)
                events.append(f"{name}:exit")
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(name,)) for name in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(events) == 4
    assert events[0].split(":")[0] == events[1].split(":")[0]
    assert events[2].split(":")[0] == events[3].split(":")[0]


def test_different_users_do_not_block_each_other() -> None:
    Session = _session()
    session = Session()
    try:
        with user_schedule_lock(session, uuid4()):
            with user_schedule_lock(session, uuid4()):
                entered = True
    finally:
        session.close()

    assert entered is True


def test_local_lock_is_released_after_the_run() -> None:
    Session = _session()
    session = Session()
    user_id = uuid4()
    try:
        with user_schedule_lock(session, user_id):
            assert user_id in locks._local_locks
    finally:
        session.close()

    gc.collect()
    assert user_id not in locks._local_locks
