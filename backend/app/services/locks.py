"""Per-user serialization of scheduling runs."""
from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# An entry lives only while some run holds or waits on the lock.
_local_locks: "weakref.WeakValueDictionary[UUID, threading.Lock]" = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()


def advisory_key(user_id: UUID) -> int:
    """Signed 64-bit key derived from the user id, as pg_advisory_xact_lock expects."""
    value = user_id.int & 0xFFFFFFFFFFFFFFFF
    return value - (1 << 64) if value >= (1 << 63) else value


def _local_lock(user_id: UUID) -> threading.Lock:
    with _registry_lock:
        lock = _local_locks.get(user_id)
        if lock is None:
            lock = threading.Lock()
            _local_locks[user_id] = lock
        return lock


@contextmanager
def user_schedule_lock(db: Session, user_id: UUID) -> Iterator[None]:
    """
    Hold the user's scheduling lock for the duration of the block.

    PostgreSQL uses a transaction-scoped advisory lock, released on commit or
    rollback. Other dialects fall back to an in-process lock per user.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(user_id)})
        logger.debug("Acquired advisory scheduling lock for user %s", user_id)
        yield
        return

    lock = _local_lock(user_id)
    with lock:
        logger.debug("Acquired local scheduling lock for user %s", user_id)
        yield
