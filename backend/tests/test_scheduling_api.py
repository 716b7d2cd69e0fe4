from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.deps import get_db
from app.db.models.action import Action
from app.db.models.action_occurrence import ActionOccurrence
from app.db.models.area import Area
from app.db.models.dream import Dream
from app.db.models.scheduling_log import SchedulingLog
from app.db.models.user import User
from app.main import app


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    User.__table__.create(bind=engine)
    Dream.__table__.create(bind=engine)
    Area.__table__.create(bind=engine)
    Action.__table__.create(bind=engine)
    ActionOccurrence.__table__.create(bind=engine)
    SchedulingLog.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def _today():
    return datetime.now(timezone.utc).date()


def _seed_dream(session_factory, *, start="today", actions=2):
    session = session_factory()
    try:
        user_id = uuid4()
        session.add(User(id=user_id))
        session.flush()
        dream = Dream(
            user_id=user_id,
            title="Write a novel",
            start_date=_today() if start == "today" else start,
        )
        session.add(dream)
        session.flush()
        area = Area(dream_id=dream.id, title="Drafting", position=0)
        session.add(area)
        session.flush()
        for position in range(actions):
            session.add(
                Action(
                    area_id=area.id,
                    dream_id=dream.id,
                    user_id=user_id,
                    title=f"Chapter {position + 1}",
                    position=position,
                )
            )
        session.commit()
        return user_id, dream.id
    finally:
        session.close()


def test_schedule_dream_success(client):
    test_client, session_factory = client
    user_id, dream_id = _seed_dream(session_factory)

    resp = test_client.post(f"/dreams/{dream_id}/schedule", json={"user_id": str(user_id)})
    assert resp.status_code == 200
    data = resp.json()
    assert data["dream_id"] == str(dream_id)
    assert data["success"] is True
    assert data["scheduled_count"] == 2
    assert data["auto_compacted"] is True
    assert data["too_tight"] is False
    assert data["window_start"] == _today().isoformat()
    assert data["request_id"]
    assert [warning["code"] for warning in data["warnings"]] == ["auto_compacted"]

    session = session_factory()
    try:
        assert session.query(ActionOccurrence).filter(ActionOccurrence.dream_id == dream_id).count() == 2
        log = session.query(SchedulingLog).one()
        assert log.request_id == data["request_id"]
    finally:
        session.close()


def test_schedule_dream_not_found(client):
    test_client, session_factory = client
    user_id, _ = _seed_dream(session_factory)

    resp = test_client.post(f"/dreams/{uuid4()}/schedule", json={"user_id": str(user_id)})
    assert resp.status_code == 404


def test_schedule_dream_forbidden_for_other_user(client):
    test_client, session_factory = client
    _, dream_id = _seed_dream(session_factory)

    resp = test_client.post(f"/dreams/{dream_id}/schedule", json={"user_id": str(uuid4())})
    assert resp.status_code == 403


def test_schedule_dream_invalid_input(client):
    test_client, session_factory = client
    user_id, dream_id = _seed_dream(session_factory, start=None)
    empty_user, empty_dream = _seed_dream(session_factory, actions=0)

    resp = test_client.post(f"/dreams/{dream_id}/schedule", json={"user_id": str(user_id)})
    assert resp.status_code == 422
    assert "start date" in resp.json()["detail"]

    resp = test_client.post(f"/dreams/{empty_dream}/schedule", json={"user_id": str(empty_user)})
    assert resp.status_code == 422

    resp = test_client.post(
        f"/dreams/{dream_id}/schedule",
        json={"user_id": str(user_id), "timezone": "Nowhere/Special"},
    )
    assert resp.status_code == 422


def test_reschedule_updates_end_date(client):
    test_client, session_factory = client
    user_id, dream_id = _seed_dream(session_factory)
    assert test_client.post(f"/dreams/{dream_id}/schedule", json={"user_id": str(user_id)}).status_code == 200

    new_end = _today() + timedelta(days=30)
    resp = test_client.post(
        f"/dreams/{dream_id}/reschedule",
        json={"user_id": str(user_id), "end_date": new_end.isoformat(), "daily_minutes": 60},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["deleted_count"] == 0
    assert data["anchors_kept"] == 2
    assert data["scheduled_count"] == 0
    assert data["request_id"]

    session = session_factory()
    try:
        dream = session.get(Dream, dream_id)
        assert dream.end_date == new_end
        assert dream.daily_minutes == 60
        assert session.query(ActionOccurrence).count() == 2
    finally:
        session.close()


def test_reschedule_validation_errors(client):
    test_client, session_factory = client
    user_id, dream_id = _seed_dream(session_factory)

    resp = test_client.post(
        f"/dreams/{dream_id}/reschedule",
        json={"user_id": str(user_id), "daily_minutes": 0},
    )
    assert resp.status_code == 422

    resp = test_client.post(
        f"/dreams/{dream_id}/reschedule",
        json={"user_id": str(user_id), "repeat_overrides": {str(uuid4()): 2}},
    )
    assert resp.status_code == 422

    resp = test_client.post(f"/dreams/{uuid4()}/reschedule", json={"user_id": str(user_id)})
    assert resp.status_code == 404
