from fastapi.testclient import TestClient


def _get_client() -> TestClient:
    from app.main import app

    return TestClient(app)


def test_health_endpoint_returns_ok() -> None:
    client = _get_client()
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_headers_added_to_every_response() -> None:
    client = _get_client()
    response = client.get("/health")

    assert response.headers.get("X-Request-Id")
    elapsed = response.headers.get("X-Response-Time-Ms")
    assert elapsed is not None
    assert float(elapsed) >= 0


def test_request_id_echoed_even_for_unknown_routes() -> None:
    client = _get_client()
    req_id = "dreamplan-request-42"
    response = client.get("/does-not-exist", headers={"X-Request-Id": req_id})

    assert response.status_code == 404
    assert response.headers.get("X-Request-Id") == req_id
