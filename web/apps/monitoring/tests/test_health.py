import pytest

from apps.orders.http_adapters import payments_breaker


@pytest.mark.django_db
def test_health_reports_db_and_circuits(client):
    r = client.get("/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"] == {
        "db": {"ok": True},
        "products": {"circuit": "CLOSED"},
        "payments": {"circuit": "CLOSED"},
    }
    assert r.headers["X-Request-ID"]


@pytest.mark.django_db
def test_health_shows_open_circuit(client, monkeypatch):
    monkeypatch.setattr(payments_breaker, "fail_threshold", 1)
    payments_breaker.on_failure()
    body = client.get("/health/").json()
    assert body["components"]["payments"] == {"circuit": "OPEN"}
    assert body["ok"] is True


@pytest.mark.django_db
def test_request_id_is_echoed(client):
    r = client.get("/health/", HTTP_X_REQUEST_ID="abc-123")
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc-123"
