import httpx
import pytest

from apps.orders import errors
from apps.orders.http_adapters import HttpProductsClient, products_breaker


class R:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body if body is not None else []
    def json(self): return self._body


def test_single_attempt_by_default(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1
    calls = {"n": 0}

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        return R(500)

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(errors.RemoteUnavailable):
        HttpProductsClient(base_url="http://x").validate_products(["P1"])
    assert calls["n"] == 1


def test_products_retries_on_5xx_when_enabled(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    calls = {"n": 0}

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return R(503)
        assert headers["X-Retry-Count"] == "1"
        return R(200, [{"id": "P1", "name": "Keyboard", "price": 10}])

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)

    products = HttpProductsClient(base_url="http://x").validate_products(["P1"])
    assert [p.id for p in products] == ["P1"]
    assert calls["n"] == 2


def test_no_retry_on_business_rejection(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        return R(422, {"invalidIds": ["X"]})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(errors.ValidationError):
        HttpProductsClient(base_url="http://x").validate_products(["X"])
    assert calls["n"] == 1
    assert products_breaker.state == "CLOSED"


def test_circuit_opens_after_threshold(monkeypatch):
    calls = {"n": 0}

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        raise httpx.ConnectError("down")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    monkeypatch.setattr(products_breaker, "fail_threshold", 2)
    client = HttpProductsClient(base_url="http://x")
    for _ in range(2):
        with pytest.raises(errors.RemoteUnavailable):
            client.validate_products(["P1"])
    assert products_breaker.state == "OPEN"

    with pytest.raises(errors.RemoteUnavailable) as e:
        client.validate_products(["P1"])
    assert "circuit is open" in e.value.message
    assert calls["n"] == 2


def test_half_open_probe_closes_circuit(monkeypatch):
    monkeypatch.setattr(products_breaker, "fail_threshold", 1)
    monkeypatch.setattr(products_breaker, "reset_timeout", 0.0)

    def failing(self, url, json=None, headers=None, **kwargs):
        raise httpx.ConnectError("down")

    monkeypatch.setattr(httpx.Client, "post", failing, raising=True)
    client = HttpProductsClient(base_url="http://x")
    with pytest.raises(errors.RemoteUnavailable):
        client.validate_products(["P1"])
    assert products_breaker.state == "HALF_OPEN"

    monkeypatch.setattr(httpx.Client, "post", lambda self, url, json=None, headers=None, **kw: R(200, []))
    assert client.validate_products(["P1"]) == []
    assert products_breaker.state == "CLOSED"
