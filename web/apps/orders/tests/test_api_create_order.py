"""API tests for the create-order endpoint.

These tests exercise the orders HTTP API for the main scenarios: successful
creation with a payment session, unknown products, catalog outage, payment
session failure and payload validation errors. They rely on in-process
stubs from ``apps.orders.adapters`` for deterministic behavior.
"""
import pytest
from decimal import Decimal

from apps.orders import adapters, errors
from apps.orders.domain import Product
from apps.orders.models import OrderItemModel, OrderModel


CREATE_URL = "/api/orders/"


@pytest.mark.django_db
def test_create_order_returns_order_and_payment_session(client):
    """P1 x2 (10) + P2 x1 (5) -> 25 over 3 items, pending, with a session."""
    payload = {"items": [{"productId": "P1", "quantity": 2}, {"productId": "P2", "quantity": 1}]}
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 201
    body = r.json()

    order = body["order"]
    assert order["totalAmount"] == 25.0
    assert order["totalItems"] == 3
    assert order["status"] == "PENDING"
    assert order["paid"] is False
    assert order["paidAt"] is None
    assert {(i["productId"], i["name"], i["price"]) for i in order["items"]} == {
        ("P1", "Mechanical keyboard", 10.0),
        ("P2", "USB cable", 5.0),
    }
    assert body["paymentSession"]["orderId"] == order["id"]


@pytest.mark.django_db
def test_create_order_ignores_client_supplied_price(client):
    payload = {"items": [{"productId": "P1", "quantity": 1, "price": 0.01}]}
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 201
    assert r.json()["order"]["totalAmount"] == 10.0


@pytest.mark.django_db
def test_create_order_unknown_product_persists_nothing(client):
    """Returns 400 INVALID_PRODUCTS and leaves the store untouched."""
    payload = {"items": [{"productId": "P1", "quantity": 1}, {"productId": "GHOST", "quantity": 1}]}
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PRODUCTS"
    assert r.json()["invalidIds"] == ["GHOST"]
    assert OrderModel.objects.count() == 0
    assert OrderItemModel.objects.count() == 0


@pytest.mark.django_db
def test_create_order_catalog_unavailable(client, monkeypatch):
    """Returns 503 when the catalog cannot be reached; nothing is stored."""
    def down(self, ids):
        raise errors.RemoteUnavailable("products down", service="products")
    monkeypatch.setattr(adapters.ProductsStub, "validate_products", down)

    r = client.post(CREATE_URL, data={"items": [{"productId": "P1", "quantity": 1}]}, content_type="application/json")
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_create_order_session_failure_keeps_order(client, monkeypatch):
    """Payment session failure -> 503 with orderId; the order stays pending."""
    def down(self, order, currency):
        raise errors.RemoteUnavailable("payments down", service="payments")
    monkeypatch.setattr(adapters.PaymentsStub, "create_payment_session", down)

    r = client.post(CREATE_URL, data={"items": [{"productId": "P1", "quantity": 1}]}, content_type="application/json")
    assert r.status_code == 503
    oid = r.json()["orderId"]
    stored = OrderModel.objects.get(id=oid)
    assert stored.status == "PENDING"
    assert stored.paid is False

    monkeypatch.undo()
    r2 = client.post(f"/api/orders/{oid}/payment-session/")
    assert r2.status_code == 201
    assert r2.json()["paymentSession"]["orderId"] == oid


@pytest.mark.django_db
def test_create_order_accepts_numeric_product_ids(client, monkeypatch):
    monkeypatch.setattr(
        "apps.orders.providers.ProductsStub",
        lambda: adapters.ProductsStub([Product("7", "Mouse", Decimal("12.30"))]),
    )
    r = client.post(CREATE_URL, data={"items": [{"productId": 7, "quantity": 2}]}, content_type="application/json")
    assert r.status_code == 201
    assert r.json()["order"]["totalAmount"] == 24.6


@pytest.mark.django_db
@pytest.mark.parametrize(
    "payload",
    [
        {"items": []},
        {"items": [{"productId": "P1", "quantity": 0}]},
        {"items": [{"quantity": 1}]},
        {},
    ],
)
def test_create_order_validation_error(client, payload):
    """Returns 400 when the payload fails DTO validation."""
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PAYLOAD"
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_create_order_stores_total_equal_to_item_lines(client, monkeypatch):
    """Sub-cent catalog prices are rounded before the total is computed."""
    monkeypatch.setattr(
        "apps.orders.providers.ProductsStub",
        lambda: adapters.ProductsStub([Product("X", "Sticker", Decimal("1.005"))]),
    )
    r = client.post(CREATE_URL, data={"items": [{"productId": "X", "quantity": 3}]}, content_type="application/json")
    assert r.status_code == 201

    stored = OrderModel.objects.get(id=r.json()["order"]["id"])
    lines = sum(it.price * it.quantity for it in stored.items.all())
    assert stored.total_amount == lines == Decimal("3.03")
