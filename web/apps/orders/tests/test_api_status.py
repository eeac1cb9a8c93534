"""API tests for changing the status of an order."""
from uuid import uuid4

import pytest
from django.utils import timezone

from apps.orders.models import OrderItemModel, OrderModel
from apps.orders.repository import OrderRepository

STATUS_URL = "/api/orders/{oid}/status/"


@pytest.fixture
def order():
    o = OrderModel.objects.create(status="PENDING", total_amount="10.00", total_items=1)
    OrderItemModel.objects.create(order=o, product_id="P1", quantity=1, price="10.00")
    return o


@pytest.mark.django_db
def test_change_status(client, order):
    r = client.patch(STATUS_URL.format(oid=order.id), data={"status": "DELIVERED"}, content_type="application/json")
    assert r.status_code == 200
    assert r.json()["status"] == "DELIVERED"
    order.refresh_from_db()
    assert order.status == "DELIVERED"
    assert str(order.total_amount) == "10.00"


@pytest.mark.django_db
def test_change_status_same_status_is_noop(client, order):
    before = order.updated_at
    r = client.patch(STATUS_URL.format(oid=order.id), data={"status": "PENDING"}, content_type="application/json")
    assert r.status_code == 200
    assert r.json()["status"] == "PENDING"
    order.refresh_from_db()
    assert order.updated_at == before


@pytest.mark.django_db
def test_change_status_to_paid_is_rejected(client, order):
    r = client.patch(STATUS_URL.format(oid=order.id), data={"status": "PAID"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "PAID_REQUIRES_SETTLEMENT"
    order.refresh_from_db()
    assert order.status == "PENDING" and order.paid is False


@pytest.mark.django_db
def test_change_status_unknown_value(client, order):
    r = client.patch(STATUS_URL.format(oid=order.id), data={"status": "SHIPPED"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PAYLOAD"


@pytest.mark.django_db
def test_change_status_not_found(client):
    r = client.patch(STATUS_URL.format(oid=uuid4()), data={"status": "CANCELLED"}, content_type="application/json")
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_change_status_after_concurrent_settlement_is_conflict(client, order, monkeypatch):
    """A settlement that commits between the read and the write wins."""
    read = OrderRepository.find_by_id

    def read_then_settle(self, order_id):
        found = read(self, order_id)
        OrderRepository().settle(order_id, "ch_race", "https://r/1", timezone.now())
        return found
    monkeypatch.setattr(OrderRepository, "find_by_id", read_then_settle)

    r = client.patch(STATUS_URL.format(oid=order.id), data={"status": "CANCELLED"}, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["detail"] == "ORDER_STATUS_CHANGED"
    order.refresh_from_db()
    assert order.status == "PAID" and order.paid is True
    assert order.receipt.receipt_url == "https://r/1"
