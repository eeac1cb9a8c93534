"""In-process stub adapters for the orders domain ports.

These stubs implement ``ProductsPort``, ``PaymentsPort`` and ``OrderStore``
without any network or database access. They are intended for unit tests
and local development where deterministic behavior is useful and external
services are not required.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from . import errors
from .domain import Order, OrderStatus, OrderStore, PaymentsPort, Product, ProductsPort

DEFAULT_CATALOG = (
    Product("P1", "Mechanical keyboard", Decimal("10.00")),
    Product("P2", "USB cable", Decimal("5.00")),
    Product("P3", "Monitor arm", Decimal("42.50")),
)


def _copy(order: Order) -> Order:
    return replace(order, items=list(order.items))


class ProductsStub(ProductsPort):
    """Stub implementation of ``ProductsPort`` backed by a fixed catalog.

    Unknown ids are left out of the result, which the domain treats as
    invalid products.
    """

    def __init__(self, catalog: Optional[Iterable[Product]] = None):
        self.catalog = {p.id: p for p in (catalog if catalog is not None else DEFAULT_CATALOG)}

    def validate_products(self, ids: List[str]) -> List[Product]:
        return [self.catalog[i] for i in ids if i in self.catalog]


class PaymentsStub(PaymentsPort):
    """Stub implementation of ``PaymentsPort``.

    Returns a checkout-like descriptor with a generated session id. The
    request that would have been sent is echoed back so tests can inspect
    what the payment service receives.
    """

    def create_payment_session(self, order: Order, currency: str) -> dict:
        session_id = f"cs_test_{uuid.uuid4().hex}"
        return {
            "id": session_id,
            "orderId": str(order.id),
            "currency": currency,
            "url": f"https://checkout.example.com/pay/{session_id}",
            "lineItems": [
                {"name": it.name or it.product_id, "price": float(it.price), "quantity": it.quantity}
                for it in order.items
            ],
        }


class InMemoryOrderStore(OrderStore):
    """Thread-safe dict-backed ``OrderStore``.

    Orders are kept in insertion order, which is the natural order used
    for pagination. Every method copies on the way in and out so callers
    never share mutable state with the store.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[uuid.UUID, Order] = {}

    def create_with_items(self, order: Order) -> Order:
        if not order.items:
            raise errors.PersistenceError("an order needs at least one item")
        now = datetime.now(timezone.utc)
        stored = replace(
            order,
            id=uuid.uuid4(),
            items=[replace(it, name=None) for it in order.items],
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._orders[stored.id] = stored
        return _copy(stored)

    def find_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        with self._lock:
            found = self._orders.get(order_id)
        return _copy(found) if found else None

    def find_page(
        self, offset: int, limit: int, status: Optional[OrderStatus] = None
    ) -> Tuple[int, List[Order]]:
        with self._lock:
            rows = [o for o in self._orders.values() if status is None or o.status == status]
        return len(rows), [_copy(o) for o in rows[offset:offset + limit]]

    def update_status(
        self, order_id: uuid.UUID, status: OrderStatus, expected: Optional[OrderStatus] = None
    ) -> Order:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise errors.NotFound(f"order with id #{order_id} not found")
            if expected is not None and current.status != expected:
                raise errors.StatusConflict(
                    f"order #{order_id} is {current.status.value}, expected {expected.value}"
                )
            updated = replace(current, status=status, updated_at=datetime.now(timezone.utc))
            self._orders[order_id] = updated
        return _copy(updated)

    def settle(
        self, order_id: uuid.UUID, charge_id: str, receipt_url: str, paid_at: datetime
    ) -> Tuple[Order, bool]:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise errors.NotFound(f"order with id #{order_id} not found")
            if current.paid:
                return _copy(current), False
            settled = replace(
                current,
                status=OrderStatus.PAID,
                paid=True,
                paid_at=paid_at,
                stripe_charge_id=charge_id,
                receipt_url=receipt_url,
                updated_at=paid_at,
            )
            self._orders[order_id] = settled
        return _copy(settled), True
