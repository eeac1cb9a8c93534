"""Domain models, ports and service for orders.

This module contains simple dataclasses used as DTOs for orders, protocol
definitions (ports) for the external catalog, the payment service and the
order store, and the domain service that orchestrates creating, reading,
updating and settling orders.
"""

import logging
import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from . import errors

CENT = Decimal("0.01")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    PENDING is the initial status. PAID is only reached through settlement
    of a ``payment.succeeded`` notification."""

    PENDING = "PENDING"
    PAID = "PAID"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class ItemRequest:
    """A line requested by the client: product reference and quantity."""

    product_id: str
    quantity: int


@dataclass(frozen=True)
class Product:
    """Authoritative catalog record returned by product validation."""

    id: str
    name: str
    price: Decimal


@dataclass(frozen=True)
class OrderItem:
    """A single line item in an order.

    Attributes:
        product_id: Reference to a catalog product.
        quantity: Number of units ordered.
        price: Unit price snapshotted from the catalog when the order was
            created. Later catalog changes never touch it.
        name: Display name resolved from the catalog for responses only;
            it is never persisted.
    """

    product_id: str
    quantity: int
    price: Decimal
    name: Optional[str] = None


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Persistent identifier, or None if not yet saved.
        items: Line items, non-empty and immutable once created.
        total_amount: Sum of price x quantity over the items.
        total_items: Sum of the item quantities.
        status: Current OrderStatus.
        paid: True once the order has been settled.
        paid_at: Settlement timestamp.
        stripe_charge_id: External payment reference set at settlement.
        receipt_url: Receipt link attached at settlement.
    """

    id: Optional[uuid.UUID]
    items: List[OrderItem]
    total_amount: Decimal = Decimal("0")
    total_items: int = 0
    status: OrderStatus = OrderStatus.PENDING
    paid: bool = False
    paid_at: Optional[datetime] = None
    stripe_charge_id: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class OrderPage:
    """One page of orders plus the pagination metadata."""

    data: List[Order]
    page: int
    total: int
    per_page: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page)


# ---- Ports (DIP) ----
class ProductsPort(Protocol):
    """Port describing the catalog validation call used by the domain."""

    def validate_products(self, ids: List[str]) -> List[Product]:
        """Return the catalog records for the valid subset of ``ids``.

        Args:
            ids: Distinct product identifiers to validate.

        Returns:
            The products the catalog recognises. Ids that are absent from
            the result are considered invalid.

        Raises:
            errors.ValidationError: If the catalog rejects the ids outright.
            errors.RemoteUnavailable: If the catalog cannot be reached.
        """
        raise NotImplementedError()


class PaymentsPort(Protocol):
    """Port describing the payment session request used by the domain."""

    def create_payment_session(self, order: Order, currency: str) -> dict:
        """Request a payment session for an order.

        Args:
            order: Order whose items carry resolved names and prices.
            currency: ISO currency code sent to the payment service.

        Returns:
            The opaque session descriptor returned by the payment service.

        Raises:
            errors.RemoteUnavailable: If the payment service cannot be
                reached or refuses the request.
        """
        raise NotImplementedError()


class OrderStore(Protocol):
    """Port describing durable storage of orders, items and receipts."""

    def create_with_items(self, order: Order) -> Order:
        """Persist an order and all of its items as one atomic write."""
        raise NotImplementedError()

    def find_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """Return the order with its items, or None when it does not exist."""
        raise NotImplementedError()

    def find_page(
        self, offset: int, limit: int, status: Optional[OrderStatus] = None
    ) -> Tuple[int, List[Order]]:
        """Return ``(total_matching, rows)`` in creation order."""
        raise NotImplementedError()

    def update_status(
        self, order_id: uuid.UUID, status: OrderStatus, expected: Optional[OrderStatus] = None
    ) -> Order:
        """Write a new status for an existing order.

        When ``expected`` is given the write only happens if the stored
        status still equals it, checked in the same serialized write.

        Raises:
            errors.NotFound: If the order does not exist.
            errors.StatusConflict: If the stored status is not ``expected``.
        """
        raise NotImplementedError()

    def settle(
        self, order_id: uuid.UUID, charge_id: str, receipt_url: str, paid_at: datetime
    ) -> Tuple[Order, bool]:
        """Mark an order paid and attach its receipt in one write.

        Returns:
            ``(order, settled)`` where ``settled`` is False when the order
            was already paid and nothing was written.

        Raises:
            errors.NotFound: If the order does not exist.
        """
        raise NotImplementedError()


# ---- Domain service ----
class OrderService:
    """Domain service coordinating the catalog, payments and the order store.

    The service holds no state besides its collaborators. Remote calls are
    made inline and never retried here; retry policy belongs to the
    transport adapters.
    """

    def __init__(
        self,
        products: ProductsPort,
        payments: PaymentsPort,
        store: OrderStore,
        currency: str = "usd",
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the service with required dependencies.

        Args:
            products: ProductsPort used to validate products and resolve names.
            payments: PaymentsPort used to request payment sessions.
            store: OrderStore persisting orders.
            currency: Currency code sent with payment session requests.
            logger: Logger for domain events; defaults to ``orders.service``.
        """
        self.products = products
        self.payments = payments
        self.store = store
        self.currency = currency
        self.log = logger or logging.getLogger("orders.service")

    # -- create --

    def create(self, items: List[ItemRequest]) -> Order:
        """Validate products, compute totals and persist a new order.

        Lines that reference the same product are merged by adding their
        quantities. Prices always come from the catalog response, never
        from the client, and are rounded to cents before the totals are
        computed so the stored total equals the sum of the stored lines.

        Args:
            items: Requested lines.

        Returns:
            The persisted order, with item names resolved for the response.

        Raises:
            errors.ValidationError: ``EMPTY_ORDER``, ``INVALID_QUANTITY`` or
                ``INVALID_PRODUCTS``. Nothing is persisted in these cases.
            errors.RemoteUnavailable: If the catalog cannot be reached.
            errors.PersistenceError: If the store write fails.
        """
        lines = self._merge_lines(items)
        catalog = self._validated_products(list(lines))

        order_items = [
            OrderItem(
                product_id=pid,
                quantity=qty,
                price=catalog[pid].price.quantize(CENT, ROUND_HALF_UP),
            )
            for pid, qty in lines.items()
        ]
        order = Order(
            id=None,
            items=order_items,
            total_amount=sum((it.price * it.quantity for it in order_items), Decimal("0")),
            total_items=sum(it.quantity for it in order_items),
        )

        created = self.store.create_with_items(order)
        self.log.info(
            "order created",
            extra={
                "order_id": str(created.id),
                "total_amount": str(created.total_amount),
                "total_items": created.total_items,
            },
        )
        return self._with_names(created, catalog)

    def place_order(self, items: List[ItemRequest]) -> Tuple[Order, dict]:
        """Create an order and request its payment session.

        The session request is not part of the creation write. If it fails
        the order stays persisted as PENDING and the raised error carries
        ``orderId`` so the caller can request a session for it later.

        Returns:
            ``(order, payment_session)``.
        """
        order = self.create(items)
        try:
            session = self.create_payment_session(order)
        except errors.OrderError as e:
            self.log.warning(
                "payment session request failed, order kept pending",
                extra={"order_id": str(order.id), "error": e.code},
            )
            e.extra["orderId"] = str(order.id)
            raise
        return order, session

    def create_payment_session(self, order: Order) -> dict:
        """Request a payment session for an order that is not paid yet.

        Raises:
            errors.AlreadyPaid: If the order has been settled.
            errors.RemoteUnavailable: If the payment service fails.
        """
        if order.paid:
            raise errors.AlreadyPaid(f"order #{order.id} is already paid")
        return self.payments.create_payment_session(order, self.currency)

    def session_for(self, order_id: uuid.UUID) -> Tuple[Order, dict]:
        """Request a new payment session for an existing order."""
        order = self.find_one(order_id)
        return order, self.create_payment_session(order)

    # -- read --

    def find_one(self, order_id: uuid.UUID, with_names: bool = True) -> Order:
        """Load an order with its items.

        Item names are resolved from the catalog on every call. A catalog
        failure propagates with its own type and is never reported as
        NotFound.

        Raises:
            errors.NotFound: If the order does not exist.
        """
        order = self.store.find_by_id(order_id)
        if order is None:
            raise errors.NotFound(f"order with id #{order_id} not found")
        if not with_names:
            return order

        ids = list(dict.fromkeys(it.product_id for it in order.items))
        catalog = {p.id: p for p in self.products.validate_products(ids)}
        return self._with_names(order, catalog)

    def find_all(self, page: int, limit: int, status: Optional[OrderStatus] = None) -> OrderPage:
        """Return one page of orders, optionally filtered by status.

        Pages past the end produce an empty ``data`` list.
        """
        if page < 1 or limit < 1:
            raise errors.ValidationError("page and limit must be >= 1", code="INVALID_PAGINATION")
        total, rows = self.store.find_page((page - 1) * limit, limit, status)
        return OrderPage(data=rows, page=page, total=total, per_page=limit)

    # -- write --

    def change_status(self, order_id: uuid.UUID, status: OrderStatus) -> Order:
        """Change the status of an order.

        Setting the current status again returns the order unchanged.
        Transitions are otherwise unconstrained except that PAID can only
        be reached through settlement.

        Raises:
            errors.NotFound: If the order does not exist.
            errors.ValidationError: ``PAID_REQUIRES_SETTLEMENT``.
            errors.StatusConflict: If the order changed (for example it was
                settled) after it was read.
        """
        status = OrderStatus(status)
        order = self.store.find_by_id(order_id)
        if order is None:
            raise errors.NotFound(f"order with id #{order_id} not found")
        if order.status == status:
            return order
        if status is OrderStatus.PAID:
            raise errors.ValidationError(
                "orders become PAID only through payment settlement",
                code="PAID_REQUIRES_SETTLEMENT",
            )

        updated = self.store.update_status(order_id, status, expected=order.status)
        self.log.info(
            "order status changed",
            extra={"order_id": str(order_id), "from": order.status.value, "to": updated.status.value},
        )
        return updated

    def paid_order(self, order_id: uuid.UUID, charge_id: str, receipt_url: str) -> Order:
        """Settle an order after a successful payment.

        Status, paid flag, paid timestamp, charge reference and receipt are
        written together. A replayed notification for an order that is
        already paid is ignored and does not create a second receipt.

        Raises:
            errors.NotFound: If the order does not exist.
        """
        order, settled = self.store.settle(
            order_id, charge_id, receipt_url, paid_at=datetime.now(timezone.utc)
        )
        if settled:
            self.log.info("order settled", extra={"order_id": str(order_id), "charge_id": charge_id})
        else:
            self.log.warning(
                "duplicate settlement ignored, order already paid",
                extra={"order_id": str(order_id), "charge_id": charge_id},
            )
        return order

    # -- helpers --

    @staticmethod
    def _merge_lines(items: List[ItemRequest]) -> Dict[str, int]:
        if not items:
            raise errors.ValidationError("order has no items", code="EMPTY_ORDER")
        lines: Dict[str, int] = {}
        for it in items:
            if it.quantity <= 0:
                raise errors.ValidationError(
                    f"quantity for product {it.product_id} must be positive",
                    code="INVALID_QUANTITY",
                )
            lines[it.product_id] = lines.get(it.product_id, 0) + it.quantity
        return lines

    def _validated_products(self, ids: List[str]) -> Dict[str, Product]:
        catalog = {p.id: p for p in self.products.validate_products(ids)}
        missing = [pid for pid in ids if pid not in catalog]
        if missing:
            self.log.warning("unknown products requested", extra={"invalid_ids": missing})
            raise errors.ValidationError(
                f"products not found: {', '.join(missing)}", invalidIds=missing
            )
        return catalog

    @staticmethod
    def _with_names(order: Order, catalog: Dict[str, Product]) -> Order:
        items = [
            replace(it, name=catalog[it.product_id].name if it.product_id in catalog else None)
            for it in order.items
        ]
        return replace(order, items=items)
