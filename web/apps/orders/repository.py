"""Repository layer for persisting orders.

This module implements the domain ``OrderStore`` port on top of the Django
ORM so the domain layer is not coupled to ORM details. Every write runs in
a transaction; writes that touch an existing order lock its row first.
Database failures surface as ``errors.PersistenceError``.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from django.db import DatabaseError, transaction

from . import errors
from .domain import Order, OrderItem, OrderStatus, OrderStore
from .models import OrderItemModel, OrderModel, OrderReceiptModel


def _to_domain(obj: OrderModel) -> Order:
    """Map an ``OrderModel`` (with prefetched items) to a domain ``Order``."""
    receipt = getattr(obj, "receipt", None) if obj.paid else None
    return Order(
        id=obj.id,
        items=[
            OrderItem(product_id=it.product_id, quantity=it.quantity, price=it.price)
            for it in obj.items.all()
        ],
        total_amount=obj.total_amount,
        total_items=obj.total_items,
        status=OrderStatus(obj.status),
        paid=obj.paid,
        paid_at=obj.paid_at,
        stripe_charge_id=obj.stripe_charge_id,
        receipt_url=receipt.receipt_url if receipt else None,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class OrderRepository(OrderStore):
    """Repository that persists Order domain objects using Django ORM."""

    def _queryset(self):
        return OrderModel.objects.select_related("receipt").prefetch_related("items")

    def create_with_items(self, order: Order) -> Order:
        """Persist a new order together with its items.

        The order row and all item rows are written in one transaction, so a
        failure leaves neither behind.

        Args:
            order: Domain ``Order`` with items and computed totals.

        Returns:
            The stored order as read back from the database.

        Raises:
            errors.PersistenceError: If the write fails.
        """
        try:
            with transaction.atomic():
                obj = OrderModel.objects.create(
                    status=order.status.value,
                    total_amount=order.total_amount,
                    total_items=order.total_items,
                )
                OrderItemModel.objects.bulk_create(
                    [
                        OrderItemModel(
                            order=obj,
                            product_id=it.product_id,
                            quantity=it.quantity,
                            price=it.price,
                        )
                        for it in order.items
                    ]
                )
        except DatabaseError as e:
            raise errors.PersistenceError(f"could not store order: {e}") from e
        return self._get(obj.id)

    def find_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        try:
            obj = self._queryset().filter(id=order_id).first()
        except DatabaseError as e:
            raise errors.PersistenceError(f"could not load order: {e}") from e
        return _to_domain(obj) if obj else None

    def find_page(
        self, offset: int, limit: int, status: Optional[OrderStatus] = None
    ) -> Tuple[int, List[Order]]:
        """Count matching orders and return one slice in creation order."""
        qs = self._queryset().order_by("internal_id")
        if status is not None:
            qs = qs.filter(status=OrderStatus(status).value)
        try:
            total = qs.count()
            rows = [_to_domain(o) for o in qs[offset:offset + limit]]
        except DatabaseError as e:
            raise errors.PersistenceError(f"could not list orders: {e}") from e
        return total, rows

    def update_status(
        self, order_id: uuid.UUID, status: OrderStatus, expected: Optional[OrderStatus] = None
    ) -> Order:
        """Write a new status under a row lock.

        ``expected`` is compared with the locked row, so a settlement that
        committed after the caller read the order is never overwritten.
        """
        try:
            with transaction.atomic():
                obj = self._locked(order_id)
                if expected is not None and obj.status != expected.value:
                    raise errors.StatusConflict(
                        f"order #{order_id} is {obj.status}, expected {expected.value}"
                    )
                if obj.status != status.value:
                    obj.status = status.value
                    obj.save(update_fields=["status", "updated_at"])
        except DatabaseError as e:
            raise errors.PersistenceError(f"could not update order: {e}") from e
        return self._get(order_id)

    def settle(
        self, order_id: uuid.UUID, charge_id: str, receipt_url: str, paid_at: datetime
    ) -> Tuple[Order, bool]:
        """Mark an order as paid and create its receipt.

        Both writes share one transaction and the order row is locked for
        its duration. An order that is already paid is left untouched.

        Returns:
            ``(order, settled)``; ``settled`` is False for a replay.

        Raises:
            errors.NotFound: If the order does not exist.
            errors.PersistenceError: If the write fails.
        """
        try:
            with transaction.atomic():
                obj = self._locked(order_id)
                if obj.paid:
                    settled = False
                else:
                    obj.status = OrderModel.Status.PAID
                    obj.paid = True
                    obj.paid_at = paid_at
                    obj.stripe_charge_id = charge_id
                    obj.save(update_fields=["status", "paid", "paid_at", "stripe_charge_id", "updated_at"])
                    OrderReceiptModel.objects.create(order=obj, receipt_url=receipt_url)
                    settled = True
        except DatabaseError as e:
            raise errors.PersistenceError(f"could not settle order: {e}") from e
        return self._get(order_id), settled

    def _locked(self, order_id: uuid.UUID) -> OrderModel:
        try:
            return OrderModel.objects.select_for_update().get(id=order_id)
        except OrderModel.DoesNotExist:
            raise errors.NotFound(f"order with id #{order_id} not found")

    def _get(self, order_id: uuid.UUID) -> Order:
        return _to_domain(self._queryset().get(id=order_id))
