"""Consumers for asynchronous notifications emitted by other services.

The payment service publishes ``payment.succeeded`` once a checkout is
completed. Whatever transport delivers it (the HTTP event endpoint in
``views.PaymentSucceededView`` or a broker consumer) hands the raw payload
to :func:`on_payment_succeeded`, which validates it and settles the order.
"""

import logging
from typing import Optional

from . import providers
from .domain import Order, OrderService
from .schemas import PaidOrderDTO

logger = logging.getLogger("orders.events")

PAYMENT_SUCCEEDED = "payment.succeeded"


def on_payment_succeeded(payload: dict, service: Optional[OrderService] = None) -> Order:
    """Settle the order referenced by a ``payment.succeeded`` payload.

    Args:
        payload: Raw event body with ``orderId``, ``stripePaymentId`` and
            ``receiptUrl``.
        service: Service to use; a configured one is built when omitted.

    Returns:
        The order after settlement (unchanged if it was already paid).

    Raises:
        pydantic.ValidationError: If the payload is malformed.
        errors.NotFound: If the order does not exist.
        errors.PersistenceError: If the settlement write fails.
    """
    event = PaidOrderDTO.model_validate(payload)
    logger.info(
        "event received",
        extra={"event": PAYMENT_SUCCEEDED, "order_id": str(event.order_id)},
    )
    service = service or providers.get_order_service()
    return service.paid_order(event.order_id, event.stripe_payment_id, event.receipt_url)
