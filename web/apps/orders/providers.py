"""Service provider helpers for wiring OrderService with ports.

This module exposes a small factory function `get_order_service` that
returns a configured `OrderService` instance. When
``settings.USE_HTTP_ADAPTERS`` is truthy the catalog and payment ports are
the HTTP clients; otherwise the in-process stubs are used, which suits
tests and local development. The order store is always the ORM-backed
repository.
"""

import logging

from django.conf import settings

from .adapters import PaymentsStub, ProductsStub
from .domain import OrderService
from .http_adapters import HttpPaymentsClient, HttpProductsClient
from .repository import OrderRepository

logger = logging.getLogger("orders.service")


def get_order_service() -> OrderService:
    """Return a configured OrderService instance.

    Returns:
        OrderService: A service instance with appropriate ports.
    """
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        products, payments = HttpProductsClient(), HttpPaymentsClient()
    else:
        products, payments = ProductsStub(), PaymentsStub()

    return OrderService(
        products=products,
        payments=payments,
        store=OrderRepository(),
        currency=getattr(settings, "ORDERS_CURRENCY", "usd"),
        logger=logger,
    )
