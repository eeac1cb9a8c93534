"""HTTP views for the orders app.

This module contains DRF API views used by the orders service. Views are
kept intentionally small: they validate requests (via Pydantic), map to
domain DTOs, delegate to the domain service obtained from
``providers.get_order_service()``, and render the result. Domain failures
are ``errors.OrderError`` subclasses and are rendered as
``{"detail", "message", "status"}`` with the matching HTTP status.

Idempotency: when an ``Idempotency-Key`` header is provided, the create
endpoint ensures idempotent processing. The first request claims the key
and stores its response. Retries with the same payload get the stored
response back with ``Idempotent-Replay: true``. Reusing the key with a
different payload returns HTTP 409. Transient failures that stored no
order release the key so the client can retry with it.
"""
import logging

from django.conf import settings
from pydantic import ValidationError as PayloadError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import errors, idempotency, listeners, providers
from .domain import ItemRequest
from .permissions import HasEventsToken
from .schemas import ChangeStatusDTO, CreateOrderDTO, OrderPaginationDTO, OrderReadDTO, OrdersPageDTO

logger = logging.getLogger("orders.api")


def _error(e: errors.OrderError) -> Response:
    return Response(e.to_dict(), status=e.status_code)


def _is_final(e: errors.OrderError) -> bool:
    # a stored order makes the outcome final even when the session failed
    return e.status_code < 500 or "orderId" in e.extra


def _invalid_payload(e: PayloadError) -> Response:
    return Response(
        {"detail": "INVALID_PAYLOAD", "message": str(e), "status": 400},
        status=status.HTTP_400_BAD_REQUEST,
    )


class OrdersCollectionView(APIView):
    """List orders (GET) or create one and its payment session (POST)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        """Return one page of orders.

        Query params: ``page`` (>= 1), ``limit`` (>= 1, at most
        ``ORDERS_MAX_PAGE_SIZE``) and optional ``status``.
        """
        try:
            dto = OrderPaginationDTO.model_validate(request.query_params.dict())
        except PayloadError as e:
            return _invalid_payload(e)

        max_limit = getattr(settings, "ORDERS_MAX_PAGE_SIZE", 100)
        if dto.limit > max_limit:
            return _error(errors.ValidationError(
                f"limit must be <= {max_limit}", code="INVALID_PAGINATION", maxLimit=max_limit
            ))
        try:
            page = providers.get_order_service().find_all(dto.page, dto.limit, dto.status)
        except errors.OrderError as e:
            return _error(e)
        return Response(OrdersPageDTO.from_domain(page).dump(), status=status.HTTP_200_OK)

    def post(self, request):
        """Create a new order.

        Args:
            request (Request): DRF request with JSON body
                ``{"items": [{"productId", "quantity"}]}`` and optional
                ``Idempotency-Key`` header.

        Returns:
            Response: One of the following responses.
            - 201 with {order, paymentSession} when the order is created.
            - Stored status/body when the same idempotency key and payload
              are retried.
            - 409 IDEMPOTENCY_CONFLICT / IDEMPOTENCY_IN_PROGRESS.
            - 400 INVALID_PAYLOAD, INVALID_PRODUCTS or EMPTY_ORDER.
            - 503 UPSTREAM_UNAVAILABLE when the catalog or payment service
              cannot answer; ``orderId`` is included when the order was
              already stored.
            - 500 PERSISTENCE_ERROR when the order could not be written.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except PayloadError as e:
            return _invalid_payload(e)

        # 2) Idempotency claim
        rec = None
        if idem_key:
            try:
                replay, rec = idempotency.claim(idem_key, dto.dump())
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if replay:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain; only final outcomes are stored, otherwise the key is released
        remembered = False
        try:
            items = [ItemRequest(product_id=i.product_id, quantity=i.quantity) for i in dto.items]
            try:
                order, session = providers.get_order_service().place_order(items)
            except errors.OrderError as e:
                if rec and _is_final(e):
                    idempotency.remember(rec, e.status_code, e.to_dict(), order_id=e.extra.get("orderId"))
                    remembered = True
                return _error(e)

            # 4) Response
            body = {"order": OrderReadDTO.from_domain(order).dump(), "paymentSession": session}
            if rec:
                idempotency.remember(rec, status.HTTP_201_CREATED, body, order_id=order.id)
                remembered = True
            return Response(body, status=status.HTTP_201_CREATED)
        finally:
            if rec and not remembered:
                idempotency.release(rec)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = providers.get_order_service().find_one(oid)
        except errors.OrderError as e:
            return _error(e)
        return Response(OrderReadDTO.from_domain(order).dump(), status=status.HTTP_200_OK)


class ChangeOrderStatusView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def patch(self, request, oid):
        try:
            dto = ChangeStatusDTO.model_validate(request.data)
        except PayloadError as e:
            return _invalid_payload(e)

        try:
            order = providers.get_order_service().change_status(oid, dto.status)
        except errors.OrderError as e:
            return _error(e)
        return Response(OrderReadDTO.from_domain(order).dump(), status=status.HTTP_200_OK)


class PaymentSessionView(APIView):
    """Request a fresh payment session for an existing, unpaid order."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def post(self, request, oid):
        try:
            order, session = providers.get_order_service().session_for(oid)
        except errors.OrderError as e:
            return _error(e)
        body = {"order": OrderReadDTO.from_domain(order).dump(), "paymentSession": session}
        return Response(body, status=status.HTTP_201_CREATED)


class PaymentSucceededView(APIView):
    """HTTP delivery of the ``payment.succeeded`` event.

    The event has no response payload: 202 when handled (including replays
    of an already settled order), 400 for malformed payloads and the
    domain error otherwise so the transport can decide about redelivery.
    Callers must send the shared events token; without it the answer is 403.
    """

    permission_classes = [HasEventsToken]

    def post(self, request):
        try:
            listeners.on_payment_succeeded(request.data)
        except PayloadError as e:
            return _invalid_payload(e)
        except errors.OrderError as e:
            logger.warning("payment event rejected", extra={"error": e.code})
            return _error(e)
        return Response(status=status.HTTP_202_ACCEPTED)
