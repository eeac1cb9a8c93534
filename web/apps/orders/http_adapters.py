"""HTTP adapter clients with timeouts, circuit breakers and context headers.

This module implements concrete HTTP clients for the domain ports using
``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per downstream service (products, payments) to avoid
    hammering unhealthy dependencies, with HALF_OPEN probing after a timeout.
- A caller enforced timeout on every call. Timeouts, transport errors,
    5xx responses and an open circuit all surface as
    ``errors.RemoteUnavailable``.
- An opt-in transport retry budget (``HTTP_RETRY_MAX`` total attempts,
    default 1) with exponential backoff for transport errors and 5xx.
"""

import time
import threading
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from . import errors
from .domain import Order, PaymentsPort, Product, ProductsPort

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe opens the circuit again.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self.reset()

    def reset(self):
        """Return to CLOSED and forget past failures."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
            self._opened_at = 0.0
            self._probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            errors.RemoteUnavailable: If the circuit is OPEN or a HALF_OPEN
                probe is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise errors.RemoteUnavailable(f"{self.name} circuit is open", service=self.name)
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise errors.RemoteUnavailable(f"{self.name} circuit probe busy", service=self.name)
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold reached."""
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


# Per-service instances
products_breaker = CircuitBreaker(
    "products",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)
payments_breaker = CircuitBreaker(
    "payments",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build outgoing headers: ``X-Request-ID`` when known, then ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 1)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def _post(breaker: CircuitBreaker, url: str, payload: dict, timeout: float):
    """POST ``payload`` through ``breaker`` and return the final response.

    Responses below 500 are returned as-is for the caller to map; they
    count as circuit successes because the service answered.

    Raises:
        errors.RemoteUnavailable: On open circuit, timeout, transport error
            or a 5xx once the retry budget is spent.
    """
    max_attempts, backoff = _retry_policy()
    state = breaker.before_call()
    headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})
    tries = 0

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.post(url, json=payload, headers=headers)
                    if not _should_retry(resp, None):
                        breaker.on_success()
                        return resp
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_attempts:
                    breaker.on_failure()
                    if isinstance(exc, httpx.TimeoutException):
                        raise errors.RemoteUnavailable(
                            f"{breaker.name} timed out after {timeout}s", service=breaker.name
                        ) from exc
                    if exc is not None:
                        raise errors.RemoteUnavailable(
                            f"{breaker.name} unreachable: {exc}", service=breaker.name
                        ) from exc
                    raise errors.RemoteUnavailable(
                        f"{breaker.name} answered {resp.status_code}", service=breaker.name
                    )

                sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                time.sleep(min(sleep_s, getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)))
    finally:
        breaker.on_finish()


# ---------------- Products Adapter ---------------- #

class HttpProductsClient(ProductsPort):
    """HTTP client for the catalog ``validate_products`` call."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PRODUCTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def validate_products(self, ids: List[str]) -> List[Product]:
        """Validate product ids against the catalog.

        Business mappings:
        - 200 → list of products, either a bare JSON array or under
          ``products``; ids missing from it are invalid.
        - 400/404/422 → ``errors.ValidationError`` carrying the invalid ids
          reported by the catalog.

        Raises:
            errors.ValidationError: When the catalog rejects the ids.
            errors.RemoteUnavailable: When the catalog cannot answer.
        """
        resp = _post(
            products_breaker,
            f"{self.base_url}/products/validate",
            {"ids": list(ids)},
            self.timeout,
        )
        if resp.status_code == 200:
            try:
                data = resp.json()
                rows = data.get("products", []) if isinstance(data, dict) else data
                return [
                    Product(id=str(r["id"]), name=r.get("name", ""), price=Decimal(str(r["price"])))
                    for r in rows
                ]
            except (ValueError, KeyError, TypeError, AttributeError, InvalidOperation) as e:
                raise errors.RemoteUnavailable(
                    f"products sent a malformed response: {e!r}", service="products"
                ) from e
        if resp.status_code in (400, 404, 422):
            body = _json_or_empty(resp)
            invalid = body.get("invalidIds") or body.get("invalid_ids") or []
            raise errors.ValidationError(
                body.get("message") or "catalog rejected products",
                invalidIds=[str(i) for i in invalid],
            )
        raise errors.RemoteUnavailable(
            f"products answered {resp.status_code}", service="products"
        )


# ---------------- Payments Adapter ---------------- #

class HttpPaymentsClient(PaymentsPort):
    """HTTP client for the payment service ``create.payment.session`` call."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def create_payment_session(self, order: Order, currency: str) -> dict:
        """Request a payment session and return the descriptor unchanged.

        Any non-2xx answer is a failure of the payment collaborator and is
        raised as ``errors.RemoteUnavailable``.
        """
        payload = {
            "orderId": str(order.id),
            "currency": currency,
            "items": [
                {
                    "name": it.name or it.product_id,
                    "price": float(it.price),
                    "quantity": it.quantity,
                }
                for it in order.items
            ],
        }
        resp = _post(
            payments_breaker,
            f"{self.base_url}/payments/create-payment-session",
            payload,
            self.timeout,
        )
        if resp.status_code in (200, 201):
            session = _json_or_none(resp)
            if not isinstance(session, dict):
                raise errors.RemoteUnavailable(
                    f"payments sent a malformed session for order #{order.id}", service="payments"
                )
            return session
        raise errors.RemoteUnavailable(
            f"payments refused session for order #{order.id} ({resp.status_code})",
            service="payments",
        )


def _json_or_none(resp):
    try:
        return resp.json()
    except ValueError:
        return None


def _json_or_empty(resp) -> dict:
    data = _json_or_none(resp)
    return data if isinstance(data, dict) else {}
