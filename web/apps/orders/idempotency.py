"""Idempotency utilities for order creation.

A client may send an ``Idempotency-Key`` header when creating an order.
The first request with a key claims it and, once processed, stores its
response. Retries with the same key and the same payload get the stored
response back instead of creating another order; reusing the key with a
different payload is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


def request_hash(payload: dict) -> str:
    """Return the SHA-256 hex digest of a canonical JSON rendering of ``payload``."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def claim(key: str, payload: dict):
    """Claim ``key`` for ``payload`` or find the request that already did.

    The create path runs in a nested savepoint so an ``IntegrityError``
    only rolls that block back. An existing record is read with
    ``SELECT ... FOR UPDATE`` so concurrent retries see a consistent row.

    Args:
        key: Client-provided idempotency key.
        payload: Normalized request payload.

    Returns:
        tuple[bool, IdempotencyKey]: ``(replay, record)``; ``replay`` is True
        when the key was claimed by an earlier request.

    Raises:
        ValueError: ``IDEMPOTENCY_CONFLICT`` if the key was used with a
            different payload.
    """
    h = request_hash(payload)

    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h)
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def remember(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the final response of the request that claimed ``rec``.

    Args:
        rec: Record returned by :func:`claim`.
        status_code: HTTP status of the response.
        body: JSON-serializable response body.
        order_id: Order created by the request, if any.
    """
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])


def release(rec: IdempotencyKey):
    """Drop a claim whose request ended without a final outcome.

    The client can then retry with the same key.
    """
    IdempotencyKey.objects.filter(key=rec.key, response_status=0).delete()
