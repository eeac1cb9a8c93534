import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission

EVENTS_TOKEN_HEADER = "X-Events-Token"


class HasEventsToken(BasePermission):
    """Allow only callers presenting the shared ``ORDERS_EVENTS_TOKEN``.

    Payment events are internal traffic from the payment service. With no
    token configured every request is refused.
    """

    message = "EVENTS_TOKEN_REQUIRED"

    def has_permission(self, request, view):
        expected = getattr(settings, "ORDERS_EVENTS_TOKEN", "")
        given = request.headers.get(EVENTS_TOKEN_HEADER, "")
        if not expected or not given:
            return False
        return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))
