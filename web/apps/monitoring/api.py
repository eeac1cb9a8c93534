from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import payments_breaker, products_breaker


def health_view(_request):
    """Report database reachability and the downstream circuit states.

    Only the database decides the status code; an open circuit is reported
    but the service can still serve reads.
    """
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        db_ok = False

    components = {"db": {"ok": db_ok}}
    for breaker in (products_breaker, payments_breaker):
        components[breaker.name] = {"circuit": breaker.state}

    return JsonResponse({"ok": db_ok, "components": components}, status=200 if db_ok else 503)
