import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.ORDERS_EVENTS_TOKEN = "events-secret"


@pytest.fixture(autouse=True)
def reset_circuits():
    # breakers are process-wide; do not carry state between tests
    from apps.orders.http_adapters import payments_breaker, products_breaker

    products_breaker.reset()
    payments_breaker.reset()
    yield
    products_breaker.reset()
    payments_breaker.reset()


@pytest.fixture(autouse=True)
def clear_throttle_cache():
    from django.core.cache import cache

    cache.clear()
