from django.urls import include, path

from apps.monitoring.api import health_view

urlpatterns = [
    path("api/orders/", include("apps.orders.urls")),
    path("health/", health_view, name="health"),
]
