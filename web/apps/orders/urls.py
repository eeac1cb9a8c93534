from django.urls import path
from .views import OrdersCollectionView, RetrieveOrderView
from .views import ChangeOrderStatusView, PaymentSessionView, PaymentSucceededView
app_name = "orders"

urlpatterns = [
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("events/payment-succeeded/", PaymentSucceededView.as_view(), name="payment-succeeded"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/status/", ChangeOrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/payment-session/", PaymentSessionView.as_view(), name="orders-payment-session"),
]
