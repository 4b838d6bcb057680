from django.urls import path
from .views import (
    AdminOrdersView,
    AdminOrderStatusView,
    AdminStatsView,
    CancelOrderView,
    DeliveryCodeView,
    OrdersCollectionView,
    OrdersPingView,
    RetrieveOrderView,
    VerifyDeliveryView,
)
app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET mine / POST create
    path("admin/", AdminOrdersView.as_view(), name="admin-orders"),
    path("admin/stats/", AdminStatsView.as_view(), name="admin-stats"),
    path("admin/verify-delivery/", VerifyDeliveryView.as_view(), name="verify-delivery"),
    path("admin/<uuid:oid>/status/", AdminOrderStatusView.as_view(), name="admin-order-status"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/delivery-code/", DeliveryCodeView.as_view(), name="delivery-code"),
    path("<uuid:oid>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
]
