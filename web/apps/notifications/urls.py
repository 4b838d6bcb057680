from django.urls import path
from .views import MarkAllReadView, MarkReadView, MyNotificationsView, SendNotificationView
app_name = "notifications"

urlpatterns = [
    path("", MyNotificationsView.as_view(), name="mine"),
    path("read-all/", MarkAllReadView.as_view(), name="read-all"),
    path("send/", SendNotificationView.as_view(), name="send"),
    path("<int:nid>/read/", MarkReadView.as_view(), name="read"),
]
