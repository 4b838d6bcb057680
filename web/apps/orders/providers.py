"""Service provider helpers for wiring the order core with its ports.

``get_order_service`` returns an ``OrderService`` backed by the Django
order repository. The catalog is the HTTP inventory client when
``settings.USE_HTTP_ADAPTERS`` is truthy and the local ORM catalog
otherwise. Notifications are stored through the ORM sink, optionally via
a background worker when ``settings.NOTIFICATIONS_ASYNC`` is set.
"""

import threading

from django.conf import settings

from apps.catalog.store import OrmCatalog
from apps.notifications.dispatch import BackgroundNotifier
from apps.notifications.service import OrmNotificationSink

from .domain import CatalogPort, NotifierPort
from .http_adapters import HttpCatalogClient
from .reporting import AdminStatsReader
from .repository import OrderRepository
from .service import OrderService

_background = None
_background_lock = threading.Lock()


def get_catalog() -> CatalogPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpCatalogClient()
    return OrmCatalog()


def get_notifier() -> NotifierPort:
    """Return the notification sink, shared background worker included."""
    global _background
    if not getattr(settings, "NOTIFICATIONS_ASYNC", False):
        return OrmNotificationSink()
    with _background_lock:
        if _background is None:
            _background = BackgroundNotifier(OrmNotificationSink())
        return _background


def get_order_service() -> OrderService:
    """Return a configured OrderService instance."""
    return OrderService(
        orders=OrderRepository(),
        catalog=get_catalog(),
        notifier=get_notifier(),
        policy=getattr(settings, "ORDER_TRANSITION_POLICY", "permissive"),
    )


def get_stats_reader() -> AdminStatsReader:
    return AdminStatsReader(orders=OrderRepository(), catalog=get_catalog())
