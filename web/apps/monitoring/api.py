"""Liveness/readiness probe for the web tier.

Checks the database and, when the HTTP catalog adapter is enabled, the
inventory service's own ``/health`` endpoint. Returns 503 when any
component is down so load balancers can take the instance out.
"""

import logging

import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        logger.warning("health: database unreachable", exc_info=True)
        return False
    return True


def _inventory_ok() -> bool:
    try:
        resp = httpx.get(f"{settings.INVENTORY_BASE_URL}/health", timeout=settings.HTTP_TIMEOUT_SECS)
    except httpx.HTTPError:
        logger.warning("health: inventory unreachable", exc_info=True)
        return False
    return resp.status_code == 200


def health_view(_request):
    components = {"db": {"ok": _db_ok()}}
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        components["inventory"] = {"ok": _inventory_ok()}

    ok = all(c["ok"] for c in components.values())
    return JsonResponse({"ok": ok, "components": components}, status=200 if ok else 503)
