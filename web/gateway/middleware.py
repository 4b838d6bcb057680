"""Request-scoped middleware: correlation ids, access logging, size limits.

``RequestIdMiddleware`` makes sure every request carries an identifier:
the incoming ``X-Request-Id`` header is reused when present, otherwise a
UUIDv4 is generated. The id is put on ``request.request_id``, in the
``REQUEST_ID_CTX`` ContextVar (read by the logging filter and by the
outbound HTTP catalog client) and echoed back in ``X-Request-ID``. When
the response is ready one structured access log line is written.

``ApiSizeLimitMiddleware`` rejects oversized ``/api/`` bodies with 413
before any view parses them.
"""

import contextvars
import logging
import time
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
PRINCIPAL_CTX = contextvars.ContextVar("principal_id", default="-")

logger = logging.getLogger("gateway.access")


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request.started_at = time.monotonic()
        REQUEST_ID_CTX.set(rid)
        PRINCIPAL_CTX.set("-")

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        started = getattr(request, "started_at", None)
        logger.info(
            "request handled",
            extra={
                "path": request.path,
                "method": request.method,
                "status": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2) if started else None,
            },
        )
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            limit = getattr(settings, "API_MAX_BYTES", 1024 * 1024)
            if clen and clen.isdigit() and int(clen) > limit:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
