"""HTTP views for the orders app.

Views are small: they validate requests (via
Pydantic), delegate to the ``OrderService`` obtained from
``providers.get_order_service()``, and render either the result or the
typed ``OrderError`` as ``{"detail": CODE, "message": ...}`` with the
error's HTTP status.

The caller is the ``Principal`` resolved by
``gateway.authentication.PrincipalAuthentication`` and available as
``request.user``. Admin routes additionally require the ``admin`` role.

Idempotency: when an ``Idempotency-Key`` header is provided, the create
endpoint processes the first request, stores its response, and replays it
for retries with the same payload. Reusing the key with a different
payload returns HTTP 409.
"""

from django.core.paginator import Paginator
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from gateway.authentication import HasPrincipal, IsAdminPrincipal

from . import providers
from .domain import LineItem
from .errors import OrderError, ValidationFailed
from .idempotency import finalize, get_or_create_idempotent
from .schemas import CreateOrderDTO, OrderReadDTO, UpdateStatusDTO, VerifyDeliveryDTO

TRUTHY = {"1", "true", "yes"}
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _error(err: OrderError) -> Response:
    return Response(err.to_dict(), status=err.http_status)


def _invalid(e: ValidationError) -> Response:
    return Response({"detail": "VALIDATION_ERROR", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def _positive_int(request, name: str, default: int) -> int:
    raw = request.GET.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailed(f"{name} must be a positive integer.", param=name)
    if value < 1:
        raise ValidationFailed(f"{name} must be a positive integer.", param=name)
    return value


def _page(request, orders) -> dict:
    page = _positive_int(request, "page", 1)
    page_size = min(_positive_int(request, "page_size", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    p = Paginator(orders, page_size)
    page_obj = p.get_page(page)
    return {
        "count": p.count,
        "page": page_obj.number,
        "page_size": page_size,
        "results": [OrderReadDTO.from_domain(o).to_json() for o in page_obj.object_list],
    }


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module."""

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List the caller's orders or place a new one.

    ``GET`` accepts ``filter`` = ``active`` | ``history`` | ``all``.
    ``POST`` creates an order, reserving its stock.
    """

    permission_classes = [HasPrincipal]
    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        try:
            orders = providers.get_order_service().list_orders_for_owner(
                request.user, request.GET.get("filter", "all")
            )
            body = _page(request, orders)
        except OrderError as e:
            return _error(e)
        return Response(body, status=status.HTTP_200_OK)

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following responses.
            - 201 with the created order.
            - 200/4xx/503 replaying the stored response when the same
              idempotency key and payload are retried.
            - 409 with {detail: "IDEMPOTENCY_CONFLICT"} when the same key is
              reused with a different payload.
            - 400 for DTO or domain validation errors.
            - 503 with {detail: "DEPENDENCY_FAILURE"} when the catalog
              failed; ``order_id`` is present if the order was persisted.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _invalid(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, {"principal": request.user.id, "body": request.data})
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        items = [LineItem(sku=i.sku, quantity=i.quantity) for i in dto.items]
        try:
            order = providers.get_order_service().create_order(
                request.user,
                items,
                shipping_info=dto.shipping_info.model_dump(exclude_none=True),
                payment_info=dto.payment_info.model_dump(exclude_none=True),
                amount_cents=dto.amount_cents,
                currency=dto.currency,
            )
        except OrderError as e:
            body = e.to_dict()
            if rec:
                finalize(rec, e.http_status, body, order_id=e.context.get("order_id"))
            return Response(body, status=e.http_status)

        # 4) Response
        body = OrderReadDTO.from_domain(order).to_json()
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    permission_classes = [HasPrincipal]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        include_code = request.GET.get("include_code", "").lower() in TRUTHY
        try:
            order = providers.get_order_service().get_order(request.user, oid, include_code=include_code)
        except OrderError as e:
            return _error(e)
        return Response(OrderReadDTO.from_domain(order).to_json(), status=status.HTTP_200_OK)


class DeliveryCodeView(APIView):
    """Owner-only read of the delivery code of a shipped order."""

    permission_classes = [HasPrincipal]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            code = providers.get_order_service().get_delivery_code(request.user, oid)
        except OrderError as e:
            return _error(e)
        return Response({"order_id": str(oid), "delivery_code": code}, status=status.HTTP_200_OK)


class CancelOrderView(APIView):
    permission_classes = [HasPrincipal]

    def post(self, request, oid):
        try:
            order = providers.get_order_service().customer_cancel(request.user, oid)
        except OrderError as e:
            return _error(e)
        return Response(
            {"message": "Order cancelled successfully", "order": OrderReadDTO.from_domain(order).to_json()},
            status=status.HTTP_200_OK,
        )


class AdminOrdersView(APIView):
    """All orders, optionally filtered by ``status``, with their revenue."""

    permission_classes = [IsAdminPrincipal]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        try:
            listing = providers.get_order_service().list_all_orders(request.GET.get("status") or None)
            body = _page(request, listing.orders)
        except OrderError as e:
            return _error(e)
        body["revenue_cents"] = listing.revenue_cents
        return Response(body, status=status.HTTP_200_OK)


class AdminOrderStatusView(APIView):
    permission_classes = [IsAdminPrincipal]

    def put(self, request, oid):
        try:
            dto = UpdateStatusDTO.model_validate(request.data)
        except ValidationError as e:
            return _invalid(e)
        try:
            order = providers.get_order_service().admin_update_status(oid, dto.status)
        except OrderError as e:
            return _error(e)
        return Response(
            {"message": "Status updated and notification sent", "order": OrderReadDTO.from_domain(order).to_json()},
            status=status.HTTP_200_OK,
        )


class VerifyDeliveryView(APIView):
    """Called by the courier app after scanning the customer's code."""

    permission_classes = [IsAdminPrincipal]

    def post(self, request):
        try:
            dto = VerifyDeliveryDTO.model_validate(request.data)
        except ValidationError as e:
            return _invalid(e)
        try:
            order = providers.get_order_service().verify_delivery(dto.order_id, dto.code)
        except OrderError as e:
            return _error(e)
        return Response(
            {"message": "Delivery verified", "order": OrderReadDTO.from_domain(order).to_json()},
            status=status.HTTP_200_OK,
        )


class AdminStatsView(APIView):
    permission_classes = [IsAdminPrincipal]

    def get(self, request):
        try:
            stats = providers.get_stats_reader().get_admin_stats()
        except OrderError as e:
            return _error(e)
        return Response(stats.to_dict(), status=status.HTTP_200_OK)
