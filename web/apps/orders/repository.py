"""Repository layer for persisting orders.

This module maps domain ``Order`` objects to the Django ORM tables and
back, so the state machine is not coupled to ORM details. Per-order
serialization uses a row lock (``SELECT ... FOR UPDATE``) held for the
duration of a transaction.
"""

from contextlib import contextmanager
from typing import Iterable, List, Optional

from django.db import transaction
from django.db.models import Count, Sum

from .domain import HistoryEntry, LineItem, Order, OrderRepositoryPort, OrderStatus, ReservationState
from .models import OrderHistoryModel, OrderLineModel, OrderModel


class OrderRepository(OrderRepositoryPort):
    """Repository that persists Order domain objects using Django ORM."""

    def add(self, order: Order) -> None:
        """Persist a new order with its lines and initial history.

        Args:
            order: Domain ``Order`` freshly built by the service.
        """
        with transaction.atomic():
            obj = OrderModel.objects.create(
                id=order.id,
                owner_id=order.owner_id,
                status=order.status.value,
                reservation=order.reservation.value,
                total_cents=order.total_cents,
                currency=order.currency,
                shipping_info=order.shipping_info,
                payment_info=order.payment_info,
                delivery_secret=order.delivery_secret,
                created_at=order.created_at,
            )
            OrderLineModel.objects.bulk_create(
                [
                    OrderLineModel(
                        order=obj,
                        position=i,
                        sku=line.sku,
                        quantity=line.quantity,
                        unit_price_cents=line.unit_price_cents,
                        name=line.name,
                        image=line.image,
                        reserved=line.reserved,
                    )
                    for i, line in enumerate(order.items)
                ]
            )
            OrderHistoryModel.objects.bulk_create(
                [OrderHistoryModel(order=obj, status=h.status.value, at=h.at) for h in order.history]
            )

    def get(self, order_id) -> Optional[Order]:
        obj = OrderModel.objects.filter(id=order_id).first()
        return self._to_domain(obj) if obj else None

    @contextmanager
    def locked(self, order_id):
        """Hold the order's row lock inside one transaction.

        Everything saved inside the block commits when it exits cleanly and
        rolls back when it raises.
        """
        with transaction.atomic():
            obj = OrderModel.objects.select_for_update().filter(id=order_id).first()
            yield self._to_domain(obj) if obj else None

    def save(self, order: Order) -> None:
        """Write back mutable fields and append any new history entries."""
        with transaction.atomic():
            OrderModel.objects.filter(id=order.id).update(
                status=order.status.value,
                reservation=order.reservation.value,
                payment_info=order.payment_info,
                delivery_secret=order.delivery_secret,
            )
            for i, line in enumerate(order.items):
                OrderLineModel.objects.filter(order_id=order.id, position=i).update(reserved=line.reserved)
            stored = OrderHistoryModel.objects.filter(order_id=order.id).count()
            OrderHistoryModel.objects.bulk_create(
                [
                    OrderHistoryModel(order_id=order.id, status=h.status.value, at=h.at)
                    for h in order.history[stored:]
                ]
            )

    def list(self, owner_id: Optional[str] = None, statuses: Optional[Iterable[OrderStatus]] = None) -> List[Order]:
        qs = OrderModel.objects.prefetch_related("lines", "history").order_by("-created_at")
        if owner_id is not None:
            qs = qs.filter(owner_id=owner_id)
        if statuses is not None:
            qs = qs.filter(status__in=[OrderStatus(s).value for s in statuses])
        return [self._to_domain(o) for o in qs]

    def status_counts(self) -> dict:
        counts = {status: 0 for status in OrderStatus}
        for row in OrderModel.objects.values("status").annotate(n=Count("id")):
            counts[OrderStatus(row["status"])] = row["n"]
        return counts

    def sales_total_cents(self) -> int:
        agg = OrderModel.objects.exclude(status=OrderModel.Status.CANCELLED).aggregate(total=Sum("total_cents"))
        return agg["total"] or 0

    @staticmethod
    def _to_domain(obj: OrderModel) -> Order:
        return Order(
            id=obj.id,
            owner_id=obj.owner_id,
            items=[
                LineItem(
                    sku=line.sku,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    name=line.name,
                    image=line.image,
                    reserved=line.reserved,
                )
                for line in obj.lines.all()
            ],
            shipping_info=obj.shipping_info,
            payment_info=obj.payment_info,
            total_cents=obj.total_cents,
            currency=obj.currency,
            status=OrderStatus(obj.status),
            delivery_secret=obj.delivery_secret,
            history=[HistoryEntry(status=OrderStatus(h.status), at=h.at) for h in obj.history.all()],
            reservation=ReservationState(obj.reservation),
            created_at=obj.created_at,
        )
