import uuid
from django.db import models


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner_id = models.CharField(max_length=64, db_index=True)

    class Status(models.TextChoices):
        PENDING = "Pending"
        PROCESSING = "Processing"
        SHIPPED = "Shipped"
        DELIVERED = "Delivered"
        CANCELLED = "Cancelled"

    class Reservation(models.TextChoices):
        UNRESERVED = "unreserved"
        PARTIAL = "partially_reserved"
        FULL = "fully_reserved"
        RELEASED = "released"

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING, db_index=True)
    reservation = models.CharField(max_length=32, choices=Reservation.choices, default=Reservation.UNRESERVED)
    total_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="EUR")
    shipping_info = models.JSONField(default=dict)
    payment_info = models.JSONField(default=dict)
    # Readable only while the order is Shipped; cleared once terminal.
    delivery_secret = models.CharField(max_length=32, null=True, blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class OrderLineModel(models.Model):
    order = models.ForeignKey(OrderModel, related_name="lines", on_delete=models.CASCADE)
    position = models.PositiveIntegerField()
    sku = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField()
    unit_price_cents = models.PositiveIntegerField(default=0)
    name = models.CharField(max_length=200)
    image = models.CharField(max_length=500, blank=True, default="")
    reserved = models.BooleanField(default=False)

    class Meta:
        db_table = "order_lines"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["order", "position"], name="ux_order_line_position"),
        ]


class OrderHistoryModel(models.Model):
    # Append-only; rows are never updated or deleted.
    order = models.ForeignKey(OrderModel, related_name="history", on_delete=models.CASCADE)
    status = models.CharField(max_length=32, choices=OrderModel.Status.choices)
    at = models.DateTimeField()

    class Meta:
        db_table = "order_history"
        ordering = ["id"]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
