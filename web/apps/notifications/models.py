from django.db import models


class NotificationModel(models.Model):
    class Type(models.TextChoices):
        ORDER = "order"
        PROMO = "promo"
        SYSTEM = "system"
        INFO = "info"

    class Target(models.TextChoices):
        ALL = "all"
        CUSTOMER = "customer"
        ADMIN = "admin"
        SPECIFIC = "specific"

    title = models.CharField(max_length=200)
    message = models.TextField()
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.INFO)
    target = models.CharField(max_length=16, choices=Target.choices)
    # Only used when target == "specific"
    recipient_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "notifications"
        ordering = ["-created_at", "-id"]


class NotificationRead(models.Model):
    """One row per principal that has read a notification."""

    notification = models.ForeignKey(NotificationModel, related_name="reads", on_delete=models.CASCADE)
    principal_id = models.CharField(max_length=64)
    read_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "notification_reads"
        constraints = [
            models.UniqueConstraint(fields=["notification", "principal_id"], name="ux_notification_reader"),
        ]
