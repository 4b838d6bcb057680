"""Notification storage and inbox operations.

``OrmNotificationSink`` is the sink the order core emits into.
``NotificationService`` serves a principal's inbox: what they can see,
and marking messages as read. Notifications are never deleted; the only
mutation is adding a reader.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.db import transaction
from django.db.models import Q

from apps.orders.domain import NotificationMessage, NotificationTarget, NotificationType, NotifierPort, Principal
from apps.orders.errors import NotFound, ValidationFailed

from .models import NotificationModel, NotificationRead

logger = logging.getLogger(__name__)


class OrmNotificationSink(NotifierPort):
    """Persist each emitted message as a ``NotificationModel`` row."""

    def emit(self, message: NotificationMessage) -> None:
        target = NotificationTarget(message.target).value
        NotificationModel.objects.create(
            title=message.title.strip(),
            message=message.message.strip(),
            type=NotificationType(message.type).value,
            target=target,
            recipient_id=message.recipient_id,
        )
        logger.info("notification stored", extra={"title": message.title, "target": target})


@dataclass(frozen=True)
class InboxItem:
    notification: NotificationModel
    is_read: bool


def _visible_to(principal: Principal) -> Q:
    return (
        Q(target=NotificationTarget.ALL.value)
        | Q(target=principal.role)
        | Q(recipient_id=principal.id)
    )


class NotificationService:
    def list_for(self, principal: Principal) -> List[InboxItem]:
        """Notifications for everyone, for the principal's role, or for them.

        Newest first, each flagged with whether this principal has read it.
        """
        qs = NotificationModel.objects.filter(_visible_to(principal))
        read_ids = set(
            NotificationRead.objects.filter(principal_id=principal.id).values_list("notification_id", flat=True)
        )
        return [InboxItem(notification=n, is_read=n.id in read_ids) for n in qs]

    def mark_read(self, principal: Principal, notification_id: int) -> NotificationModel:
        notification = NotificationModel.objects.filter(id=notification_id).first()
        if notification is None:
            raise NotFound("Notification not found.")
        NotificationRead.objects.get_or_create(notification=notification, principal_id=principal.id)
        return notification

    @transaction.atomic
    def mark_all_read(self, principal: Principal) -> int:
        """Add the principal to the readers of everything visible to them.

        Returns:
            int: Number of notifications newly marked as read.
        """
        already = NotificationRead.objects.filter(principal_id=principal.id).values_list("notification_id", flat=True)
        unread = NotificationModel.objects.filter(_visible_to(principal)).exclude(id__in=already)
        reads = [NotificationRead(notification=n, principal_id=principal.id) for n in unread]
        NotificationRead.objects.bulk_create(reads, ignore_conflicts=True)
        return len(reads)

    def send(
        self,
        title: str,
        message: str,
        type: str = NotificationType.INFO.value,
        target: str = NotificationTarget.ALL.value,
        recipient_id: Optional[str] = None,
    ) -> NotificationModel:
        """Manually create a notification (admin usage)."""
        if target == NotificationTarget.SPECIFIC.value and not recipient_id:
            raise ValidationFailed("A specific notification needs a recipient.", code="MISSING_RECIPIENT")
        return NotificationModel.objects.create(
            title=title.strip(),
            message=message.strip(),
            type=type,
            target=target,
            recipient_id=recipient_id or None,
        )
