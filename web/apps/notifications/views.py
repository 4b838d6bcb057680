"""HTTP views for the notification inbox."""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders.domain import NotificationTarget, NotificationType
from apps.orders.errors import OrderError
from gateway.authentication import HasPrincipal, IsAdminPrincipal

from .models import NotificationModel
from .service import NotificationService


class SendNotificationDTO(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    type: NotificationType = NotificationType.INFO
    target: NotificationTarget = NotificationTarget.ALL
    recipient_id: Optional[str] = None


def _render(n: NotificationModel, is_read: Optional[bool] = None) -> dict:
    body = {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "target": n.target,
        "recipient_id": n.recipient_id,
        "created_at": n.created_at.isoformat(),
    }
    if is_read is not None:
        body["is_read"] = is_read
    return body


class MyNotificationsView(APIView):
    permission_classes = [HasPrincipal]

    def get(self, request):
        items = NotificationService().list_for(request.user)
        return Response(
            {"results": len(items), "notifications": [_render(i.notification, i.is_read) for i in items]},
            status=status.HTTP_200_OK,
        )


class MarkReadView(APIView):
    permission_classes = [HasPrincipal]

    def patch(self, request, nid: int):
        try:
            n = NotificationService().mark_read(request.user, nid)
        except OrderError as e:
            return Response(e.to_dict(), status=e.http_status)
        return Response(_render(n, True), status=status.HTTP_200_OK)


class MarkAllReadView(APIView):
    permission_classes = [HasPrincipal]

    def patch(self, request):
        marked = NotificationService().mark_all_read(request.user)
        return Response({"message": "All notifications marked as read", "marked": marked}, status=status.HTTP_200_OK)


class SendNotificationView(APIView):
    permission_classes = [IsAdminPrincipal]

    def post(self, request):
        try:
            dto = SendNotificationDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": "VALIDATION_ERROR", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        try:
            n = NotificationService().send(
                dto.title,
                dto.message,
                type=dto.type.value,
                target=dto.target.value,
                recipient_id=dto.recipient_id,
            )
        except OrderError as e:
            return Response(e.to_dict(), status=e.http_status)
        return Response(_render(n), status=status.HTTP_201_CREATED)
