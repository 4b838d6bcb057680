"""DRF authentication and permissions for principals resolved upstream.

Identity is verified by the API gateway in front of this service, which
forwards the resolved principal in trusted headers:

- ``X-Principal-Id``: principal identifier (required).
- ``X-Principal-Role``: ``customer`` (default) or ``admin``.
- ``X-Principal-Name``: optional display name.

``PrincipalAuthentication`` turns those headers into a domain
``Principal`` exposed as ``request.user``. Requests without an id stay
anonymous and are rejected with 401 by ``HasPrincipal``.
"""

from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import BasePermission

from apps.orders.domain import Principal

from .middleware import PRINCIPAL_CTX

ROLES = {"customer", "admin"}


class PrincipalAuthentication(BaseAuthentication):
    ID_HEADER = "HTTP_X_PRINCIPAL_ID"
    ROLE_HEADER = "HTTP_X_PRINCIPAL_ROLE"
    NAME_HEADER = "HTTP_X_PRINCIPAL_NAME"

    def authenticate(self, request):
        meta = request.META
        pid = (meta.get(self.ID_HEADER) or "").strip()
        if not pid:
            return None
        role = (meta.get(self.ROLE_HEADER) or "customer").strip().lower()
        if role not in ROLES:
            raise AuthenticationFailed("Unknown principal role.")
        name = (meta.get(self.NAME_HEADER) or "").strip() or None
        PRINCIPAL_CTX.set(pid)
        return Principal(id=pid, role=role, name=name), None

    def authenticate_header(self, request):
        return "Principal"


class HasPrincipal(BasePermission):
    def has_permission(self, request, view):
        return isinstance(request.user, Principal)


class IsAdminPrincipal(BasePermission):
    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        return isinstance(request.user, Principal) and request.user.is_admin
