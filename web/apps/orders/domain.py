"""Domain models, ports and transition rules for orders.

This module contains the dataclasses used to represent orders while they
move through their lifecycle, protocol definitions (ports) for the
external collaborators the lifecycle engine talks to (catalog, notification
sink, order store), and the transition tables consulted by the state
machine. Nothing here touches Django or the network.
"""

import uuid
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Protocol


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle status of an order.

    ``DELIVERED`` and ``CANCELLED`` are terminal: no transition leaves them.
    """

    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class ReservationState(str, Enum):
    """How much of an order's stock is currently held by the ledger."""

    UNRESERVED = "unreserved"
    PARTIAL = "partially_reserved"
    FULL = "fully_reserved"
    RELEASED = "released"


class NotificationType(str, Enum):
    ORDER = "order"
    PROMO = "promo"
    SYSTEM = "system"
    INFO = "info"


class NotificationTarget(str, Enum):
    ALL = "all"
    CUSTOMER = "customer"
    ADMIN = "admin"
    SPECIFIC = "specific"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED})
CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

OWNER_FILTERS = {
    "active": ACTIVE_STATUSES,
    "history": TERMINAL_STATUSES,
    "all": None,
}


# ---- Transition policy ----
# Admin path. Permissive: any declared status from any non-terminal state,
# including re-setting the current one.
PERMISSIVE_TRANSITIONS = {
    current: frozenset(OrderStatus)
    for current in OrderStatus
    if current not in TERMINAL_STATUSES
}

# Strict: forward-only happy path; delivery is confirmed by code only.
STRICT_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.CANCELLED}),
}

TRANSITION_POLICIES = {
    "permissive": PERMISSIVE_TRANSITIONS,
    "strict": STRICT_TRANSITIONS,
}


def can_transition(current: OrderStatus, requested: OrderStatus, policy: str = "permissive") -> bool:
    """Return True when ``policy`` allows ``current -> requested``.

    Terminal states have no entry in any table, so they never allow a
    transition.

    Raises:
        KeyError: If ``policy`` is not a known policy name.
    """
    table = TRANSITION_POLICIES[policy]
    return requested in table.get(current, frozenset())


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Principal:
    """Authenticated caller as resolved by the identity provider.

    Attributes:
        id: Stable principal identifier.
        role: ``customer`` or ``admin``.
        name: Optional display name.
    """

    id: str
    role: str = "customer"
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    # DRF throttles key authenticated callers on these
    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def pk(self) -> str:
        return self.id


@dataclass(frozen=True)
class ProductSnapshot:
    """Catalog view of a product at the moment it was read."""

    sku: str
    name: str
    price_cents: int
    image: str = ""
    stock: int = 0


@dataclass
class LineItem:
    """A single line of an order.

    Name, price and image are copied from the catalog when the order is
    placed so they stay stable if the catalog entry changes later.

    Attributes:
        sku: Product reference.
        quantity: Units ordered.
        unit_price_cents: Price snapshot in integer cents.
        name: Display name snapshot.
        image: Image reference snapshot.
        reserved: True while the ledger holds stock for this line.
    """

    sku: str
    quantity: int
    unit_price_cents: int = 0
    name: str = ""
    image: str = ""
    reserved: bool = False

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class HistoryEntry:
    status: OrderStatus
    at: datetime


@dataclass
class Order:
    """Container for order data.

    The delivery secret is stored from creation time but only readable
    through ``delivery_code`` while the order is ``SHIPPED``. It is cleared
    for good once the order reaches a terminal state.
    """

    id: uuid.UUID
    owner_id: str
    items: List[LineItem]
    shipping_info: dict
    payment_info: dict
    total_cents: int
    currency: str = "EUR"
    status: OrderStatus = OrderStatus.PENDING
    delivery_secret: Optional[str] = field(default=None, repr=False)
    history: List[HistoryEntry] = field(default_factory=list)
    reservation: ReservationState = ReservationState.UNRESERVED
    created_at: Optional[datetime] = None

    @property
    def reference(self) -> str:
        """Short human-facing reference used in notification texts."""
        return str(self.id)[-6:]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def delivery_code(self) -> Optional[str]:
        if self.status != OrderStatus.SHIPPED:
            return None
        return self.delivery_secret

    def transition_to(self, status: OrderStatus, at: datetime) -> None:
        """Set ``status`` and append the matching history entry."""
        self.status = status
        self.history.append(HistoryEntry(status=status, at=at))
        if status in TERMINAL_STATUSES:
            self.delivery_secret = None

    def reserved_items(self) -> List[LineItem]:
        return [it for it in self.items if it.reserved]

    def summarize_reservation(self) -> ReservationState:
        held = len(self.reserved_items())
        if self.status == OrderStatus.CANCELLED:
            return ReservationState.RELEASED if held == 0 else ReservationState.PARTIAL
        if held == 0:
            return ReservationState.UNRESERVED
        if held == len(self.items):
            return ReservationState.FULL
        return ReservationState.PARTIAL


@dataclass(frozen=True)
class NotificationMessage:
    """Structured message handed to the notification sink."""

    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    target: NotificationTarget = NotificationTarget.ALL
    recipient_id: Optional[str] = None


# ---- Port errors ----
class UnknownProduct(LookupError):
    """The catalog has no product with the requested sku."""


class CatalogUnavailable(RuntimeError):
    """The catalog could not be reached or answered with a server error."""


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Port describing the product catalog operations used by the core."""

    def get_product(self, sku: str) -> Optional[ProductSnapshot]:
        """Return the current snapshot for ``sku`` or None when unknown.

        Raises:
            CatalogUnavailable: When the catalog cannot be reached.
        """
        raise NotImplementedError()

    def apply_delta(self, sku: str, delta: int) -> int:
        """Atomically add ``delta`` to the stock of ``sku``.

        Implementations must apply the change as a single atomic
        read-modify-write so concurrent deltas on the same product never
        lose an update.

        Returns:
            The committed stock after the change.

        Raises:
            UnknownProduct: If ``sku`` does not exist.
            CatalogUnavailable: When the catalog cannot be reached.
        """
        raise NotImplementedError()

    def count_low_stock(self, threshold: int) -> int:
        """Return how many products have ``stock < threshold``."""
        raise NotImplementedError()


class NotifierPort(Protocol):
    """One-directional notification sink. Return values are ignored."""

    def emit(self, message: NotificationMessage) -> None:
        raise NotImplementedError()


class OrderRepositoryPort(Protocol):
    """Port describing order persistence used by the state machine."""

    def add(self, order: Order) -> None:
        raise NotImplementedError()

    def get(self, order_id: uuid.UUID) -> Optional[Order]:
        raise NotImplementedError()

    def locked(self, order_id: uuid.UUID) -> AbstractContextManager[Optional[Order]]:
        """Context manager holding the single-writer lock for one order.

        Yields the current order (or None when it does not exist). Changes
        must be written back with ``save`` before the context exits; they
        become durable when it exits without an exception.
        """
        raise NotImplementedError()

    def save(self, order: Order) -> None:
        raise NotImplementedError()

    def list(
        self,
        owner_id: Optional[str] = None,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[Order]:
        """Return matching orders, newest first."""
        raise NotImplementedError()

    def status_counts(self) -> dict:
        raise NotImplementedError()

    def sales_total_cents(self) -> int:
        """Sum of ``total_cents`` over orders that are not cancelled."""
        raise NotImplementedError()
