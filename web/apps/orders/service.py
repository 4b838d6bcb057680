"""Order state machine.

``OrderService`` owns every status change of an order. Each transition
runs under the order's single-writer lock, checks the current status,
applies the change, drives the inventory ledger where the transition
requires it, appends history and finally notifies. Notifications go out
after the transition is durable and can never undo it.
"""

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from apps.notifications.dispatch import GuardedNotifier

from . import codes
from .domain import (
    CUSTOMER_CANCELLABLE,
    OWNER_FILTERS,
    TRANSITION_POLICIES,
    CatalogPort,
    CatalogUnavailable,
    HistoryEntry,
    LineItem,
    NotificationMessage,
    NotificationTarget,
    NotificationType,
    NotifierPort,
    Order,
    OrderRepositoryPort,
    OrderStatus,
    Principal,
    ProductSnapshot,
    can_transition,
)
from .errors import (
    AlreadyComplete,
    CodeMismatch,
    DependencyFailure,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from .ledger import InventoryLedger

logger = logging.getLogger(__name__)

REQUIRED_SHIPPING_FIELDS = ("address", "city", "phone", "name")
REQUIRED_PAYMENT_FIELDS = ("status", "method")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrderListing:
    """Admin order listing with the revenue of its non-cancelled orders."""

    orders: List[Order]
    revenue_cents: int


class OrderService:
    """Domain service driving the order lifecycle.

    Args:
        orders: Order persistence with per-order locking.
        catalog: Product catalog used for snapshots and stock deltas.
        notifier: Notification sink; wrapped so failures are only logged.
        policy: Name of the admin transition table (``permissive`` or
            ``strict``).
        clock: Callable returning the current aware datetime.
        generate_code: Delivery code factory.
    """

    def __init__(
        self,
        orders: OrderRepositoryPort,
        catalog: CatalogPort,
        notifier: NotifierPort,
        policy: str = "permissive",
        clock: Callable[[], datetime] = _utcnow,
        generate_code: Callable[[], str] = codes.generate,
    ):
        if policy not in TRANSITION_POLICIES:
            raise ValueError(f"Unknown transition policy: {policy}")
        self.orders = orders
        self.catalog = catalog
        self.notifier = GuardedNotifier(notifier)
        self.ledger = InventoryLedger(catalog, self.notifier)
        self.policy = policy
        self.clock = clock
        self.generate_code = generate_code

    # ---- Creation ----
    def create_order(
        self,
        principal: Principal,
        items: Iterable[LineItem],
        shipping_info: dict,
        payment_info: dict,
        amount_cents: Optional[int] = None,
        currency: str = "EUR",
    ) -> Order:
        """Place an order and reserve its stock.

        The order is persisted in ``PENDING`` first, then each line is
        reserved in turn under the order lock and flagged in the same step.
        Placement notifications go out once the order is persisted, even
        when a reservation then fails.

        Returns:
            The created order, without its delivery code.

        Raises:
            ValidationFailed: Empty order, bad quantity, missing shipping or
                payment fields, unknown product, or a total that does not
                match the catalog prices.
            DependencyFailure: The catalog failed. If the order was already
                persisted it stays ``PENDING`` with the reservations that
                succeeded, and the error carries its id.
        """
        items = list(items)
        if not items:
            raise ValidationFailed("Order must contain at least one item.", code="EMPTY_ORDER")

        shipping = dict(shipping_info or {})
        if principal.name:
            shipping["name"] = principal.name
        missing = [f for f in REQUIRED_SHIPPING_FIELDS if not shipping.get(f)]
        missing += [f"payment.{f}" for f in REQUIRED_PAYMENT_FIELDS if not (payment_info or {}).get(f)]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}.", code="MISSING_FIELDS")

        lines = []
        for item in items:
            if item.quantity <= 0:
                raise ValidationFailed(f"Quantity for {item.sku} must be positive.", code="INVALID_QUANTITY")
            product = self._snapshot(item.sku)
            lines.append(
                LineItem(
                    sku=product.sku,
                    quantity=item.quantity,
                    unit_price_cents=product.price_cents,
                    name=product.name,
                    image=product.image,
                )
            )

        total = sum(line.subtotal_cents for line in lines)
        if amount_cents is not None and amount_cents != total:
            raise ValidationFailed(
                f"Order total {amount_cents} does not match catalog total {total}.",
                code="TOTAL_MISMATCH",
            )

        now = self.clock()
        order = Order(
            id=uuid.uuid4(),
            owner_id=principal.id,
            items=lines,
            shipping_info=shipping,
            payment_info=dict(payment_info),
            total_cents=total,
            currency=currency,
            status=OrderStatus.PENDING,
            delivery_secret=self.generate_code(),
            history=[HistoryEntry(status=OrderStatus.PENDING, at=now)],
            created_at=now,
        )
        self.orders.add(order)
        logger.info("order created", extra={"order_id": str(order.id), "owner_id": principal.id})

        failure = self._reserve_all(order.id, len(lines))
        order = self.orders.get(order.id)

        self.notifier.emit(
            NotificationMessage(
                title="New Order Received",
                message=f"Order #{order.reference} placed by user {principal.name or 'Customer'}",
                type=NotificationType.ORDER,
                target=NotificationTarget.ADMIN,
            )
        )
        self.notifier.emit(
            NotificationMessage(
                title="Order Placed",
                message=f"Your order #{order.reference} has been placed successfully.",
                type=NotificationType.ORDER,
                target=NotificationTarget.SPECIFIC,
                recipient_id=order.owner_id,
            )
        )

        if failure is not None:
            logger.error(
                "order reservation incomplete",
                extra={"order_id": str(order.id), "reservation": order.reservation.value},
            )
            self.notifier.emit(
                NotificationMessage(
                    title="Order Reservation Incomplete",
                    message=f"Order #{order.reference} is {order.reservation.value}: {failure.message}",
                    type=NotificationType.SYSTEM,
                    target=NotificationTarget.ADMIN,
                )
            )
            raise DependencyFailure(
                failure.message,
                order_id=order.id,
                reservation=order.reservation.value,
                **failure.context,
            )
        return _redacted(order)

    # ---- Reads ----
    def get_order(self, principal: Principal, order_id: uuid.UUID, include_code: bool = False) -> Order:
        """Return one order, visible to its owner and to admins.

        The delivery code is kept only when it is explicitly requested, the
        caller owns the order and the order is currently shipped.
        """
        order = self._require(order_id)
        is_owner = order.owner_id == principal.id
        if not (is_owner or principal.is_admin):
            raise Forbidden("Not authorized to view this order.")
        if include_code and is_owner and order.status == OrderStatus.SHIPPED:
            return order
        return _redacted(order)

    def list_orders_for_owner(self, principal: Principal, filter: str = "all") -> List[Order]:
        if filter not in OWNER_FILTERS:
            raise ValidationFailed(f"Unknown filter {filter!r}; use active, history or all.", code="INVALID_FILTER")
        orders = self.orders.list(owner_id=principal.id, statuses=OWNER_FILTERS[filter])
        return [_redacted(o) for o in orders]

    def list_all_orders(self, status: Optional[str] = None) -> OrderListing:
        statuses = [_parse_status(status)] if status else None
        orders = [_redacted(o) for o in self.orders.list(statuses=statuses)]
        revenue = sum(o.total_cents for o in orders if o.status != OrderStatus.CANCELLED)
        return OrderListing(orders=orders, revenue_cents=revenue)

    def get_delivery_code(self, principal: Principal, order_id: uuid.UUID) -> str:
        order = self._require(order_id)
        if order.owner_id != principal.id:
            raise Forbidden("Not authorized to view this delivery code.")
        if order.status != OrderStatus.SHIPPED:
            raise InvalidState("Delivery code is only available for shipped orders.")
        return order.delivery_code

    # ---- Transitions ----
    def admin_update_status(self, order_id: uuid.UUID, new_status) -> Order:
        """Set an order's status on behalf of an administrator.

        Cancelling releases every line still reserved. The owner is notified
        of every successful update, including re-setting the same status.

        Raises:
            ValidationFailed: ``new_status`` is not a declared status.
            NotFound: No such order.
            InvalidTransition: The order is terminal, or the configured
                policy rejects the move.
            DependencyFailure: The status change committed but some stock
                could not be released.
        """
        status = _parse_status(new_status)
        with self.orders.locked(order_id) as order:
            if order is None:
                raise NotFound("Order not found.")
            if order.status == OrderStatus.DELIVERED:
                raise InvalidTransition("You have already delivered this order.")
            if order.is_terminal:
                raise InvalidTransition(f"Order is already {order.status.value}.")
            if not can_transition(order.status, status, self.policy):
                raise InvalidTransition(f"Cannot move order from {order.status.value} to {status.value}.")
            previous = order.status
            order.transition_to(status, self.clock())
            order.reservation = order.summarize_reservation()
            self.orders.save(order)

        failure = None
        if status == OrderStatus.CANCELLED:
            failure = self._release_reserved(order_id)
            order = self.orders.get(order_id)

        logger.info(
            "order status updated",
            extra={"order_id": str(order.id), "from": previous.value, "to": status.value},
        )
        self.notifier.emit(
            NotificationMessage(
                title="Order Update",
                message=f"Your order #{order.reference} is now {status.value}",
                type=NotificationType.ORDER,
                target=NotificationTarget.SPECIFIC,
                recipient_id=order.owner_id,
            )
        )
        self._raise_release_failure(order, failure)
        return _redacted(order)

    def customer_cancel(self, principal: Principal, order_id: uuid.UUID) -> Order:
        """Cancel an order on behalf of its owner and restore its stock."""
        with self.orders.locked(order_id) as order:
            if order is None:
                raise NotFound("Order not found.")
            if order.owner_id != principal.id:
                raise Forbidden("Not authorized to cancel this order.")
            if order.status not in CUSTOMER_CANCELLABLE:
                if order.status == OrderStatus.CANCELLED:
                    raise InvalidTransition("Order is already cancelled.")
                raise InvalidTransition("Order cannot be cancelled after it has been shipped.")
            order.transition_to(OrderStatus.CANCELLED, self.clock())
            order.reservation = order.summarize_reservation()
            self.orders.save(order)

        failure = self._release_reserved(order_id)
        order = self.orders.get(order_id)

        logger.info("order cancelled by owner", extra={"order_id": str(order.id)})
        self.notifier.emit(
            NotificationMessage(
                title="Order Cancelled",
                message=f"Your order #{order.reference} has been cancelled successfully.",
                type=NotificationType.ORDER,
                target=NotificationTarget.SPECIFIC,
                recipient_id=order.owner_id,
            )
        )
        self.notifier.emit(
            NotificationMessage(
                title="Order Cancelled",
                message=f"Order #{order.reference} was cancelled by {principal.name or 'Customer'}.",
                type=NotificationType.ORDER,
                target=NotificationTarget.ADMIN,
            )
        )
        self._raise_release_failure(order, failure)
        return _redacted(order)

    def verify_delivery(self, order_id: uuid.UUID, code: str) -> Order:
        """Confirm physical handoff by checking the scanned delivery code.

        A successful verification clears the stored code, so the same code
        can never confirm anything again.
        """
        with self.orders.locked(order_id) as order:
            if order is None:
                raise NotFound("Order not found.")
            if order.status == OrderStatus.DELIVERED:
                raise AlreadyComplete("Order is already delivered.")
            if order.status != OrderStatus.SHIPPED:
                raise InvalidTransition("Order must be in 'Shipped' state to verify delivery.")
            if not codes.matches(order.delivery_secret, code):
                logger.warning("delivery code mismatch", extra={"order_id": str(order.id)})
                raise CodeMismatch("Invalid delivery code. Verification failed.")
            order.transition_to(OrderStatus.DELIVERED, self.clock())
            self.orders.save(order)

        logger.info("order delivered", extra={"order_id": str(order.id)})
        self.notifier.emit(
            NotificationMessage(
                title="Order Delivered",
                message=f"Order #{order.reference} has been delivered successfully.",
                type=NotificationType.ORDER,
                target=NotificationTarget.SPECIFIC,
                recipient_id=order.owner_id,
            )
        )
        return _redacted(order)

    # ---- Helpers ----
    def _require(self, order_id: uuid.UUID) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found.")
        return order

    def _snapshot(self, sku: str) -> ProductSnapshot:
        try:
            product = self.catalog.get_product(sku)
        except CatalogUnavailable as e:
            raise DependencyFailure(f"Catalog unavailable while reading {sku}.", sku=sku) from e
        if product is None:
            raise ValidationFailed(f"Product {sku} does not exist.", code="UNKNOWN_PRODUCT", sku=sku)
        return product

    def _reserve_all(self, order_id: uuid.UUID, count: int) -> Optional[DependencyFailure]:
        """Reserve stock line by line, each under the order's lock.

        A line's stock delta and its ``reserved`` flag commit together, so a
        concurrent cancel either sees the line held and releases it, or
        never sees it reserved at all. Stops at the first failure, or as
        soon as the order has reached a terminal state; earlier
        reservations stay applied.
        """
        for position in range(count):
            with self.orders.locked(order_id) as current:
                if current is None or current.is_terminal:
                    return None
                line = current.items[position]
                try:
                    self.ledger.reserve(line.sku, line.quantity)
                except DependencyFailure as e:
                    return e
                line.reserved = True
                current.reservation = current.summarize_reservation()
                self.orders.save(current)
        return None

    def _release_reserved(self, order_id: uuid.UUID) -> Optional[DependencyFailure]:
        """Release every held line after the status change has committed.

        Each release clears its flag under its own lock. A release that
        applied remotely but whose flag update then failed to commit leaves
        the line flagged, so stock may be released again by hand but is
        never silently lost. Returns the last failure, if any.
        """
        failure = None
        order = self.orders.get(order_id)
        for position in range(len(order.items) if order else 0):
            with self.orders.locked(order_id) as current:
                line = current.items[position]
                if not line.reserved:
                    continue
                try:
                    self.ledger.release(line.sku, line.quantity)
                except DependencyFailure as e:
                    failure = e
                    continue
                line.reserved = False
                current.reservation = current.summarize_reservation()
                self.orders.save(current)
        return failure

    def _raise_release_failure(self, order: Order, failure: Optional[DependencyFailure]) -> None:
        if failure is None:
            return
        logger.error(
            "stock release incomplete",
            extra={"order_id": str(order.id), "reservation": order.reservation.value},
        )
        raise DependencyFailure(
            failure.message,
            order_id=order.id,
            reservation=order.reservation.value,
            **failure.context,
        )


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationFailed(f"Unknown status {value!r}; expected one of {allowed}.", code="INVALID_STATUS")


def _redacted(order: Order) -> Order:
    return dataclasses.replace(order, delivery_secret=None)
