"""Inventory ledger: the only path through which orders touch stock.

The ledger turns reservations and releases into atomic deltas on the
catalog and raises the low-stock signal. There is no availability
check before a reservation, so committed stock can go below
zero when demand outruns supply.
"""

import logging

from .domain import (
    CatalogPort,
    CatalogUnavailable,
    NotificationMessage,
    NotificationTarget,
    NotificationType,
    NotifierPort,
    UnknownProduct,
)
from .errors import DependencyFailure

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5


class InventoryLedger:
    """Reserve and release product stock through a ``CatalogPort``.

    Neither operation is idempotent: calling ``reserve`` twice for the same
    order line reserves twice. Callers own the exactly-once discipline.
    """

    def __init__(self, catalog: CatalogPort, notifier: NotifierPort, threshold: int = LOW_STOCK_THRESHOLD):
        self.catalog = catalog
        self.notifier = notifier
        self.threshold = threshold

    def reserve(self, sku: str, quantity: int) -> int:
        """Decrement stock for ``sku`` by ``quantity``.

        Emits a single ``admin`` low-stock notification when the committed
        stock ends up under the threshold.

        Returns:
            int: Committed stock after the decrement.

        Raises:
            DependencyFailure: If the product is unknown or the catalog is
                unreachable. No stock change is assumed in that case.
        """
        stock = self._apply(sku, -quantity)
        logger.info("stock reserved", extra={"sku": sku, "quantity": quantity, "stock": stock})
        if stock < self.threshold:
            self.notifier.emit(
                NotificationMessage(
                    title="Low Stock Alert",
                    message=f"Product {sku} is low on stock ({stock} left).",
                    type=NotificationType.INFO,
                    target=NotificationTarget.ADMIN,
                )
            )
        return stock

    def release(self, sku: str, quantity: int) -> int:
        """Increment stock for ``sku`` by ``quantity`` unconditionally."""
        stock = self._apply(sku, quantity)
        logger.info("stock released", extra={"sku": sku, "quantity": quantity, "stock": stock})
        return stock

    def _apply(self, sku: str, delta: int) -> int:
        try:
            return self.catalog.apply_delta(sku, delta)
        except UnknownProduct as e:
            raise DependencyFailure(f"Product {sku} does not exist in the catalog.", sku=sku) from e
        except CatalogUnavailable as e:
            raise DependencyFailure(f"Catalog unavailable while adjusting {sku}.", sku=sku) from e
