"""Read-only dashboard projections over orders and products.

Nothing is cached: every call recomputes from the current stores, so the
numbers reflect whatever orders exist at query time.
"""

from dataclasses import asdict, dataclass

from .domain import CatalogPort, CatalogUnavailable, OrderRepositoryPort, OrderStatus
from .errors import DependencyFailure
from .ledger import LOW_STOCK_THRESHOLD


@dataclass(frozen=True)
class AdminStats:
    total_sales_cents: int
    total_orders: int
    pending_orders: int
    processing_orders: int
    shipped_orders: int
    delivered_orders: int
    cancelled_orders: int
    low_stock_count: int

    def to_dict(self) -> dict:
        return asdict(self)


class AdminStatsReader:
    """Compute ``AdminStats`` from an order repository and the catalog."""

    def __init__(self, orders: OrderRepositoryPort, catalog: CatalogPort):
        self.orders = orders
        self.catalog = catalog

    def get_admin_stats(self) -> AdminStats:
        counts = self.orders.status_counts()
        try:
            low_stock = self.catalog.count_low_stock(LOW_STOCK_THRESHOLD)
        except CatalogUnavailable as e:
            raise DependencyFailure("Catalog unavailable while counting low stock.") from e
        return AdminStats(
            total_sales_cents=self.orders.sales_total_cents(),
            total_orders=sum(counts.values()),
            pending_orders=counts.get(OrderStatus.PENDING, 0),
            processing_orders=counts.get(OrderStatus.PROCESSING, 0),
            shipped_orders=counts.get(OrderStatus.SHIPPED, 0),
            delivered_orders=counts.get(OrderStatus.DELIVERED, 0),
            cancelled_orders=counts.get(OrderStatus.CANCELLED, 0),
            low_stock_count=low_stock,
        )
