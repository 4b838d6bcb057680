"""In-process adapters for the orders domain ports.

These implement ``CatalogPort``, ``NotifierPort`` and
``OrderRepositoryPort`` without a database or network calls. They are
intended for unit tests and local development where deterministic
behavior is useful and external services are not required. They are
thread-safe so concurrency properties can be exercised against them.
"""

import copy
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from .domain import (
    CatalogPort,
    NotificationMessage,
    NotifierPort,
    Order,
    OrderRepositoryPort,
    OrderStatus,
    ProductSnapshot,
    UnknownProduct,
)


class InMemoryCatalog(CatalogPort):
    """Dictionary-backed catalog with one lock per sku.

    Each ``apply_delta`` holds the product's lock for its read-modify-write,
    so deltas on the same sku are linearizable while different skus never
    contend.
    """

    def __init__(self, products: Iterable[ProductSnapshot] = ()):
        self._products: Dict[str, ProductSnapshot] = {}
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()
        for p in products:
            self.put(p)

    def put(self, product: ProductSnapshot) -> None:
        with self._lock_for(product.sku):
            self._products[product.sku] = product

    def get_product(self, sku: str) -> Optional[ProductSnapshot]:
        return self._products.get(sku)

    def stock(self, sku: str) -> int:
        return self._products[sku].stock

    def apply_delta(self, sku: str, delta: int) -> int:
        with self._lock_for(sku):
            current = self._products.get(sku)
            if current is None:
                raise UnknownProduct(sku)
            updated = ProductSnapshot(
                sku=current.sku,
                name=current.name,
                price_cents=current.price_cents,
                image=current.image,
                stock=current.stock + delta,
            )
            self._products[sku] = updated
            return updated.stock

    def count_low_stock(self, threshold: int) -> int:
        return sum(1 for p in list(self._products.values()) if p.stock < threshold)

    def _lock_for(self, sku: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[sku]


class RecordingNotifier(NotifierPort):
    """Notifier that keeps every emitted message in ``messages``."""

    def __init__(self):
        self.messages: List[NotificationMessage] = []
        self._lock = threading.Lock()

    def emit(self, message: NotificationMessage) -> None:
        with self._lock:
            self.messages.append(message)

    def titled(self, title: str) -> List[NotificationMessage]:
        return [m for m in self.messages if m.title == title]


class InMemoryOrderRepository(OrderRepositoryPort):
    """Order store keeping deep copies so callers never share state.

    ``locked`` takes a per-order re-entrant lock; changes saved inside the
    block are kept, and an exception inside it discards them.
    """

    def __init__(self):
        self._orders: Dict[object, Order] = {}
        self._locks: Dict[object, threading.RLock] = defaultdict(threading.RLock)
        self._registry_lock = threading.Lock()

    def add(self, order: Order) -> None:
        with self._lock_for(order.id):
            self._orders[order.id] = copy.deepcopy(order)

    def get(self, order_id) -> Optional[Order]:
        with self._lock_for(order_id):
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    @contextmanager
    def locked(self, order_id):
        lock = self._lock_for(order_id)
        with lock:
            snapshot = self._orders.get(order_id)
            try:
                yield copy.deepcopy(snapshot) if snapshot else None
            except BaseException:
                if snapshot is not None:
                    self._orders[order_id] = snapshot
                raise

    def save(self, order: Order) -> None:
        with self._lock_for(order.id):
            self._orders[order.id] = copy.deepcopy(order)

    def list(self, owner_id: Optional[str] = None, statuses: Optional[Iterable[OrderStatus]] = None) -> List[Order]:
        wanted = set(statuses) if statuses is not None else None
        found = [
            copy.deepcopy(o)
            for o in list(self._orders.values())
            if (owner_id is None or o.owner_id == owner_id) and (wanted is None or o.status in wanted)
        ]
        return sorted(found, key=lambda o: o.created_at, reverse=True)

    def status_counts(self) -> dict:
        counts = {status: 0 for status in OrderStatus}
        for o in list(self._orders.values()):
            counts[o.status] += 1
        return counts

    def sales_total_cents(self) -> int:
        return sum(o.total_cents for o in list(self._orders.values()) if o.status != OrderStatus.CANCELLED)

    def _lock_for(self, order_id) -> threading.RLock:
        with self._registry_lock:
            return self._locks[order_id]
