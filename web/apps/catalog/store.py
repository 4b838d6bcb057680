"""Django ORM implementation of ``CatalogPort``.

Stock changes are issued as a single ``UPDATE ... SET stock = stock + d``
through an ``F()`` expression, so the database applies each delta
atomically and concurrent reservations on the same product cannot lose
an update.
"""

from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import F

from apps.orders.domain import CatalogPort, CatalogUnavailable, ProductSnapshot, UnknownProduct

from .models import ProductModel


class OrmCatalog(CatalogPort):
    """Catalog adapter backed by ``ProductModel``."""

    def get_product(self, sku: str) -> Optional[ProductSnapshot]:
        try:
            obj = ProductModel.objects.filter(sku=sku).first()
        except DatabaseError as e:
            raise CatalogUnavailable(str(e)) from e
        if obj is None:
            return None
        return ProductSnapshot(
            sku=obj.sku,
            name=obj.name,
            price_cents=obj.price_cents,
            image=obj.image,
            stock=obj.stock,
        )

    def apply_delta(self, sku: str, delta: int) -> int:
        """Apply ``delta`` and return the committed stock.

        The read-back happens inside the same transaction, while the row
        lock taken by the UPDATE is still held.
        """
        try:
            with transaction.atomic():
                updated = ProductModel.objects.filter(sku=sku).update(stock=F("stock") + delta)
                if not updated:
                    raise UnknownProduct(sku)
                return ProductModel.objects.values_list("stock", flat=True).get(sku=sku)
        except DatabaseError as e:
            raise CatalogUnavailable(str(e)) from e

    def count_low_stock(self, threshold: int) -> int:
        try:
            return ProductModel.objects.filter(stock__lt=threshold).count()
        except DatabaseError as e:
            raise CatalogUnavailable(str(e)) from e
