from django.db import models


class ProductModel(models.Model):
    """Local catalog entry the order core snapshots and reserves against.

    ``stock`` has no lower bound at the database level: reservations are
    applied without an availability check and may drive it negative.
    """

    sku = models.CharField(max_length=64, primary_key=True)
    name = models.CharField(max_length=200)
    price_cents = models.PositiveIntegerField()
    image = models.CharField(max_length=500, blank=True, default="")
    stock = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_products"
