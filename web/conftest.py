import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def local_adapters(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.NOTIFICATIONS_ASYNC = False
    settings.ORDER_TRANSITION_POLICY = "permissive"
    # throttle counters live in the default cache
    cache.clear()
    yield
    cache.clear()


ALICE = {"HTTP_X_PRINCIPAL_ID": "alice", "HTTP_X_PRINCIPAL_NAME": "Alice"}
BOB = {"HTTP_X_PRINCIPAL_ID": "bob"}
ADMIN = {"HTTP_X_PRINCIPAL_ID": "root", "HTTP_X_PRINCIPAL_ROLE": "admin"}


@pytest.fixture
def principals():
    return {"alice": ALICE, "bob": BOB, "admin": ADMIN}


@pytest.fixture
def products(db):
    from apps.catalog.models import ProductModel

    return [
        ProductModel.objects.create(sku="MUG-1", name="Mug", price_cents=1250, image="mug.png", stock=10),
        ProductModel.objects.create(sku="TEE-1", name="Tee", price_cents=2000, stock=6),
    ]


@pytest.fixture
def order_payload():
    return {
        "items": [{"sku": "mug-1", "quantity": 2}],
        "shipping_info": {"address": "1 Main St", "city": "Porto", "phone": "555-0100"},
        "payment_info": {"id": "pay_1", "status": "paid", "method": "card"},
        "amount_cents": 2500,
        "currency": "EUR",
    }
