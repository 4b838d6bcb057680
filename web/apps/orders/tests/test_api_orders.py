"""API tests for the orders endpoints.

The views run against the Django order repository, the ORM catalog and
the ORM notification sink, so each test checks both the HTTP answer and
what ended up in the database.
"""

import uuid

import pytest

from apps.catalog.models import ProductModel
from apps.notifications.models import NotificationModel
from apps.orders.models import OrderHistoryModel, OrderModel

ORDERS_URL = "/api/orders/"

pytestmark = pytest.mark.django_db


def _create(client, principals, payload, who="alice"):
    return client.post(ORDERS_URL, data=payload, content_type="application/json", **principals[who])


def _set_status(client, principals, oid, status):
    return client.put(
        f"{ORDERS_URL}admin/{oid}/status/",
        data={"status": status},
        content_type="application/json",
        **principals["admin"],
    )


def _ship(client, principals, oid):
    assert _set_status(client, principals, oid, "Processing").status_code == 200
    assert _set_status(client, principals, oid, "Shipped").status_code == 200


def test_ping_is_public(client):
    r = client.get(f"{ORDERS_URL}ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_missing_principal_is_401(client, products, order_payload):
    r = client.post(ORDERS_URL, data=order_payload, content_type="application/json")
    assert r.status_code == 401
    assert r.json()["detail"] == "UNAUTHENTICATED"


def test_unknown_role_is_401(client, products):
    r = client.get(ORDERS_URL, HTTP_X_PRINCIPAL_ID="eve", HTTP_X_PRINCIPAL_ROLE="root")
    assert r.status_code == 401


def test_create_order(client, principals, products, order_payload):
    r = _create(client, principals, order_payload)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "Pending"
    assert body["reservation"] == "fully_reserved"
    assert body["amount_cents"] == 2500
    assert body["owner_id"] == "alice"
    assert body["shipping_info"]["name"] == "Alice"
    assert body["items"] == [
        {"sku": "MUG-1", "quantity": 2, "unit_price_cents": 1250, "name": "Mug", "image": "mug.png"}
    ]
    assert "delivery_code" not in body
    assert r.headers["X-Request-ID"]

    row = OrderModel.objects.get(id=body["id"])
    assert row.delivery_secret
    assert ProductModel.objects.get(sku="MUG-1").stock == 8
    assert NotificationModel.objects.filter(title="New Order Received", target="admin").count() == 1
    assert NotificationModel.objects.filter(title="Order Placed", recipient_id="alice").count() == 1


def test_create_order_validation_error(client, principals, products, order_payload):
    order_payload["items"] = []
    r = _create(client, principals, order_payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"
    assert OrderModel.objects.count() == 0


def test_create_order_unknown_product(client, principals, products, order_payload):
    order_payload["items"] = [{"sku": "NOPE-1", "quantity": 1}]
    order_payload.pop("amount_cents")
    r = _create(client, principals, order_payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "UNKNOWN_PRODUCT"


def test_create_order_total_mismatch(client, principals, products, order_payload):
    order_payload["amount_cents"] = 100
    r = _create(client, principals, order_payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "TOTAL_MISMATCH"
    assert ProductModel.objects.get(sku="MUG-1").stock == 10


def test_low_stock_alert_is_stored(client, principals, products, order_payload):
    order_payload["items"] = [{"sku": "TEE-1", "quantity": 2}]
    order_payload["amount_cents"] = 4000
    assert _create(client, principals, order_payload).status_code == 201
    alert = NotificationModel.objects.get(title="Low Stock Alert")
    assert alert.target == "admin"
    assert alert.message == "Product TEE-1 is low on stock (4 left)."


def test_list_my_orders_with_filter(client, principals, products, order_payload):
    first = _create(client, principals, order_payload).json()
    second = _create(client, principals, order_payload).json()
    _create(client, principals, order_payload, who="bob")
    client.post(f"{ORDERS_URL}{first['id']}/cancel/", **principals["alice"])

    r = client.get(ORDERS_URL, **principals["alice"])
    assert r.status_code == 200
    assert r.json()["count"] == 2

    active = client.get(ORDERS_URL, {"filter": "active"}, **principals["alice"]).json()
    assert [o["id"] for o in active["results"]] == [second["id"]]
    history = client.get(ORDERS_URL, {"filter": "history"}, **principals["alice"]).json()
    assert [o["id"] for o in history["results"]] == [first["id"]]

    r = client.get(ORDERS_URL, {"filter": "soon"}, **principals["alice"])
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_FILTER"


@pytest.mark.parametrize("params", [{"page": "abc"}, {"page": "0"}, {"page_size": "0"}, {"page_size": "-5"}])
def test_list_rejects_bad_pagination(client, principals, products, order_payload, params):
    _create(client, principals, order_payload)

    r = client.get(ORDERS_URL, params, **principals["alice"])
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"

    r = client.get(f"{ORDERS_URL}admin/", params, **principals["admin"])
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


def test_list_page_size_is_capped(client, principals, products, order_payload):
    _create(client, principals, order_payload)

    body = client.get(ORDERS_URL, {"page_size": "5000", "page": "3"}, **principals["alice"]).json()
    assert body["page_size"] == 100
    assert body["page"] == 1
    assert body["count"] == 1


def test_retrieve_order_access(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]
    assert client.get(f"{ORDERS_URL}{oid}/", **principals["alice"]).status_code == 200
    assert client.get(f"{ORDERS_URL}{oid}/", **principals["admin"]).status_code == 200
    r = client.get(f"{ORDERS_URL}{oid}/", **principals["bob"])
    assert r.status_code == 403
    assert r.json()["detail"] == "FORBIDDEN"
    assert client.get(f"{ORDERS_URL}{uuid.uuid4()}/", **principals["alice"]).status_code == 404


def test_delivery_code_flow(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]

    r = client.get(f"{ORDERS_URL}{oid}/delivery-code/", **principals["alice"])
    assert r.status_code == 409
    assert r.json()["detail"] == "INVALID_STATE"

    _ship(client, principals, oid)
    code = client.get(f"{ORDERS_URL}{oid}/delivery-code/", **principals["alice"]).json()["delivery_code"]
    assert len(code) == 6
    detail = client.get(f"{ORDERS_URL}{oid}/", {"include_code": "true"}, **principals["alice"]).json()
    assert detail["delivery_code"] == code
    admin_view = client.get(f"{ORDERS_URL}{oid}/", {"include_code": "true"}, **principals["admin"]).json()
    assert "delivery_code" not in admin_view
    assert client.get(f"{ORDERS_URL}{oid}/delivery-code/", **principals["bob"]).status_code == 403

    verify_url = f"{ORDERS_URL}admin/verify-delivery/"
    wrong = "000000" if code != "000000" else "111111"
    r = client.post(verify_url, data={"order_id": oid, "code": wrong}, content_type="application/json", **principals["admin"])
    assert r.status_code == 422
    assert r.json()["detail"] == "CODE_MISMATCH"
    assert OrderModel.objects.get(id=oid).status == "Shipped"

    r = client.post(verify_url, data={"order_id": oid, "code": code}, content_type="application/json", **principals["admin"])
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "Delivered"
    assert OrderModel.objects.get(id=oid).delivery_secret is None

    r = client.post(verify_url, data={"order_id": oid, "code": code}, content_type="application/json", **principals["admin"])
    assert r.status_code == 409
    assert r.json()["detail"] == "ALREADY_COMPLETE"


def test_verify_delivery_requires_admin(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]
    r = client.post(
        f"{ORDERS_URL}admin/verify-delivery/",
        data={"order_id": oid, "code": "ABCDEF"},
        content_type="application/json",
        **principals["alice"],
    )
    assert r.status_code == 403


def test_admin_status_update(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]
    r = _set_status(client, principals, oid, "Processing")
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "Processing"
    statuses = list(OrderHistoryModel.objects.filter(order_id=oid).values_list("status", flat=True))
    assert statuses == ["Pending", "Processing"]
    assert NotificationModel.objects.filter(title="Order Update", recipient_id="alice").exists()


def test_admin_status_update_rejections(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]
    r = _set_status(client, principals, oid, "Lost")
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"

    assert _set_status(client, principals, oid, "Cancelled").status_code == 200
    assert ProductModel.objects.get(sku="MUG-1").stock == 10
    r = _set_status(client, principals, oid, "Processing")
    assert r.status_code == 409
    assert r.json()["detail"] == "INVALID_TRANSITION"

    assert _set_status(client, principals, uuid.uuid4(), "Processing").status_code == 404
    r = client.put(
        f"{ORDERS_URL}admin/{oid}/status/", data={"status": "Shipped"}, content_type="application/json", **principals["alice"]
    )
    assert r.status_code == 403


def test_strict_policy_setting(client, principals, products, order_payload, settings):
    settings.ORDER_TRANSITION_POLICY = "strict"
    oid = _create(client, principals, order_payload).json()["id"]
    assert _set_status(client, principals, oid, "Shipped").status_code == 409
    assert _set_status(client, principals, oid, "Processing").status_code == 200


def test_customer_cancel(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]
    assert client.post(f"{ORDERS_URL}{oid}/cancel/", **principals["bob"]).status_code == 403

    r = client.post(f"{ORDERS_URL}{oid}/cancel/", **principals["alice"])
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "Cancelled"
    assert r.json()["order"]["reservation"] == "released"
    assert ProductModel.objects.get(sku="MUG-1").stock == 10

    r = client.post(f"{ORDERS_URL}{oid}/cancel/", **principals["alice"])
    assert r.status_code == 409
    assert ProductModel.objects.get(sku="MUG-1").stock == 10


def test_customer_cannot_cancel_shipped(client, principals, products, order_payload):
    oid = _create(client, principals, order_payload).json()["id"]
    _ship(client, principals, oid)
    r = client.post(f"{ORDERS_URL}{oid}/cancel/", **principals["alice"])
    assert r.status_code == 409
    assert OrderModel.objects.get(id=oid).status == "Shipped"


def test_admin_orders_listing(client, principals, products, order_payload):
    kept = _create(client, principals, order_payload).json()
    dropped = _create(client, principals, order_payload, who="bob").json()
    _set_status(client, principals, dropped["id"], "Cancelled")

    r = client.get(f"{ORDERS_URL}admin/", **principals["admin"])
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert body["revenue_cents"] == kept["amount_cents"]

    cancelled = client.get(f"{ORDERS_URL}admin/", {"status": "Cancelled"}, **principals["admin"]).json()
    assert [o["id"] for o in cancelled["results"]] == [dropped["id"]]
    assert client.get(f"{ORDERS_URL}admin/", **principals["alice"]).status_code == 403


def test_admin_stats(client, principals, products, order_payload):
    a = _create(client, principals, order_payload).json()
    b = _create(client, principals, order_payload).json()
    _set_status(client, principals, b["id"], "Cancelled")

    r = client.get(f"{ORDERS_URL}admin/stats/", **principals["admin"])
    assert r.status_code == 200
    assert r.json() == {
        "total_sales_cents": a["amount_cents"],
        "total_orders": 2,
        "pending_orders": 1,
        "processing_orders": 0,
        "shipped_orders": 0,
        "delivered_orders": 0,
        "cancelled_orders": 1,
        "low_stock_count": 0,
    }


def test_oversized_body_is_rejected(client, principals, settings, order_payload):
    settings.API_MAX_BYTES = 10
    r = _create(client, principals, order_payload)
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"
