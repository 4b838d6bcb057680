"""API tests for the notification inbox."""

import pytest

from apps.notifications.models import NotificationModel, NotificationRead

URL = "/api/notifications/"

pytestmark = pytest.mark.django_db


@pytest.fixture
def inbox():
    """One notification per audience."""
    return {
        "all": NotificationModel.objects.create(title="Sale", message="10% off", type="promo", target="all"),
        "customer": NotificationModel.objects.create(title="Hello", message="Welcome", target="customer"),
        "admin": NotificationModel.objects.create(title="Low Stock Alert", message="MUG-1", target="admin"),
        "alice": NotificationModel.objects.create(
            title="Order Placed", message="Yours", type="order", target="specific", recipient_id="alice"
        ),
        "bob": NotificationModel.objects.create(
            title="Order Placed", message="Bob's", type="order", target="specific", recipient_id="bob"
        ),
    }


def _ids(resp):
    return {n["id"] for n in resp.json()["notifications"]}


def test_customer_sees_broadcasts_role_and_own(client, principals, inbox):
    r = client.get(URL, **principals["alice"])
    assert r.status_code == 200
    assert _ids(r) == {inbox["all"].id, inbox["customer"].id, inbox["alice"].id}
    assert r.json()["results"] == 3
    assert all(n["is_read"] is False for n in r.json()["notifications"])


def test_admin_sees_admin_notifications(client, principals, inbox):
    r = client.get(URL, **principals["admin"])
    assert _ids(r) == {inbox["all"].id, inbox["admin"].id}


def test_newest_first(client, principals, inbox):
    ids = [n["id"] for n in client.get(URL, **principals["alice"]).json()["notifications"]]
    assert ids == sorted(ids, reverse=True)


def test_mark_read_is_per_principal(client, principals, inbox):
    nid = inbox["all"].id
    r = client.patch(f"{URL}{nid}/read/", **principals["alice"])
    assert r.status_code == 200
    assert r.json()["is_read"] is True
    # marking twice keeps a single reader row
    client.patch(f"{URL}{nid}/read/", **principals["alice"])
    assert NotificationRead.objects.filter(notification_id=nid).count() == 1

    alice = {n["id"]: n["is_read"] for n in client.get(URL, **principals["alice"]).json()["notifications"]}
    bob = {n["id"]: n["is_read"] for n in client.get(URL, **principals["bob"]).json()["notifications"]}
    assert alice[nid] is True
    assert bob[nid] is False


def test_mark_read_unknown(client, principals):
    r = client.patch(f"{URL}999999/read/", **principals["alice"])
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


def test_mark_all_read(client, principals, inbox):
    r = client.patch(f"{URL}read-all/", **principals["alice"])
    assert r.status_code == 200
    assert r.json()["marked"] == 3
    assert all(n["is_read"] for n in client.get(URL, **principals["alice"]).json()["notifications"])
    assert client.patch(f"{URL}read-all/", **principals["alice"]).json()["marked"] == 0
    assert not NotificationRead.objects.filter(notification=inbox["bob"]).exists()


def test_admin_can_send(client, principals):
    r = client.post(
        f"{URL}send/",
        data={"title": " Maintenance ", "message": "Tonight", "type": "system", "target": "customer"},
        content_type="application/json",
        **principals["admin"],
    )
    assert r.status_code == 201
    assert r.json()["title"] == "Maintenance"
    assert NotificationModel.objects.get(id=r.json()["id"]).target == "customer"


def test_send_specific_requires_recipient(client, principals):
    r = client.post(
        f"{URL}send/",
        data={"title": "Hi", "message": "There", "target": "specific"},
        content_type="application/json",
        **principals["admin"],
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "MISSING_RECIPIENT"


def test_send_validation_and_permissions(client, principals):
    r = client.post(f"{URL}send/", data={"title": "Hi"}, content_type="application/json", **principals["admin"])
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"

    r = client.post(
        f"{URL}send/", data={"title": "Hi", "message": "x"}, content_type="application/json", **principals["alice"]
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "FORBIDDEN"


def test_inbox_requires_principal(client):
    assert client.get(URL).status_code == 401
