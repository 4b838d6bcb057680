"""Idempotency-Key storage for order creation.

Placing an order reserves stock, and a reservation applied twice is a
real overdraw, so a client retrying the create call must get the first
answer back instead of a second order. Each key remembers a hash of the
request it was first used with and, once known, the response sent.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey

PENDING_STATUS = 0


def request_fingerprint(payload: dict) -> str:
    """SHA-256 of the payload serialized with sorted keys."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Claim ``key`` for this request or return the record already holding it.

    A first use inserts a record with ``response_status`` 0, meaning the
    request is still being processed. A repeat with the same payload gets
    the stored record back, locked, so the caller can replay it.

    Returns:
        tuple[bool, IdempotencyKey]: Whether the key already existed, and
        its record.

    Raises:
        ValueError: The key was first used with a different payload.
    """
    fingerprint = request_fingerprint(payload)
    try:
        # savepoint so the unique violation does not poison the outer block
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, request_hash=fingerprint, response_status=PENDING_STATUS, response_body={}
            )
        return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
    if rec.request_hash != fingerprint:
        raise ValueError("IDEMPOTENCY_CONFLICT")
    return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None) -> None:
    """Store the response sent for ``rec`` so later retries replay it."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])
