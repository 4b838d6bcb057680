"""Delivery code generation and verification.

A delivery code is a short one-time secret the customer shows to the
courier. It comes from the ``secrets`` CSPRNG only, so knowing every other
field of the order gives no advantage over brute force.
"""

import hmac
import secrets
from typing import Optional

CODE_BYTES = 3  # 24 bits -> 6 hex characters


def generate() -> str:
    """Return a fresh uppercase hexadecimal delivery code."""
    return secrets.token_hex(CODE_BYTES).upper()


def matches(stored: Optional[str], presented: Optional[str]) -> bool:
    """Compare a presented code to the stored one in constant time.

    An absent stored code never matches, so a cleared code cannot be
    replayed.
    """
    if not stored or presented is None:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))
