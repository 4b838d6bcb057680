"""HTTP catalog client with retries, a circuit breaker, and context headers.

This module implements ``CatalogPort`` against the inventory service using
``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware.
- A circuit breaker for the inventory service to avoid hammering an
    unhealthy dependency, with HALF_OPEN probing after a timeout.
- A retry policy with exponential backoff. Reads retry on transport errors
    and 5xx. Stock adjustments are not idempotent, so they only retry when
    the connection was never established and the request cannot have been
    applied.

Every failure leaves this module as ``CatalogUnavailable`` (or
``UnknownProduct`` for a 404 on an adjustment).
"""

import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .domain import CatalogPort, CatalogUnavailable, ProductSnapshot, UnknownProduct


# ---------------- Circuit Breaker ---------------- #

CLOSED, OPEN, HALF_OPEN = "CLOSED", "OPEN", "HALF_OPEN"


class CircuitOpen(RuntimeError):
    """The breaker refused the call without contacting the service."""


class CircuitBreaker:
    """Thread-safe breaker guarding calls to one remote service.

    ``fail_threshold`` consecutive failures open the circuit. After
    ``reset_timeout`` seconds it lets exactly one probe through; the probe's
    outcome closes the circuit again or reopens it.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = CLOSED
            self._opened_at = 0.0
            self._probing = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == OPEN and time.monotonic() - self._opened_at >= self.reset_timeout:
                self._state = HALF_OPEN
                self._probing = False
            return self._state

    def before_call(self) -> str:
        """Admit or refuse a call and return the state it was admitted in.

        Raises:
            CircuitOpen: While open, or while a half-open probe is running.
        """
        with self._lock:
            st = self.state
            if st == OPEN:
                raise CircuitOpen(f"{self.name} circuit open")
            if st == HALF_OPEN:
                if self._probing:
                    raise CircuitOpen(f"{self.name} circuit probing")
                self._probing = True
            return st

    def on_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = CLOSED
            self._probing = False

    def on_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == HALF_OPEN or (self._state == CLOSED and self._failures >= self.fail_threshold):
                self._state = OPEN
                self._opened_at = time.monotonic()
                self._probing = False

    def on_finish(self) -> None:
        with self._lock:
            if self._state == HALF_OPEN:
                self._probing = False


_catalog_cb = CircuitBreaker(
    "inventory",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception], idempotent: bool) -> bool:
    """Decide whether another attempt is safe and useful.

    Idempotent calls retry on any transport error or HTTP 5xx. Other calls
    retry only when the connection could not be opened at all.
    """
    if exc is not None:
        return idempotent or isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))
    return idempotent and resp is not None and 500 <= resp.status_code < 600


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(CatalogPort):
    """HTTP client for the inventory service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.INVENTORY_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_product(self, sku: str) -> Optional[ProductSnapshot]:
        resp = self._call("GET", f"/products/{sku}", idempotent=True)
        if resp.status_code == 404:
            return None
        data = self._json(resp)
        return ProductSnapshot(
            sku=data["sku"],
            name=data["name"],
            price_cents=int(data["price_cents"]),
            image=data.get("image") or "",
            stock=int(data["stock"]),
        )

    def apply_delta(self, sku: str, delta: int) -> int:
        """Adjust stock remotely and return the committed value.

        Raises:
            UnknownProduct: When the service answers 404.
            CatalogUnavailable: On transport errors, open circuit or any
                other unexpected status.
        """
        resp = self._call("POST", f"/products/{sku}/adjust", idempotent=False, json={"delta": delta})
        if resp.status_code == 404:
            raise UnknownProduct(sku)
        return int(self._json(resp)["stock"])

    def count_low_stock(self, threshold: int) -> int:
        resp = self._call("GET", "/products/low-stock", idempotent=True, params={"below": threshold})
        return int(self._json(resp)["count"])

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        if resp.status_code != 200:
            raise CatalogUnavailable(f"Unexpected inventory response: HTTP {resp.status_code}")
        return resp.json()

    def _call(self, method: str, path: str, idempotent: bool, **kwargs) -> httpx.Response:
        """Send one logical request with circuit-breaker precheck and retries.

        Any response below 500 is a business answer and is returned to the
        caller; it also counts as a success for the breaker.
        """
        max_retries, backoff = _retry_policy()
        cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
        tries = 0

        try:
            state = _catalog_cb.before_call()
        except CircuitOpen as e:
            raise CatalogUnavailable(str(e)) from e
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
                        if resp.status_code < 500:
                            _catalog_cb.on_success()
                            return resp
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries > max_retries or not _should_retry(resp, exc, idempotent):
                        _catalog_cb.on_failure()
                        if exc is not None:
                            raise CatalogUnavailable(f"{method} {path} failed: {exc}") from exc
                        raise CatalogUnavailable(f"{method} {path} failed: HTTP {resp.status_code}")

                    sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                    time.sleep(min(sleep_s, cap))
        finally:
            _catalog_cb.on_finish()
