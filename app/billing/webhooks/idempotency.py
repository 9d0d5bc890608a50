"""
Idempotency markers for webhook deliveries.

A delivery is identified by a hash of its raw body. The reconciler claims
the key atomically before applying the event, so of two parallel
deliveries of the same body only one is applied. The claim doubles as the
processed marker: redeliveries within the TTL are acknowledged without
being applied again. A claim is released only when the event could not be
persisted, so the gateway can redeliver it.

The store is injected into WebhookReconciler. Production uses
CacheIdempotencyStore over the Django cache (django-redis); tests use
InMemoryIdempotencyStore.

Usage:
    from billing.webhooks.idempotency import CacheIdempotencyStore, webhook_idempotency_key

    store = CacheIdempotencyStore()
    key = webhook_idempotency_key(raw_body)
    if store.claim(key, ttl=3600):
        ...
        store.mark_processed(key, ttl=3600)
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.core.cache import caches

from core.helpers import hash_bytes

from billing.constants import GATEWAY_DEFAULTS

if TYPE_CHECKING:
    from collections.abc import Callable

    from django.core.cache.backends.base import BaseCache


def webhook_idempotency_key(raw_body: bytes | str) -> str:
    """Prefix plus the sha256 hex digest of the raw body."""
    return f"{GATEWAY_DEFAULTS.WEBHOOK_KEY_PREFIX}{hash_bytes(raw_body)}"


@runtime_checkable
class IdempotencyStore(Protocol):
    """Key-value store with TTL used to remember processed deliveries."""

    def is_processed(self, key: str) -> bool: ...

    def claim(self, key: str, ttl: int) -> bool:
        """Set the key if absent. True when this caller set it."""
        ...

    def mark_processed(self, key: str, ttl: int) -> None: ...

    def release(self, key: str) -> None: ...


class CacheIdempotencyStore:
    """
    IdempotencyStore backed by a Django cache alias.

    Markers expire on their own; no cleanup job is needed.
    """

    def __init__(self, alias: str = "default", cache: BaseCache | None = None):
        self._cache = cache if cache is not None else caches[alias]

    def is_processed(self, key: str) -> bool:
        return self._cache.get(key) is not None

    def claim(self, key: str, ttl: int) -> bool:
        # cache.add is atomic (SET NX on Redis). django-redis returns None
        # instead of raising when IGNORE_EXCEPTIONS hides an outage; that
        # counts as claimed so the delivery is processed, not dropped.
        return self._cache.add(key, 1, timeout=ttl) is not False

    def mark_processed(self, key: str, ttl: int) -> None:
        self._cache.set(key, 1, timeout=ttl)

    def release(self, key: str) -> None:
        self._cache.delete(key)


class InMemoryIdempotencyStore:
    """
    Process-local IdempotencyStore for tests.

    Args:
        clock: Returns the current time in seconds (default time.monotonic)
    """

    def __init__(self, clock: Callable[[], float] | None = None):
        self._clock = clock or time.monotonic
        self._expiry: dict[str, float] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> bool:
        expires_at = self._expiry.get(key)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._expiry[key]
            return False
        return True

    def is_processed(self, key: str) -> bool:
        with self._lock:
            return self._live(key)

    def claim(self, key: str, ttl: int) -> bool:
        with self._lock:
            if self._live(key):
                return False
            self._expiry[key] = self._clock() + ttl
            return True

    def mark_processed(self, key: str, ttl: int) -> None:
        with self._lock:
            self._expiry[key] = self._clock() + ttl

    def release(self, key: str) -> None:
        with self._lock:
            self._expiry.pop(key, None)

    def __len__(self) -> int:
        return len(self._expiry)
