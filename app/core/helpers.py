"""
Helper functions for common infrastructure operations.

- Digest of raw bytes (webhook idempotency keys)
- Client IP extraction (request logging)

These helpers have no knowledge of billing concepts.

Usage:
    from core.helpers import hash_bytes, get_client_ip

    key = hash_bytes(request.body)
    ip = get_client_ip(request)
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest


def hash_bytes(value: bytes | str, algorithm: str = "sha256") -> str:
    """
    Hex digest of raw bytes (strings are UTF-8 encoded first).

    Args:
        value: Bytes to hash
        algorithm: Any algorithm name accepted by hashlib.new

    Example:
        hash_bytes(b'{"event": "subscription.charged"}')
    """
    if isinstance(value, str):
        value = value.encode("utf-8")
    hasher = hashlib.new(algorithm)
    hasher.update(value)
    return hasher.hexdigest()


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    Takes the first address of X-Forwarded-For when present.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")
