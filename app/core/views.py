"""
Core views providing infrastructure endpoints.
"""

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    The database is required. The cache backs webhook idempotency markers, so
    a cache outage is reported as "degraded" but still answers 200: webhook
    deliveries keep working, they only lose duplicate suppression.

    Returns:
        JsonResponse with status, database and cache, 200 or 503.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        health_status["cache"] = "disconnected"

    if is_healthy and health_status["cache"] != "connected":
        health_status["status"] = "degraded"

    return JsonResponse(health_status, status=200 if is_healthy else 503)
