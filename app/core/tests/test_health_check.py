"""
Tests for the health check endpoint.
"""

from django.core.cache import cache
from django.urls import reverse


class TestHealthCheck:
    def test_healthy(self, db, client):
        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected", "cache": "connected"}

    def test_cache_outage_is_degraded(self, db, client, mocker):
        mocker.patch.object(cache, "set", side_effect=ConnectionError("redis down"))

        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["cache"] == "disconnected"
