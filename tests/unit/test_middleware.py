"""Tests for the control-key and request-ID middleware."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from proxyd.config.settings import ProxydSettings
from proxyd.main import create_app


@pytest.fixture
def secured_client():
    settings = ProxydSettings(control_key="s3cret", session_grace_seconds=0.2)
    with TestClient(create_app(settings)) as client:
        yield client


class TestControlKeyAuth:
    def test_missing_key_rejected(self, secured_client):
        response = secured_client.get("/proxies")
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or missing control key", "status": 401}

    def test_wrong_key_rejected(self, secured_client):
        response = secured_client.get("/proxies", headers={"X-Control-Key": "nope"})
        assert response.status_code == 401

    def test_valid_key_accepted(self, secured_client):
        response = secured_client.get("/proxies", headers={"X-Control-Key": "s3cret"})
        assert response.status_code == 200
        assert response.json() == {}

    @pytest.mark.parametrize("path", ["/health", "/version"])
    def test_public_paths(self, secured_client, path):
        assert secured_client.get(path).status_code == 200

    def test_metrics_requires_key(self, secured_client):
        assert secured_client.get("/metrics").status_code == 401
        response = secured_client.get("/metrics", headers={"X-Control-Key": "s3cret"})
        assert response.status_code == 200
        assert response.json()["proxies"] == []

    def test_open_without_configured_key(self, settings):
        with TestClient(create_app(settings)) as client:
            assert client.get("/proxies").status_code == 200


class TestRequestId:
    def test_generated(self, settings):
        with TestClient(create_app(settings)) as client:
            response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 36

    def test_propagated(self, settings):
        with TestClient(create_app(settings)) as client:
            response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_present_on_auth_failures(self, secured_client):
        response = secured_client.get("/proxies")
        assert response.status_code == 401
        assert "X-Request-ID" in response.headers
