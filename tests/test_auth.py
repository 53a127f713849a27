"""Tests for the optional HTTP Basic Auth gate."""

from __future__ import annotations

from fastapi.testclient import TestClient


def test_no_credentials(anonymous_client: TestClient):
    """Without credentials the API should return 401."""
    res = anonymous_client.get("/api/reports/columns")
    assert res.status_code == 401
    assert res.headers["www-authenticate"] == "Basic"


def test_wrong_password(anonymous_client: TestClient):
    res = anonymous_client.get("/api/templates", auth=("testuser", "wrongpass"))
    assert res.status_code == 401


def test_wrong_user(anonymous_client: TestClient):
    res = anonymous_client.post("/api/invoices/export", auth=("intruder", "testpass"),
                                json={"start_date": "2024-01-01", "end_date": "2024-01-31"})
    assert res.status_code == 401


def test_correct_credentials(anonymous_client: TestClient):
    res = anonymous_client.get("/api/reports/types", auth=("testuser", "testpass"))
    assert res.status_code == 200


def test_healthcheck_is_public(anonymous_client: TestClient):
    assert anonymous_client.get("/healthz").status_code == 200
