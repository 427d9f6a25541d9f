"""Tests for health and schema-check endpoints."""

import pytest

pytestmark = pytest.mark.integration


async def test_health_ok(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_health_503_while_shutting_down(client, app):
    app.state.shutting_down = True

    response = await client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


async def test_check_schema_reports_tables(client):
    response = await client.get("/api/check-schema")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["tables"] == {
        "users": True,
        "projects": True,
        "project_likes": True,
        "project_comments": True,
    }
