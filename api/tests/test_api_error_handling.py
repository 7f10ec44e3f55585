"""Tests for API error handling.

Contract:
- 422: FastAPI default; detail is array of { loc, msg, type }.
- 400/403/404/409/500: single top-level key "detail" (string); no extra keys.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from devsync_api.adapters.contribution_store import InMemoryContributionStore
from devsync_api.main import app


class BrokenStore(InMemoryContributionStore):
    def list_users(self):
        raise RuntimeError("database connection lost")


@pytest.fixture
async def client(store):
    """Client with raise_app_exceptions=False so 4xx/5xx return response body."""
    previous = app.state.contribution_store
    app.state.contribution_store = store
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.contribution_store = previous


# --- 422 validation ---


@pytest.mark.asyncio
async def test_422_response_has_detail_array(client: AsyncClient, admin_headers):
    response = await client.post("/api/admin/submit-pr", json={"user_id": "1001"}, headers=admin_headers)
    assert response.status_code == 422
    data = response.json()
    assert isinstance(data["detail"], list), "422 detail must be array (FastAPI default)"
    for item in data["detail"]:
        assert "loc" in item
        assert "msg" in item
        assert "type" in item


@pytest.mark.asyncio
async def test_422_for_out_of_range_scan_options(client: AsyncClient, admin_headers):
    response = await client.post("/api/admin/scan-prs", json={"batchSize": 0}, headers=admin_headers)
    assert response.status_code == 422


# --- detail-string errors ---


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("get", "/api/admin/all-prs", 403),
        ("post", "/api/admin/pr/missing/approve", 404),
        ("delete", "/api/admin/pr/missing", 404),
        ("get", "/api/admin/users/missing/ledger-preview", 404),
    ],
)
async def test_error_body_has_only_detail_key(client: AsyncClient, admin_headers, method, path, expected):
    headers = admin_headers if expected != 403 else {}
    response = await client.request(method.upper(), path, headers=headers)
    assert response.status_code == expected
    body = response.json()
    assert list(body.keys()) == ["detail"], "error body must have no extra keys"
    assert isinstance(body["detail"], str)


@pytest.mark.asyncio
async def test_500_response_has_only_detail_string(client: AsyncClient):
    """500 responses have only 'detail' (string); no stack trace."""
    app.state.contribution_store = BrokenStore()
    response = await client.get("/api/leaderboard")
    assert response.status_code == 500
    body = response.json()
    assert list(body.keys()) == ["detail"], "500 must have no extra keys"
    assert body["detail"] == "Internal server error"
