"""Shorten endpoint behavior tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    assert response.status_code == 201
    data = response.json()
    assert data["target_url"] == "https://www.google.com"
    assert len(data["code"]) == 8
    assert data["short_url"] == f"http://sho.rt/{data['code']}"
    assert data["click_count"] == 0
    assert data["expires_at"] is None


@pytest.mark.asyncio
async def test_shorten_with_expiry(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com", "expiry_hours": 2})
    assert response.status_code == 201
    assert response.json()["expires_at"].startswith("2026-01-01T14:00:00")


@pytest.mark.asyncio
@pytest.mark.parametrize("expiry_hours", [0, -1, 87601])
async def test_shorten_expiry_out_of_range(client: AsyncClient, expiry_hours: int) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com", "expiry_hours": expiry_hours})
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_shorten_invalid_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "not-a-url"})
    assert response.status_code == 422
    assert response.json()["error"] == "INVALID_URL"


@pytest.mark.asyncio
async def test_shorten_empty_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_with_custom_code(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "mycode"})
    assert response.status_code == 201
    assert response.json()["code"] == "mycode"


@pytest.mark.asyncio
async def test_shorten_duplicate_custom_code(client: AsyncClient) -> None:
    await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "taken1"})
    response = await client.post("/api/shorten", json={"url": "https://www.example.com", "custom_code": "taken1"})
    assert response.status_code == 409
    assert response.json() == {"error": "CODE_EXISTS", "message": "Short code already exists: taken1"}


@pytest.mark.asyncio
async def test_shorten_custom_code_too_long(client: AsyncClient) -> None:
    response = await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "a" * 17},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "INVALID_CODE"


@pytest.mark.asyncio
async def test_shorten_custom_code_non_alphanumeric(client: AsyncClient) -> None:
    response = await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "my-code!"},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "INVALID_CODE"


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["health", "metrics", "docs", "redoc"])
async def test_shorten_custom_code_matching_route_rejected(client: AsyncClient, code: str) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": code})
    assert response.status_code == 422
    assert response.json()["error"] == "INVALID_CODE"

    assert (await client.get(f"/api/urls/{code}")).status_code == 404


@pytest.mark.asyncio
async def test_shorten_allocation_exhausted(client: AsyncClient, manager, monkeypatch) -> None:
    monkeypatch.setattr(manager.allocator, "_generator", lambda length: "samecode")
    first = await client.post("/api/shorten", json={"url": "https://www.github.com"})
    assert first.status_code == 201

    response = await client.post("/api/shorten", json={"url": "https://www.python.org"})
    assert response.status_code == 409
    assert response.json()["error"] == "ALLOCATION_EXHAUSTED"


@pytest.mark.asyncio
async def test_shorten_multiple_urls(client: AsyncClient) -> None:
    urls = [
        "https://www.google.com",
        "https://www.github.com",
        "https://www.python.org",
    ]
    codes = set()
    for url in urls:
        response = await client.post("/api/shorten", json={"url": url})
        assert response.status_code == 201
        codes.add(response.json()["code"])
    assert len(codes) == 3
