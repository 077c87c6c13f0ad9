"""Feed API 集成测试。

测试完整调用链：HTTP 请求 → 服务 → 文档存储 → 响应格式验证。
"""

import pytest
from fastapi import status

from src.store.base import StoreError, StoreErrorCode


class TestGetFeed:
    """GET /api/feed"""

    async def test_default_page(self, api_client):
        response = await api_client.get("/api/feed")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["page"] == 1
        assert data["page_size"] == 15
        assert len(data["items"]) == 15
        assert data["has_next"] is True
        assert data["has_previous"] is False

    async def test_filters(self, api_client):
        response = await api_client.get(
            "/api/feed",
            params={"level_min": 9, "tags": ["work", "family"], "page_size": 50},
        )

        data = response.json()
        assert {item["id"] for item in data["items"]} == {f"e{i}" for i in range(25, 30)}
        assert data["has_next"] is False

    async def test_search_via_q(self, api_client):
        response = await api_client.get("/api/feed", params={"q": "zz"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["items"] == []

    async def test_invalid_level_range(self, api_client):
        response = await api_client.get("/api/feed", params={"level_min": 8, "level_max": 3})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT

    @pytest.mark.parametrize("params", [{"page": 0}, {"level_min": 11}, {"time_window": "year"}])
    async def test_invalid_params(self, api_client, params):
        response = await api_client.get("/api/feed", params=params)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT

    async def test_page_size_capped(self, api_client):
        response = await api_client.get("/api/feed", params={"page_size": 1000})

        assert response.json()["page_size"] == 100

    async def test_backend_unavailable_is_503(self, api_client, seeded_store, monkeypatch):
        async def offline(query):
            raise StoreError(StoreErrorCode.UNAVAILABLE, "offline")

        monkeypatch.setattr(seeded_store, "query", offline)

        response = await api_client.get("/api/feed")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"]["retryable"] is True


class TestOtherFeedEndpoints:
    """元数据、统计、相似条目、举报、分享。"""

    async def test_metadata(self, api_client):
        response = await api_client.get("/api/feed/metadata")

        data = response.json()
        assert data["popular_tags"][:2] == ["work", "stress"]
        assert (data["level_min"], data["level_max"]) == (4, 9)
        assert data["date_from"] is not None

    async def test_invalidate_metadata(self, api_client):
        response = await api_client.post("/api/feed/metadata/invalidate")

        assert response.status_code == status.HTTP_204_NO_CONTENT

    async def test_stats(self, api_client):
        response = await api_client.get("/api/feed/stats")

        assert response.json() == {"total_entries": 40, "total_reactions": 0}

    async def test_twins(self, api_client):
        response = await api_client.get(
            "/api/feed/twins",
            params={"level": 5, "tags": ["family"], "exclude_entry_id": "e30"},
        )

        data = response.json()
        assert data["count"] == 4
        assert "e30" not in {item["id"] for item in data["items"]}

    async def test_report_requires_user(self, api_client):
        response = await api_client.post("/api/feed/e01/report", json={"reason": "spam"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "must be signed in"

    async def test_report(self, api_client):
        response = await api_client.post(
            "/api/feed/e01/report",
            json={"reason": "spam"},
            headers={"X-User-Id": "u1"},
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["entry_id"] == "e01"

    async def test_report_missing_entry(self, api_client):
        response = await api_client.post(
            "/api/feed/nope/report",
            json={"reason": "spam"},
            headers={"X-User-Id": "u1"},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_share_entry(self, api_client):
        response = await api_client.post(
            "/api/feed",
            json={"title": "small win", "level": 3, "tags": ["walk"]},
            headers={"X-User-Id": "u1"},
        )

        assert response.status_code == status.HTTP_201_CREATED
        entry_id = response.json()["entry_id"]
        feed = (await api_client.get("/api/feed", params={"tags": ["walk"]})).json()
        assert [item["id"] for item in feed["items"]] == [entry_id]
