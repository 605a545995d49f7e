import pytest
from unittest.mock import AsyncMock, patch

from titanscan.zap import ZapClient


@pytest.fixture
def client():
    return ZapClient("http://zap:8080/", api_key="secret", timeout=5)


class TestZapClient:

    def test_base_url_normalized(self, client):
        assert client.base_url == "http://zap:8080"

    @pytest.mark.asyncio
    async def test_start_spider(self, client):
        with patch.object(client, "_get", AsyncMock(return_value={"scan": "3"})) as get:
            assert await client.start_spider("https://example.com") == "3"
        get.assert_awaited_once_with(
            "/JSON/spider/action/scan/", {"url": "https://example.com", "maxChildren": 10}
        )

    @pytest.mark.asyncio
    async def test_spider_status_defaults_to_zero(self, client):
        with patch.object(client, "_get", AsyncMock(return_value={})):
            assert await client.spider_status("3") == "0"

    @pytest.mark.asyncio
    async def test_spider_results(self, client):
        with patch.object(client, "_get", AsyncMock(return_value={"results": ["https://example.com/a"]})):
            assert await client.spider_results("3") == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_active_scan(self, client):
        responses = [{"scan": "9"}, {"status": "100"}]
        with patch.object(client, "_get", AsyncMock(side_effect=responses)) as get:
            assert await client.start_active_scan("https://example.com") == "9"
            assert await client.active_scan_status("9") == "100"
        assert get.await_args_list[1].args == ("/JSON/ascan/view/status/", {"scanId": "9"})

    @pytest.mark.asyncio
    async def test_alerts_filtered_by_base_url(self, client):
        alerts = [{"alert": "Cookie No HttpOnly Flag", "risk": "Low"}]
        with patch.object(client, "_get", AsyncMock(return_value={"alerts": alerts})) as get:
            assert await client.alerts("https://example.com") == alerts
        get.assert_awaited_once_with("/JSON/core/view/alerts/", {"baseurl": "https://example.com"})
