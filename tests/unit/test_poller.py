"""
Unit tests for the Remote Poll Driver
"""
import pytest
from unittest.mock import AsyncMock

from titanscan.poller import ACTIVE_POLL, SPIDER_POLL, PollConfig, RemotePollDriver, parse_percent


@pytest.fixture
def sleep():
    return AsyncMock()


class TestParsePercent:

    @pytest.mark.parametrize("value, expected", [
        ("100", 100), (42, 42), ("7", 7), (None, 0), ("abc", 0),
    ])
    def test_parse(self, value, expected):
        assert parse_percent(value) == expected


class TestPresets:

    def test_spider_and_active_budgets(self):
        assert (SPIDER_POLL.interval, SPIDER_POLL.max_attempts) == (1.0, 20)
        assert (ACTIVE_POLL.interval, ACTIVE_POLL.max_attempts) == (2.0, 60)


class TestRemotePollDriver:

    @pytest.mark.asyncio
    async def test_budget_exhaustion_still_fetches_results(self, sleep):
        start = AsyncMock(return_value="7")
        status = AsyncMock(return_value="40")
        results = AsyncMock(return_value=["https://example.com/"])

        driver = RemotePollDriver(SPIDER_POLL, sleep=sleep)
        found = await driver.run(start, status, results)

        assert found == ["https://example.com/"]
        assert status.await_count == 20
        assert sleep.await_count == 20
        sleep.assert_awaited_with(1.0)
        results.assert_awaited_once_with("7")

    @pytest.mark.asyncio
    async def test_stops_once_complete(self, sleep):
        start = AsyncMock(return_value=3)
        status = AsyncMock(side_effect=["10", "55", "100", "100"])
        results = AsyncMock(return_value=[{"alert": "X-Frame-Options Header Not Set"}])

        driver = RemotePollDriver(ACTIVE_POLL, sleep=sleep)
        found = await driver.run(start, status, results)

        assert len(found) == 1
        assert status.await_count == 3
        sleep.assert_awaited_with(2.0)
        status.assert_awaited_with(3)

    @pytest.mark.asyncio
    async def test_empty_results(self, sleep):
        driver = RemotePollDriver(PollConfig(interval=0.1, max_attempts=2), sleep=sleep)
        found = await driver.run(
            AsyncMock(return_value="1"),
            AsyncMock(return_value="100"),
            AsyncMock(return_value=None),
        )
        assert found == []

    @pytest.mark.asyncio
    async def test_start_failure_propagates(self, sleep):
        status = AsyncMock()
        driver = RemotePollDriver(SPIDER_POLL, sleep=sleep)

        with pytest.raises(RuntimeError):
            await driver.run(AsyncMock(side_effect=RuntimeError("down")), status, AsyncMock())
        status.assert_not_awaited()
