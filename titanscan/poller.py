"""
Remote Poll Driver.

Bounded start -> poll -> fetch state machine for scanners that run
asynchronously behind an HTTP status API (ZAP spider / active scan).
Exhausting the attempt budget is not an error: the results call is always
issued once and whatever it returns is handed back.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

COMPLETE = 100


@dataclass(frozen=True)
class PollConfig:
    interval: float
    max_attempts: int


# Fast/shallow crawl: ceiling ~20s. Slow/deep scan: ceiling ~120s.
SPIDER_POLL = PollConfig(interval=1.0, max_attempts=20)
ACTIVE_POLL = PollConfig(interval=2.0, max_attempts=60)


@dataclass
class PollState:
    handle: Any
    attempts: int = 0
    last_percent: int = 0

    @property
    def complete(self) -> bool:
        return self.last_percent == COMPLETE


def parse_percent(value) -> int:
    """Remote status APIs report percentages as strings ("42") or ints."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class RemotePollDriver:
    def __init__(
        self,
        config: PollConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep

    async def run(
        self,
        start: Callable[[], Awaitable[Any]],
        status: Callable[[Any], Awaitable[Any]],
        results: Callable[[Any], Awaitable[Optional[List[Any]]]],
    ) -> List[Any]:
        handle = await start()
        state = PollState(handle=handle)

        while not state.complete and state.attempts < self.config.max_attempts:
            await self._sleep(self.config.interval)
            state.last_percent = parse_percent(await status(state.handle))
            state.attempts += 1

        if not state.complete:
            logger.info(
                "Remote scan %s still at %s%% after %s polls, fetching partial results",
                state.handle, state.last_percent, state.attempts,
            )

        return list(await results(state.handle) or [])
