"""
Progress Store: job id -> ProgressSnapshot.

Single source of truth read by the status-polling endpoint. Each job id has
exactly one writer (its orchestrator task), so updates are last-writer-wins
without locking. Finished snapshots are retained for a configurable TTL
and/or up to a configurable number of entries.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Dict, Optional

import redis

from .config import Settings
from .models import JobPhase, ProgressSnapshot

logger = logging.getLogger(__name__)


def check_transition(job_id: str, current: Optional[ProgressSnapshot], new: ProgressSnapshot):
    """Raise ValueError if ``new`` may not replace ``current``."""
    if current is None:
        raise ValueError(f"Unknown job id {job_id}")
    if current.is_terminal:
        raise ValueError(f"Job {job_id} already finished with status {current.status!r}")
    if new.percent < current.percent and new.status != JobPhase.STARTING.label:
        raise ValueError(
            f"Progress of job {job_id} cannot move backward ({current.percent} -> {new.percent})"
        )


class ProgressStore(ABC):
    @abstractmethod
    def create(self, job_id: str) -> ProgressSnapshot:
        """Install the initial (0%, "Starting") snapshot."""

    @abstractmethod
    def update(self, job_id: str, snapshot: ProgressSnapshot) -> None:
        """Replace the snapshot of an existing, non-terminal job."""

    @abstractmethod
    def read(self, job_id: str) -> Optional[ProgressSnapshot]:
        """Return the current snapshot, or None if the id is unknown."""


class InMemoryProgressStore(ProgressStore):
    """
    Process-local store.

    Args:
        ttl_seconds: Evict terminal snapshots this long after they finish (None keeps them)
        max_terminal_entries: Keep at most this many terminal snapshots, oldest evicted first
        clock: Monotonic time source
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_terminal_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_terminal_entries = max_terminal_entries
        self._clock = clock
        self._snapshots: Dict[str, ProgressSnapshot] = {}
        # job id -> time it reached a terminal state, oldest first
        self._finished: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._snapshots)

    def create(self, job_id: str) -> ProgressSnapshot:
        self._evict()
        if job_id in self._snapshots:
            raise ValueError(f"Job id {job_id} already exists")
        snapshot = ProgressSnapshot()
        self._snapshots[job_id] = snapshot
        return snapshot

    def update(self, job_id: str, snapshot: ProgressSnapshot) -> None:
        check_transition(job_id, self._snapshots.get(job_id), snapshot)
        self._snapshots[job_id] = snapshot
        if snapshot.is_terminal:
            self._finished[job_id] = self._clock()
            self._evict()

    def read(self, job_id: str) -> Optional[ProgressSnapshot]:
        self._evict()
        return self._snapshots.get(job_id)

    def _evict(self):
        if self.ttl_seconds is not None:
            cutoff = self._clock() - self.ttl_seconds
            while self._finished:
                job_id, finished_at = next(iter(self._finished.items()))
                if finished_at > cutoff:
                    break
                self._drop(job_id)

        if self.max_terminal_entries is not None:
            while len(self._finished) > self.max_terminal_entries:
                self._drop(next(iter(self._finished)))

    def _drop(self, job_id: str):
        self._finished.pop(job_id, None)
        self._snapshots.pop(job_id, None)
        logger.debug("Evicted finished job %s from progress store", job_id)


class RedisProgressStore(ProgressStore):
    """
    Redis-backed store so several API workers can answer progress polls.
    Snapshots live under ``scan:{job_id}:progress`` and expire after ``ttl_seconds``.
    """

    def __init__(self, redis_client, ttl_seconds: Optional[int] = 86400):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(job_id: str) -> str:
        return f"scan:{job_id}:progress"

    def _write(self, job_id: str, snapshot: ProgressSnapshot):
        key = self._key(job_id)
        self.redis_client.set(key, snapshot.model_dump_json())
        if self.ttl_seconds:
            self.redis_client.expire(key, self.ttl_seconds)

    def create(self, job_id: str) -> ProgressSnapshot:
        snapshot = ProgressSnapshot()
        self._write(job_id, snapshot)
        return snapshot

    def update(self, job_id: str, snapshot: ProgressSnapshot) -> None:
        check_transition(job_id, self.read(job_id), snapshot)
        self._write(job_id, snapshot)

    def read(self, job_id: str) -> Optional[ProgressSnapshot]:
        raw = self.redis_client.get(self._key(job_id))
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", "ignore")
        try:
            return ProgressSnapshot.model_validate(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Corrupt progress snapshot for job {job_id}: {e}")
            return None


def build_progress_store(settings: Settings) -> ProgressStore:
    if settings.progress_backend == "redis":
        client = redis.from_url(settings.redis_url, decode_responses=True)
        logger.info("Progress store: redis (%s)", settings.redis_url)
        return RedisProgressStore(client, ttl_seconds=settings.progress_ttl_seconds)

    logger.info(
        "Progress store: memory (ttl=%s, max_entries=%s)",
        settings.progress_ttl_seconds, settings.progress_max_entries,
    )
    return InMemoryProgressStore(
        ttl_seconds=settings.progress_ttl_seconds,
        max_terminal_entries=settings.progress_max_entries,
    )
