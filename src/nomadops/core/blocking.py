"""Blocking-query bookkeeping for Nomad long-poll watches.

Nomad blocking queries take a wait index and a wait time and return as
soon as the object's modify index moves past the wait index, or when the
wait time elapses. A response whose index has not advanced carries no new
information; instead of re-issuing the request immediately, the watch
waits out the rest of the wait time before asking again.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class BlockingQuery:
    """
    Wait-index state for a single long-poll watch.

    Attributes:
        wait_time: Seconds the server may hold each request open. Also the
                   minimum interval between two requests that both return
                   a stale index.
        wait_index: Last index seen; 0 until the first response.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.
    """

    wait_time: float
    wait_index: int = 0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _started: float | None = field(default=None, init=False, repr=False)

    def begin(self) -> None:
        """Mark the start of a request."""
        self._started = self.clock()

    def advance(self, last_index: int) -> bool:
        """
        Record the index returned by a request.

        Returns True when the response is fresh (index strictly greater
        than the previous wait index). For a stale response, sleeps for the
        remainder of the wait time and returns False.
        """
        if last_index > self.wait_index:
            self.wait_index = last_index
            return True

        if self._started is not None:
            remaining = self.wait_time - (self.clock() - self._started)
            if remaining > 0:
                self.sleep(remaining)
        return False


def _env_seconds(name: str, default: float) -> float:
    """Read a positive number of seconds from the environment."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class WatchSettings:
    """
    Timing and concurrency settings threaded through every watcher.

    Attributes:
        eval_wait: Blocking-query wait for evaluation watches, in seconds.
        deployment_wait: Blocking-query wait for deployment watches.
        job_wait: Blocking-query wait for job status watches.
        diagnostics_workers: Maximum concurrent allocation fetches when
                             diagnosing a failed deployment.
    """

    _EVAL_WAIT_ENV = "NOMADOPS_EVAL_WAIT"
    _DEPLOY_WAIT_ENV = "NOMADOPS_DEPLOY_WAIT"
    _JOB_WAIT_ENV = "NOMADOPS_JOB_WAIT"
    _WORKERS_ENV = "NOMADOPS_DIAGNOSTICS_WORKERS"

    eval_wait: float = 10.0
    deployment_wait: float = 10.0
    job_wait: float = 5.0
    diagnostics_workers: int = 8
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    @classmethod
    def from_env(cls) -> WatchSettings:
        """Build settings, honoring NOMADOPS_* environment overrides."""
        workers = int(_env_seconds(cls._WORKERS_ENV, 8))
        return cls(
            eval_wait=_env_seconds(cls._EVAL_WAIT_ENV, 10.0),
            deployment_wait=_env_seconds(cls._DEPLOY_WAIT_ENV, 10.0),
            job_wait=_env_seconds(cls._JOB_WAIT_ENV, 5.0),
            diagnostics_workers=max(workers, 1),
        )

    def query(self, wait_time: float) -> BlockingQuery:
        """Start a fresh blocking query with this settings' sleep and clock."""
        return BlockingQuery(wait_time=wait_time, sleep=self.sleep, clock=self.clock)
