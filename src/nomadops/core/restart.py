"""Hard restarts of jobs and task groups.

Unlike a redeploy, which rolls allocations according to the job's update
strategy, these stop everything first and start it again.
"""

from __future__ import annotations

import logging
from typing import Protocol

from nomadops.core.scaling import ScalingAdapter, load_job, require_group

logger = logging.getLogger(__name__)


class RestartAdapter(ScalingAdapter, Protocol):
    def deregister_job(self, name: str, *, purge: bool = False) -> str:
        ...


def restart_job(adapter: RestartAdapter, job_name: str) -> None:
    """Stop a job and register it again."""
    job = load_job(adapter, job_name)

    logger.info('stopping job "%s"', job.name)
    adapter.deregister_job(job.name)

    # a stopped job stays stopped when re-registered unless Stop is cleared
    job.raw["Stop"] = False
    logger.info('starting job "%s"', job.name)
    adapter.register_job(job)


def restart_group(adapter: RestartAdapter, job_name: str, group_name: str) -> None:
    """Restart a task group by scaling it to zero and back."""
    job = load_job(adapter, job_name)
    tg = require_group(job, group_name)
    previous = tg.count

    logger.info('scaling group "%s" of job "%s" to 0', group_name, job.name)
    tg.count = 0
    adapter.register_job(job)

    logger.info('scaling group "%s" of job "%s" back to %d', group_name, job.name, previous)
    tg.count = previous
    adapter.register_job(job)
