"""Task group count lookup and adjustment.

These are single-request operations: read the registered job, change one
group's count, register it again. They do not wait for the resulting
deployment.
"""

from __future__ import annotations

import logging
from typing import Protocol

from nomadops.core.errors import JobNotFoundError, NomadOpsError, NotFoundError, PreconditionError
from nomadops.core.jobs import JobSpec, RegisterResult, TaskGroup

logger = logging.getLogger(__name__)


class ScalingAdapter(Protocol):
    """Interface for the job lookups and registrations used by scaling."""

    def get_job(self, name: str) -> JobSpec:
        ...

    def register_job(
        self, job: JobSpec, *, enforce_index: bool = False, modify_index: int = 0
    ) -> RegisterResult:
        ...


def load_job(adapter: ScalingAdapter, job_name: str) -> JobSpec:
    """Return a registered job, raising JobNotFoundError if it does not exist."""
    try:
        return adapter.get_job(job_name)
    except NotFoundError as exc:
        raise JobNotFoundError(job_name) from exc


def require_group(job: JobSpec, group_name: str) -> TaskGroup:
    tg = job.group(group_name)
    if tg is None:
        raise NomadOpsError(f"could not find task group: {group_name}")
    return tg


def get_group_count(adapter: ScalingAdapter, job_name: str, group_name: str) -> int:
    """Return the registered count of a task group."""
    return require_group(load_job(adapter, job_name), group_name).count


def set_group_count(adapter: ScalingAdapter, job_name: str, group_name: str, count: int) -> bool:
    """
    Set a task group to an exact count.

    Returns:
        True if the job was re-registered, False if the count already matched.
    """
    if count < 0:
        raise PreconditionError("count cannot be less than zero")

    job = load_job(adapter, job_name)
    tg = require_group(job, group_name)
    if tg.count == count:
        return False

    logger.info(
        'scaling group "%s" of job "%s" from %d to %d', group_name, job.name, tg.count, count
    )
    tg.count = count
    adapter.register_job(job)
    return True


def adjust_group_count(
    adapter: ScalingAdapter, job_name: str, group_name: str, delta: int
) -> int:
    """
    Raise or lower a task group's count by `delta`.

    Returns:
        The new count.
    """
    job = load_job(adapter, job_name)
    tg = require_group(job, group_name)
    new_count = tg.count + delta
    if new_count < 0:
        raise PreconditionError("count cannot be less than zero")

    logger.info(
        'scaling group "%s" of job "%s" from %d to %d', group_name, job.name, tg.count, new_count
    )
    tg.count = new_count
    adapter.register_job(job)
    return new_count
