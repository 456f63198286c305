"""Cluster-wide maintenance: garbage collection and forced re-evaluation."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from nomadops.core.errors import NomadAPIError
from nomadops.core.jobs import JobSpec

logger = logging.getLogger(__name__)


class ClusterAdapter(Protocol):
    """Interface for the cluster maintenance endpoints."""

    def system_gc(self) -> None:
        ...

    def list_jobs(self) -> list[JobSpec]:
        ...

    def evaluate_job(self, job_id: str) -> str:
        ...


def force_gc(adapter: ClusterAdapter) -> None:
    """Force a cluster garbage collection."""
    logger.info("forcing cluster garbage collection")
    adapter.system_gc()


def reevaluate_jobs(adapter: ClusterAdapter, job_ids: Iterable[str] | None = None) -> list[str]:
    """
    Force a new evaluation of the given jobs, or of every job when None.

    A job that cannot be evaluated is logged and skipped so the remaining
    jobs are still evaluated. Listing the jobs is not retried: its error
    propagates.

    Returns:
        IDs of the jobs whose evaluation request failed.
    """
    if job_ids is None:
        job_ids = [job.id or job.name for job in adapter.list_jobs()]

    failed: list[str] = []
    for job_id in job_ids:
        logger.info('evaluating job "%s"', job_id)
        try:
            eval_id = adapter.evaluate_job(job_id)
        except NomadAPIError as exc:
            logger.error('failed to evaluate job "%s": %s', job_id, exc)
            failed.append(job_id)
            continue
        logger.debug('job "%s" created evaluation "%s"', job_id, eval_id)
    return failed
