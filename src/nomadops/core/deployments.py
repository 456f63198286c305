"""Deployment models and the deployment watcher.

A deployment is the scheduler's tracked rollout of a service job. The
watcher follows it until it is terminal, promotes canaries once every
task group is healthy (when asked to), and hands failed deployments to
the failure diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from nomadops.core.blocking import WatchSettings
from nomadops.core.diagnostics import AllocationsAdapter, collect_failure_diagnostics
from nomadops.core.errors import NomadAPIError
from nomadops.core.evaluations import limit

logger = logging.getLogger(__name__)


class DeploymentStatus(str, Enum):
    """Status of a Nomad deployment."""

    RUNNING = "running"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> DeploymentStatus:
        try:
            return cls(value or "")
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class GroupDeploymentState:
    """Rollout progress of one task group within a deployment."""

    desired_total: int = 0
    desired_canaries: int = 0
    healthy_allocs: int = 0
    unhealthy_allocs: int = 0
    promoted: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> GroupDeploymentState:
        return cls(
            desired_total=int(payload.get("DesiredTotal") or 0),
            desired_canaries=int(payload.get("DesiredCanaries") or 0),
            healthy_allocs=int(payload.get("HealthyAllocs") or 0),
            unhealthy_allocs=int(payload.get("UnhealthyAllocs") or 0),
            promoted=bool(payload.get("Promoted")),
        )


@dataclass(frozen=True)
class Deployment:
    """Snapshot of a Nomad deployment."""

    id: str
    status: DeploymentStatus
    status_description: str = ""
    task_groups: Mapping[str, GroupDeploymentState] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Deployment:
        groups = payload.get("TaskGroups") or {}
        return cls(
            id=str(payload.get("ID") or ""),
            status=DeploymentStatus.parse(payload.get("Status")),
            status_description=payload.get("StatusDescription") or "",
            task_groups={
                name: GroupDeploymentState.from_payload(state)
                for name, state in groups.items()
            },
        )


class GroupHealth(str, Enum):
    """Classification of a task group on one watcher tick."""

    HEALTHY = "healthy"
    CANARIES_HEALTHY = "canaries_healthy"
    UNHEALTHY = "unhealthy"
    PROGRESSING = "progressing"


def classify_group(state: GroupDeploymentState) -> GroupHealth:
    """
    Classify a task group's rollout progress.

    The checks are ordered: a group whose healthy count already matches
    its target is healthy even if it also reports unhealthy allocations.
    """
    if state.desired_canaries == 0 and state.healthy_allocs == state.desired_total:
        return GroupHealth.HEALTHY
    if state.desired_canaries > 0 and state.healthy_allocs == state.desired_canaries:
        return GroupHealth.CANARIES_HEALTHY
    if state.unhealthy_allocs > 0:
        return GroupHealth.UNHEALTHY
    return GroupHealth.PROGRESSING


@dataclass
class DeploymentSession:
    """
    Mutable watch state of one orchestration call.

    Owned by the call that created it and never shared between jobs.
    """

    deployment_id: str = ""
    auto_promote: bool = False
    id_len: int = 8
    needs_promotion: bool = False
    promoted: bool = False


class DeploymentsAdapter(AllocationsAdapter, Protocol):
    """Interface for deployment lookups and promotion used by the watcher."""

    def get_deployment(
        self, deployment_id: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[Deployment, int]:
        """Return the deployment and the index the response was served at."""
        ...

    def promote_deployment(self, deployment_id: str) -> None:
        """Promote all canaries of the deployment."""
        ...


def watch_deployment(
    adapter: DeploymentsAdapter,
    session: DeploymentSession,
    settings: WatchSettings,
) -> bool:
    """
    Block until a deployment is terminal, promoting canaries when allowed.

    On each fresh response:
      - successful: return True.
      - running: classify every task group. When all groups are healthy
        and canaries are waiting, promote once (auto-promote) or return
        True so the operator can promote manually. Unhealthy groups are
        only logged; the scheduler decides whether the rollout fails.
      - anything else: log failure diagnostics and return False.

    Raises:
        NomadAPIError: If a lookup or the promotion request fails.
    """
    dep_id = limit(session.deployment_id, session.id_len)
    query = settings.query(settings.deployment_wait)
    started = settings.clock()

    while True:
        query.begin()
        dep, last_index = adapter.get_deployment(
            session.deployment_id, wait_index=query.wait_index, wait_time=query.wait_time
        )
        if not query.advance(last_index):
            continue

        if dep.status is DeploymentStatus.SUCCESSFUL:
            logger.info('deployment "%s" completed with status "%s"', dep_id, dep.status.value)
            return True

        if dep.status is not DeploymentStatus.RUNNING:
            logger.error(
                'deployment "%s" has status "%s"%s',
                dep_id,
                dep.status.value,
                f": {dep.status_description}" if dep.status_description else "",
            )
            collect_failure_diagnostics(
                adapter,
                session.deployment_id,
                max_workers=settings.diagnostics_workers,
                id_len=session.id_len,
            )
            return False

        logger.debug(
            'deployment "%s" has been running for %.1fs', dep_id, settings.clock() - started
        )

        if session.promoted:
            continue

        healthy = 0
        for name, state in dep.task_groups.items():
            logger.debug(
                "group %s: %d desired canaries, %d healthy allocs, %d desired total",
                name,
                state.desired_canaries,
                state.healthy_allocs,
                state.desired_total,
            )
            health = classify_group(state)
            if health is GroupHealth.HEALTHY:
                healthy += 1
            elif health is GroupHealth.CANARIES_HEALTHY:
                healthy += 1
                session.needs_promotion = True
            elif health is GroupHealth.UNHEALTHY:
                logger.error(
                    'group "%s" has %d unhealthy allocations', name, state.unhealthy_allocs
                )

        if healthy != len(dep.task_groups) or not session.needs_promotion:
            continue

        if not session.auto_promote:
            logger.info(
                'deployment "%s" has healthy canaries but must be manually promoted', dep_id
            )
            return True

        logger.info('deployment "%s" has healthy canaries - attempting auto-promotion', dep_id)
        try:
            adapter.promote_deployment(session.deployment_id)
        except NomadAPIError as exc:
            raise NomadAPIError(f"promotion failed: {exc}", exc.status_code) from exc
        session.promoted = True
