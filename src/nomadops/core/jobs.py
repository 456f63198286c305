"""Core job domain models plus count and meta reconciliation.

This module defines the in-memory job specification (JobSpec, TaskGroup,
JobType) and the pure operations that prepare a local job before it is
registered: merging running counts and redeploy markers from the remote
job, and stamping redeploy markers. It is free of HTTP and CLI concerns.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

REDEPLOY_META_KEY = "nomadops_redeploy"


class JobType(str, Enum):
    """
    Nomad scheduler type of a job.

    Values:
        SERVICE: Long-running service; rolled out through deployments.
        BATCH: Run-to-completion job; no deployment object.
        SYSTEM: One allocation per eligible node; no count.
        SYSBATCH: Batch job placed on every eligible node; no count.
        OTHER: Any type this tool does not know about.
    """

    SERVICE = "service"
    BATCH = "batch"
    SYSTEM = "system"
    SYSBATCH = "sysbatch"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> JobType:
        """Map a raw Nomad job type onto the enum; missing means service."""
        if not value:
            return cls.SERVICE
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER

    @property
    def has_count(self) -> bool:
        """Whether task group counts must add up to something before registering."""
        return self is not JobType.SYSTEM


@dataclass
class TaskGroup:
    """
    A task group inside a job.

    Attributes:
        name: Group name, unique within the job.
        count: Desired number of allocations.
        meta: Free-form metadata, or None when the group defines none.
        raw: The group payload as received; fields not modelled here are
             carried through unchanged on registration.
    """

    name: str
    count: int = 1
    meta: dict[str, str] | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TaskGroup:
        count = payload.get("Count")
        meta = payload.get("Meta")
        return cls(
            name=str(payload.get("Name") or ""),
            count=1 if count is None else int(count),
            meta=dict(meta) if meta is not None else None,
            raw=copy.deepcopy(dict(payload)),
        )

    def to_payload(self) -> dict[str, Any]:
        payload = copy.deepcopy(self.raw)
        payload["Name"] = self.name
        payload["Count"] = self.count
        payload["Meta"] = dict(self.meta) if self.meta is not None else None
        return payload


@dataclass
class JobSpec:
    """
    In-memory representation of a Nomad job.

    The job is built once per invocation, mutated in place (count and
    meta merges, redeploy markers) and then registered. It is never
    persisted.
    """

    name: str
    type: JobType = JobType.SERVICE
    id: str | None = None
    region: str | None = None
    namespace: str | None = None
    status: str | None = None
    task_groups: list[TaskGroup] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> JobSpec:
        """Build a job from its Nomad API JSON representation."""
        name = payload.get("Name") or payload.get("ID")
        if not name:
            raise ValueError("job payload has neither Name nor ID")
        return cls(
            name=str(name),
            type=JobType.parse(payload.get("Type")),
            id=payload.get("ID") or str(name),
            region=payload.get("Region") or None,
            namespace=payload.get("Namespace") or None,
            status=payload.get("Status") or None,
            task_groups=[
                TaskGroup.from_payload(tg) for tg in payload.get("TaskGroups") or []
            ],
            raw=copy.deepcopy(dict(payload)),
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the Nomad API JSON representation, including unmodelled fields."""
        payload = copy.deepcopy(self.raw)
        payload["ID"] = self.id or self.name
        payload["Name"] = self.name
        if self.type is not JobType.OTHER:
            payload["Type"] = self.type.value
        if self.region:
            payload["Region"] = self.region
        if self.namespace:
            payload["Namespace"] = self.namespace
        payload["TaskGroups"] = [tg.to_payload() for tg in self.task_groups]
        return payload

    @property
    def periodic(self) -> Mapping[str, Any] | None:
        return self.raw.get("Periodic") or None

    @property
    def is_parameterized(self) -> bool:
        return bool(self.raw.get("ParameterizedJob"))

    def group(self, name: str) -> TaskGroup | None:
        """Return the task group with the given name, if any."""
        for tg in self.task_groups:
            if tg.name == name:
                return tg
        return None


def total_count(job: JobSpec) -> int:
    """Return the sum of desired counts across all task groups."""
    return sum(tg.count for tg in job.task_groups)


def reconcile_counts(local: JobSpec, remote: JobSpec | None) -> list[str]:
    """
    Overwrite local group counts with the counts of the running job.

    Only groups present in both jobs are touched; groups are never added
    or removed. Does nothing when there is no remote job.

    Returns:
        Names of the groups whose count changed.
    """
    if remote is None:
        return []

    logger.debug('updating group counts for job "%s" from remote job', local.name)
    changed: list[str] = []
    for rtg in remote.task_groups:
        tg = local.group(rtg.name)
        if tg is None or tg.count == rtg.count:
            continue
        logger.info(
            'updating count to match running job "%s", group "%s" from %d to %d',
            local.name,
            tg.name,
            tg.count,
            rtg.count,
        )
        tg.count = rtg.count
        changed.append(tg.name)
    return changed


def reconcile_redeploy_meta(local: JobSpec, remote: JobSpec | None) -> list[str]:
    """
    Carry the redeploy marker of the running job forward into the local job.

    A normal deploy must not erase a marker set by an earlier redeploy,
    otherwise the diff would show the marker as deleted and restart the
    group again. Groups without a remote marker are left alone.

    Returns:
        Names of the groups whose marker was copied.
    """
    if remote is None:
        return []

    copied: list[str] = []
    for rtg in remote.task_groups:
        tg = local.group(rtg.name)
        if tg is None or not rtg.meta or REDEPLOY_META_KEY not in rtg.meta:
            continue
        logger.debug(
            'updating "%s" meta key to match remote job "%s", group "%s"',
            REDEPLOY_META_KEY,
            local.name,
            tg.name,
        )
        if tg.meta is None:
            tg.meta = {}
        tg.meta[REDEPLOY_META_KEY] = rtg.meta[REDEPLOY_META_KEY]
        copied.append(tg.name)
    return copied


def stamp_redeploy_meta(
    job: JobSpec, group_names: Iterable[str], value: str
) -> list[str]:
    """
    Set the redeploy marker on the targeted task groups.

    Args:
        job: Job to mutate.
        group_names: Groups to stamp; empty means every group.
        value: Marker value, normally the current timestamp.

    Returns:
        Names of the stamped groups, in job order.
    """
    wanted = set(group_names)
    for name in sorted(wanted - {tg.name for tg in job.task_groups}):
        logger.warning('job "%s" has no task group "%s", skipping', job.name, name)

    stamped: list[str] = []
    for tg in job.task_groups:
        if wanted and tg.name not in wanted:
            continue
        if tg.meta is None:
            tg.meta = {}
        tg.meta[REDEPLOY_META_KEY] = value
        stamped.append(tg.name)
    return stamped


@dataclass(frozen=True)
class RegisterResult:
    """Response of a job registration."""

    eval_id: str = ""
    job_modify_index: int = 0
    warnings: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RegisterResult:
        return cls(
            eval_id=payload.get("EvalID") or "",
            job_modify_index=int(payload.get("JobModifyIndex") or 0),
            warnings=payload.get("Warnings") or "",
        )
