"""Evaluation models and the evaluation watcher.

An evaluation is the scheduler's attempt to place a job's allocations.
It reaches a terminal status whether or not every allocation could be
placed, so the watcher inspects the failed placement metrics to decide
whether a deployment may continue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from nomadops.core.blocking import WatchSettings

logger = logging.getLogger(__name__)


class EvalStatus(str, Enum):
    """Status of a Nomad evaluation."""

    PENDING = "pending"
    BLOCKED = "blocked"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "canceled"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> EvalStatus:
        if value == "cancelled":
            return cls.CANCELLED
        try:
            return cls(value or "")
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (EvalStatus.COMPLETE, EvalStatus.FAILED, EvalStatus.CANCELLED)


@dataclass(frozen=True)
class AllocationMetric:
    """Scheduling obstacles recorded for a task group that failed to place."""

    nodes_evaluated: int = 0
    nodes_available: Mapping[str, int] = field(default_factory=dict)
    class_filtered: Mapping[str, int] = field(default_factory=dict)
    constraint_filtered: Mapping[str, int] = field(default_factory=dict)
    nodes_exhausted: int = 0
    class_exhausted: Mapping[str, int] = field(default_factory=dict)
    dimension_exhausted: Mapping[str, int] = field(default_factory=dict)
    quota_exhausted: tuple[str, ...] = ()
    coalesced_failures: int = 0
    scores: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> AllocationMetric:
        return cls(
            nodes_evaluated=int(payload.get("NodesEvaluated") or 0),
            nodes_available=dict(payload.get("NodesAvailable") or {}),
            class_filtered=dict(payload.get("ClassFiltered") or {}),
            constraint_filtered=dict(payload.get("ConstraintFiltered") or {}),
            nodes_exhausted=int(payload.get("NodesExhausted") or 0),
            class_exhausted=dict(payload.get("ClassExhausted") or {}),
            dimension_exhausted=dict(payload.get("DimensionExhausted") or {}),
            quota_exhausted=tuple(payload.get("QuotaExhausted") or ()),
            coalesced_failures=int(payload.get("CoalescedFailures") or 0),
            scores=dict(payload.get("Scores") or {}),
        )


@dataclass(frozen=True)
class Evaluation:
    """Snapshot of a Nomad evaluation."""

    id: str
    status: EvalStatus
    failed_tg_allocs: Mapping[str, AllocationMetric] = field(default_factory=dict)
    blocked_eval: str = ""
    deployment_id: str = ""
    triggered_by: str = ""
    wait: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Evaluation:
        failed = payload.get("FailedTGAllocs") or {}
        return cls(
            id=str(payload.get("ID") or ""),
            status=EvalStatus.parse(payload.get("Status")),
            failed_tg_allocs={
                name: AllocationMetric.from_payload(metric)
                for name, metric in failed.items()
            },
            blocked_eval=payload.get("BlockedEval") or "",
            deployment_id=payload.get("DeploymentID") or "",
            triggered_by=payload.get("TriggeredBy") or "",
            wait=int(payload.get("Wait") or 0),
        )


class EvaluationsAdapter(Protocol):
    """Interface for evaluation lookups used by the watcher."""

    def get_evaluation(
        self, eval_id: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[Evaluation, int]:
        """Return the evaluation and the index the response was served at."""
        ...


def limit(value: str, length: int) -> str:
    """Shorten an identifier for display."""
    return value[:length]


def format_alloc_metrics(
    metrics: AllocationMetric, *, scores: bool = False, prefix: str = ""
) -> list[str]:
    """
    Explain why allocations of a task group could not be placed.

    Args:
        metrics: Placement metrics of the failed task group.
        scores: Also list node scores.
        prefix: String prepended to every line (indentation).

    Returns:
        One line per scheduling obstacle, in a stable order.
    """
    out: list[str] = []

    if metrics.nodes_evaluated == 0:
        out.append(f"{prefix}* no nodes were eligible for evaluation")

    for dc, available in sorted(metrics.nodes_available.items()):
        if available == 0:
            out.append(f'{prefix}* no nodes are available in datacenter "{dc}"')

    for cls_name, num in sorted(metrics.class_filtered.items()):
        out.append(f'{prefix}* class "{cls_name}" filtered {num} nodes')
    for constraint, num in sorted(metrics.constraint_filtered.items()):
        out.append(f'{prefix}* constraint "{constraint}" filtered {num} nodes')

    if metrics.nodes_exhausted > 0:
        out.append(f"{prefix}* resources exhausted on {metrics.nodes_exhausted} nodes")
    for cls_name, num in sorted(metrics.class_exhausted.items()):
        out.append(f'{prefix}* class "{cls_name}" exhausted on {num} nodes')
    for dim, num in sorted(metrics.dimension_exhausted.items()):
        out.append(f'{prefix}* dimension "{dim}" exhausted on {num} nodes')

    for dim in metrics.quota_exhausted:
        out.append(f'{prefix}* quota limit hit "{dim}"')

    if scores:
        for name, score in sorted(metrics.scores.items()):
            out.append(f'{prefix}* score "{name}" = {score:f}')

    return out


def format_failed_evaluation(evaluation: Evaluation, id_len: int) -> list[str]:
    """Render the per-group placement breakdown of a terminal evaluation."""
    lines = [
        f'evaluation "{limit(evaluation.id, id_len)}" finished with status '
        f'"{evaluation.status.value}" but failed to place all allocations'
    ]
    for tg, metrics in sorted(evaluation.failed_tg_allocs.items()):
        lines.append(
            f'  task group "{tg}" failed to place '
            f"{metrics.coalesced_failures + 1} allocation(s):"
        )
        lines.extend(format_alloc_metrics(metrics, prefix="    "))
    return lines


def watch_evaluation(
    adapter: EvaluationsAdapter,
    eval_id: str,
    settings: WatchSettings,
    *,
    id_len: int = 8,
) -> bool:
    """
    Block until an evaluation is terminal.

    Args:
        adapter: Nomad adapter used for blocking evaluation lookups.
        eval_id: Evaluation to watch.
        settings: Watch timing settings.
        id_len: Number of identifier characters to show in log messages.

    Returns:
        True if every allocation was placed, False if any task group
        failed to place (the breakdown is logged at ERROR level).
    """
    query = settings.query(settings.eval_wait)

    while True:
        query.begin()
        evaluation, last_index = adapter.get_evaluation(
            eval_id, wait_index=query.wait_index, wait_time=query.wait_time
        )
        if not query.advance(last_index):
            continue

        if not evaluation.status.is_terminal:
            logger.info(
                'evaluation "%s" has status "%s"',
                limit(eval_id, id_len),
                evaluation.status.value,
            )
            continue

        if not evaluation.failed_tg_allocs:
            logger.info(
                'evaluation "%s" finished with status "%s"',
                limit(eval_id, id_len),
                evaluation.status.value,
            )
            return True

        logger.error("\n".join(format_failed_evaluation(evaluation, id_len)))
        if evaluation.blocked_eval:
            logger.error(
                'blocked evaluation "%s" waiting for additional capacity to place remainder',
                limit(evaluation.blocked_eval, id_len),
            )
        return False
