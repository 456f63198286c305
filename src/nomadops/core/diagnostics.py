"""Failure diagnostics for deployments that did not become healthy.

When a deployment fails, the allocations it created usually tell why:
a task exited, a driver could not start it, an artifact failed to
download. This module fetches the failing allocations concurrently and
renders their task events as human-readable lines.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from nomadops.core.errors import NomadAPIError
from nomadops.core.evaluations import limit
from nomadops.core.timefmt import format_duration

logger = logging.getLogger(__name__)

TASK_STATE_RUNNING = "running"

# Task event types reported by Nomad clients.
TASK_SETUP = "Task Setup"
TASK_SETUP_FAILURE = "Setup Failure"
TASK_DRIVER_FAILURE = "Driver Failure"
TASK_DRIVER_MESSAGE = "Driver"
TASK_RECEIVED = "Received"
TASK_FAILED_VALIDATION = "Failed Validation"
TASK_STARTED = "Started"
TASK_TERMINATED = "Terminated"
TASK_KILLING = "Killing"
TASK_KILLED = "Killed"
TASK_RESTARTING = "Restarting"
TASK_NOT_RESTARTING = "Not Restarting"
TASK_DOWNLOADING_ARTIFACTS = "Downloading Artifacts"
TASK_ARTIFACT_DOWNLOAD_FAILED = "Failed Artifact Download"
TASK_SIBLING_FAILED = "Sibling Task Failed"
TASK_SIGNALING = "Signaling"
TASK_RESTART_SIGNAL = "Restart Signaled"
TASK_LEADER_DEAD = "Leader Task Dead"


@dataclass(frozen=True)
class TaskEvent:
    """A single lifecycle event of a task, as reported by the Nomad client."""

    type: str
    message: str = ""
    validation_error: str = ""
    setup_error: str = ""
    driver_error: str = ""
    download_error: str = ""
    kill_reason: str = ""
    kill_timeout: int = 0
    kill_error: str = ""
    exit_code: int = 0
    signal: int = 0
    restart_reason: str = ""
    start_delay: int = 0
    failed_sibling: str = ""
    task_signal: str = ""
    task_signal_reason: str = ""
    driver_message: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TaskEvent:
        return cls(
            type=payload.get("Type") or "",
            message=payload.get("Message") or "",
            validation_error=payload.get("ValidationError") or "",
            setup_error=payload.get("SetupError") or "",
            driver_error=payload.get("DriverError") or "",
            download_error=payload.get("DownloadError") or "",
            kill_reason=payload.get("KillReason") or "",
            kill_timeout=int(payload.get("KillTimeout") or 0),
            kill_error=payload.get("KillError") or "",
            exit_code=int(payload.get("ExitCode") or 0),
            signal=int(payload.get("Signal") or 0),
            restart_reason=payload.get("RestartReason") or "",
            start_delay=int(payload.get("StartDelay") or 0),
            failed_sibling=payload.get("FailedSibling") or "",
            task_signal=payload.get("TaskSignal") or "",
            task_signal_reason=payload.get("TaskSignalReason") or "",
            driver_message=payload.get("DriverMessage") or "",
        )


@dataclass(frozen=True)
class TaskState:
    """Client-side state of one task in an allocation."""

    state: str
    failed: bool = False
    events: tuple[TaskEvent, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TaskState:
        return cls(
            state=payload.get("State") or "",
            failed=bool(payload.get("Failed")),
            events=tuple(TaskEvent.from_payload(e) for e in payload.get("Events") or ()),
        )


@dataclass(frozen=True)
class Allocation:
    """An allocation (a placed instance of a task group)."""

    id: str
    client_status: str = ""
    node_id: str = ""
    task_group: str = ""
    task_states: Mapping[str, TaskState] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Allocation:
        states = payload.get("TaskStates") or {}
        return cls(
            id=str(payload.get("ID") or ""),
            client_status=payload.get("ClientStatus") or "",
            node_id=payload.get("NodeID") or "",
            task_group=payload.get("TaskGroup") or "",
            task_states={name: TaskState.from_payload(s) for name, s in states.items()},
        )

    @property
    def has_failing_task(self) -> bool:
        """Whether at least one task is not in the running state."""
        return any(s.state != TASK_STATE_RUNNING for s in self.task_states.values())


class AllocationsAdapter(Protocol):
    """Interface for allocation lookups used by the diagnostics."""

    def deployment_allocations(self, deployment_id: str) -> list[Allocation]:
        """Return the allocations created by a deployment."""
        ...

    def get_allocation(self, alloc_id: str) -> Allocation:
        """Return full detail of an allocation, including task events."""
        ...


def _signal_message(event: TaskEvent) -> str:
    sig, reason = event.task_signal, event.task_signal_reason
    if not sig and not reason:
        return "Task being sent a signal"
    if not sig:
        return reason
    if not reason:
        return f"Task being sent signal {sig}"
    return f"Task being sent signal {sig}: {reason}"


def _terminated_message(event: TaskEvent) -> str:
    parts = [f"Exit Code: {event.exit_code}"]
    if event.signal != 0:
        parts.append(f"Signal: {event.signal}")
    if event.message:
        parts.append(f"Exit Message: {json.dumps(event.message, ensure_ascii=False)}")
    return ", ".join(parts)


def _killing_message(event: TaskEvent) -> str:
    if event.kill_reason:
        return f"Killing task: {event.kill_reason}"
    if event.kill_timeout:
        return (
            "Sent interrupt. Waiting "
            f"{format_duration(event.kill_timeout)} before force killing"
        )
    return "Sent interrupt"


def _restarting_message(event: TaskEvent) -> str:
    delay = f"Task restarting in {format_duration(event.start_delay)}"
    if event.restart_reason:
        return f"{event.restart_reason} - {delay}"
    return delay


def _sibling_message(event: TaskEvent) -> str:
    if event.failed_sibling:
        return f'Task\'s sibling "{event.failed_sibling}" failed'
    return "Task's sibling failed"


_EVENT_MESSAGES = {
    TASK_SETUP: lambda e: e.message,
    TASK_STARTED: lambda e: "Task started by client",
    TASK_RECEIVED: lambda e: "Task received by client",
    TASK_FAILED_VALIDATION: lambda e: e.validation_error or "Validation of task failed",
    TASK_SETUP_FAILURE: lambda e: e.setup_error or "Task setup failed",
    TASK_DRIVER_FAILURE: lambda e: e.driver_error or "Failed to start task",
    TASK_DOWNLOADING_ARTIFACTS: lambda e: "Client is downloading artifacts",
    TASK_ARTIFACT_DOWNLOAD_FAILED: lambda e: e.download_error or "Failed to download artifacts",
    TASK_KILLING: _killing_message,
    TASK_KILLED: lambda e: e.kill_error or "Task successfully killed",
    TASK_TERMINATED: _terminated_message,
    TASK_RESTARTING: _restarting_message,
    TASK_NOT_RESTARTING: lambda e: e.restart_reason or "Task exceeded restart policy",
    TASK_SIBLING_FAILED: _sibling_message,
    TASK_SIGNALING: _signal_message,
    TASK_RESTART_SIGNAL: lambda e: e.restart_reason or "Task signaled to restart",
    TASK_DRIVER_MESSAGE: lambda e: e.driver_message,
    TASK_LEADER_DEAD: lambda e: "Leader Task in Group dead",
}


def task_event_message(event: TaskEvent) -> str:
    """Return a human-readable description of a task event."""
    render = _EVENT_MESSAGES.get(event.type)
    if render is None:
        return event.message
    return render(event)


def describe_allocation(alloc: Allocation, id_len: int) -> list[str]:
    """Render the task states and events of a failed allocation."""
    lines = [f'allocation "{limit(alloc.id, id_len)}" failed:']
    for name, task in sorted(alloc.task_states.items()):
        lines.append(f'  task "{name}" is {task.state} with the following events:')
        for event in task.events:
            desc = task_event_message(event).strip()
            if desc:
                lines.append(f"    * {event.type} - {desc}")
    return lines


def _fetch_and_describe(
    adapter: AllocationsAdapter, alloc_id: str, id_len: int
) -> list[str] | None:
    try:
        alloc = adapter.get_allocation(alloc_id)
    except NomadAPIError as exc:
        logger.error('failed to get allocation "%s": %s', limit(alloc_id, id_len), exc)
        return None
    return describe_allocation(alloc, id_len)


def collect_failure_diagnostics(
    adapter: AllocationsAdapter,
    deployment_id: str,
    *,
    max_workers: int = 8,
    id_len: int = 8,
) -> list[list[str]]:
    """
    Explain why the allocations of a failed deployment are not running.

    Allocations with at least one task outside the running state are
    fetched in full, concurrently, up to `max_workers` at a time. Each
    rendered report is logged at ERROR level. An allocation whose fetch
    fails is logged and left out so the others are still reported; a
    failure to list the allocations is logged and yields no reports.

    Args:
        adapter: Nomad adapter used to list and fetch allocations.
        deployment_id: The failed deployment.
        max_workers: Upper bound on concurrent allocation fetches.
        id_len: Number of identifier characters to show.

    Returns:
        One list of report lines per successfully described allocation,
        in the order the deployment listed them.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    try:
        listed = adapter.deployment_allocations(deployment_id)
    except NomadAPIError as exc:
        logger.error(
            'failed to get allocations for deployment "%s": %s', limit(deployment_id, id_len), exc
        )
        return []

    failing = [a.id for a in listed if a.has_failing_task]
    if not failing:
        return []

    reports: dict[str, list[str]] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(failing))) as pool:
        futures = {
            pool.submit(_fetch_and_describe, adapter, alloc_id, id_len): alloc_id
            for alloc_id in failing
        }
        for f in as_completed(futures):
            lines = f.result()
            if lines is not None:
                logger.error("\n".join(lines))
                reports[futures[f]] = lines

    return [reports[alloc_id] for alloc_id in failing if alloc_id in reports]
