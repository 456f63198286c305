"""Job plan models and the plan/diff renderer.

A plan is the scheduler's dry run of a job registration: a structured
diff between the running and the submitted job, the allocation changes it
would make per task group, and any placement failures it expects. This
module parses the plan response and renders it as Rich markup, with
markers aligned per level and changes coloured by kind.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rich.markup import escape

from nomadops.core.evaluations import AllocationMetric, Evaluation, format_alloc_metrics
from nomadops.core.jobs import JobSpec, JobType
from nomadops.core.timefmt import (
    format_duration,
    format_time,
    format_time_difference,
    parse_timestamp,
)


class DiffType(str, Enum):
    """Change type of a diff node or field."""

    NONE = "None"
    ADDED = "Added"
    DELETED = "Deleted"
    EDITED = "Edited"

    @classmethod
    def parse(cls, value: str | None) -> DiffType:
        """Parse a change type; a missing value means unchanged."""
        if not value:
            return cls.NONE
        return cls(value)


# marker markup, visible marker width
_MARKERS: dict[DiffType, tuple[str, int]] = {
    DiffType.ADDED: ("[green]+[/green] ", 2),
    DiffType.DELETED: ("[red]-[/red] ", 2),
    DiffType.EDITED: ("[bright_yellow]+/-[/bright_yellow] ", 4),
    DiffType.NONE: ("", 0),
}

_UPDATE_COLORS = {
    "ignore": "",
    "create": "green",
    "destroy": "red",
    "migrate": "blue",
    "in-place update": "cyan",
    "create/destroy update": "yellow",
    "canary": "bright_yellow",
}

_ANNOTATION_COLORS = {
    "forces create": "green",
    "forces destroy": "red",
    "forces in-place update": "cyan",
    "forces create/destroy update": "yellow",
}


@dataclass(frozen=True)
class FieldDiff:
    """A changed (or unchanged) scalar field."""

    type: DiffType
    name: str
    old: str = ""
    new: str = ""
    annotations: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FieldDiff:
        return cls(
            type=DiffType.parse(payload.get("Type")),
            name=payload.get("Name") or "",
            old=payload.get("Old") or "",
            new=payload.get("New") or "",
            annotations=tuple(payload.get("Annotations") or ()),
        )


@dataclass(frozen=True)
class DiffNode:
    """
    A node of the plan diff tree.

    The same shape is used for the job, its task groups, their tasks and
    any nested object. `children` holds task groups (for the job) or
    tasks (for a group); `objects` holds nested objects at any level.
    `updates` is the per-update-type allocation histogram of a group.
    """

    type: DiffType
    name: str
    fields: tuple[FieldDiff, ...] = ()
    objects: tuple[DiffNode, ...] = ()
    children: tuple[DiffNode, ...] = ()
    annotations: tuple[str, ...] = ()
    updates: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, name_key: str = "Name") -> DiffNode:
        children = payload.get("TaskGroups") or payload.get("Tasks") or ()
        return cls(
            type=DiffType.parse(payload.get("Type")),
            name=payload.get(name_key) or "",
            fields=tuple(FieldDiff.from_payload(f) for f in payload.get("Fields") or ()),
            objects=tuple(cls.from_payload(o) for o in payload.get("Objects") or ()),
            children=tuple(cls.from_payload(c) for c in children),
            annotations=tuple(payload.get("Annotations") or ()),
            updates=dict(payload.get("Updates") or {}),
        )


@dataclass(frozen=True)
class DesiredUpdates:
    """Allocation changes the scheduler would make for one task group."""

    ignore: int = 0
    place: int = 0
    migrate: int = 0
    stop: int = 0
    in_place_update: int = 0
    destructive_update: int = 0
    canary: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> DesiredUpdates:
        return cls(
            ignore=int(payload.get("Ignore") or 0),
            place=int(payload.get("Place") or 0),
            migrate=int(payload.get("Migrate") or 0),
            stop=int(payload.get("Stop") or 0),
            in_place_update=int(payload.get("InPlaceUpdate") or 0),
            destructive_update=int(payload.get("DestructiveUpdate") or 0),
            canary=int(payload.get("Canary") or 0),
        )

    @property
    def changes(self) -> int:
        """Number of allocations that would be created, stopped or replaced."""
        return self.stop + self.place + self.migrate + self.destructive_update + self.canary


@dataclass(frozen=True)
class PlanResponse:
    """Parsed result of a job plan request."""

    job_modify_index: int = 0
    diff: DiffNode | None = None
    desired_updates: Mapping[str, DesiredUpdates] = field(default_factory=dict)
    failed_tg_allocs: Mapping[str, AllocationMetric] = field(default_factory=dict)
    created_evals: tuple[Evaluation, ...] = ()
    next_periodic_launch: datetime | None = None
    warnings: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PlanResponse:
        annotations = payload.get("Annotations") or {}
        desired = annotations.get("DesiredTGUpdates") or {}
        diff = payload.get("Diff")
        return cls(
            job_modify_index=int(payload.get("JobModifyIndex") or 0),
            diff=DiffNode.from_payload(diff, name_key="ID") if diff else None,
            desired_updates={
                name: DesiredUpdates.from_payload(u) for name, u in desired.items()
            },
            failed_tg_allocs={
                name: AllocationMetric.from_payload(m)
                for name, m in (payload.get("FailedTGAllocs") or {}).items()
            },
            created_evals=tuple(
                Evaluation.from_payload(e) for e in payload.get("CreatedEvals") or ()
            ),
            next_periodic_launch=parse_timestamp(payload.get("NextPeriodicLaunch")),
            warnings=payload.get("Warnings") or "",
        )


@dataclass(frozen=True)
class PlanReport:
    """Outcome of a plan: the change signal and the rendered report."""

    changes_pending: bool
    job_modify_index: int
    markup: str


def changes_pending(response: PlanResponse) -> bool:
    """Whether the plan would create, stop, migrate or replace any allocation."""
    return any(u.changes > 0 for u in response.desired_updates.values())


def _quote(value: str) -> str:
    return escape(json.dumps(value, ensure_ascii=False))


def _marker(diff_type: DiffType) -> tuple[str, int]:
    return _MARKERS[diff_type]


def color_annotations(annotations: tuple[str, ...]) -> str:
    """Join annotations, colouring the ones with a known meaning."""
    colored = []
    for annotation in annotations:
        color = _ANNOTATION_COLORS.get(annotation)
        text = escape(annotation)
        colored.append(f"[{color}]{text}[/{color}]" if color else text)
    return ", ".join(colored)


def _longest_prefixes(
    fields: tuple[FieldDiff, ...], objects: tuple[DiffNode, ...]
) -> tuple[int, int]:
    longest_field = max((len(f.name) for f in fields), default=0)
    longest_marker = max(
        (_marker(d.type)[1] for d in (*fields, *objects)),
        default=0,
    )
    return longest_field, longest_marker


def format_field_diff(
    diff: FieldDiff, start_prefix: int, key_prefix: int, value_prefix: int
) -> str:
    """Render one field as `<marker> <name>: <value>` with alignment padding."""
    marker, _ = _marker(diff.type)
    out = f"{' ' * start_prefix}{marker}{' ' * key_prefix}{escape(diff.name)}: {' ' * value_prefix}"

    if diff.type is DiffType.ADDED:
        out += _quote(diff.new)
    elif diff.type is DiffType.DELETED:
        out += _quote(diff.old)
    elif diff.type is DiffType.EDITED:
        out += f"{_quote(diff.old)} => {_quote(diff.new)}"
    else:
        out += _quote(diff.new)

    if diff.annotations:
        out += f" ({color_annotations(diff.annotations)})"
    return out


def format_object_diff(diff: DiffNode, start_prefix: int, key_prefix: int) -> str:
    """Render a nested object and its fields inside braces."""
    marker, marker_len = _marker(diff.type)
    out = f"{' ' * start_prefix}{marker}{' ' * key_prefix}{escape(diff.name)} {{\n"

    longest_field, longest_marker = _longest_prefixes(diff.fields, diff.objects)
    sub_start = start_prefix + key_prefix + 2
    out += aligned_fields_and_objects(
        diff.fields, diff.objects, sub_start, longest_field, longest_marker
    )
    return f"{out}\n{' ' * (start_prefix + marker_len + key_prefix)}}}"


def aligned_fields_and_objects(
    fields: tuple[FieldDiff, ...],
    objects: tuple[DiffNode, ...],
    start_prefix: int,
    longest_field: int,
    longest_marker: int,
) -> str:
    """Render fields then objects, aligning markers and values, without a trailing newline."""
    lines = []
    for f in fields:
        key_prefix = longest_marker - _marker(f.type)[1]
        value_prefix = longest_field - len(f.name)
        lines.append(format_field_diff(f, start_prefix, key_prefix, value_prefix))
    for obj in objects:
        key_prefix = longest_marker - _marker(obj.type)[1]
        lines.append(format_object_diff(obj, start_prefix, key_prefix))
    return "\n".join(lines)


def format_task_diff(task: DiffNode, start_prefix: int, task_prefix: int, verbose: bool) -> str:
    """
    Render a task. Fields of added or deleted tasks are only expanded in
    verbose mode; unchanged tasks never expand.
    """
    marker, _ = _marker(task.type)
    out = f'{" " * start_prefix}{marker}{" " * task_prefix}[bold]Task: {_quote(task.name)}[/bold]'
    if task.annotations:
        out += f" ({color_annotations(task.annotations)})"

    if task.type is DiffType.NONE:
        return out
    if task.type in (DiffType.ADDED, DiffType.DELETED) and not verbose:
        return out

    sub_start = start_prefix + 2
    longest_field, longest_marker = _longest_prefixes(task.fields, task.objects)
    return (
        out
        + "\n"
        + aligned_fields_and_objects(
            task.fields, task.objects, sub_start, longest_field, longest_marker
        )
    )


def _format_updates(updates: Mapping[str, int]) -> str:
    parts = []
    for update_type in sorted(updates):
        count = updates[update_type]
        color = _UPDATE_COLORS.get(update_type, "")
        text = f"{count} {escape(update_type)}"
        parts.append(f"[{color}]{text}[/{color}]" if color else text)
    return ", ".join(parts)


def format_task_group_diff(tg: DiffNode, tg_prefix: int, verbose: bool) -> str:
    """Render a task group with its update histogram, fields and tasks."""
    marker, _ = _marker(tg.type)
    out = f'{marker}{" " * tg_prefix}[bold]Task Group: {_quote(tg.name)}[/bold]'
    if tg.updates:
        out += f" ({_format_updates(tg.updates)})"
    out += "\n"

    longest_field, longest_marker = _longest_prefixes(tg.fields, tg.objects)
    longest_marker = max([longest_marker, *(_marker(t.type)[1] for t in tg.children)])

    sub_start = tg_prefix + 2
    if tg.type is DiffType.EDITED or verbose:
        fo = aligned_fields_and_objects(
            tg.fields, tg.objects, sub_start, longest_field, longest_marker
        )
        if fo:
            out += fo + "\n"

    for task in tg.children:
        prefix = longest_marker - _marker(task.type)[1]
        out += format_task_diff(task, sub_start, prefix, verbose) + "\n"

    return out


def format_job_diff(job: DiffNode, verbose: bool) -> str:
    """
    Render the job diff. Fields and objects of a level are expanded when
    that level is edited or verbose mode is set.
    """
    marker, _ = _marker(job.type)
    out = f"{marker}[bold]Job: {_quote(job.name)}[/bold]\n"

    longest_field, longest_marker = _longest_prefixes(job.fields, job.objects)
    longest_marker = max([longest_marker, *(_marker(tg.type)[1] for tg in job.children)])

    if job.type is DiffType.EDITED or verbose:
        fo = aligned_fields_and_objects(job.fields, job.objects, 0, longest_field, longest_marker)
        if fo:
            out += fo + "\n"

    for tg in job.children:
        key_prefix = longest_marker - _marker(tg.type)[1]
        out += format_task_group_diff(tg, key_prefix, verbose) + "\n"

    return out


def _periodic_line(response: PlanResponse, job: JobSpec, now: datetime | None) -> str:
    periodic = job.periodic or {}
    zone = periodic.get("TimeZone") or "UTC"
    try:
        tz = ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        return f"[yellow]- Invalid time zone: {escape(str(exc))}[/yellow]\n"

    next_launch = response.next_periodic_launch
    current = (now or datetime.now(tz)).astimezone(tz)
    return (
        "[green]- If submitted now, next periodic launch would be at "
        f"{format_time(next_launch)} "
        f"({format_time_difference(current, next_launch)} from now).[/green]\n"
    )


def format_dry_run(
    response: PlanResponse, job: JobSpec, *, now: datetime | None = None
) -> str:
    """
    Explain the scheduler dry run: placement failures per task group, the
    next rolling-update evaluation and the next periodic launch.
    """
    rolling = None
    for evaluation in response.created_evals:
        if evaluation.triggered_by == "rolling-update":
            rolling = evaluation

    if not response.failed_tg_allocs:
        out = "[bold green]- All tasks successfully allocated.[/bold green]\n"
    else:
        if job.type is JobType.SYSTEM:
            out = "[bold yellow]- WARNING: Failed to place allocations on all nodes.[/bold yellow]\n"
        else:
            out = "[bold yellow]- WARNING: Failed to place all allocations.[/bold yellow]\n"

        for tg in sorted(response.failed_tg_allocs):
            metrics = response.failed_tg_allocs[tg]
            noun = "allocations" if metrics.coalesced_failures > 0 else "allocation"
            out += (
                f"  [yellow]Task Group {_quote(tg)} "
                f"(failed to place {metrics.coalesced_failures + 1} {noun}):[/yellow]\n"
            )
            details = "\n".join(format_alloc_metrics(metrics, prefix="    "))
            out += f"[yellow]{escape(details)}[/yellow]\n\n"
        if rolling is None:
            out = out.removesuffix("\n")

    if rolling is not None:
        out += (
            "[green]- Rolling update, next evaluation will be in "
            f"{format_duration(rolling.wait)}.[/green]\n"
        )

    if response.next_periodic_launch is not None and not job.is_parameterized:
        out += _periodic_line(response, job, now)

    return out.removesuffix("\n")


def render_plan(
    response: PlanResponse,
    job: JobSpec,
    *,
    verbose: bool = False,
    show_diff: bool = True,
    now: datetime | None = None,
) -> str:
    """Render the full plan report as Rich markup."""
    sections = []
    if show_diff and response.diff is not None:
        sections.append(format_job_diff(response.diff, verbose).strip() + "\n")

    sections.append("[bold]Scheduler dry-run:[/bold]")
    sections.append(format_dry_run(response, job, now=now) + "\n")

    if response.warnings:
        sections.append(
            f"[bold yellow]Job Warnings:\n{escape(response.warnings)}[/bold yellow]\n"
        )

    sections.append(f"[bold]Job Modify Index: {response.job_modify_index}[/bold]")
    return "\n".join(sections)
