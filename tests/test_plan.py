from datetime import datetime, timezone

import pytest
from rich.text import Text

from nomadops.core.evaluations import AllocationMetric, EvalStatus, Evaluation
from nomadops.core.jobs import JobSpec, JobType
from nomadops.core.plan import (
    DesiredUpdates,
    DiffNode,
    DiffType,
    FieldDiff,
    PlanResponse,
    changes_pending,
    format_dry_run,
    format_job_diff,
    render_plan,
)


def _plain(markup: str) -> str:
    return Text.from_markup(markup).plain


def _job(**raw) -> JobSpec:
    return JobSpec(name="web", type=raw.pop("type", JobType.SERVICE), raw=raw)


def test_diff_type_parse():
    assert DiffType.parse(None) is DiffType.NONE
    assert DiffType.parse("Edited") is DiffType.EDITED
    with pytest.raises(ValueError):
        DiffType.parse("Mangled")


def test_changes_pending_counts_only_disruptive_updates():
    quiet = PlanResponse(
        desired_updates={"web": DesiredUpdates(ignore=3, in_place_update=2)}
    )
    placing = PlanResponse(
        desired_updates={"web": DesiredUpdates(ignore=3), "api": DesiredUpdates(canary=1)}
    )

    assert changes_pending(quiet) is False
    assert changes_pending(placing) is True
    assert changes_pending(PlanResponse()) is False


def test_unchanged_diff_renders_no_fields():
    diff = DiffNode(
        type=DiffType.NONE,
        name="web",
        fields=(FieldDiff(type=DiffType.NONE, name="Priority", old="50", new="50"),),
        children=(
            DiffNode(
                type=DiffType.NONE,
                name="app",
                fields=(FieldDiff(type=DiffType.NONE, name="Count", old="1", new="1"),),
                children=(DiffNode(type=DiffType.NONE, name="server"),),
            ),
        ),
    )

    plain = _plain(format_job_diff(diff, verbose=False))

    assert "Priority" not in plain
    assert "Count" not in plain
    assert 'Job: "web"' in plain
    assert 'Task Group: "app"' in plain
    assert 'Task: "server"' in plain


def test_edited_fields_are_marked_and_aligned():
    diff = DiffNode(
        type=DiffType.EDITED,
        name="web",
        fields=(
            FieldDiff(type=DiffType.ADDED, name="A", new="1"),
            FieldDiff(type=DiffType.EDITED, name="Bb", old="x", new="y"),
            FieldDiff(type=DiffType.DELETED, name="C", old="gone"),
        ),
    )

    lines = _plain(format_job_diff(diff, verbose=False)).splitlines()

    assert lines == [
        '+/- Job: "web"',
        '+   A:  "1"',
        '+/- Bb: "x" => "y"',
        '-   C:  "gone"',
    ]


def test_task_group_shows_update_histogram_and_annotations():
    diff = DiffNode.from_payload(
        {
            "Type": "Edited",
            "ID": "web",
            "TaskGroups": [
                {
                    "Type": "Edited",
                    "Name": "app",
                    "Updates": {"create/destroy update": 2, "ignore": 1},
                    "Tasks": [
                        {
                            "Type": "Edited",
                            "Name": "server",
                            "Annotations": ["forces create/destroy update"],
                            "Fields": [
                                {"Type": "Edited", "Name": "Env[V]", "Old": "1", "New": "2"}
                            ],
                        }
                    ],
                }
            ],
        },
        name_key="ID",
    )

    plain = _plain(format_job_diff(diff, verbose=False))

    assert '+/- Task Group: "app" (2 create/destroy update, 1 ignore)' in plain
    assert '  +/- Task: "server" (forces create/destroy update)' in plain
    assert '    +/- Env[V]: "1" => "2"' in plain


def test_dry_run_all_allocated():
    assert _plain(format_dry_run(PlanResponse(), _job())) == "- All tasks successfully allocated."


def test_dry_run_reports_placement_failures_and_rolling_update():
    response = PlanResponse(
        failed_tg_allocs={"app": AllocationMetric(nodes_evaluated=2, coalesced_failures=1)},
        created_evals=(
            Evaluation(
                id="e2", status=EvalStatus.PENDING, triggered_by="rolling-update", wait=30 * 10**9
            ),
        ),
    )

    plain = _plain(format_dry_run(response, _job()))

    assert "- WARNING: Failed to place all allocations." in plain
    assert 'Task Group "app" (failed to place 2 allocations):' in plain
    assert "- Rolling update, next evaluation will be in 30s." in plain


def test_dry_run_system_job_warning():
    response = PlanResponse(failed_tg_allocs={"app": AllocationMetric(nodes_evaluated=2)})

    plain = _plain(format_dry_run(response, _job(type=JobType.SYSTEM)))

    assert "Failed to place allocations on all nodes." in plain
    assert "(failed to place 1 allocation):" in plain


def test_dry_run_periodic_launch():
    launch = datetime(2024, 3, 1, 13, 0, 0, tzinfo=timezone.utc)
    now = datetime(2024, 3, 1, 12, 30, 0, tzinfo=timezone.utc)
    response = PlanResponse(next_periodic_launch=launch)

    plain = _plain(format_dry_run(response, _job(Periodic={"TimeZone": "UTC"}), now=now))

    assert "next periodic launch would be at 03/01/24 13:00:00 UTC (30m0s from now)." in plain


def test_render_plan_sections():
    response = PlanResponse.from_payload(
        {
            "JobModifyIndex": 42,
            "Warnings": "group app has [brackets]",
            "Diff": {"Type": "Added", "ID": "web"},
            "Annotations": {"DesiredTGUpdates": {"app": {"Place": 1}}},
        }
    )

    plain = _plain(render_plan(response, _job()))

    assert plain.startswith('+ Job: "web"')
    assert "Scheduler dry-run:" in plain
    assert "Job Warnings:\ngroup app has [brackets]" in plain
    assert plain.endswith("Job Modify Index: 42")


def test_render_plan_without_diff():
    response = PlanResponse(diff=DiffNode(type=DiffType.ADDED, name="web"))

    plain = _plain(render_plan(response, _job(), show_diff=False))

    assert plain.startswith("Scheduler dry-run:")
