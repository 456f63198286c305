import pytest

from nomadops.core.jobs import (
    REDEPLOY_META_KEY,
    JobSpec,
    JobType,
    RegisterResult,
    TaskGroup,
    reconcile_counts,
    reconcile_redeploy_meta,
    stamp_redeploy_meta,
    total_count,
)


def _job(*groups: TaskGroup, type_: JobType = JobType.SERVICE) -> JobSpec:
    return JobSpec(name="web", type=type_, task_groups=list(groups))


def test_job_type_parse_defaults_and_unknown():
    assert JobType.parse(None) is JobType.SERVICE
    assert JobType.parse("batch") is JobType.BATCH
    assert JobType.parse("something-new") is JobType.OTHER


def test_only_system_jobs_skip_the_count_check():
    assert not JobType.SYSTEM.has_count
    assert JobType.SERVICE.has_count
    assert JobType.BATCH.has_count


def test_from_payload_keeps_unmodelled_fields_on_round_trip():
    payload = {
        "ID": "web",
        "Name": "web",
        "Type": "service",
        "Datacenters": ["dc1"],
        "TaskGroups": [{"Name": "app", "Count": 2, "Tasks": [{"Name": "server"}]}],
    }

    job = JobSpec.from_payload(payload)
    job.task_groups[0].count = 5
    out = job.to_payload()

    assert out["Datacenters"] == ["dc1"]
    assert out["TaskGroups"][0]["Tasks"] == [{"Name": "server"}]
    assert out["TaskGroups"][0]["Count"] == 5
    assert payload["TaskGroups"][0]["Count"] == 2


def test_from_payload_requires_a_name():
    with pytest.raises(ValueError, match="neither Name nor ID"):
        JobSpec.from_payload({"Type": "service"})


def test_missing_group_count_defaults_to_one():
    assert TaskGroup.from_payload({"Name": "app"}).count == 1


def test_total_count():
    assert total_count(_job(TaskGroup("a", 2), TaskGroup("b", 3))) == 5


def test_reconcile_counts_copies_counts_of_shared_groups_only():
    local = _job(TaskGroup("a", 1), TaskGroup("b", 1))
    remote = _job(TaskGroup("a", 4), TaskGroup("c", 9))

    changed = reconcile_counts(local, remote)

    assert changed == ["a"]
    assert [(g.name, g.count) for g in local.task_groups] == [("a", 4), ("b", 1)]


def test_reconcile_counts_without_remote_is_a_noop():
    local = _job(TaskGroup("a", 2))
    assert reconcile_counts(local, None) == []
    assert local.task_groups[0].count == 2


def test_reconcile_counts_is_idempotent():
    local = _job(TaskGroup("a", 1))
    remote = _job(TaskGroup("a", 3))

    reconcile_counts(local, remote)
    assert reconcile_counts(local, remote) == []
    assert local.task_groups[0].count == 3


def test_reconcile_meta_copies_remote_marker():
    local = _job(TaskGroup("a", meta=None), TaskGroup("b", meta={"owner": "ops"}))
    remote = _job(
        TaskGroup("a", meta={REDEPLOY_META_KEY: "t1"}),
        TaskGroup("b", meta={REDEPLOY_META_KEY: "t2"}),
    )

    assert reconcile_redeploy_meta(local, remote) == ["a", "b"]
    assert local.task_groups[0].meta == {REDEPLOY_META_KEY: "t1"}
    assert local.task_groups[1].meta == {"owner": "ops", REDEPLOY_META_KEY: "t2"}


def test_reconcile_meta_never_fabricates_or_removes_markers():
    local = _job(TaskGroup("a", meta={REDEPLOY_META_KEY: "local"}), TaskGroup("b"))
    remote = _job(TaskGroup("a", meta={"other": "x"}), TaskGroup("b", meta=None))

    assert reconcile_redeploy_meta(local, remote) == []
    assert local.task_groups[0].meta == {REDEPLOY_META_KEY: "local"}
    assert local.task_groups[1].meta is None


def test_stamp_all_groups_when_none_named():
    job = _job(TaskGroup("a"), TaskGroup("b"))

    assert stamp_redeploy_meta(job, [], "now") == ["a", "b"]
    assert all(g.meta == {REDEPLOY_META_KEY: "now"} for g in job.task_groups)


def test_stamp_named_subset_only():
    job = _job(TaskGroup("a"), TaskGroup("b", meta={"k": "v"}))

    assert stamp_redeploy_meta(job, ["b", "missing"], "now") == ["b"]
    assert job.task_groups[0].meta is None
    assert job.task_groups[1].meta == {"k": "v", REDEPLOY_META_KEY: "now"}


def test_stamp_warns_about_unknown_groups(caplog):
    job = _job(TaskGroup("a"))

    with caplog.at_level("WARNING", logger="nomadops"):
        stamp_redeploy_meta(job, ["nope"], "now")

    assert 'no task group "nope"' in caplog.text


def test_register_result_from_payload():
    result = RegisterResult.from_payload(
        {"EvalID": "e1", "JobModifyIndex": 7, "Warnings": "careful"}
    )
    assert result == RegisterResult(eval_id="e1", job_modify_index=7, warnings="careful")
