from datetime import datetime, timezone

import pytest

from nomadops.core.deployments import Deployment, DeploymentStatus, GroupDeploymentState
from nomadops.core.engine import DeploymentEngine, DeployOptions
from nomadops.core.errors import (
    JobNotFoundError,
    JobValidationError,
    ManualInterventionRequired,
    NomadAPIError,
    NotFoundError,
    PreconditionError,
)
from nomadops.core.evaluations import AllocationMetric, EvalStatus, Evaluation
from nomadops.core.jobs import REDEPLOY_META_KEY, JobSpec, JobType, RegisterResult, TaskGroup
from nomadops.core.plan import DesiredUpdates, PlanResponse


def _job(*groups: TaskGroup, type_: JobType = JobType.SERVICE, name: str = "web") -> JobSpec:
    return JobSpec(name=name, type=type_, task_groups=list(groups or [TaskGroup("app", 2)]))


class _NomadStub:
    """In-memory control plane; every read returns a fresh index."""

    def __init__(
        self,
        *,
        remote: JobSpec | None = None,
        validation_error: str = "",
        evaluation: Evaluation | None = None,
        deployment: Deployment | None = None,
        job_statuses: tuple[str, ...] = ("running",),
    ):
        self.remote = remote
        self.validation_error = validation_error
        self.evaluation = evaluation or Evaluation(
            id="eval-1", status=EvalStatus.COMPLETE, deployment_id="dep-1"
        )
        self.deployment = deployment or Deployment(
            id="dep-1",
            status=DeploymentStatus.SUCCESSFUL,
            task_groups={"app": GroupDeploymentState(desired_total=2, healthy_allocs=2)},
        )
        self.job_statuses = list(job_statuses)
        self.registered: list[tuple[JobSpec, bool, int]] = []
        self.promotions: list[str] = []
        self.index = 0

    def _next(self) -> int:
        self.index += 1
        return self.index

    def validate_job(self, job):
        return self.validation_error

    def plan_job(self, job, *, diff=True):
        return PlanResponse(
            job_modify_index=17, desired_updates={"app": DesiredUpdates(place=1)}
        )

    def register_job(self, job, *, enforce_index=False, modify_index=0):
        self.registered.append((job, enforce_index, modify_index))
        return RegisterResult(eval_id="eval-1", job_modify_index=18)

    def get_job(self, name):
        if self.remote is None:
            raise NotFoundError("job not found", 404)
        return self.remote

    def find_job(self, name):
        return self.remote

    def watch_job(self, name, *, wait_index=0, wait_time=None):
        status = self.job_statuses.pop(0) if len(self.job_statuses) > 1 else self.job_statuses[0]
        return JobSpec(name=name, status=status), self._next()

    def get_evaluation(self, eval_id, *, wait_index=0, wait_time=None):
        return self.evaluation, self._next()

    def get_deployment(self, deployment_id, *, wait_index=0, wait_time=None):
        return self.deployment, self._next()

    def promote_deployment(self, deployment_id):
        self.promotions.append(deployment_id)

    def deployment_allocations(self, deployment_id):
        return []

    def get_allocation(self, alloc_id):
        raise AssertionError("not expected")


def _fixed_now() -> datetime:
    return datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_service_deploy_follows_the_deployment(settings):
    nomad = _NomadStub()

    assert DeploymentEngine(nomad, settings).deploy(_job()) is True
    assert len(nomad.registered) == 1


def test_zero_count_fails_before_registration(settings):
    nomad = _NomadStub()

    with pytest.raises(PreconditionError, match="count of 0"):
        DeploymentEngine(nomad, settings).deploy(_job(TaskGroup("app", 0)))
    assert nomad.registered == []


def test_zero_count_is_checked_after_count_reconciliation(settings):
    nomad = _NomadStub(remote=_job(TaskGroup("app", 0)))

    with pytest.raises(PreconditionError):
        DeploymentEngine(nomad, settings).deploy(_job(TaskGroup("app", 3)))
    assert nomad.registered == []


def test_system_jobs_skip_the_count_check(settings):
    nomad = _NomadStub()

    job = _job(TaskGroup("agent", 0), type_=JobType.SYSTEM)
    assert DeploymentEngine(nomad, settings).deploy(job) is True
    assert len(nomad.registered) == 1


def test_validation_error_is_fatal(settings):
    nomad = _NomadStub(validation_error="group app: missing driver")

    with pytest.raises(JobValidationError, match="validation failed: group app: missing driver"):
        DeploymentEngine(nomad, settings).deploy(_job())
    assert nomad.registered == []


def test_running_counts_win_unless_forced(settings):
    nomad = _NomadStub(remote=_job(TaskGroup("app", 5)))

    job = _job(TaskGroup("app", 1))
    DeploymentEngine(nomad, settings).deploy(job)
    assert nomad.registered[0][0].task_groups[0].count == 5

    forced = _job(TaskGroup("app", 1))
    DeploymentEngine(nomad, settings).deploy(forced, DeployOptions(use_template_count=True))
    assert nomad.registered[1][0].task_groups[0].count == 1


def test_enforce_index_is_passed_to_registration(settings):
    nomad = _NomadStub()

    DeploymentEngine(nomad, settings).deploy(
        _job(), DeployOptions(enforce_index=True, job_modify_index=17)
    )

    assert nomad.registered[0][1:] == (True, 17)


def test_failed_placement_requires_manual_intervention(settings):
    nomad = _NomadStub(
        evaluation=Evaluation(
            id="eval-1",
            status=EvalStatus.COMPLETE,
            failed_tg_allocs={"app": AllocationMetric(nodes_evaluated=1, coalesced_failures=2)},
        )
    )

    with pytest.raises(ManualInterventionRequired, match="failed/blocked evaluation"):
        DeploymentEngine(nomad, settings).deploy(_job())


def test_failed_deployment_requires_manual_intervention(settings):
    nomad = _NomadStub(deployment=Deployment(id="dep-1", status=DeploymentStatus.FAILED))

    with pytest.raises(ManualInterventionRequired, match="unsuccessful deployment"):
        DeploymentEngine(nomad, settings).deploy(_job())


def test_service_without_deployment_watches_job_status(settings):
    nomad = _NomadStub(
        evaluation=Evaluation(id="eval-1", status=EvalStatus.COMPLETE),
        job_statuses=("pending", "running"),
    )

    assert DeploymentEngine(nomad, settings).deploy(_job()) is True


def test_batch_job_that_dies_requires_manual_intervention(settings):
    nomad = _NomadStub(job_statuses=("pending", "dead"))

    with pytest.raises(ManualInterventionRequired, match="did not reach running"):
        DeploymentEngine(nomad, settings).deploy(_job(type_=JobType.BATCH))


def test_register_errors_are_wrapped(settings):
    nomad = _NomadStub()

    def _fail(*args, **kwargs):
        raise NomadAPIError("job modify index mismatch", 400)

    nomad.register_job = _fail

    with pytest.raises(NomadAPIError, match="job register failed: job modify index mismatch"):
        DeploymentEngine(nomad, settings).deploy(_job())


def test_canaries_awaiting_manual_promotion_count_as_deployed(settings):
    nomad = _NomadStub(
        deployment=Deployment(
            id="dep-1",
            status=DeploymentStatus.RUNNING,
            task_groups={
                "app": GroupDeploymentState(desired_total=2, desired_canaries=1, healthy_allocs=1)
            },
        )
    )

    assert DeploymentEngine(nomad, settings).deploy(_job()) is True
    assert nomad.promotions == []


def test_plan_reports_pending_changes_and_modify_index(settings):
    report = DeploymentEngine(_NomadStub(), settings).plan(_job())

    assert report.changes_pending is True
    assert report.job_modify_index == 17
    assert "Job Modify Index: 17" in report.markup


def test_redeploy_stamps_marker_and_keeps_it(settings):
    remote = _job(TaskGroup("app", 2, meta={REDEPLOY_META_KEY: "old"}), TaskGroup("worker", 1))
    nomad = _NomadStub(remote=remote)

    engine = DeploymentEngine(nomad, settings, now=_fixed_now)
    assert engine.redeploy("web", ["app"]) is True

    registered = nomad.registered[0][0]
    assert registered.group("app").meta == {REDEPLOY_META_KEY: "2024-03-01T12:00:00+00:00"}
    assert registered.group("worker").meta is None


def test_redeploy_unknown_job(settings):
    with pytest.raises(JobNotFoundError, match='job "web" not found on server'):
        DeploymentEngine(_NomadStub(), settings).redeploy("web")


def test_redeploy_without_matching_groups(settings):
    nomad = _NomadStub(remote=_job())

    with pytest.raises(PreconditionError, match="no matching task groups"):
        DeploymentEngine(nomad, settings).redeploy("web", ["nope"])
    assert nomad.registered == []


def test_failed_deployment_with_unlistable_allocations_requires_manual_intervention(
    settings, caplog
):
    nomad = _NomadStub(deployment=Deployment(id="dep-1", status=DeploymentStatus.FAILED))

    def _listing_fails(deployment_id):
        raise NomadAPIError("GET /v1/deployment/allocations/dep-1 returned 500: boom", 500)

    nomad.deployment_allocations = _listing_fails

    with caplog.at_level("ERROR", logger="nomadops"):
        with pytest.raises(ManualInterventionRequired, match="unsuccessful deployment"):
            DeploymentEngine(nomad, settings).deploy(_job())

    assert 'failed to get allocations for deployment "dep-1"' in caplog.text
