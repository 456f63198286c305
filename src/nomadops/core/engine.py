"""Deployment engine: deploy, plan and redeploy Nomad jobs.

The engine composes the pieces of a rollout. A deploy validates the job,
reconciles it with the running job, registers it, and then follows the
resulting evaluation and deployment to a terminal state. Nothing is
rolled back automatically: when the scheduler does not reach the desired
state, the error tells the operator that manual intervention is needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol

from nomadops.core.blocking import WatchSettings
from nomadops.core.deployments import DeploymentSession, DeploymentsAdapter, watch_deployment
from nomadops.core.errors import (
    JobNotFoundError,
    JobValidationError,
    ManualInterventionRequired,
    NomadAPIError,
    NotFoundError,
    PreconditionError,
)
from nomadops.core.evaluations import EvaluationsAdapter, limit, watch_evaluation
from nomadops.core.jobs import (
    JobSpec,
    JobType,
    RegisterResult,
    reconcile_counts,
    reconcile_redeploy_meta,
    stamp_redeploy_meta,
    total_count,
)
from nomadops.core.plan import PlanReport, PlanResponse, changes_pending, render_plan

logger = logging.getLogger(__name__)

JOB_STATUS_RUNNING = "running"
JOB_STATUS_PENDING = "pending"

SHORT_ID_LEN = 8
FULL_ID_LEN = 36


@dataclass(frozen=True)
class DeployOptions:
    """
    Flags of a single deploy call.

    Attributes:
        enforce_index: Register only if the job's modify index still equals
                       `job_modify_index`.
        job_modify_index: Index observed by an earlier plan.
        use_template_count: Keep the counts of the submitted job instead of
                            the counts of the running job.
        auto_promote: Promote canaries once they are all healthy.
        is_redeploy: The redeploy marker was set on purpose; do not
                     overwrite it with the running job's marker.
        verbose: Log full identifiers instead of short ones.
    """

    enforce_index: bool = False
    job_modify_index: int = 0
    use_template_count: bool = False
    auto_promote: bool = False
    is_redeploy: bool = False
    verbose: bool = False

    @property
    def id_len(self) -> int:
        return FULL_ID_LEN if self.verbose else SHORT_ID_LEN


class EngineAdapter(EvaluationsAdapter, DeploymentsAdapter, Protocol):
    """Everything the engine needs from the control plane."""

    def validate_job(self, job: JobSpec) -> str:
        ...

    def plan_job(self, job: JobSpec, *, diff: bool = True) -> PlanResponse:
        ...

    def register_job(
        self, job: JobSpec, *, enforce_index: bool = False, modify_index: int = 0
    ) -> RegisterResult:
        ...

    def get_job(self, name: str) -> JobSpec:
        ...

    def find_job(self, name: str) -> JobSpec | None:
        ...

    def watch_job(
        self, name: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[JobSpec, int]:
        ...


def watch_job_status(adapter: EngineAdapter, job_name: str, settings: WatchSettings) -> bool:
    """
    Block until a job leaves the pending state.

    Batch jobs have no deployment, so "running" is the only success
    signal available; the same applies to service jobs whose evaluation
    did not create a deployment.

    Returns:
        True if the job reached "running", False for any other status.
    """
    query = settings.query(settings.job_wait)

    while True:
        query.begin()
        job, last_index = adapter.watch_job(
            job_name, wait_index=query.wait_index, wait_time=query.wait_time
        )
        if not query.advance(last_index):
            continue

        if job.status == JOB_STATUS_RUNNING:
            logger.info('job "%s" has status "%s"', job.name, job.status)
            return True
        if job.status == JOB_STATUS_PENDING:
            logger.debug('job "%s" has status "%s"', job.name, job.status)
            continue
        logger.error('job "%s" has status "%s"', job.name, job.status)
        return False


def _local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone()


class DeploymentEngine:
    """Drives job registrations to a terminal state."""

    def __init__(
        self,
        adapter: EngineAdapter,
        settings: WatchSettings | None = None,
        *,
        now: Callable[[], datetime] = _local_now,
    ):
        self.adapter = adapter
        self.settings = settings or WatchSettings()
        self.now = now

    def _validate(self, job: JobSpec) -> None:
        try:
            error = self.adapter.validate_job(job)
        except NomadAPIError as exc:
            raise JobValidationError(f"validation failed: {exc}") from exc
        if error:
            raise JobValidationError(f"validation failed: {error}")

    def _reconcile(self, job: JobSpec, options: DeployOptions) -> None:
        if options.use_template_count and options.is_redeploy:
            return
        remote = self.adapter.find_job(job.name)
        if not options.use_template_count:
            reconcile_counts(job, remote)
        if not options.is_redeploy:
            reconcile_redeploy_meta(job, remote)

    def _register(self, job: JobSpec, options: DeployOptions) -> RegisterResult:
        logger.info('registering job "%s"', job.name)
        try:
            return self.adapter.register_job(
                job,
                enforce_index=options.enforce_index,
                modify_index=options.job_modify_index,
            )
        except NomadAPIError as exc:
            raise NomadAPIError(f"job register failed: {exc}", exc.status_code) from exc

    def _require_running(self, job: JobSpec) -> bool:
        if not watch_job_status(self.adapter, job.name, self.settings):
            raise ManualInterventionRequired(
                f'job "{job.name}" did not reach running status, manual intervention required'
            )
        return True

    def deploy(self, job: JobSpec, options: DeployOptions | None = None) -> bool:
        """
        Register a job and follow it until the scheduler is done with it.

        Args:
            job: Job to deploy; mutated in place by count/meta reconciliation.
            options: Deploy flags.

        Returns:
            True once the job is deployed, or once canaries are healthy and
            await manual promotion.

        Raises:
            JobValidationError: The job specification was rejected.
            PreconditionError: Every task group has a count of 0.
            NomadAPIError: A control plane request failed.
            ManualInterventionRequired: Placement or rollout failed after
                registration.
        """
        options = options or DeployOptions()

        self._validate(job)
        self._reconcile(job, options)

        if job.type.has_count and total_count(job) == 0:
            raise PreconditionError("all task groups have a count of 0, nothing to do")

        result = self._register(job, options)
        if result.warnings:
            logger.warning("job warnings:\n%s", result.warnings)

        if result.eval_id and not watch_evaluation(
            self.adapter, result.eval_id, self.settings, id_len=options.id_len
        ):
            raise ManualInterventionRequired(
                "abandoning deployment due to failed/blocked evaluation(s), "
                "manual intervention required"
            )

        if job.type is JobType.BATCH:
            return self._require_running(job)
        if job.type is not JobType.SERVICE:
            return True

        deployment_id = ""
        if result.eval_id:
            evaluation, _ = self.adapter.get_evaluation(result.eval_id)
            deployment_id = evaluation.deployment_id

        if not deployment_id:
            logger.info("no deployment ID found, monitoring for running status")
            return self._require_running(job)

        session = DeploymentSession(
            deployment_id=deployment_id,
            auto_promote=options.auto_promote,
            id_len=options.id_len,
        )
        logger.info('monitoring deployment "%s"', limit(deployment_id, options.id_len))
        if not watch_deployment(self.adapter, session, self.settings):
            raise ManualInterventionRequired(
                "abandoning unsuccessful deployment, manual intervention required"
            )
        return True

    def plan(self, job: JobSpec, *, verbose: bool = False, show_diff: bool = True) -> PlanReport:
        """
        Dry-run a job and render what the scheduler would do.

        The returned report carries the job modify index so a following
        deploy can enforce it.
        """
        try:
            response = self.adapter.plan_job(job, diff=True)
        except NomadAPIError as exc:
            raise NomadAPIError(f"plan failed: {exc}", exc.status_code) from exc

        return PlanReport(
            changes_pending=changes_pending(response),
            job_modify_index=response.job_modify_index,
            markup=render_plan(response, job, verbose=verbose, show_diff=show_diff),
        )

    def redeploy(
        self,
        job_name: str,
        group_names: Iterable[str] = (),
        *,
        auto_promote: bool = False,
        verbose: bool = False,
    ) -> bool:
        """
        Force a rolling restart of a running job or some of its task groups.

        The redeploy marker is stamped with the current time on every
        targeted group, which guarantees the scheduler sees a change, and
        the job is deployed again.

        Raises:
            JobNotFoundError: The job is not registered.
            PreconditionError: None of the named groups exist in the job.
        """
        try:
            job = self.adapter.get_job(job_name)
        except NotFoundError as exc:
            raise JobNotFoundError(job_name) from exc

        stamp = self.now().isoformat(timespec="seconds")
        if not stamp_redeploy_meta(job, group_names, stamp):
            raise PreconditionError(f'no matching task groups to redeploy in job "{job_name}"')

        return self.deploy(
            job,
            DeployOptions(auto_promote=auto_promote, is_redeploy=True, verbose=verbose),
        )
