"""Commands for deploying, planning and restarting Nomad jobs."""

from dataclasses import replace

import typer

from nomadops.cli.common.context import NomadAppContext
from nomadops.cli.common.exits import die, exit_from_error, exit_from_exc, ok_exit, warn_exit
from nomadops.cli.common.jobfile import parse_job_source, read_job_source
from nomadops.cli.common.options import (
    AutoPromoteOpt,
    DiffOpt,
    ForceCountOpt,
    GroupOpt,
    NoColorOpt,
    PickOpt,
    PlanOpt,
    VerboseOpt,
    YesOpt,
)
from nomadops.cli.common.output import out
from nomadops.cli.tui import select_groups
from nomadops.core.engine import DeployOptions
from nomadops.core.errors import NomadOpsError
from nomadops.core.jobs import JobSpec
from nomadops.core.restart import restart_group, restart_job
from nomadops.core.scaling import load_job

PLAN_NO_CHANGES = 0
PLAN_CHANGES = 1
PLAN_ERROR = 255

JobFileArg = typer.Argument(..., help='Job file (HCL or JSON), or "-" for stdin')
JobNameArg = typer.Argument(..., help="Name of a registered job")


def _load_job_file(appctx: NomadAppContext, path: str, *, code: int = 1) -> JobSpec:
    try:
        source = read_job_source(path)
    except OSError as exc:
        exit_from_exc(exc, message=f"cannot read job file {path}: {exc}", code=code)

    try:
        return parse_job_source(source, appctx.adapter)
    except NomadOpsError as exc:
        exit_from_exc(exc, message=str(exc), code=code)


def deploy(
    ctx: typer.Context,
    jobfile: str = JobFileArg,
    auto_promote: bool = AutoPromoteOpt,
    force_count: bool = ForceCountOpt,
    plan: bool = PlanOpt,
    yes: bool = YesOpt,
    verbose: bool = VerboseOpt,
):
    """
    Deploy a job and follow it until the rollout finishes.
    """
    appctx: NomadAppContext = ctx.obj
    job = _load_job_file(appctx, jobfile)
    engine = appctx.engine_for(job)
    options = DeployOptions(
        use_template_count=force_count,
        auto_promote=auto_promote,
        verbose=verbose,
    )

    try:
        if plan:
            with out.status(f'Planning job "{job.name}"...'):
                report = engine.plan(job, verbose=verbose)
            out.plan(report.markup)

            if report.changes_pending and not yes:
                if not out.confirm("Changes found, continue deployment?"):
                    warn_exit("Abandoning deployment.", code=0)
            options = replace(
                options, enforce_index=True, job_modify_index=report.job_modify_index
            )

        out.info(f'Deploying job "{job.name}"')
        engine.deploy(job, options)
    except NomadOpsError as exc:
        exit_from_error(exc)

    ok_exit(f'Job "{job.name}" deployed')


def plan(
    ctx: typer.Context,
    jobfile: str = JobFileArg,
    verbose: bool = VerboseOpt,
    diff: bool = DiffOpt,
    no_color: bool = NoColorOpt,
):
    """
    Show what a deploy would change.

    Exits 0 when nothing would change, 1 when allocations would be
    created, destroyed or updated, and 255 on error.
    """
    appctx: NomadAppContext = ctx.obj
    job = _load_job_file(appctx, jobfile, code=PLAN_ERROR)

    try:
        with out.status(f'Planning job "{job.name}"...'):
            report = appctx.engine_for(job).plan(job, verbose=verbose, show_diff=diff)
    except NomadOpsError as exc:
        exit_from_exc(exc, message=str(exc), code=PLAN_ERROR)

    out.plan(report.markup, no_color=no_color)
    raise typer.Exit(PLAN_CHANGES if report.changes_pending else PLAN_NO_CHANGES)


def redeploy(
    ctx: typer.Context,
    job_name: str = JobNameArg,
    group: list[str] = GroupOpt,
    pick: bool = PickOpt,
    auto_promote: bool = AutoPromoteOpt,
    verbose: bool = VerboseOpt,
):
    """
    Roll every allocation of a job, or of some of its task groups.
    """
    appctx: NomadAppContext = ctx.obj
    groups = list(group)

    if pick:
        if groups:
            die("--pick and --group cannot be combined", code=2)
        try:
            with out.status("Loading job..."):
                job = load_job(appctx.adapter, job_name)
        except NomadOpsError as exc:
            exit_from_error(exc)

        groups = select_groups(job.task_groups)
        if not groups:
            warn_exit("No task groups selected", code=0)

    target = ", ".join(groups) if groups else "all task groups"
    out.info(f'Redeploying job "{job_name}" ({target})')
    try:
        appctx.engine().redeploy(
            job_name, groups, auto_promote=auto_promote, verbose=verbose
        )
    except NomadOpsError as exc:
        exit_from_error(exc)

    ok_exit(f'Job "{job_name}" redeployed')


def restart(
    ctx: typer.Context,
    job_name: str = JobNameArg,
    group: str | None = typer.Option(
        None, "--group", "-g", help="Restart only this task group"
    ),
    yes: bool = YesOpt,
):
    """
    Stop a job, or one of its task groups, and start it again.

    Unlike redeploy this ignores the update strategy, so expect downtime.
    """
    appctx: NomadAppContext = ctx.obj
    target = f'group "{group}" of job "{job_name}"' if group else f'job "{job_name}"'

    if not yes and not out.confirm(f"Restart {target}? All its allocations will stop."):
        warn_exit("Restart aborted", code=0)

    try:
        with out.status(f"Restarting {target}..."):
            if group:
                restart_group(appctx.adapter, job_name, group)
            else:
                restart_job(appctx.adapter, job_name)
    except NomadOpsError as exc:
        exit_from_error(exc)

    ok_exit(f"Restarted {target}")
