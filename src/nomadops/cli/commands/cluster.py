"""Cluster maintenance commands."""

import typer

from nomadops.cli.common.context import NomadAppContext
from nomadops.cli.common.exits import die, exit_from_error, ok_exit
from nomadops.cli.common.output import out
from nomadops.core.cluster import force_gc, reevaluate_jobs
from nomadops.core.errors import NomadOpsError


def gc(ctx: typer.Context):
    """
    Force a cluster garbage collection.
    """
    appctx: NomadAppContext = ctx.obj

    try:
        with out.status("Collecting garbage..."):
            force_gc(appctx.adapter)
    except NomadOpsError as exc:
        exit_from_error(exc)

    ok_exit("Garbage collection triggered")


def re_eval(
    ctx: typer.Context,
    job: str | None = typer.Argument(None, help="Job to re-evaluate"),
    all_jobs: bool = typer.Option(False, "--all", help="Re-evaluate every job"),
):
    """
    Force a new evaluation of one job or of all jobs.
    """
    appctx: NomadAppContext = ctx.obj

    if bool(job) == all_jobs:
        die("exactly one of JOB or --all is required", code=2)

    try:
        with out.status("Evaluating jobs..."):
            failed = reevaluate_jobs(appctx.adapter, None if all_jobs else [job])
    except NomadOpsError as exc:
        exit_from_error(exc)

    if failed:
        die(f"failed to evaluate {len(failed)} job(s): {', '.join(failed)}")
    ok_exit("Evaluations created")
