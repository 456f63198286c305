"""Commands for reading and changing task group counts."""

import typer

from nomadops.cli.common.context import NomadAppContext
from nomadops.cli.common.exits import exit_from_error, ok_exit
from nomadops.cli.common.output import out
from nomadops.core.errors import NomadOpsError
from nomadops.core.scaling import adjust_group_count, get_group_count, load_job, set_group_count

scale_app = typer.Typer(
    help="Read and change task group counts",
    no_args_is_help=True,
)

JobNameArg = typer.Argument(..., help="Name of a registered job")
GroupArg = typer.Argument(None, help="Task group name")
ByOpt = typer.Option(1, "--by", "-b", min=1, help="How many allocations to add or remove")


@scale_app.command("get")
def get(
    ctx: typer.Context,
    job_name: str = JobNameArg,
    group: str | None = GroupArg,
):
    """
    Show the count of one task group, or a table of all groups.
    """
    appctx: NomadAppContext = ctx.obj

    try:
        with out.status("Loading job..."):
            if group:
                count = get_group_count(appctx.adapter, job_name, group)
            else:
                job = load_job(appctx.adapter, job_name)
    except NomadOpsError as exc:
        exit_from_error(exc)

    if group:
        typer.echo(count)
        return
    out.groups_table(job.task_groups, title=f"Task groups of {job.name}")


@scale_app.command("set")
def set_count(
    ctx: typer.Context,
    job_name: str = JobNameArg,
    group: str = typer.Argument(..., help="Task group name"),
    count: int = typer.Argument(..., help="Desired count"),
):
    """
    Set a task group to an exact count.
    """
    appctx: NomadAppContext = ctx.obj

    try:
        with out.status(f"Scaling {group}..."):
            changed = set_group_count(appctx.adapter, job_name, group, count)
    except NomadOpsError as exc:
        exit_from_error(exc)

    if not changed:
        ok_exit(f'Group "{group}" already has a count of {count}')
    ok_exit(f'Scaled group "{group}" of job "{job_name}" to {count}')


def _adjust(ctx: typer.Context, job_name: str, group: str, delta: int) -> None:
    appctx: NomadAppContext = ctx.obj

    try:
        with out.status(f"Scaling {group}..."):
            new_count = adjust_group_count(appctx.adapter, job_name, group, delta)
    except NomadOpsError as exc:
        exit_from_error(exc)

    ok_exit(f'Scaled group "{group}" of job "{job_name}" to {new_count}')


@scale_app.command("up")
def up(
    ctx: typer.Context,
    job_name: str = JobNameArg,
    group: str = typer.Argument(..., help="Task group name"),
    by: int = ByOpt,
):
    """Add allocations to a task group."""
    _adjust(ctx, job_name, group, by)


@scale_app.command("down")
def down(
    ctx: typer.Context,
    job_name: str = JobNameArg,
    group: str = typer.Argument(..., help="Task group name"),
    by: int = ByOpt,
):
    """Remove allocations from a task group."""
    _adjust(ctx, job_name, group, -by)
