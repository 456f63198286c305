"""Commands for working with client nodes."""

import typer

from nomadops.cli.common.context import NomadAppContext
from nomadops.cli.common.exits import die, exit_from_error, ok_exit
from nomadops.cli.common.output import out
from nomadops.core.errors import NomadOpsError
from nomadops.core.nodes import drain_node, find_node_id

node_app = typer.Typer(
    help="Work with client nodes",
    no_args_is_help=True,
)


@node_app.command("list")
def list_nodes(ctx: typer.Context):
    """
    List client nodes.
    """
    appctx: NomadAppContext = ctx.obj

    try:
        with out.status("Loading nodes..."):
            nodes = appctx.adapter.list_nodes()
    except NomadOpsError as exc:
        exit_from_error(exc)

    out.nodes_table(sorted(nodes, key=lambda n: n.name))


@node_app.command("drain")
def drain(
    ctx: typer.Context,
    node_id: str | None = typer.Option(None, "--id", help="ID of the node to drain"),
    name: str | None = typer.Option(None, "--name", help="Name of the node to drain"),
    self_: bool = typer.Option(False, "--self", help="Drain the node of the local agent"),
):
    """
    Drain a node and wait until its allocations have moved away.
    """
    appctx: NomadAppContext = ctx.obj

    if sum(bool(v) for v in (node_id, name, self_)) != 1:
        die("exactly one of --id, --name or --self is required", code=2)

    try:
        if name:
            node_id = find_node_id(appctx.adapter, name)
        with out.status("Draining node..."):
            drained = drain_node(appctx.adapter, node_id, appctx.settings)
    except NomadOpsError as exc:
        exit_from_error(exc)

    ok_exit(f'Node "{drained}" drained')
