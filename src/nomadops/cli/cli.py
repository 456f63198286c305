"""CLI application for Nomad deployment tooling."""

import typer

from nomadops.cli.commands.cluster import gc, re_eval
from nomadops.cli.commands.jobs import deploy, plan, redeploy, restart
from nomadops.cli.commands.nodes import node_app
from nomadops.cli.commands.scale import scale_app
from nomadops.cli.common.context import build_context
from nomadops.cli.common.exits import die
from nomadops.cli.common.logging import setup_logging
from nomadops.cli.common.options import AddressOpt, LogLevelOpt, NamespaceOpt, RegionOpt

app = typer.Typer(
    help="nomadops - deploy and operate Nomad jobs",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    address: str | None = AddressOpt,
    region: str | None = RegionOpt,
    namespace: str | None = NamespaceOpt,
    log_level: str | None = LogLevelOpt,
):
    """Configure logging and the Nomad connection."""
    try:
        setup_logging(log_level)
    except ValueError as exc:
        die(str(exc), code=2)
    ctx.obj = build_context(address, region=region, namespace=namespace)


app.command()(deploy)
app.command()(plan)
app.command()(redeploy)
app.command()(restart)
app.command()(gc)
app.command("re-eval")(re_eval)
app.add_typer(scale_app, name="scale")
app.add_typer(node_app, name="node")


if __name__ == "__main__":
    app()
