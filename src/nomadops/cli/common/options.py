"""Common CLI options for the CLI."""

import typer

AddressOpt = typer.Option(
    None,
    "--address",
    "-a",
    help="Nomad HTTP API address (defaults to $NOMAD_ADDR)",
)

RegionOpt = typer.Option(
    None,
    "--region",
    help="Region to talk to (defaults to $NOMAD_REGION; a region set in the job wins)",
)

NamespaceOpt = typer.Option(
    None,
    "--namespace",
    "-N",
    help="Namespace to use (defaults to $NOMAD_NAMESPACE; a namespace set in the job wins)",
)

LogLevelOpt = typer.Option(
    None,
    "--log-level",
    help="Log level: debug, info, warning, error (defaults to $NOMADOPS_LOG_LEVEL or info)",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Show full identifiers instead of short ones",
)

AutoPromoteOpt = typer.Option(
    False,
    "--auto-promote",
    help="Promote canaries once they are all healthy",
)

ForceCountOpt = typer.Option(
    False,
    "--force-count",
    help="Use the counts from the job file instead of the running job",
)

PlanOpt = typer.Option(
    False,
    "--plan",
    help="Show the plan and ask for confirmation before deploying",
)

YesOpt = typer.Option(
    False,
    "--yes",
    "-y",
    help="Do not ask for confirmation",
)

DiffOpt = typer.Option(
    True,
    "--diff/--no-diff",
    help="Show the job diff in the plan",
)

NoColorOpt = typer.Option(
    False,
    "--no-color",
    help="Disable colored output",
)

GroupOpt = typer.Option(
    [],
    "--group",
    "-g",
    help="Task group to target. This is reusable.",
    show_default=False,
)

PickOpt = typer.Option(
    False,
    "--pick",
    help="Pick task groups interactively",
)
