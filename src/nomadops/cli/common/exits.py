"""Exit handling utilities for the CLI."""

from typing import NoReturn

import typer

from nomadops.cli.common.output import out
from nomadops.core.errors import JobValidationError, ManualInterventionRequired, NomadOpsError


def ok_exit(msg: str | None = None) -> NoReturn:
    """Exit successfully with an optional success message."""
    if msg:
        out.success(msg)
    raise typer.Exit(0)


def die(msg: str, code: int = 1) -> NoReturn:
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = 0) -> NoReturn:
    """Exit with a warning message and optional exit code."""
    out.warn(msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str, code: int = 1) -> NoReturn:
    """Print an error message and exit, chaining the original exception."""
    out.error(message)
    raise typer.Exit(code) from exc


def exit_from_error(exc: NomadOpsError) -> NoReturn:
    """
    Exit for a failed operation.

    Validation errors exit with 2, rollouts that need an operator with 3,
    everything else with 1.
    """
    code = 1
    if isinstance(exc, JobValidationError):
        code = 2
    elif isinstance(exc, ManualInterventionRequired):
        code = 3
    exit_from_exc(exc, message=str(exc), code=code)
