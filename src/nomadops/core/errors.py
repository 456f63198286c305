"""Error types raised by the nomadops core.

The CLI maps these onto messages and exit codes; the core never exits the
process itself.
"""

from __future__ import annotations


class NomadOpsError(RuntimeError):
    """Base class for all nomadops errors."""


class NomadAPIError(NomadOpsError):
    """Raised when the Nomad HTTP API returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(NomadAPIError):
    """Raised when the Nomad API answers 404 for the requested object."""


class JobValidationError(NomadOpsError):
    """Raised when Nomad rejects a job specification."""


class PreconditionError(NomadOpsError):
    """Raised before any remote mutation when a deployment cannot proceed."""


class ManualInterventionRequired(NomadOpsError):
    """Raised when a registered job did not reach the desired state."""


class JobNotFoundError(NomadOpsError):
    """Raised when an existing job was required but is not on the server."""

    def __init__(self, job_name: str):
        super().__init__(f'job "{job_name}" not found on server')
        self.job_name = job_name
