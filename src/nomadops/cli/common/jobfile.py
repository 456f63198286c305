"""Loading job files given on the command line."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Protocol

from nomadops.core.errors import JobValidationError, NomadAPIError
from nomadops.core.jobs import JobSpec


class JobParser(Protocol):
    def parse_job(self, hcl: str) -> JobSpec:
        ...


def read_job_source(path: str) -> str:
    """Return the contents of a job file; "-" reads standard input."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def parse_job_source(source: str, parser: JobParser) -> JobSpec:
    """
    Turn job file contents into a JobSpec.

    JSON jobs are accepted either bare or wrapped as {"Job": {...}}, the
    shape `nomad job run -output` prints. Anything else is treated as HCL
    and handed to the server's parser.

    Raises:
        JobValidationError: The contents are not a usable job.
    """
    if source.lstrip().startswith("{"):
        try:
            payload = json.loads(source)
        except json.JSONDecodeError as exc:
            raise JobValidationError(f"invalid JSON job file: {exc}") from exc

        if not isinstance(payload, dict):
            raise JobValidationError("job file must contain a JSON object")
        if isinstance(payload.get("Job"), dict):
            payload = payload["Job"]
        try:
            return JobSpec.from_payload(payload)
        except ValueError as exc:
            raise JobValidationError(f"invalid job: {exc}") from exc

    try:
        return parser.parse_job(source)
    except NomadAPIError as exc:
        raise JobValidationError(f"failed to parse job file: {exc}") from exc
    except ValueError as exc:
        raise JobValidationError(f"invalid job: {exc}") from exc
