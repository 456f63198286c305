"""Connection settings and HTTP client creation for the Nomad API.

This module centralizes creation of the `httpx.Client` used by the Nomad
adapter. Settings follow the environment variables of the Nomad CLI so the
tool works wherever `nomad` itself is configured.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import httpx

DEFAULT_ADDRESS = "http://127.0.0.1:4646"


class ClientConfigError(RuntimeError):
    """Raised when the Nomad connection settings are unusable."""


def _sanitize_address(address: str | None) -> str:
    """
    Normalize a Nomad address.

    - Falls back to the local agent when unset
    - Adds a scheme when missing
    - Removes query strings and trailing slashes
    """
    if not address:
        return DEFAULT_ADDRESS
    address = address.strip()
    if "://" not in address:
        address = f"http://{address}"
    address = address.split("?", 1)[0]
    return address.rstrip("/")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class NomadConfig:
    """
    Connection settings for a Nomad cluster.

    Attributes:
        address: Base URL of the Nomad HTTP API.
        token: ACL token sent as `X-Nomad-Token`, if any.
        region: Default region for requests.
        namespace: Default namespace for requests.
        ca_cert: Path to a CA bundle used to verify the server.
        skip_verify: Disable TLS verification.
        timeout: Seconds to wait for a response on top of any blocking wait.
    """

    address: str = DEFAULT_ADDRESS
    token: str | None = None
    region: str | None = None
    namespace: str | None = None
    ca_cert: str | None = None
    skip_verify: bool = False
    timeout: float = 30.0

    @classmethod
    def from_env(cls, *, address: str | None = None) -> NomadConfig:
        """Read settings from the NOMAD_* environment variables."""
        return cls(
            address=_sanitize_address(address or os.getenv("NOMAD_ADDR")),
            token=os.getenv("NOMAD_TOKEN") or None,
            region=os.getenv("NOMAD_REGION") or None,
            namespace=os.getenv("NOMAD_NAMESPACE") or None,
            ca_cert=os.getenv("NOMAD_CACERT") or None,
            skip_verify=_env_flag("NOMAD_SKIP_VERIFY"),
        )


def get_client(config: NomadConfig) -> httpx.Client:
    """
    Create an HTTP client for the configured Nomad cluster.

    Raises:
        ClientConfigError: If the configured CA bundle does not exist.
    """
    verify: bool | str = True
    if config.skip_verify:
        verify = False
    elif config.ca_cert:
        if not os.path.exists(config.ca_cert):
            raise ClientConfigError(f"CA certificate not found: {config.ca_cert}")
        verify = config.ca_cert

    headers = {"Accept": "application/json"}
    if config.token:
        headers["X-Nomad-Token"] = config.token

    return httpx.Client(
        base_url=_sanitize_address(config.address),
        headers=headers,
        timeout=config.timeout,
        verify=verify,
    )
