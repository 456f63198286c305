"""Application context management for the CLI."""

from dataclasses import dataclass

import httpx

from nomadops.cli.common.exits import die
from nomadops.core.adapters.nomad import NomadAdapter
from nomadops.core.blocking import WatchSettings
from nomadops.core.client import ClientConfigError, NomadConfig, get_client
from nomadops.core.engine import DeploymentEngine
from nomadops.core.jobs import JobSpec


@dataclass
class NomadAppContext:
    """Application context holding the Nomad client, adapter and watch settings."""

    config: NomadConfig
    client: httpx.Client
    adapter: NomadAdapter
    settings: WatchSettings

    def adapter_for(self, job: JobSpec) -> NomadAdapter:
        """
        Return an adapter scoped to the job's region and namespace.

        A region or namespace written in the job wins over the one from
        the command line or the environment.
        """
        return self.adapter.scoped(
            region=job.region or self.config.region,
            namespace=job.namespace or self.config.namespace,
        )

    def engine_for(self, job: JobSpec) -> DeploymentEngine:
        return DeploymentEngine(self.adapter_for(job), self.settings)

    def engine(self) -> DeploymentEngine:
        return DeploymentEngine(self.adapter, self.settings)


def build_context(
    address: str | None,
    *,
    region: str | None = None,
    namespace: str | None = None,
) -> NomadAppContext:
    """Build the application context from options and the environment.

    Args:
        address: Nomad address given on the command line, if any.
        region: Region override.
        namespace: Namespace override.

    Returns:
        NomadAppContext: Context with a configured client and adapter.
    """
    config = NomadConfig.from_env(address=address)
    if region or namespace:
        config = NomadConfig(
            address=config.address,
            token=config.token,
            region=region or config.region,
            namespace=namespace or config.namespace,
            ca_cert=config.ca_cert,
            skip_verify=config.skip_verify,
            timeout=config.timeout,
        )

    settings = WatchSettings.from_env()

    try:
        client = get_client(config)
    except ClientConfigError as exc:
        die(str(exc), code=1)

    adapter = NomadAdapter(
        client,
        region=config.region,
        namespace=config.namespace,
        timeout=config.timeout,
    )
    return NomadAppContext(config=config, client=client, adapter=adapter, settings=settings)
