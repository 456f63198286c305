from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

import httpx

from nomadops.core.deployments import Deployment
from nomadops.core.diagnostics import Allocation
from nomadops.core.errors import NomadAPIError, NotFoundError
from nomadops.core.evaluations import Evaluation
from nomadops.core.jobs import JobSpec, RegisterResult
from nomadops.core.nodes import Node
from nomadops.core.plan import PlanResponse


def _path(value: str) -> str:
    return quote(value, safe="")


class NomadAdapter:
    """Adapter around the Nomad HTTP API."""

    _INDEX_HEADER = "X-Nomad-Index"
    _DRAIN_DEADLINE_NANOS = 3600 * 1_000_000_000

    def __init__(
        self,
        client: httpx.Client,
        *,
        region: str | None = None,
        namespace: str | None = None,
        timeout: float = 30.0,
    ):
        """Create an adapter; region and namespace apply to every request."""
        self.client = client
        self.region = region
        self.namespace = namespace
        self.timeout = timeout

    def scoped(self, *, region: str | None = None, namespace: str | None = None) -> NomadAdapter:
        """Return an adapter sharing this client but bound to another region/namespace."""
        return NomadAdapter(
            self.client,
            region=region or self.region,
            namespace=namespace or self.namespace,
            timeout=self.timeout,
        )

    def _params(self, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.region:
            params["region"] = self.region
        if self.namespace:
            params["namespace"] = self.namespace
        if extra:
            params.update(extra)
        return params

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        wait_time: float | None = None,
    ) -> httpx.Response:
        """Send a request and map transport and HTTP errors onto NomadAPIError."""
        timeout = self.timeout + (wait_time or 0)
        try:
            resp = self.client.request(
                method, path, params=self._params(params), json=body, timeout=timeout
            )
        except httpx.HTTPError as exc:
            raise NomadAPIError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 404:
            raise NotFoundError(
                f"{method} {path}: {resp.text.strip() or 'not found'}", resp.status_code
            )
        if resp.status_code >= 400:
            raise NomadAPIError(
                f"{method} {path} returned {resp.status_code}: {resp.text.strip()}",
                resp.status_code,
            )
        return resp

    def _json(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise NomadAPIError(f"invalid JSON from {resp.request.url}: {exc}") from exc

    def _blocking_get(
        self, path: str, wait_index: int, wait_time: float | None
    ) -> tuple[Any, int]:
        """Issue a blocking query and return the payload with the response index."""
        params: dict[str, Any] = {}
        if wait_index:
            params["index"] = wait_index
        if wait_time:
            params["wait"] = f"{int(wait_time * 1000)}ms"
        resp = self._request("GET", path, params=params, wait_time=wait_time)
        try:
            last_index = int(resp.headers.get(self._INDEX_HEADER, "0"))
        except ValueError:
            last_index = 0
        return self._json(resp), last_index

    def parse_job(self, hcl: str) -> JobSpec:
        """Convert an HCL job specification to a job using the server's parser."""
        resp = self._request(
            "POST", "/v1/jobs/parse", body={"JobHCL": hcl, "Canonicalize": True}
        )
        return JobSpec.from_payload(self._json(resp))

    def validate_job(self, job: JobSpec) -> str:
        """Validate a job; returns the validation error text, or "" if valid."""
        resp = self._request("POST", "/v1/validate/job", body={"Job": job.to_payload()})
        payload = self._json(resp) or {}
        if payload.get("Error"):
            return payload["Error"]
        return "; ".join(payload.get("ValidationErrors") or [])

    def plan_job(self, job: JobSpec, *, diff: bool = True) -> PlanResponse:
        """Dry-run a job registration."""
        resp = self._request(
            "POST",
            f"/v1/job/{_path(job.id or job.name)}/plan",
            body={"Job": job.to_payload(), "Diff": diff},
        )
        try:
            return PlanResponse.from_payload(self._json(resp))
        except ValueError as exc:
            raise NomadAPIError(f"unexpected plan response: {exc}") from exc

    def register_job(
        self, job: JobSpec, *, enforce_index: bool = False, modify_index: int = 0
    ) -> RegisterResult:
        """Register a job, optionally only if its modify index is unchanged."""
        body: dict[str, Any] = {"Job": job.to_payload()}
        if enforce_index:
            body["EnforceIndex"] = True
            body["JobModifyIndex"] = modify_index
        resp = self._request("POST", "/v1/jobs", body=body)
        return RegisterResult.from_payload(self._json(resp))

    def get_job(self, name: str) -> JobSpec:
        """Return a registered job. Raises NotFoundError if it does not exist."""
        resp = self._request("GET", f"/v1/job/{_path(name)}")
        return JobSpec.from_payload(self._json(resp))

    def find_job(self, name: str) -> JobSpec | None:
        """Return a registered job, or None if it does not exist."""
        try:
            return self.get_job(name)
        except NotFoundError:
            return None

    def watch_job(
        self, name: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[JobSpec, int]:
        payload, index = self._blocking_get(f"/v1/job/{_path(name)}", wait_index, wait_time)
        return JobSpec.from_payload(payload), index

    def deregister_job(self, name: str, *, purge: bool = False) -> str:
        """Stop a job; returns the evaluation ID."""
        resp = self._request(
            "DELETE", f"/v1/job/{_path(name)}", params={"purge": str(purge).lower()}
        )
        return (self._json(resp) or {}).get("EvalID") or ""

    def list_jobs(self) -> list[JobSpec]:
        """Return stubs of every registered job (ID, name, type, status)."""
        resp = self._request("GET", "/v1/jobs")
        return [JobSpec.from_payload(j) for j in self._json(resp) or []]

    def evaluate_job(self, job_id: str) -> str:
        """Force a new evaluation of a job; returns the evaluation ID."""
        resp = self._request(
            "POST", f"/v1/job/{_path(job_id)}/evaluate", body={"JobID": job_id}
        )
        return (self._json(resp) or {}).get("EvalID") or ""

    def system_gc(self) -> None:
        """Force a cluster garbage collection."""
        self._request("PUT", "/v1/system/gc")

    def get_evaluation(
        self, eval_id: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[Evaluation, int]:
        payload, index = self._blocking_get(
            f"/v1/evaluation/{_path(eval_id)}", wait_index, wait_time
        )
        return Evaluation.from_payload(payload), index

    def get_deployment(
        self, deployment_id: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[Deployment, int]:
        payload, index = self._blocking_get(
            f"/v1/deployment/{_path(deployment_id)}", wait_index, wait_time
        )
        return Deployment.from_payload(payload), index

    def deployment_allocations(self, deployment_id: str) -> list[Allocation]:
        resp = self._request("GET", f"/v1/deployment/allocations/{_path(deployment_id)}")
        return [Allocation.from_payload(a) for a in self._json(resp) or []]

    def promote_deployment(self, deployment_id: str) -> None:
        self._request(
            "POST",
            f"/v1/deployment/promote/{_path(deployment_id)}",
            body={"DeploymentID": deployment_id, "All": True},
        )

    def get_allocation(self, alloc_id: str) -> Allocation:
        resp = self._request("GET", f"/v1/allocation/{_path(alloc_id)}")
        return Allocation.from_payload(self._json(resp))

    def list_nodes(self) -> list[Node]:
        resp = self._request("GET", "/v1/nodes")
        return [Node.from_payload(n) for n in self._json(resp) or []]

    def node_allocations(
        self, node_id: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[list[Allocation], int]:
        payload, index = self._blocking_get(
            f"/v1/node/{_path(node_id)}/allocations", wait_index, wait_time
        )
        return [Allocation.from_payload(a) for a in payload or []], index

    def drain_node(self, node_id: str, *, enable: bool = True) -> None:
        spec = None
        if enable:
            spec = {"Deadline": self._DRAIN_DEADLINE_NANOS, "IgnoreSystemJobs": False}
        self._request(
            "POST",
            f"/v1/node/{_path(node_id)}/drain",
            body={"NodeID": node_id, "DrainSpec": spec, "MarkEligible": not enable},
        )

    def agent_node_id(self) -> str:
        """Return the node ID of the agent the client talks to."""
        resp = self._request("GET", "/v1/agent/self")
        stats = (self._json(resp) or {}).get("stats") or {}
        node_id = (stats.get("client") or {}).get("node_id")
        if not node_id:
            raise NomadAPIError("could not find client node id, is the agent in client mode?")
        return node_id
