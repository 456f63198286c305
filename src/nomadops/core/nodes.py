"""Node lookup and managed draining.

Draining marks a client node ineligible and migrates its allocations
away; `drain_node` additionally blocks until nothing is left running on
the node, which is what maintenance scripts usually need.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from nomadops.core.blocking import WatchSettings
from nomadops.core.diagnostics import Allocation
from nomadops.core.errors import NomadOpsError

logger = logging.getLogger(__name__)

_ACTIVE_CLIENT_STATUSES = {"running", "pending"}


@dataclass(frozen=True)
class Node:
    """A Nomad client node."""

    id: str
    name: str
    status: str = ""
    datacenter: str = ""
    drain: bool = False
    eligibility: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Node:
        return cls(
            id=str(payload.get("ID") or ""),
            name=payload.get("Name") or "",
            status=payload.get("Status") or "",
            datacenter=payload.get("Datacenter") or "",
            drain=bool(payload.get("Drain")),
            eligibility=payload.get("SchedulingEligibility") or "",
        )


class NodesAdapter(Protocol):
    """Interface for node operations."""

    def list_nodes(self) -> list[Node]:
        """Return all client nodes."""
        ...

    def agent_node_id(self) -> str:
        """Return the node ID of the local agent, if it runs in client mode."""
        ...

    def drain_node(self, node_id: str, *, enable: bool = True) -> None:
        """Enable or disable draining of a node."""
        ...

    def node_allocations(
        self, node_id: str, *, wait_index: int = 0, wait_time: float | None = None
    ) -> tuple[list[Allocation], int]:
        """Return the allocations of a node and the response index."""
        ...


def find_node_id(adapter: NodesAdapter, name: str) -> str:
    """
    Resolve a node name to its ID.

    Raises:
        NomadOpsError: Unless exactly one node carries the name.
    """
    ids = [n.id for n in adapter.list_nodes() if n.name == name]
    if len(ids) != 1:
        raise NomadOpsError(f'found {len(ids)} nodes matching name "{name}"')
    return ids[0]


def drain_node(
    adapter: NodesAdapter,
    node_id: str | None,
    settings: WatchSettings,
) -> str:
    """
    Drain a node and block until none of its allocations are running or pending.

    Args:
        adapter: Nomad adapter.
        node_id: Node to drain; None drains the local agent's node.
        settings: Watch settings (the job wait time is used per poll).

    Returns:
        The ID of the drained node.
    """
    if not node_id:
        node_id = adapter.agent_node_id()

    adapter.drain_node(node_id, enable=True)
    query = settings.query(settings.job_wait)

    while True:
        query.begin()
        allocs, last_index = adapter.node_allocations(
            node_id, wait_index=query.wait_index, wait_time=query.wait_time
        )
        query.advance(last_index)

        pending = sum(1 for a in allocs if a.client_status in _ACTIVE_CLIENT_STATUSES)
        if pending == 0:
            return node_id
        logger.info("%d pending allocations remaining", pending)
