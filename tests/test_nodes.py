import pytest

from nomadops.core.diagnostics import Allocation
from nomadops.core.errors import NomadOpsError
from nomadops.core.nodes import Node, drain_node, find_node_id


def _alloc(alloc_id: str, status: str) -> Allocation:
    return Allocation(id=alloc_id, client_status=status)


class _NodesAdapterStub:
    def __init__(self, nodes, alloc_rounds):
        self.nodes = nodes
        self.alloc_rounds = list(alloc_rounds)
        self.drained: list[str] = []
        self.index = 0

    def list_nodes(self):
        return self.nodes

    def agent_node_id(self):
        return "local-node"

    def drain_node(self, node_id, *, enable=True):
        self.drained.append(node_id)

    def node_allocations(self, node_id, *, wait_index=0, wait_time=None):
        self.index += 1
        return self.alloc_rounds.pop(0), self.index


def test_find_node_id_requires_exactly_one_match():
    adapter = _NodesAdapterStub(
        [Node(id="n1", name="a"), Node(id="n2", name="b"), Node(id="n3", name="b")], []
    )

    assert find_node_id(adapter, "a") == "n1"
    with pytest.raises(NomadOpsError, match='found 2 nodes matching name "b"'):
        find_node_id(adapter, "b")
    with pytest.raises(NomadOpsError, match="found 0 nodes"):
        find_node_id(adapter, "c")


def test_drain_waits_until_allocations_are_gone(settings):
    adapter = _NodesAdapterStub(
        [],
        [
            [_alloc("a1", "running"), _alloc("a2", "pending")],
            [_alloc("a1", "complete"), _alloc("a2", "running")],
            [_alloc("a1", "complete"), _alloc("a2", "complete")],
        ],
    )

    assert drain_node(adapter, "n1", settings) == "n1"
    assert adapter.drained == ["n1"]
    assert adapter.alloc_rounds == []


def test_drain_defaults_to_the_local_agent_node(settings):
    adapter = _NodesAdapterStub([], [[]])

    assert drain_node(adapter, None, settings) == "local-node"
    assert adapter.drained == ["local-node"]
