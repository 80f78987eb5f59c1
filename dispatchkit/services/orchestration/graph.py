"""Directed graph helpers shared by the wave scheduler and phase sequencer.

Both helpers iterate nodes and successors in the order given so that every
result is deterministic for a fixed input order.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

_WHITE, _GRAY, _BLACK = 0, 1, 2


def find_cycle(
    nodes: Sequence[str], successors: Mapping[str, Sequence[str]]
) -> list[tuple[str, str]] | None:
    """Return the edges of one cycle, or None when the graph is acyclic.

    Iterative depth-first search with an explicit stack and gray marking for
    nodes on the current path; the first back edge found closes the reported
    cycle. Chains of any length are walked without recursion.
    """
    color = {node: _WHITE for node in nodes}

    for root in nodes:
        if color[root] != _WHITE:
            continue
        color[root] = _GRAY
        path = [root]
        pending = [iter(successors.get(root, ()))]
        while pending:
            nxt = next(pending[-1], None)
            if nxt is None:
                pending.pop()
                color[path.pop()] = _BLACK
                continue
            state = color.get(nxt, _WHITE)
            if state == _GRAY:
                cycle = path[path.index(nxt):] + [nxt]
                return list(zip(cycle, cycle[1:]))
            if state == _WHITE:
                color[nxt] = _GRAY
                path.append(nxt)
                pending.append(iter(successors.get(nxt, ())))
    return None


def depth_layers(nodes: Sequence[str], edges: Sequence[tuple[str, str]]) -> list[list[str]]:
    """Partition an acyclic graph into layers by longest-path depth.

    Layer 0 holds nodes with no incoming edge; layer k holds nodes whose
    predecessors all sit in layers 0..k-1 (Kahn-style peeling). Nodes keep
    their relative input order inside a layer.

    Raises:
        ValueError: If the graph contains a cycle
    """
    position = {node: i for i, node in enumerate(nodes)}
    indegree = {node: 0 for node in nodes}
    succ: dict[str, list[str]] = {node: [] for node in nodes}
    for src, dst in edges:
        succ[src].append(dst)
        indegree[dst] += 1

    layers: list[list[str]] = []
    current = [node for node in nodes if indegree[node] == 0]
    placed = 0
    while current:
        layers.append(current)
        placed += len(current)
        following: list[str] = []
        for node in current:
            for nxt in succ[node]:
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    following.append(nxt)
        current = sorted(following, key=position.__getitem__)

    if placed != len(nodes):
        raise ValueError("Graph contains a cycle; cannot compute depth layers")
    return layers
