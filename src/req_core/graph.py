"""Dependency graph checks.

Dependency edges point from a requirement to the requirement it depends
on. The graph within a module must stay acyclic, so an edge
``source -> target`` is rejected when ``source`` is already reachable from
``target``.

Nodes are opaque hashable keys (the store uses internal row ids).

Example:
    >>> adjacency = {1: [2], 2: [3]}
    >>> would_create_cycle(adjacency, source=3, target=1)
    True
    >>> would_create_cycle(adjacency, source=1, target=3)
    False
"""

from __future__ import annotations

from collections import deque
from collections.abc import Hashable, Iterable, Mapping
from typing import TypeVar

NodeT = TypeVar("NodeT", bound=Hashable)


def is_reachable(
    adjacency: Mapping[NodeT, Iterable[NodeT]],
    start: NodeT,
    goal: NodeT,
) -> bool:
    """Check whether ``goal`` can be reached from ``start`` along edges.

    Args:
        adjacency: Outgoing edges per node.
        start: Node to search from.
        goal: Node to look for.

    Returns:
        True if a path exists (a node always reaches itself).
    """
    if start == goal:
        return True
    seen = {start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        for neighbour in adjacency.get(node, ()):
            if neighbour == goal:
                return True
            if neighbour not in seen:
                seen.add(neighbour)
                queue.append(neighbour)
    return False


def would_create_cycle(
    adjacency: Mapping[NodeT, Iterable[NodeT]],
    source: NodeT,
    target: NodeT,
) -> bool:
    """Check whether adding ``source -> target`` would close a cycle."""
    return is_reachable(adjacency, target, source)


def find_cycle(adjacency: Mapping[NodeT, Iterable[NodeT]]) -> list[NodeT] | None:
    """Find one cycle in a directed graph.

    Args:
        adjacency: Outgoing edges per node.

    Returns:
        The nodes of a cycle in path order (first node repeated at the
        end), or None if the graph is acyclic.
    """
    # 0 = unvisited, 1 = on the current path, 2 = finished
    colour: dict[NodeT, int] = {}
    for root in list(adjacency):
        if colour.get(root, 0):
            continue
        path: list[NodeT] = [root]
        stack = [iter(adjacency.get(root, ()))]
        colour[root] = 1
        while stack:
            advanced = False
            for neighbour in stack[-1]:
                state = colour.get(neighbour, 0)
                if state == 1:
                    return path[path.index(neighbour) :] + [neighbour]
                if state == 0:
                    colour[neighbour] = 1
                    path.append(neighbour)
                    stack.append(iter(adjacency.get(neighbour, ())))
                    advanced = True
                    break
            if not advanced:
                colour[path.pop()] = 2
                stack.pop()
    return None


__all__ = [
    "find_cycle",
    "is_reachable",
    "would_create_cycle",
]
