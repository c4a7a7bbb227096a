"""
Dependency graph and deterministic topological ordering.
"""

import logging
from typing import Iterable, Iterator, Optional

from .descriptors import ComponentDescriptor
from .exceptions import CycleDetectedError, UnresolvedDependencyError

logger = logging.getLogger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


class ResolvedOrder:
    """
    Immutable construction order: every dependency precedes its dependents.
    """

    __slots__ = ('_ids', '_positions')

    def __init__(self, ids: Iterable[str]):
        self._ids = tuple(ids)
        self._positions = {cid: i for i, cid in enumerate(self._ids)}

    @property
    def ids(self) -> tuple:
        return self._ids

    def position(self, component_id: str) -> int:
        return self._positions[component_id]

    def reversed(self) -> list:
        return list(reversed(self._ids))

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __getitem__(self, index):
        return self._ids[index]

    def __contains__(self, component_id) -> bool:
        return component_id in self._positions

    def __eq__(self, other) -> bool:
        if isinstance(other, ResolvedOrder):
            return self._ids == other._ids
        if isinstance(other, (list, tuple)):
            return list(self._ids) == list(other)
        return NotImplemented

    def __hash__(self):
        return hash(self._ids)

    def __repr__(self) -> str:
        return f'ResolvedOrder({list(self._ids)!r})'


class DependencyGraph:
    """
    Edges between admitted components only.

    Attributes:
        dependencies: id -> sorted ids it must be constructed after.
        dependents:   id -> sorted ids constructed after it.
    """

    def __init__(self, admitted: Iterable[ComponentDescriptor]):
        admitted = list(admitted)
        ids = {d.id for d in admitted}

        dependencies: dict[str, set] = {d.id: set() for d in admitted}
        dependents: dict[str, set] = {d.id: set() for d in admitted}

        for descriptor in admitted:
            for dep_id in descriptor.dependency_ids:
                if dep_id not in ids:
                    # Soft dependency on an excluded component
                    continue
                dependencies[descriptor.id].add(dep_id)
                dependents[dep_id].add(descriptor.id)

        self.dependencies = {k: sorted(v) for k, v in dependencies.items()}
        self.dependents = {k: sorted(v) for k, v in dependents.items()}

    @property
    def nodes(self) -> list:
        return sorted(self.dependencies)

    def topological_order(self) -> ResolvedOrder:
        """
        Depth-first traversal with white/gray/black marking.

        Roots and neighbors are visited in ascending id order, so the result
        depends only on the graph, never on registration order.
        """
        color = {node: WHITE for node in self.dependencies}
        order: list[str] = []

        for root in self.nodes:
            if color[root] != WHITE:
                continue

            # Explicit stack of (node, iterator over its dependencies)
            path = [root]
            stack = [(root, iter(self.dependencies[root]))]
            color[root] = GRAY

            while stack:
                node, neighbors = stack[-1]
                advanced = False
                for neighbor in neighbors:
                    state = color[neighbor]
                    if state == BLACK:
                        continue
                    if state == GRAY:
                        start = path.index(neighbor)
                        raise CycleDetectedError(path[start:] + [neighbor])
                    color[neighbor] = GRAY
                    path.append(neighbor)
                    stack.append((neighbor, iter(self.dependencies[neighbor])))
                    advanced = True
                    break

                if not advanced:
                    stack.pop()
                    path.pop()
                    color[node] = BLACK
                    order.append(node)

        return ResolvedOrder(order)


def check_dependencies(
    admitted: Iterable[ComponentDescriptor],
    excluded_ids: Optional[Iterable[str]] = None
) -> None:
    """
    Raise UnresolvedDependencyError for the first hard dependency that is not admitted.

    Components are checked in ascending id order so the reported error is stable.
    """
    admitted = sorted(admitted, key=lambda d: d.id)
    ids = {d.id for d in admitted}
    excluded = set(excluded_ids or ())

    for descriptor in admitted:
        for dep_id in descriptor.hard_dependency_ids:
            if dep_id in ids:
                continue
            reason = 'was excluded by admission' if dep_id in excluded else 'is not registered'
            raise UnresolvedDependencyError(descriptor.id, dep_id, reason)


def resolve(admitted: Iterable[ComponentDescriptor]) -> ResolvedOrder:
    """
    Compute the construction order of the admitted descriptors.

    Edges to ids outside the admitted set are dropped. Raises
    CycleDetectedError, carrying the cycle path, if the graph is cyclic.
    """
    graph = DependencyGraph(admitted)
    order = graph.topological_order()
    logger.debug('Resolved order: %s', list(order))
    return order
