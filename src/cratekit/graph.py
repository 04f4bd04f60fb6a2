# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Dependency graph over the crates of a release plan.

Reduces each crate's declared dependencies to the edges that matter for
publish ordering: only dependencies on *other* crates that are also
published in this run.

Edge Filtering::

    declared deps of sp-core:  {sp-core, sp-std, serde, sp-test-utils}
                                   │        │       │         │
                                   │        │       │         └─ publish = false → dropped
                                   │        │       └─ not in plan         → dropped
                                   │        └─ in plan, publish = true     → kept
                                   └─ self reference                       → dropped

    edges["sp-core"] = ["sp-std"]

Edge Direction::

    Forward edges (``edges``): dependent → dependency (who needs what)
    Reverse edges (``reverse_edges``): dependency → dependent (who uses me)

A crate with ``publish = false`` is not a node at all. Anything that
depends on it is assumed to be satisfied externally: the scheduler cannot
wait on a crate it will never publish.

Usage::

    from cratekit.graph import build_graph, detect_cycles

    graph = build_graph(crates)
    for cycle in detect_cycles(graph):
        print(' → '.join(cycle))
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from cratekit.crates import Crate
from cratekit.errors import E, CrateKitError
from cratekit.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DependencyGraph:
    """Adjacency model of the publishable crates.

    Attributes:
        crates: Mapping from crate name to :class:`Crate`, publishable
            crates only.
        edges: Forward adjacency (dependent → sorted dependencies).
        reverse_edges: Reverse adjacency (dependency → sorted dependents).
        order: Node names in input order. Used for stable iteration.
        self_references: Crates that declared themselves as a dependency.
    """

    crates: dict[str, Crate] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)
    self_references: list[str] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        """Sorted list of all crate names in the graph."""
        return sorted(self.crates)

    def deps(self, name: str) -> list[str]:
        """Return the in-graph dependencies of ``name``."""
        return self.edges.get(name, [])

    def __len__(self) -> int:
        """Return the number of crates in the graph."""
        return len(self.crates)

    def __contains__(self, name: object) -> bool:
        """Return True if ``name`` is a node of the graph."""
        return name in self.crates


def build_graph(crates: Sequence[Crate]) -> DependencyGraph:
    """Build the publish-order graph from a crate list.

    Pure function of its input. Self-dependencies are dropped silently;
    they are a declaration artifact, not an ordering constraint.

    Args:
        crates: The crates of the release plan, in plan order.

    Returns:
        A :class:`DependencyGraph` containing only ``publish=True`` crates.

    Raises:
        CrateKitError: If two crates share a name.
    """
    seen: set[str] = set()
    for crate in crates:
        if crate.name in seen:
            raise CrateKitError(
                code=E.PLAN_DUPLICATE_CRATE,
                message=f'Crate {crate.name!r} appears more than once in the crate list',
                hint='Each crate must be listed exactly once.',
            )
        seen.add(crate.name)

    graph = DependencyGraph()
    publishable = [c for c in crates if c.publish]
    names = {c.name for c in publishable}

    for crate in publishable:
        graph.crates[crate.name] = crate
        graph.order.append(crate.name)
        graph.edges[crate.name] = []
        graph.reverse_edges[crate.name] = []

    for crate in publishable:
        if crate.name in crate.dependency_names:
            graph.self_references.append(crate.name)
            logger.debug(
                'self_dependency_dropped',
                crate=crate.name,
                code=E.GRAPH_SELF_DEPENDENCY.value,
            )
        for dep in sorted(crate.dependency_names):
            if dep == crate.name or dep not in names:
                continue
            graph.edges[crate.name].append(dep)
            graph.reverse_edges[dep].append(crate.name)

    for dependents in graph.reverse_edges.values():
        dependents.sort()

    logger.debug(
        'built_dependency_graph',
        crates=len(graph),
        excluded=len(crates) - len(publishable),
        edges=sum(len(deps) for deps in graph.edges.values()),
    )
    return graph


def detect_cycles(graph: DependencyGraph, among: Iterable[str] | None = None) -> list[list[str]]:
    """Find the dependency cycles among ``among`` (default: every node).

    First peels off, level by level, every crate whose dependencies can
    all be settled, exactly as the planner does. Each crate left over has
    at least one dependency that is also left over, so following the
    smallest such dependency from any of them must eventually revisit a
    crate. The revisited stretch of the walk is one cycle.

    Args:
        graph: The dependency graph to check.
        among: Restrict the search to these crates. Dependencies outside
            the set count as settled.

    Returns:
        One list per cycle, in walk order, each starting and ending with
        the same crate (``['a', 'b', 'a']`` reads "a needs b needs a").
        Empty if the crates are acyclic.
    """
    stuck = set(graph.crates if among is None else among) & set(graph.crates)
    while True:
        free = {n for n in stuck if not any(d in stuck for d in graph.deps(n))}
        if not free:
            break
        stuck -= free

    cycles: list[list[str]] = []
    walked: set[str] = set()
    for start in sorted(stuck):
        if start in walked:
            continue
        path: list[str] = []
        position: dict[str, int] = {}
        node = start
        while node not in position and node not in walked:
            position[node] = len(path)
            path.append(node)
            node = min(d for d in graph.deps(node) if d in stuck)
        if node in position:
            cycles.append([*path[position[node] :], node])
        walked.update(path)

    return cycles


__all__ = [
    'DependencyGraph',
    'build_graph',
    'detect_cycles',
]
