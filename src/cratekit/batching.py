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

"""Dependency-aware batch planning.

Turns a :class:`~cratekit.graph.DependencyGraph` into an ordered list of
batches such that every crate's dependencies are published in an earlier
batch.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Settled                 │ Crates already assigned to a batch. Their   │
    │                         │ dependents may go in any later batch.       │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Level                   │ Everything whose deps are all settled right │
    │                         │ now. Nothing in a level depends on another  │
    │                         │ crate of the same level.                    │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Batch                   │ Up to ``batch_size`` crates of one level.   │
    │                         │ Levels are cut, never merged.               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Forced settlement       │ A cycle leaves no eligible crate. The one   │
    │                         │ with the fewest unmet deps goes anyway and  │
    │                         │ gets a DependencyRisk note.                 │
    └─────────────────────────┴─────────────────────────────────────────────┘

Planning Loop::

    settled = {}
    while unsettled:
        level = [c for c in unsettled if deps(c) ⊆ settled]
        if not level:                       # cycle
            level = [argmin(unmet deps, name)]   → DependencyRisk
        sort level by (len(deps), name)
        cut level into chunks of batch_size → append as batches
        settled |= level

Example (``batch_size = 2``)::

    a, b, c (no deps)           → [a, b] [c]
    b→a, c→b                    → [a] [b] [c]
    b→a, c→a, d→{b, c}          → [a] [b, c] [d]

The planner is a pure, single-threaded pre-pass: it runs to completion
before anything is published, so its ``settled`` set needs no locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cratekit.crates import Crate
from cratekit.errors import E, CrateKitError
from cratekit.graph import DependencyGraph, detect_cycles
from cratekit.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Batch:
    """Crates published together, after every earlier batch.

    Attributes:
        index: Zero-based position in the plan.
        crates: Crates of this batch, in planning order.
    """

    index: int
    crates: tuple[Crate, ...] = ()

    @property
    def names(self) -> list[str]:
        """Crate names in batch order."""
        return [c.name for c in self.crates]

    def __len__(self) -> int:
        """Return the number of crates in the batch."""
        return len(self.crates)


@dataclass(frozen=True)
class DependencyRisk:
    """A crate that was scheduled before all of its dependencies.

    Attributes:
        crate: The crate forced out of a cycle.
        unresolved: Its dependencies that were not yet settled.
        batch_index: Batch the crate was placed in.
    """

    crate: str
    unresolved: tuple[str, ...]
    batch_index: int

    def describe(self) -> str:
        """One-line description for reports and logs."""
        deps = ', '.join(self.unresolved)
        return f'{self.crate} (batch {self.batch_index + 1}) published before: {deps}'


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered batches plus the dependency-risk notes raised while planning.

    Attributes:
        batches: Batches in execution order.
        risks: One note per crate forced out of a dependency cycle.
    """

    batches: tuple[Batch, ...] = ()
    risks: tuple[DependencyRisk, ...] = field(default_factory=tuple)

    @property
    def crate_count(self) -> int:
        """Total number of crates across all batches."""
        return sum(len(b) for b in self.batches)

    def names(self) -> list[list[str]]:
        """Crate names per batch, e.g. ``[['a', 'b'], ['c']]``."""
        return [b.names for b in self.batches]

    def batch_of(self, name: str) -> int | None:
        """Return the index of the batch containing ``name``."""
        for batch in self.batches:
            if name in batch.names:
                return batch.index
        return None

    def __len__(self) -> int:
        """Return the number of batches."""
        return len(self.batches)


def _force_one(graph: DependencyGraph, unsettled: list[str], settled: set[str]) -> tuple[str, tuple[str, ...]]:
    """Pick the cycle member with the fewest unmet deps, ties by name."""

    def _unmet(name: str) -> list[str]:
        return [d for d in graph.deps(name) if d not in settled]

    chosen = min(unsettled, key=lambda n: (len(_unmet(n)), n))
    return chosen, tuple(_unmet(chosen))


def plan_batches(graph: DependencyGraph, batch_size: int) -> ExecutionPlan:
    """Partition the graph into dependency-safe batches.

    Args:
        graph: Graph from :func:`~cratekit.graph.build_graph`.
        batch_size: Maximum number of crates per batch. A level larger
            than this is split; smaller levels are never padded.

    Returns:
        The :class:`ExecutionPlan`. Empty for an empty graph.

    Raises:
        CrateKitError: If ``batch_size`` is less than 1.
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise CrateKitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'batch_size must be an integer >= 1, got {batch_size!r}',
        )

    settled: set[str] = set()
    unsettled: list[str] = list(graph.order)
    batches: list[Batch] = []
    risks: list[DependencyRisk] = []
    cycles_logged = False

    while unsettled:
        level = [n for n in unsettled if all(d in settled for d in graph.deps(n))]

        if not level:
            if not cycles_logged:
                logger.warning(
                    'graph_cycle_detected',
                    code=E.GRAPH_CYCLE_DETECTED.value,
                    cycles=[' → '.join(c) for c in detect_cycles(graph, unsettled)],
                )
                cycles_logged = True
            forced, unresolved = _force_one(graph, unsettled, settled)
            risks.append(DependencyRisk(crate=forced, unresolved=unresolved, batch_index=len(batches)))
            logger.warning(
                'graph_cycle_forced',
                crate=forced,
                unresolved=list(unresolved),
                batch=len(batches) + 1,
            )
            level = [forced]

        level.sort(key=lambda n: (len(graph.deps(n)), n))
        for start in range(0, len(level), batch_size):
            chunk = level[start : start + batch_size]
            batches.append(Batch(index=len(batches), crates=tuple(graph.crates[n] for n in chunk)))

        settled.update(level)
        placed = set(level)
        unsettled = [n for n in unsettled if n not in placed]

    plan = ExecutionPlan(batches=tuple(batches), risks=tuple(risks))
    logger.info(
        'plan_created',
        crates=plan.crate_count,
        batches=len(plan),
        batch_size=batch_size,
        risks=len(risks),
    )
    return plan


__all__ = [
    'Batch',
    'DependencyRisk',
    'ExecutionPlan',
    'plan_batches',
]
