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

"""Group-at-a-time batch scheduler.

Runs an :class:`~cratekit.batching.ExecutionPlan` as a sequence of batch
groups. Batches inside a group run concurrently; groups run strictly one
after another with a rate-limit pause in between.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Group                   │ ``max(1, parallel_batches)`` consecutive    │
    │                         │ batches started together.                   │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Barrier                 │ The next group starts only after every      │
    │                         │ crate of the current group has settled.     │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Inter-group delay       │ ``batch_delay`` seconds between groups,     │
    │                         │ never after the last one.                   │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Checkpoint              │ Optional callback fed the running report    │
    │                         │ after each group (e.g. to save it).         │
    └─────────────────────────┴─────────────────────────────────────────────┘

Timeline (``parallel_batches = 2``, four batches)::

    ┌─ group 1 ──────────┐           ┌─ group 2 ──────────┐
    │ batch 1 ═══════    │  sleep    │ batch 3 ═════      │
    │ batch 2 ══════════ │ ────────► │ batch 4 ════════   │ ──► Report
    └────────────────────┘  delay    └────────────────────┘

Peak concurrency is ``group_size * max_concurrent`` publish calls. Each
batch gets its own limiter; nothing caps the group as a whole.

Usage::

    from cratekit.scheduler import run_plan

    report = await run_plan(plan, config, CargoPublisher(root))
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from cratekit.backends.publisher import PublishCapability
from cratekit.batching import Batch, ExecutionPlan
from cratekit.config import PublishConfig
from cratekit.errors import E, CrateKitError
from cratekit.executor import execute_batch
from cratekit.logging import get_logger
from cratekit.report import Report, ResultAggregator

logger = get_logger(__name__)

# Called with the running report after every group. Errors it raises are
# logged and the run carries on.
Checkpoint = Callable[[Report], None]
SleepFn = Callable[[float], Awaitable[None]]


def group_batches(batches: Sequence[Batch], parallel_batches: int) -> list[list[Batch]]:
    """Slice ``batches`` into consecutive groups.

    Args:
        batches: Batches in plan order.
        parallel_batches: Batches per group. ``0`` and ``1`` both mean
            one batch per group.

    Returns:
        Groups in execution order. The last group may be shorter.

    Raises:
        CrateKitError: If ``parallel_batches`` is negative.
    """
    if isinstance(parallel_batches, bool) or not isinstance(parallel_batches, int) or parallel_batches < 0:
        raise CrateKitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'parallel_batches must be an integer >= 0, got {parallel_batches!r}',
        )
    size = max(1, parallel_batches)
    return [list(batches[i : i + size]) for i in range(0, len(batches), size)]


async def run_plan(
    plan: ExecutionPlan,
    config: PublishConfig,
    publisher: PublishCapability,
    *,
    checkpoint: Checkpoint | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> Report:
    """Execute every batch of ``plan`` and aggregate the outcomes.

    Args:
        plan: Output of :func:`~cratekit.batching.plan_batches`.
        config: Run settings. Validated before anything is published.
        publisher: Capability shared by every batch.
        checkpoint: Called with the running report after each group. If it
            raises, the error is logged and the next group still runs.
        sleep: Awaitable used for the inter-group delay.

    Returns:
        The final :class:`Report`, including the plan's risk notes.

    Raises:
        CrateKitError: If ``config`` is invalid. Nothing is published.
    """
    config.validate()
    groups = group_batches(plan.batches, config.parallel_batches)

    aggregator = ResultAggregator()
    aggregator.add_risks(plan.risks)
    for risk in plan.risks:
        logger.warning(
            'dependency_risk',
            crate=risk.crate,
            unresolved=list(risk.unresolved),
            batch=risk.batch_index + 1,
        )

    logger.info(
        'run_start',
        crates=plan.crate_count,
        batches=len(plan),
        groups=len(groups),
        max_concurrent=config.max_concurrent,
        parallel_batches=config.parallel_batches,
        peak_concurrency=config.peak_concurrency,
        dry_run=config.dry_run,
    )

    for position, group in enumerate(groups):
        logger.info('group_start', group=position + 1, batches=[b.index + 1 for b in group])
        results = await asyncio.gather(*(execute_batch(batch, config, publisher) for batch in group))
        for outcomes in results:
            aggregator.add(outcomes)

        snapshot = aggregator.report()
        logger.info(
            'group_complete',
            group=position + 1,
            published=snapshot.published,
            skipped=snapshot.skipped,
            failed=snapshot.failed,
        )
        if checkpoint is not None:
            try:
                checkpoint(snapshot)
            except Exception as exc:  # noqa: BLE001 - a lost checkpoint must not strand later groups
                logger.warning('checkpoint_failed', group=position + 1, error=str(exc) or type(exc).__name__)

        if position < len(groups) - 1 and config.batch_delay > 0:
            logger.info('group_delay', seconds=config.batch_delay, next_group=position + 2)
            await sleep(config.batch_delay)

    report = aggregator.report()
    logger.info(
        'run_complete',
        published=report.published,
        skipped=report.skipped,
        failed=report.failed,
        risks=len(report.risks),
        success=report.success,
    )
    return report


__all__ = [
    'Checkpoint',
    'SleepFn',
    'group_batches',
    'run_plan',
]
