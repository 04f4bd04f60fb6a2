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

"""Publish every crate of one batch, up to ``max_concurrent`` at a time.

Per-Crate Pipeline::

    ┌──────────────┐   dry_run    ┌─────────────────────────┐
    │ acquire slot │ ───────────► │ published (dry_run)     │
    └──────┬───────┘              └─────────────────────────┘
           │
           ▼
    already_published? ── yes ──► skipped (already_exists)
           │ no
           ▼
    publish(name, version, registry) ── ok ──► published (+ output)
           │ raises
           ▼
    failed (error message + captured output)

Crates of a batch do not depend on each other, so every crate gets its
own task. A failing crate never cancels its siblings: the batch always
runs to completion and returns one outcome per crate.
"""

from __future__ import annotations

import asyncio
import time

from cratekit.backends.publisher import PublishCapability
from cratekit.batching import Batch
from cratekit.config import PublishConfig
from cratekit.crates import Crate
from cratekit.limiter import ConcurrencyLimiter
from cratekit.logging import get_logger
from cratekit.report import REASON_DRY_RUN, OutcomeKind, PublishOutcome

logger = get_logger(__name__)


async def _publish_one(
    crate: Crate,
    config: PublishConfig,
    publisher: PublishCapability,
    limiter: ConcurrencyLimiter,
    batch_index: int,
) -> PublishOutcome:
    async with limiter:
        start = time.monotonic()
        log = logger.bind(crate=crate.name, version=crate.version, batch=batch_index + 1)

        if config.dry_run:
            log.info('crate_published', dry_run=True)
            return PublishOutcome.published(crate.name, crate.version, reason=REASON_DRY_RUN)

        try:
            if await publisher.already_published(crate.name, crate.version):
                log.info('crate_skipped', reason='already_exists')
                return PublishOutcome.skipped(crate.name, crate.version, duration=time.monotonic() - start)
            output = await publisher.publish(crate.name, crate.version, config.registry)
        except Exception as exc:  # noqa: BLE001 - any capability error fails this crate only
            error = str(exc) or type(exc).__name__
            log.error('crate_failed', error=error)
            return PublishOutcome.failed(
                crate.name,
                crate.version,
                error=error,
                output=str(getattr(exc, 'output', '') or ''),
                duration=time.monotonic() - start,
            )

        duration = time.monotonic() - start
        log.info('crate_published', duration=round(duration, 3))
        return PublishOutcome.published(crate.name, crate.version, output=output or '', duration=duration)


async def execute_batch(
    batch: Batch,
    config: PublishConfig,
    publisher: PublishCapability,
) -> dict[str, PublishOutcome]:
    """Publish all crates of ``batch`` concurrently.

    Args:
        batch: The batch to publish.
        config: Run settings; ``max_concurrent`` bounds in-flight crates.
        publisher: Capability used for the existence check and upload.

    Returns:
        Mapping from crate name to outcome, in batch order.
    """
    limiter = ConcurrencyLimiter(config.max_concurrent, name=f'batch-{batch.index + 1}')
    logger.info('batch_start', batch=batch.index + 1, crates=batch.names, dry_run=config.dry_run)
    start = time.monotonic()

    outcomes = await asyncio.gather(
        *(_publish_one(crate, config, publisher, limiter, batch.index) for crate in batch.crates),
    )
    results = {outcome.crate: outcome for outcome in outcomes}

    logger.info(
        'batch_complete',
        batch=batch.index + 1,
        failed=sum(1 for o in outcomes if o.kind is OutcomeKind.FAILED),
        peak=limiter.peak,
        duration=round(time.monotonic() - start, 3),
    )
    return results


__all__ = [
    'execute_batch',
]
