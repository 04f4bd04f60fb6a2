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

"""Programmatic Python API for cratekit.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Function                │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ plan_crates             │ Crate list in, ordered batches out. No I/O. │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ publish_crates          │ Plan, then publish every batch through the  │
    │                         │ given publisher. Returns the Report.        │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ publish_workspace       │ Same, reading Plan.toml + cratekit.toml,    │
    │                         │ taking dependencies from the Cargo.toml     │
    │                         │ manifests and publishing with cargo.        │
    └─────────────────────────┴─────────────────────────────────────────────┘

Usage::

    from cratekit.api import plan_crates, publish_crates

    plan = plan_crates(crates, batch_size=10)
    report = await publish_crates(crates, PublishConfig(dry_run=True), publisher)
    assert report.success
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Sequence
from pathlib import Path

from cratekit.backends.cargo import CargoPublisher
from cratekit.backends.publisher import PublishCapability
from cratekit.batching import ExecutionPlan, plan_batches
from cratekit.config import PublishConfig, load_config
from cratekit.crates import Crate, load_crates
from cratekit.errors import E, CrateKitError
from cratekit.graph import build_graph
from cratekit.logging import get_logger
from cratekit.report import Report
from cratekit.scheduler import Checkpoint, SleepFn, run_plan
from cratekit.workspace import load_workspace

logger = get_logger(__name__)


def plan_crates(crates: Sequence[Crate], batch_size: int) -> ExecutionPlan:
    """Build the dependency graph and cut it into batches."""
    return plan_batches(build_graph(crates), batch_size)


async def publish_crates(
    crates: Sequence[Crate],
    config: PublishConfig,
    publisher: PublishCapability,
    *,
    report_path: Path | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> Report:
    """Plan and publish ``crates``.

    Args:
        crates: Crates of the release, in plan order.
        config: Run settings. Validated before planning.
        publisher: Registry-facing capability.
        report_path: When set, the running report is saved here after
            every batch group and once more at the end. Its directory
            must exist. A failed save is logged; publishing goes on and
            the report is still returned.
        sleep: Awaitable used for the inter-group delay.

    Returns:
        The final :class:`Report`.

    Raises:
        CrateKitError: On invalid settings, a missing report directory,
            a :class:`CargoPublisher` bound to another registry, or a
            malformed crate list. Nothing is published then.
    """
    config.validate()
    if report_path is not None and not report_path.parent.is_dir():
        raise CrateKitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'Report directory does not exist: {report_path.parent}',
            hint='Create the directory or pick another report path.',
        )
    if isinstance(publisher, CargoPublisher) and publisher.registry.resolved_url != config.registry.resolved_url:
        raise CrateKitError(
            code=E.CONFIG_INVALID_VALUE,
            message=(
                f'Publisher checks {publisher.registry.resolved_url} '
                f'but the run targets {config.registry.resolved_url}'
            ),
            hint='Construct CargoPublisher with registry=config.registry.',
        )
    plan = plan_crates(crates, config.batch_size)

    checkpoint: Checkpoint | None = None
    if report_path is not None:
        checkpoint = functools.partial(Report.save, path=report_path)

    report = await run_plan(plan, config, publisher, checkpoint=checkpoint, sleep=sleep)
    if report_path is not None:
        try:
            report.save(report_path)
        except OSError as exc:
            logger.error('report_write_failed', path=str(report_path), error=str(exc))
        else:
            logger.info('report_written', path=str(report_path))
    return report


async def publish_workspace(
    workspace_root: str | Path,
    *,
    publisher: PublishCapability | None = None,
    config: PublishConfig | None = None,
    report_path: Path | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> Report:
    """Publish the crates listed in ``Plan.toml`` of a workspace.

    Dependencies between the crates are read from the workspace's
    ``Cargo.toml`` manifests.

    Args:
        workspace_root: Directory holding ``Cargo.toml``, ``Plan.toml``
            and, optionally, ``cratekit.toml``.
        publisher: Defaults to a :class:`CargoPublisher` on the workspace.
        config: Defaults to :func:`~cratekit.config.load_config`.
        report_path: Forwarded to :func:`publish_crates`.
        sleep: Forwarded to :func:`publish_crates`.
    """
    root = Path(workspace_root).resolve()
    config = config or load_config(root)
    crates = load_crates(root, members=load_workspace(root))
    publisher = publisher or CargoPublisher(root, registry=config.registry)
    return await publish_crates(crates, config, publisher, report_path=report_path, sleep=sleep)


__all__ = [
    'plan_crates',
    'publish_crates',
    'publish_workspace',
]
