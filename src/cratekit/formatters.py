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

"""Text renderings of plans and reports.

Example plan output (``parallel_batches = 2``)::

    Group 1:
      Batch 1: sp-std, sp-io
      Batch 2: sp-core
    Group 2:
      Batch 3: sp-runtime

Example report output (non-TTY)::

    published: 3  skipped: 1  failed: 1
    FAILED sp-runtime 21.0.0: cargo publish for sp-runtime@21.0.0 exited with code 101
"""

from __future__ import annotations

import sys
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape
from rich.table import Table

from cratekit.batching import Batch, ExecutionPlan
from cratekit.report import OutcomeKind, Report
from cratekit.scheduler import group_batches

_KIND_STYLE: dict[OutcomeKind, str] = {
    OutcomeKind.PUBLISHED: 'green',
    OutcomeKind.SKIPPED: 'yellow',
    OutcomeKind.FAILED: 'bold red',
}


def _batch_line(batch: Batch, *, show_version: bool) -> str:
    if show_version:
        names = [f'{c.name} ({c.version})' for c in batch.crates]
    else:
        names = batch.names
    return f'Batch {batch.index + 1}: {", ".join(names)}'


def format_plan(plan: ExecutionPlan, *, parallel_batches: int = 0, show_version: bool = False) -> str:
    """Render a plan as a batch listing.

    Args:
        plan: The execution plan.
        parallel_batches: When greater than 1, batches are listed under
            their group.
        show_version: Append each crate's version.

    Returns:
        The listing, newline terminated. Empty string for an empty plan.
    """
    lines: list[str] = []
    if parallel_batches > 1:
        for position, group in enumerate(group_batches(plan.batches, parallel_batches)):
            lines.append(f'Group {position + 1}:')
            lines.extend(f'  {_batch_line(b, show_version=show_version)}' for b in group)
    else:
        lines.extend(_batch_line(b, show_version=show_version) for b in plan.batches)

    lines.extend(f'Risk: {risk.describe()}' for risk in plan.risks)
    return '\n'.join(lines) + '\n' if lines else ''


def _plain_report(report: Report) -> str:
    lines = [f'published: {report.published}  skipped: {report.skipped}  failed: {report.failed}']
    for failure in report.failures:
        lines.append(f'FAILED {failure.crate} {failure.version}: {failure.error}')
        lines.extend(f'    {line}' for line in failure.output.splitlines())
    lines.extend(f'RISK {risk.describe()}' for risk in report.risks)
    return '\n'.join(lines) + '\n'


def render_report(report: Report, *, file: TextIO | None = None) -> None:
    """Print a report summary.

    Uses a rich table when ``file`` is a terminal, plain text otherwise.

    Args:
        report: The report to print.
        file: Output stream. Defaults to ``sys.stdout``.
    """
    out = file or sys.stdout
    if not out.isatty():
        out.write(_plain_report(report))
        return

    console = Console(file=out, highlight=False)
    table = Table(title='Publish report')
    table.add_column('Crate')
    table.add_column('Version')
    table.add_column('Result')
    table.add_column('Detail', overflow='fold')
    for outcome in report.outcomes:
        style = _KIND_STYLE[outcome.kind]
        detail = outcome.error or outcome.reason
        table.add_row(
            rich_escape(outcome.crate),
            rich_escape(outcome.version),
            f'[{style}]{outcome.kind.value}[/{style}]',
            rich_escape(detail),
        )
    console.print(table)
    for risk in report.risks:
        console.print(f'[yellow]risk:[/yellow] {rich_escape(risk.describe())}')
    status = '[green]success[/green]' if report.success else '[bold red]failed[/bold red]'
    console.print(
        f'{status}: {report.published} published, {report.skipped} skipped, {report.failed} failed',
    )


__all__ = [
    'format_plan',
    'render_report',
]
