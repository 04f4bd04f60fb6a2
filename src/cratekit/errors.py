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

"""Structured errors for cratekit.

Every error carries a ``CK-NAMED-KEY`` code, a message, and an optional
hint. Only a small part of the taxonomy is fatal:

    ┌──────────────────────┬────────────┬──────────────────────────────────┐
    │ Kind                 │ Fatal?     │ Surfaces as                      │
    ├──────────────────────┼────────────┼──────────────────────────────────┤
    │ Configuration        │ yes        │ raised before any crate runs     │
    │ Plan file            │ yes        │ raised before planning           │
    │ Workspace manifest   │ yes        │ raised before planning           │
    │ Graph anomaly        │ no         │ DependencyRisk in the report     │
    │ Publish failure      │ no         │ Failed outcome for that crate    │
    └──────────────────────┴────────────┴──────────────────────────────────┘

Code categories::

    CK-CONFIG-*       Configuration errors
    CK-PLAN-*         Plan file / crate list errors
    CK-WORKSPACE-*    Cargo.toml manifest errors
    CK-GRAPH-*        Dependency graph anomalies
    CK-PUBLISH-*      Per-crate publish failures
    CK-REPORT-*       Report persistence errors

Usage::

    from cratekit.errors import E, CrateKitError

    raise CrateKitError(
        code=E.CONFIG_INVALID_VALUE,
        message='max_concurrent must be >= 1, got 0',
        hint='Set max_concurrent to a positive integer.',
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """All cratekit diagnostic codes."""

    # Configuration
    CONFIG_INVALID_KEY = 'CK-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'CK-CONFIG-INVALID-VALUE'
    CONFIG_PARSE_ERROR = 'CK-CONFIG-PARSE-ERROR'

    # Plan / crate list
    PLAN_NOT_FOUND = 'CK-PLAN-NOT-FOUND'
    PLAN_PARSE_ERROR = 'CK-PLAN-PARSE-ERROR'
    PLAN_INVALID_CRATE = 'CK-PLAN-INVALID-CRATE'
    PLAN_DUPLICATE_CRATE = 'CK-PLAN-DUPLICATE-CRATE'

    # Cargo workspace manifests
    WORKSPACE_PARSE_ERROR = 'CK-WORKSPACE-PARSE-ERROR'

    # Dependency graph
    GRAPH_CYCLE_DETECTED = 'CK-GRAPH-CYCLE-DETECTED'
    GRAPH_SELF_DEPENDENCY = 'CK-GRAPH-SELF-DEPENDENCY'

    # Publish
    PUBLISH_FAILED = 'CK-PUBLISH-FAILED'
    PUBLISH_CHECK_FAILED = 'CK-PUBLISH-CHECK-FAILED'

    # Report
    REPORT_CORRUPTED = 'CK-REPORT-CORRUPTED'


E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Code, message and hint for one diagnostic."""

    code: ErrorCode
    message: str
    hint: str = ''


class CrateKitError(Exception):
    """Base exception for all cratekit errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: What went wrong.
        hint: Optional suggestion for how to fix it.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


class PublishError(CrateKitError):
    """A publish capability call failed for one crate.

    Carries the diagnostic output captured from the publish tool so the
    report can show it next to the failure.

    Args:
        message: What went wrong.
        output: Captured stdout/stderr of the failed command.
        hint: Optional suggestion for how to fix it.
        code: Defaults to :attr:`ErrorCode.PUBLISH_FAILED`.
    """

    def __init__(
        self,
        message: str,
        *,
        output: str = '',
        hint: str = '',
        code: ErrorCode = ErrorCode.PUBLISH_FAILED,
    ) -> None:
        """Initialize with a message and the captured tool output."""
        super().__init__(code, message, hint)
        self.output = output


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.CONFIG_INVALID_VALUE: ErrorInfo(
        code=E.CONFIG_INVALID_VALUE,
        message='A publish setting is out of range or has the wrong type.',
        hint='max_concurrent and batch_size must be >= 1; batch_delay and parallel_batches must be >= 0.',
    ),
    E.CONFIG_INVALID_KEY: ErrorInfo(
        code=E.CONFIG_INVALID_KEY,
        message='cratekit.toml contains a key cratekit does not understand.',
        hint='Check the key for typos; the error message suggests the closest valid key.',
    ),
    E.CONFIG_PARSE_ERROR: ErrorInfo(
        code=E.CONFIG_PARSE_ERROR,
        message='cratekit.toml is not valid TOML.',
        hint='The error message carries the parser position. Fix the syntax or delete the file to use defaults.',
    ),
    E.PLAN_NOT_FOUND: ErrorInfo(
        code=E.PLAN_NOT_FOUND,
        message='No Plan.toml found in the workspace.',
        hint='Generate a release plan before publishing.',
    ),
    E.PLAN_PARSE_ERROR: ErrorInfo(
        code=E.PLAN_PARSE_ERROR,
        message='Plan.toml is not valid TOML, or "crate" is not an array of tables.',
        hint='Regenerate the plan, or fix the file so every crate is a [[crate]] table.',
    ),
    E.PLAN_INVALID_CRATE: ErrorInfo(
        code=E.PLAN_INVALID_CRATE,
        message='A [[crate]] entry in Plan.toml is missing a field or has a field of the wrong type.',
        hint='Each [[crate]] needs a string "name" and a string "to" version; "publish" must be a boolean.',
    ),
    E.PLAN_DUPLICATE_CRATE: ErrorInfo(
        code=E.PLAN_DUPLICATE_CRATE,
        message='The same crate appears more than once in the release plan.',
        hint='Each [[crate]] entry must have a unique name.',
    ),
    E.WORKSPACE_PARSE_ERROR: ErrorInfo(
        code=E.WORKSPACE_PARSE_ERROR,
        message='A Cargo.toml in the workspace could not be read or parsed.',
        hint='Run `cargo metadata` in the workspace root; it reports the same manifest problem.',
    ),
    E.GRAPH_CYCLE_DETECTED: ErrorInfo(
        code=E.GRAPH_CYCLE_DETECTED,
        message='Crates in the plan depend on each other in a cycle.',
        hint='The planner forced one crate of the cycle out of order; check the risk notes in the report.',
    ),
    E.GRAPH_SELF_DEPENDENCY: ErrorInfo(
        code=E.GRAPH_SELF_DEPENDENCY,
        message='A crate lists itself as a dependency. The edge is ignored for ordering.',
        hint='Remove the crate from its own dependency list.',
    ),
    E.PUBLISH_FAILED: ErrorInfo(
        code=E.PUBLISH_FAILED,
        message='cargo publish failed for a crate.',
        hint='Read the captured output in the report. Rerun the same plan to retry: published crates are skipped.',
    ),
    E.PUBLISH_CHECK_FAILED: ErrorInfo(
        code=E.PUBLISH_CHECK_FAILED,
        message='The registry could not say whether a crate version is already published.',
        hint='The crate was not uploaded. Check network access and the registry URL, then rerun the plan.',
    ),
    E.REPORT_CORRUPTED: ErrorInfo(
        code=E.REPORT_CORRUPTED,
        message='A saved publish report is not valid JSON or is missing fields.',
        hint='Delete the report file; the next run writes a fresh one.',
    ),
}


def explain(code: str) -> str | None:
    """Return the catalog explanation for ``code``, or ``None`` if unknown."""
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: CrateKitError, *, file: TextIO | None = None) -> None:
    """Render an error in compiler style.

    Output format::

        error[CK-CONFIG-INVALID-VALUE]: max_concurrent must be >= 1, got 0
          |
          = hint: Set max_concurrent to a positive integer.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.info.message)
        console.print(f'[bold red]error\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]')
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        console.print()
        return

    print(f'error[{exc.code.value}]: {exc.info.message}', file=out)  # noqa: T201 - diagnostic output
    if exc.hint:
        print('  |', file=out)  # noqa: T201 - diagnostic output
        print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - diagnostic output
    print(file=out)  # noqa: T201 - diagnostic output


__all__ = [
    'E',
    'ERRORS',
    'CrateKitError',
    'ErrorCode',
    'ErrorInfo',
    'PublishError',
    'explain',
    'render_error',
]
