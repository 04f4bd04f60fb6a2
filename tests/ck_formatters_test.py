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

"""Tests for cratekit.formatters."""

from __future__ import annotations

import io

from cratekit.api import plan_crates
from cratekit.batching import DependencyRisk, ExecutionPlan
from cratekit.crates import Crate
from cratekit.formatters import format_plan, render_report
from cratekit.logging import configure_logging
from cratekit.report import PublishOutcome, merge

configure_logging(quiet=True)


class _TtyBuffer(io.StringIO):
    def isatty(self) -> bool:
        return True


def _diamond() -> ExecutionPlan:
    return plan_crates(
        [
            Crate.make('a', '1.0.0'),
            Crate.make('b', '1.0.0', ['a']),
            Crate.make('c', '1.0.0', ['a']),
            Crate.make('d', '2.0.0', ['b', 'c']),
        ],
        batch_size=10,
    )


class TestFormatPlan:
    """Tests for format_plan()."""

    def test_batches(self) -> None:
        """One line per batch, one-based."""
        assert format_plan(_diamond()) == 'Batch 1: a\nBatch 2: b, c\nBatch 3: d\n'

    def test_versions(self) -> None:
        """show_version appends each crate's version."""
        assert 'Batch 3: d (2.0.0)' in format_plan(_diamond(), show_version=True)

    def test_groups(self) -> None:
        """parallel_batches > 1 nests batches under groups."""
        text = format_plan(_diamond(), parallel_batches=2)
        assert text == 'Group 1:\n  Batch 1: a\n  Batch 2: b, c\nGroup 2:\n  Batch 3: d\n'

    def test_risks_listed(self) -> None:
        """Risk notes follow the batches."""
        plan = plan_crates([Crate.make('a', deps=['b']), Crate.make('b', deps=['a'])], batch_size=10)
        assert format_plan(plan).splitlines()[-1] == 'Risk: a (batch 1) published before: b'

    def test_empty(self) -> None:
        """An empty plan renders as nothing."""
        assert format_plan(ExecutionPlan()) == ''


class TestRenderReport:
    """Tests for render_report()."""

    def _report(self):  # noqa: ANN202 - test helper
        return merge(
            [
                {
                    'a': PublishOutcome.published('a', '1.0.0'),
                    'b': PublishOutcome.failed('b', '1.0.0', error='exited with code 101', output='error: denied'),
                },
            ],
            risks=[DependencyRisk(crate='a', unresolved=('b',), batch_index=0)],
        )

    def test_plain(self) -> None:
        """Non-TTY output is plain text with failures and risks."""
        out = io.StringIO()
        render_report(self._report(), file=out)
        lines = out.getvalue().splitlines()

        assert lines[0] == 'published: 1  skipped: 0  failed: 1'
        assert lines[1] == 'FAILED b 1.0.0: exited with code 101'
        assert lines[2] == '    error: denied'
        assert lines[3] == 'RISK a (batch 1) published before: b'

    def test_tty_table(self) -> None:
        """TTY output is a rich table naming every crate."""
        out = _TtyBuffer()
        render_report(self._report(), file=out)
        text = out.getvalue()

        assert 'Publish report' in text
        assert 'a' in text
        assert 'failed' in text
        assert '1 published, 0 skipped, 1 failed' in text
