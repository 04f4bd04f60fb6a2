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

"""Per-crate outcomes and the aggregated run report.

Every crate that reaches the executor ends up as exactly one
:class:`PublishOutcome`. The :class:`ResultAggregator` folds outcomes into
a :class:`Report` that callers inspect, print, or persist.

Outcome Kinds::

    ┌────────────┬──────────────────┬───────────────────────────────────┐
    │ Kind       │ Reason           │ When                              │
    ├────────────┼──────────────────┼───────────────────────────────────┤
    │ published  │ ''               │ publish() returned                │
    │ published  │ 'dry_run'        │ dry run, publisher never called   │
    │ skipped    │ 'already_exists' │ version already on the registry   │
    │ failed     │ ''               │ check or publish raised           │
    └────────────┴──────────────────┴───────────────────────────────────┘

Persistence:

    The report file is written atomically (temp file + ``os.replace``) so
    a crash mid-write leaves the previous checkpoint intact::

        report.save(Path('publish-report.json'))
        report = Report.load(Path('publish-report.json'))
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from cratekit.batching import DependencyRisk
from cratekit.errors import E, CrateKitError
from cratekit.logging import get_logger

logger = get_logger(__name__)

REASON_ALREADY_EXISTS = 'already_exists'
REASON_DRY_RUN = 'dry_run'


class OutcomeKind(str, Enum):
    """How a crate's publish attempt ended."""

    PUBLISHED = 'published'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass(frozen=True)
class PublishOutcome:
    """Result of one crate's publish attempt.

    Attributes:
        crate: Crate name.
        version: Version that was checked or published.
        kind: Outcome kind.
        reason: Machine-readable qualifier (``already_exists``, ``dry_run``).
        error: Error message for failures.
        output: Diagnostic text captured from the publish tool.
        duration: Wall time in seconds.
    """

    crate: str
    version: str
    kind: OutcomeKind
    reason: str = ''
    error: str = ''
    output: str = ''
    duration: float = 0.0

    @classmethod
    def published(
        cls,
        crate: str,
        version: str,
        *,
        output: str = '',
        reason: str = '',
        duration: float = 0.0,
    ) -> PublishOutcome:
        """Build a ``published`` outcome."""
        return cls(crate, version, OutcomeKind.PUBLISHED, reason=reason, output=output, duration=duration)

    @classmethod
    def skipped(
        cls,
        crate: str,
        version: str,
        *,
        reason: str = REASON_ALREADY_EXISTS,
        duration: float = 0.0,
    ) -> PublishOutcome:
        """Build a ``skipped`` outcome."""
        return cls(crate, version, OutcomeKind.SKIPPED, reason=reason, duration=duration)

    @classmethod
    def failed(cls, crate: str, version: str, *, error: str, output: str = '', duration: float = 0.0) -> PublishOutcome:
        """Build a ``failed`` outcome."""
        return cls(crate, version, OutcomeKind.FAILED, error=error, output=output, duration=duration)

    def to_dict(self) -> dict[str, Any]:  # noqa: ANN401 - JSON
        """Serialize to a JSON-friendly dict."""
        return {
            'crate': self.crate,
            'version': self.version,
            'kind': self.kind.value,
            'reason': self.reason,
            'error': self.error,
            'output': self.output,
            'duration': round(self.duration, 3),
        }


@dataclass(frozen=True)
class Failure:
    """A failed crate, as listed in the report."""

    crate: str
    version: str
    error: str
    output: str = ''


@dataclass(frozen=True)
class Report:
    """Aggregated outcome of a publish run.

    Attributes:
        published: Number of crates published (dry-run publishes included).
        skipped: Number of crates skipped because they already existed.
        failed: Number of crates whose check or publish raised.
        failures: Failed crates in the order they were aggregated.
        risks: Crates published ahead of part of a dependency cycle.
        outcomes: Every outcome in aggregation order.
    """

    published: int = 0
    skipped: int = 0
    failed: int = 0
    failures: tuple[Failure, ...] = ()
    risks: tuple[DependencyRisk, ...] = ()
    outcomes: tuple[PublishOutcome, ...] = ()

    @property
    def success(self) -> bool:
        """True when no crate failed."""
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        """Process exit code a CLI would use for this report."""
        return 0 if self.success else 1

    @property
    def total(self) -> int:
        """Number of crates accounted for."""
        return self.published + self.skipped + self.failed

    def outcome(self, crate: str) -> PublishOutcome | None:
        """Return the outcome recorded for ``crate``, if any."""
        for outcome in self.outcomes:
            if outcome.crate == crate:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:  # noqa: ANN401 - JSON
        """Serialize to a JSON-friendly dict."""
        return {
            'success': self.success,
            'published': self.published,
            'skipped': self.skipped,
            'failed': self.failed,
            'failures': [
                {'crate': f.crate, 'version': f.version, 'error': f.error, 'output': f.output} for f in self.failures
            ],
            'risks': [
                {'crate': r.crate, 'unresolved': list(r.unresolved), 'batch_index': r.batch_index} for r in self.risks
            ],
            'outcomes': [o.to_dict() for o in self.outcomes],
        }

    def save(self, path: Path) -> None:
        """Atomically write the report as JSON.

        Raises:
            OSError: If the file cannot be written.
        """
        content = json.dumps(self.to_dict(), indent=2) + '\n'
        fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix='.cratekit-report-',
            suffix='.tmp',
        )
        closed = False
        try:
            os.write(fd, content.encode('utf-8'))
            os.close(fd)
            closed = True
            os.replace(tmp_path, path)
        except BaseException:
            if not closed:
                os.close(fd)
            Path(tmp_path).unlink(missing_ok=True)
            raise

        logger.debug('report_saved', path=str(path), crates=self.total)

    @classmethod
    def load(cls, path: Path) -> Report:
        """Read a report written by :meth:`save`.

        Counts are recomputed from the stored outcomes.

        Raises:
            OSError: If the file cannot be read.
            CrateKitError: If the content is not a valid report.
        """
        text = path.read_text(encoding='utf-8')
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise _corrupted(path, f'invalid JSON: {exc}') from exc
        if not isinstance(data, dict):
            raise _corrupted(path, 'top-level value is not an object')

        aggregator = ResultAggregator()
        try:
            for raw in data.get('outcomes', []):
                aggregator.add_outcome(
                    PublishOutcome(
                        crate=raw['crate'],
                        version=raw['version'],
                        kind=OutcomeKind(raw['kind']),
                        reason=raw.get('reason', ''),
                        error=raw.get('error', ''),
                        output=raw.get('output', ''),
                        duration=float(raw.get('duration', 0.0)),
                    )
                )
            aggregator.add_risks(
                DependencyRisk(
                    crate=raw['crate'],
                    unresolved=tuple(raw.get('unresolved', ())),
                    batch_index=int(raw.get('batch_index', 0)),
                )
                for raw in data.get('risks', [])
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise _corrupted(path, f'bad entry: {exc!r}') from exc
        return aggregator.report()


def _corrupted(path: Path, detail: str) -> CrateKitError:
    return CrateKitError(
        code=E.REPORT_CORRUPTED,
        message=f'Report file {path} is corrupted: {detail}',
        hint='Delete the report file; the next run re-checks every crate against the registry.',
    )


class ResultAggregator:
    """Accumulates outcomes into a :class:`Report`.

    Outcomes must be fed from one task at a time; the scheduler does this
    after each group's barrier.
    """

    def __init__(self) -> None:
        """Start with an empty tally."""
        self._outcomes: list[PublishOutcome] = []
        self._risks: list[DependencyRisk] = []

    def add_outcome(self, outcome: PublishOutcome) -> None:
        """Record a single outcome."""
        self._outcomes.append(outcome)

    def add(self, outcomes: Mapping[str, PublishOutcome] | Iterable[PublishOutcome]) -> None:
        """Record a batch's outcome map (or any iterable of outcomes)."""
        values = outcomes.values() if isinstance(outcomes, Mapping) else outcomes
        for outcome in values:
            self.add_outcome(outcome)

    def add_risks(self, risks: Iterable[DependencyRisk]) -> None:
        """Attach dependency-risk notes to the report."""
        self._risks.extend(risks)

    def report(self) -> Report:
        """Return a snapshot of everything recorded so far."""
        counts = dict.fromkeys(OutcomeKind, 0)
        for outcome in self._outcomes:
            counts[outcome.kind] += 1
        return Report(
            published=counts[OutcomeKind.PUBLISHED],
            skipped=counts[OutcomeKind.SKIPPED],
            failed=counts[OutcomeKind.FAILED],
            failures=tuple(
                Failure(crate=o.crate, version=o.version, error=o.error, output=o.output)
                for o in self._outcomes
                if o.kind is OutcomeKind.FAILED
            ),
            risks=tuple(self._risks),
            outcomes=tuple(self._outcomes),
        )


def merge(
    outcome_maps: Iterable[Mapping[str, PublishOutcome]],
    risks: Iterable[DependencyRisk] = (),
) -> Report:
    """Fold several outcome maps into one report.

    Args:
        outcome_maps: Per-batch outcome maps, in plan order.
        risks: Dependency-risk notes to carry into the report.
    """
    aggregator = ResultAggregator()
    for outcomes in outcome_maps:
        aggregator.add(outcomes)
    aggregator.add_risks(risks)
    return aggregator.report()


__all__ = [
    'REASON_ALREADY_EXISTS',
    'REASON_DRY_RUN',
    'Failure',
    'OutcomeKind',
    'PublishOutcome',
    'Report',
    'ResultAggregator',
    'merge',
]
