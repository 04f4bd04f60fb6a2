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

"""Tests for cratekit.scheduler."""

from __future__ import annotations

import pytest
from cratekit.batching import Batch, ExecutionPlan, plan_batches
from cratekit.config import PublishConfig
from cratekit.crates import Crate
from cratekit.errors import E, CrateKitError
from cratekit.graph import build_graph
from cratekit.logging import configure_logging
from cratekit.report import Report
from cratekit.scheduler import group_batches, run_plan

from tests._fakes import FakePublisher, SleepRecorder

configure_logging(quiet=True)


def _independent_plan(batches: int, per_batch: int = 2) -> ExecutionPlan:
    crates = [Crate.make(f'c{i:02d}') for i in range(batches * per_batch)]
    return plan_batches(build_graph(crates), per_batch)


def _chain_plan(*names: str) -> ExecutionPlan:
    crates = [Crate.make(n, deps=[names[i - 1]] if i else []) for i, n in enumerate(names)]
    return plan_batches(build_graph(crates), 10)


class TestGroupBatches:
    """Tests for group_batches()."""

    def test_pairs(self) -> None:
        """Four batches with parallel_batches=2 form [[0, 1], [2, 3]]."""
        plan = _independent_plan(4)
        groups = group_batches(plan.batches, 2)
        assert [[b.index for b in g] for g in groups] == [[0, 1], [2, 3]]

    @pytest.mark.parametrize('parallel', [0, 1])
    def test_sequential(self, parallel: int) -> None:
        """0 and 1 both mean one batch per group."""
        plan = _independent_plan(3)
        groups = group_batches(plan.batches, parallel)
        assert [[b.index for b in g] for g in groups] == [[0], [1], [2]]

    def test_short_last_group(self) -> None:
        """The last group takes whatever is left."""
        plan = _independent_plan(5)
        groups = group_batches(plan.batches, 3)
        assert [len(g) for g in groups] == [3, 2]

    def test_empty(self) -> None:
        """No batches, no groups."""
        assert group_batches((), 4) == []

    def test_negative(self) -> None:
        """Negative parallel_batches is a configuration error."""
        with pytest.raises(CrateKitError) as exc_info:
            group_batches((Batch(index=0),), -1)
        assert exc_info.value.code == E.CONFIG_INVALID_VALUE


class TestRunPlan:
    """Tests for run_plan()."""

    @pytest.mark.asyncio
    async def test_two_groups_one_delay(self) -> None:
        """Two groups of two batches sleep exactly once, between them."""
        publisher = FakePublisher()
        sleep = SleepRecorder(publisher.events)
        config = PublishConfig(parallel_batches=2, batch_delay=120.0)

        report = await run_plan(_independent_plan(4), config, publisher, sleep=sleep)

        assert sleep.delays == [120.0]
        assert report.published == 8
        assert report.success

        sleep_at = publisher.events.index(('sleep', '120.0'))
        first_group = {f'c{i:02d}' for i in range(4)}
        before = {name for kind, name in publisher.events[:sleep_at] if kind == 'end'}
        after = {name for kind, name in publisher.events[sleep_at:] if kind == 'start'}
        assert before == first_group
        assert after.isdisjoint(first_group)

    @pytest.mark.asyncio
    async def test_sequential_batches(self) -> None:
        """parallel_batches=0 runs one batch at a time, with a delay between each."""
        publisher = FakePublisher()
        sleep = SleepRecorder()
        config = PublishConfig(batch_delay=5)

        await run_plan(_chain_plan('a', 'b', 'c'), config, publisher, sleep=sleep)

        assert publisher.published == ['a', 'b', 'c']
        assert sleep.delays == [5, 5]

    @pytest.mark.asyncio
    async def test_zero_delay_never_sleeps(self) -> None:
        """batch_delay=0 skips the pause entirely."""
        sleep = SleepRecorder()
        await run_plan(_independent_plan(3), PublishConfig(batch_delay=0), FakePublisher(), sleep=sleep)
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_group_barrier(self) -> None:
        """No crate of a later group starts before the earlier group finished."""
        publisher = FakePublisher(delay=0.01)
        config = PublishConfig(parallel_batches=2, batch_delay=0)
        await run_plan(_chain_plan('a', 'b', 'c', 'd'), config, publisher, sleep=SleepRecorder())

        position = {event: i for i, event in enumerate(publisher.events)}
        assert position[('end', 'a')] < position[('start', 'c')]
        assert position[('end', 'b')] < position[('start', 'c')]
        assert position[('end', 'b')] < position[('start', 'd')]

    @pytest.mark.asyncio
    async def test_peak_concurrency_across_group(self) -> None:
        """Batches of one group share no limiter: peak is parallel_batches * max_concurrent."""
        publisher = FakePublisher(delay=0.02)
        config = PublishConfig(parallel_batches=2, max_concurrent=2, batch_delay=0)
        await run_plan(_independent_plan(2, per_batch=4), config, publisher, sleep=SleepRecorder())

        assert publisher.peak == config.peak_concurrency == 4

    @pytest.mark.asyncio
    async def test_empty_plan(self) -> None:
        """An empty plan succeeds without touching the publisher."""
        publisher = FakePublisher()
        sleep = SleepRecorder()
        report = await run_plan(ExecutionPlan(), PublishConfig(), publisher, sleep=sleep)

        assert report == Report()
        assert report.success
        assert publisher.calls == []
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_resume_is_idempotent(self) -> None:
        """A second run over the same registry skips everything."""
        publisher = FakePublisher()
        plan = _chain_plan('a', 'b', 'c')
        config = PublishConfig(batch_delay=0)

        first = await run_plan(plan, config, publisher)
        second = await run_plan(plan, config, publisher)

        assert first.published == 3
        assert second.published == 0
        assert second.skipped == 3
        assert publisher.published == ['a', 'b', 'c']

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_later_groups(self) -> None:
        """Later batches still run after a failure."""
        publisher = FakePublisher(failing={'a'})
        report = await run_plan(_chain_plan('a', 'b'), PublishConfig(batch_delay=0), publisher)

        assert report.failed == 1
        assert report.published == 1
        assert report.failures[0].crate == 'a'
        assert not report.success
        assert report.exit_code == 1

    @pytest.mark.asyncio
    async def test_checkpoint_after_each_group(self) -> None:
        """The checkpoint sees the running report once per group."""
        snapshots: list[Report] = []
        config = PublishConfig(parallel_batches=2, batch_delay=0)
        await run_plan(_independent_plan(3), config, FakePublisher(), checkpoint=snapshots.append)

        assert [s.published for s in snapshots] == [4, 6]

    @pytest.mark.asyncio
    async def test_failing_checkpoint_does_not_stop_the_run(self) -> None:
        """A checkpoint that raises is logged; every later group still runs."""
        attempts: list[int] = []

        def _checkpoint(report: Report) -> None:
            attempts.append(report.total)
            raise OSError(28, 'No space left on device')

        publisher = FakePublisher()
        report = await run_plan(
            _chain_plan('a', 'b', 'c'),
            PublishConfig(batch_delay=0),
            publisher,
            checkpoint=_checkpoint,
        )

        assert publisher.published == ['a', 'b', 'c']
        assert report.published == 3
        assert report.success
        assert attempts == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_invalid_config_publishes_nothing(self) -> None:
        """Configuration errors are raised before any crate runs."""
        publisher = FakePublisher()
        with pytest.raises(CrateKitError) as exc_info:
            await run_plan(_chain_plan('a'), PublishConfig(max_concurrent=0), publisher)
        assert exc_info.value.code == E.CONFIG_INVALID_VALUE
        assert publisher.calls == []

    @pytest.mark.asyncio
    async def test_risks_carried_into_report(self) -> None:
        """Dependency-risk notes from planning reach the report."""
        crates = [Crate.make('a', deps=['b']), Crate.make('b', deps=['a'])]
        plan = plan_batches(build_graph(crates), 10)
        report = await run_plan(plan, PublishConfig(batch_delay=0), FakePublisher())

        assert report.risks == plan.risks
        assert len(report.risks) == 1
        assert report.success

    @pytest.mark.asyncio
    async def test_outcomes_in_plan_order(self) -> None:
        """Outcomes are aggregated batch by batch in plan order."""
        publisher = FakePublisher(delay=0.001)
        config = PublishConfig(parallel_batches=3, batch_delay=0)
        report = await run_plan(_independent_plan(3), config, publisher)

        assert [o.crate for o in report.outcomes] == [f'c{i:02d}' for i in range(6)]
