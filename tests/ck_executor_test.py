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

"""Tests for cratekit.executor."""

from __future__ import annotations

import pytest
from cratekit.batching import Batch
from cratekit.config import PublishConfig, RegistryConfig
from cratekit.crates import Crate
from cratekit.executor import execute_batch
from cratekit.logging import configure_logging
from cratekit.report import REASON_ALREADY_EXISTS, REASON_DRY_RUN, OutcomeKind

from tests._fakes import FakePublisher

configure_logging(quiet=True)


def _batch(*names: str, index: int = 0) -> Batch:
    return Batch(index=index, crates=tuple(Crate.make(n, version='1.2.3') for n in names))


class TestExecuteBatch:
    """Tests for execute_batch()."""

    @pytest.mark.asyncio
    async def test_publishes_every_crate(self) -> None:
        """Each crate is checked, then published."""
        publisher = FakePublisher()
        outcomes = await execute_batch(_batch('a', 'b', 'c'), PublishConfig(), publisher)

        assert list(outcomes) == ['a', 'b', 'c']
        assert all(o.kind is OutcomeKind.PUBLISHED for o in outcomes.values())
        assert sorted(publisher.published) == ['a', 'b', 'c']
        assert outcomes['a'].output == 'Uploading a v1.2.3'
        assert outcomes['a'].version == '1.2.3'

    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(self) -> None:
        """Dry run records published without calling the publisher."""
        publisher = FakePublisher()
        outcomes = await execute_batch(_batch('a', 'b'), PublishConfig(dry_run=True), publisher)

        assert publisher.calls == []
        for outcome in outcomes.values():
            assert outcome.kind is OutcomeKind.PUBLISHED
            assert outcome.reason == REASON_DRY_RUN

    @pytest.mark.asyncio
    async def test_already_published_skipped(self) -> None:
        """Existing versions are skipped and never re-published."""
        publisher = FakePublisher(existing={'a'})
        outcomes = await execute_batch(_batch('a', 'b'), PublishConfig(), publisher)

        assert outcomes['a'].kind is OutcomeKind.SKIPPED
        assert outcomes['a'].reason == REASON_ALREADY_EXISTS
        assert publisher.published == ['b']

    @pytest.mark.asyncio
    async def test_failure_isolated(self) -> None:
        """One failing crate does not stop its siblings."""
        publisher = FakePublisher(failing={'b'}, delay=0.01)
        outcomes = await execute_batch(_batch('a', 'b', 'c'), PublishConfig(), publisher)

        assert outcomes['b'].kind is OutcomeKind.FAILED
        assert 'exited with code 101' in outcomes['b'].error
        assert outcomes['b'].output == 'error: b rejected'
        assert outcomes['a'].kind is OutcomeKind.PUBLISHED
        assert outcomes['c'].kind is OutcomeKind.PUBLISHED

    @pytest.mark.asyncio
    async def test_check_error_marks_failed(self) -> None:
        """An exception from already_published() fails that crate only."""
        publisher = FakePublisher(check_failing={'a'})
        outcomes = await execute_batch(_batch('a', 'b'), PublishConfig(), publisher)

        assert outcomes['a'].kind is OutcomeKind.FAILED
        assert 'registry unreachable' in outcomes['a'].error
        assert outcomes['a'].output == ''
        assert publisher.published == ['b']

    @pytest.mark.asyncio
    @pytest.mark.parametrize('limit', [1, 2, 3])
    async def test_concurrency_bound(self, limit: int) -> None:
        """Never more than max_concurrent publishes in flight."""
        publisher = FakePublisher(delay=0.01)
        names = [f'c{i}' for i in range(8)]
        await execute_batch(_batch(*names), PublishConfig(max_concurrent=limit), publisher)

        assert publisher.peak == limit
        assert len(publisher.published) == 8

    @pytest.mark.asyncio
    async def test_registry_forwarded(self) -> None:
        """The configured registry reaches the publisher untouched."""
        registry = RegistryConfig(staging=True, token='secret')
        publisher = FakePublisher()
        await execute_batch(_batch('a'), PublishConfig(registry=registry), publisher)

        assert publisher.registries == [registry]

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        """An empty batch returns an empty map."""
        publisher = FakePublisher()
        assert await execute_batch(_batch(), PublishConfig(), publisher) == {}
