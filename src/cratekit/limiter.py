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

"""Bounded-concurrency gate shared by the executor and scheduler.

A thin wrapper over :class:`asyncio.Semaphore` that also tracks how many
holders are inside the gate and the highest number seen, so runs (and
tests) can confirm the bound was honored.

Single-event-loop only, like the rest of the publish pipeline: counters
are mutated between ``await`` points and need no lock.

Usage::

    limiter = ConcurrencyLimiter(3)

    async def publish_one(name: str) -> None:
        async with limiter:
            await publisher.publish(name, ...)
"""

from __future__ import annotations

import asyncio
from types import TracebackType

from cratekit.errors import E, CrateKitError
from cratekit.logging import get_logger

logger = get_logger(__name__)


class ConcurrencyLimiter:
    """Counting gate of fixed capacity.

    Args:
        capacity: Maximum number of simultaneous holders. Must be >= 1.
        name: Label used in debug logs.

    Raises:
        CrateKitError: If ``capacity`` is not a positive integer.
    """

    def __init__(self, capacity: int, *, name: str = 'limiter') -> None:
        """Initialize with a capacity and a debug label."""
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise CrateKitError(
                code=E.CONFIG_INVALID_VALUE,
                message=f'Concurrency limit must be an integer >= 1, got {capacity!r}',
            )
        self._capacity = capacity
        self._name = name
        self._semaphore = asyncio.Semaphore(capacity)
        self._in_flight = 0
        self._peak = 0

    @property
    def capacity(self) -> int:
        """Maximum number of simultaneous holders."""
        return self._capacity

    @property
    def in_flight(self) -> int:
        """Current number of holders."""
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of simultaneous holders observed."""
        return self._peak

    async def acquire(self) -> None:
        """Wait for a free slot and take it."""
        await self._semaphore.acquire()
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)
        logger.debug('limiter_acquired', limiter=self._name, in_flight=self._in_flight, capacity=self._capacity)

    def release(self) -> None:
        """Free a slot taken by :meth:`acquire`."""
        if self._in_flight == 0:
            msg = f'{self._name}: release() called without a matching acquire()'
            raise RuntimeError(msg)
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> ConcurrencyLimiter:
        """Acquire a slot."""
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Release the slot, whatever happened inside the block."""
        self.release()

    def __repr__(self) -> str:
        """Debug representation with live counters."""
        return f'ConcurrencyLimiter(name={self._name!r}, capacity={self._capacity}, in_flight={self._in_flight})'


__all__ = [
    'ConcurrencyLimiter',
]
