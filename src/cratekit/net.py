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

"""HTTP helpers for registry queries.

crates.io asks API clients to send an identifying ``User-Agent`` and
rate-limits aggressively, so every request goes through a pooled
:class:`httpx.AsyncClient` and :func:`request_with_retry`.

Retry Policy::

    attempt 1 ──► 429 / 5xx / connect or read timeout
                  └─ sleep backoff_base * 2**0 (or Retry-After) ──► attempt 2
    ...
    attempt N+1 ──► still failing → raise

Usage::

    from cratekit.net import http_client, request_with_retry

    async with http_client() as client:
        resp = await request_with_retry(client, 'GET', 'https://crates.io/api/v1/crates/serde')
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Final

import httpx

from cratekit import __version__
from cratekit.logging import get_logger

log = get_logger('cratekit.net')

DEFAULT_POOL_SIZE: Final[int] = 10
DEFAULT_TIMEOUT: Final[float] = 30.0
USER_AGENT: Final[str] = f'cratekit/{__version__}'

MAX_RETRIES: Final[int] = 3
RETRY_BACKOFF_BASE: Final[float] = 1.0

# Upper bound on a server-provided Retry-After, in seconds.
MAX_RETRY_AFTER: Final[float] = 60.0

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

_RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout)


@asynccontextmanager
async def http_client(
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    timeout: float = DEFAULT_TIMEOUT,
    base_url: str = '',
    headers: dict[str, str] | None = None,
) -> AsyncGenerator[httpx.AsyncClient]:
    """Create a pooled async HTTP client.

    Args:
        pool_size: Maximum number of connections in the pool.
        timeout: Request timeout in seconds.
        base_url: Optional base URL for all requests.
        headers: Extra default headers. ``User-Agent`` is always set.

    Yields:
        An :class:`httpx.AsyncClient` instance.
    """
    limits = httpx.Limits(
        max_connections=pool_size,
        max_keepalive_connections=pool_size,
    )
    async with httpx.AsyncClient(
        limits=limits,
        timeout=httpx.Timeout(timeout),
        base_url=base_url,
        headers={'User-Agent': USER_AGENT, **(headers or {})},
        follow_redirects=True,
    ) as client:
        yield client


def _retry_delay(response: httpx.Response | None, attempt: int, backoff_base: float) -> float:
    delay = backoff_base * (2**attempt)
    if response is not None and response.status_code == 429:
        retry_after = response.headers.get('Retry-After', '')
        if retry_after.isdigit():
            delay = min(float(retry_after), MAX_RETRY_AFTER)
    return delay


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = MAX_RETRIES,
    backoff_base: float = RETRY_BACKOFF_BASE,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs: object,
) -> httpx.Response:
    """Send a request, retrying transient failures with exponential backoff.

    Args:
        client: The httpx async client to use.
        method: HTTP method.
        url: Request URL.
        max_retries: Retries after the first attempt.
        backoff_base: Base delay in seconds.
        sleep: Awaitable used between attempts.
        **kwargs: Passed through to ``client.request()``.

    Returns:
        The first non-retryable :class:`httpx.Response`.

    Raises:
        httpx.HTTPStatusError: If the last attempt still got a retryable status.
        httpx.TransportError: If the last attempt failed to connect or timed out.
    """
    for attempt in range(max_retries + 1):
        last = attempt == max_retries
        try:
            response = await client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except _RETRYABLE_ERRORS as exc:
            if last:
                raise
            delay = _retry_delay(None, attempt, backoff_base)
            log.warning('http_retry_error', url=url, error=str(exc), attempt=attempt + 1, delay=delay)
            await sleep(delay)
            continue

        if response.status_code not in RETRYABLE_STATUS_CODES:
            return response
        if last:
            response.raise_for_status()
            return response

        delay = _retry_delay(response, attempt, backoff_base)
        log.warning('http_retry', url=url, status=response.status_code, attempt=attempt + 1, delay=delay)
        await sleep(delay)

    msg = f'request_with_retry: max_retries must be >= 0, got {max_retries}'
    raise ValueError(msg)


__all__ = [
    'DEFAULT_POOL_SIZE',
    'DEFAULT_TIMEOUT',
    'MAX_RETRIES',
    'RETRYABLE_STATUS_CODES',
    'USER_AGENT',
    'http_client',
    'request_with_retry',
]
