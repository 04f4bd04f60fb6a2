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

"""``cargo publish`` backed :class:`PublishCapability`.

Two halves, one per protocol method::

    already_published ──► GET {registry}/api/v1/crates/{name}/{version}
                          200 → True, 404 → False, anything else → error

    publish           ──► cargo publish --package NAME [--allow-dirty] [--no-verify]
                          env: RegistryConfig.env() layered over os.environ

``cargo`` blocks until the registry accepts the upload, so the subprocess
runs in a worker thread via ``asyncio.to_thread``. Authentication is
``CARGO_REGISTRY_TOKEN`` (from the environment or ``RegistryConfig``) or
``~/.cargo/credentials.toml``.

Usage::

    publisher = CargoPublisher(Path('.'), registry=config.registry)
    # publish() only accepts the registry given here.
    if not await publisher.already_published('sp-core', '21.0.0'):
        await publisher.publish('sp-core', '21.0.0', config.registry)
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx

from cratekit.backends._run import DEFAULT_TIMEOUT_SECONDS, CommandResult, TimeoutExpired, run_command
from cratekit.config import RegistryConfig
from cratekit.errors import E, PublishError
from cratekit.logging import get_logger
from cratekit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry

log = get_logger('cratekit.backends.cargo')


class CargoPublisher:
    """Publishes crates with the ``cargo`` CLI.

    Args:
        workspace_root: Cargo workspace root; ``cargo`` runs here.
        registry: Registry queried by :meth:`already_published` and the
            only one :meth:`publish` accepts. Defaults to production
            crates.io.
        allow_dirty: Pass ``--allow-dirty`` to ``cargo publish``.
        no_verify: Pass ``--no-verify`` to ``cargo publish``.
        timeout: Seconds before a ``cargo publish`` is killed.
        pool_size: HTTP connection pool size for registry queries.
        http_timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        workspace_root: Path,
        *,
        registry: RegistryConfig | None = None,
        allow_dirty: bool = False,
        no_verify: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        pool_size: int = DEFAULT_POOL_SIZE,
        http_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize with the workspace root and publish flags."""
        self._root = workspace_root
        self._registry = registry or RegistryConfig()
        self._allow_dirty = allow_dirty
        self._no_verify = no_verify
        self._timeout = timeout
        self._pool_size = pool_size
        self._http_timeout = http_timeout

    @property
    def registry(self) -> RegistryConfig:
        """The registry this publisher checks and uploads to."""
        return self._registry

    def command(self, name: str) -> list[str]:
        """Return the ``cargo publish`` argv for ``name``."""
        cmd = ['cargo', 'publish', '--package', name]
        if self._allow_dirty:
            cmd.append('--allow-dirty')
        if self._no_verify:
            cmd.append('--no-verify')
        return cmd

    async def already_published(self, name: str, version: str) -> bool:
        """Check the registry API for ``name@version``.

        Raises:
            PublishError: ``CK-PUBLISH-CHECK-FAILED`` when the registry
                answers with something other than 200 or 404, or cannot
                be reached.
        """
        url = f'{self._registry.resolved_url}/api/v1/crates/{name}/{version}'
        try:
            async with http_client(pool_size=self._pool_size, timeout=self._http_timeout) as client:
                response = await request_with_retry(client, 'GET', url)
        except httpx.HTTPError as exc:
            raise PublishError(
                f'Could not query {url}: {exc}',
                code=E.PUBLISH_CHECK_FAILED,
                hint='Check network access to the registry, then rerun; published crates are skipped.',
            ) from exc

        if response.status_code == 200:
            log.info('crate_version_exists', crate=name, version=version)
            return True
        if response.status_code == 404:
            log.debug('crate_version_not_found', crate=name, version=version)
            return False
        raise PublishError(
            f'Registry returned HTTP {response.status_code} for {name}@{version}',
            code=E.PUBLISH_CHECK_FAILED,
            output=response.text[:2000],
        )

    async def publish(self, name: str, version: str, registry: RegistryConfig) -> str:
        """Run ``cargo publish`` for one crate.

        Returns:
            Combined stdout/stderr of ``cargo``.

        Raises:
            PublishError: On a non-zero exit, a timeout, when ``cargo``
                cannot be started, or when ``registry`` is not the one
                :meth:`already_published` checks.
        """
        if registry.resolved_url != self._registry.resolved_url:
            raise PublishError(
                f'Refusing to publish {name}@{version} to {registry.resolved_url}: '
                f'existence checks go to {self._registry.resolved_url}',
                hint='Construct CargoPublisher with registry=config.registry.',
            )
        cmd = self.command(name)
        log.info('cargo_publish', crate=name, version=version, registry=registry.resolved_url)
        try:
            result: CommandResult = await asyncio.to_thread(
                run_command,
                cmd,
                cwd=self._root,
                env=registry.env(),
                timeout=self._timeout,
            )
        except TimeoutExpired as exc:
            raise PublishError(
                f'cargo publish for {name}@{version} timed out after {self._timeout}s',
                hint='The upload may still have gone through; a rerun skips it if so.',
            ) from exc
        except OSError as exc:
            raise PublishError(
                f'Could not run cargo: {exc}',
                hint='Make sure cargo is installed and on PATH.',
            ) from exc

        if not result.ok:
            raise PublishError(
                f'cargo publish for {name}@{version} exited with code {result.return_code}',
                output=result.output,
            )
        return result.output


__all__ = [
    'CargoPublisher',
]
