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

"""Publish capability protocol.

The executor never talks to a registry directly. It calls the two
methods of an injected :class:`PublishCapability`:

- :meth:`already_published`: the resume check.
- :meth:`publish`: the actual upload.

Implementations:

- :class:`~cratekit.backends.cargo.CargoPublisher`: ``cargo publish``
  plus the crates.io HTTP API.

Both methods are async because they wrap subprocesses and network round
trips. Implementations are shared by every concurrent crate task and must
not keep per-crate mutable state.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cratekit.config import RegistryConfig


@runtime_checkable
class PublishCapability(Protocol):
    """Protocol for the registry-facing side of a publish run."""

    async def already_published(self, name: str, version: str) -> bool:
        """Return ``True`` if ``name@version`` is already live on the registry.

        Args:
            name: Crate name.
            version: Exact version string.
        """
        ...

    async def publish(self, name: str, version: str, registry: RegistryConfig) -> str:
        """Publish ``name@version``.

        Args:
            name: Crate name.
            version: Version being published.
            registry: Registry selection and credentials, forwarded as-is.

        Returns:
            Diagnostic output captured from the publish tool.

        Raises:
            Exception: Any error marks this crate as failed. Raise
                :class:`~cratekit.errors.PublishError` to attach the
                captured tool output.
        """
        ...


__all__ = [
    'PublishCapability',
]
