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

"""Injected backends for cratekit.

The scheduler core is I/O free. Everything that touches a subprocess or
the network lives here behind :class:`PublishCapability`::

    ┌──────────────────────┬───────────────────────────────────────────┐
    │ Module               │ Role                                      │
    ├──────────────────────┼───────────────────────────────────────────┤
    │ publisher            │ PublishCapability protocol                │
    │ cargo                │ cargo publish + crates.io existence check │
    │ _run                 │ Subprocess wrapper with logging           │
    └──────────────────────┴───────────────────────────────────────────┘
"""

from cratekit.backends.cargo import CargoPublisher as CargoPublisher
from cratekit.backends.publisher import PublishCapability as PublishCapability

__all__ = [
    'CargoPublisher',
    'PublishCapability',
]
