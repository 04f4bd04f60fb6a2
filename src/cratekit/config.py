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

"""Publish configuration for cratekit.

Settings are constructed once per invocation, validated before any batch
runs, and never mutated afterwards.

Key Concepts::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Setting                 │ Meaning                                    │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ max_concurrent (3)      │ Crates publishing at once inside a batch.  │
    │ batch_size (10)         │ Upper bound on crates per batch.           │
    │ batch_delay (120s)      │ Pause between batch groups (rate limits).  │
    │ parallel_batches (0)    │ Batches per group; 0 means one at a time.  │
    │ dry_run (false)         │ Plan and report without publishing.        │
    └─────────────────────────┴────────────────────────────────────────────┘

Peak concurrency is ``max(1, parallel_batches) * max_concurrent`` publish
calls. Nothing caps it further; size both knobs to the registry's limits.

Registry selection is forwarded to the publish tool untouched. The URL
precedence is: explicit ``registry_url`` > ``staging`` > crates.io.

``cratekit.toml`` uses flat keys::

    max_concurrent   = 3
    batch_size       = 10
    batch_delay      = 120
    parallel_batches = 2
    dry_run          = false
    staging          = true
    registry_url     = "https://my-registry.example.com"

The registry token is never read from the file; it comes from the
``CARGO_REGISTRY_TOKEN`` environment variable.
"""

from __future__ import annotations

import difflib
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from cratekit.errors import E, CrateKitError
from cratekit.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILENAME = 'cratekit.toml'
TOKEN_ENV_VAR = 'CARGO_REGISTRY_TOKEN'

PRODUCTION_REGISTRY_URL = 'https://crates.io'
STAGING_REGISTRY_URL = 'https://staging.crates.io'

DEFAULT_MAX_CONCURRENT = 3
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY = 120.0
DEFAULT_PARALLEL_BATCHES = 0

# Expected types per key in cratekit.toml.
_TYPE_MAP: dict[str, tuple[type, ...]] = {
    'max_concurrent': (int,),
    'batch_size': (int,),
    'batch_delay': (int, float),
    'parallel_batches': (int,),
    'dry_run': (bool,),
    'staging': (bool,),
    'registry_url': (str,),
}

VALID_KEYS: frozenset[str] = frozenset(_TYPE_MAP)


@dataclass(frozen=True)
class RegistryConfig:
    """Registry selection and credentials, forwarded to the publish tool.

    The scheduler never interprets these values; it hands the whole
    object to :meth:`PublishCapability.publish`.

    Attributes:
        staging: Publish to the staging registry.
        registry_url: Explicit registry URL. Wins over ``staging``.
        token: Registry API token. Hidden from ``repr``.
    """

    staging: bool = False
    registry_url: str | None = None
    token: str = field(default='', repr=False)

    @property
    def resolved_url(self) -> str:
        """Registry URL after applying the precedence rules."""
        if self.registry_url:
            return self.registry_url.rstrip('/')
        if self.staging:
            return STAGING_REGISTRY_URL
        return PRODUCTION_REGISTRY_URL

    @property
    def is_default(self) -> bool:
        """True when publishing to production crates.io."""
        return not self.registry_url and not self.staging

    def env(self) -> dict[str, str]:
        """Environment overrides for ``cargo publish``."""
        env: dict[str, str] = {}
        if not self.is_default:
            env['CARGO_REGISTRY_INDEX'] = self.resolved_url
        if self.staging:
            env['CARGO_REGISTRY_STAGING'] = 'true'
        if self.token:
            env[TOKEN_ENV_VAR] = self.token
        return env


def _invalid(message: str, hint: str = '') -> CrateKitError:
    return CrateKitError(code=E.CONFIG_INVALID_VALUE, message=message, hint=hint)


def _require_int(name: str, value: object, minimum: int) -> None:
    # bool is an int subclass; "max_concurrent = true" is a typo, not 1.
    if isinstance(value, bool) or not isinstance(value, int):
        raise _invalid(f'{name} must be an integer, got {type(value).__name__}')
    if value < minimum:
        raise _invalid(
            f'{name} must be >= {minimum}, got {value}',
            hint=f'Set {name} to an integer of at least {minimum}.',
        )


@dataclass(frozen=True)
class PublishConfig:
    """Settings for one publish run.

    Attributes:
        max_concurrent: Max crates publishing simultaneously per batch.
        batch_size: Max crates per batch. A dependency level larger than
            this is cut into several batches.
        batch_delay: Seconds to wait between batch groups.
        parallel_batches: Batches run concurrently per group. ``0`` and
            ``1`` both mean one batch at a time.
        dry_run: Record every crate as published without calling the
            publish capability.
        registry: Registry selection forwarded to the publish capability.
    """

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay: float = DEFAULT_BATCH_DELAY
    parallel_batches: int = DEFAULT_PARALLEL_BATCHES
    dry_run: bool = False
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    @property
    def group_size(self) -> int:
        """Number of batches per group."""
        return max(1, self.parallel_batches)

    @property
    def peak_concurrency(self) -> int:
        """Upper bound on simultaneous publish calls."""
        return self.group_size * self.max_concurrent

    def validate(self) -> PublishConfig:
        """Check every numeric setting.

        Returns:
            ``self``, so calls can be chained.

        Raises:
            CrateKitError: ``CK-CONFIG-INVALID-VALUE`` on the first bad setting.
        """
        _require_int('max_concurrent', self.max_concurrent, 1)
        _require_int('batch_size', self.batch_size, 1)
        _require_int('parallel_batches', self.parallel_batches, 0)
        if isinstance(self.batch_delay, bool) or not isinstance(self.batch_delay, (int, float)):
            raise _invalid(f'batch_delay must be a number of seconds, got {type(self.batch_delay).__name__}')
        if self.batch_delay < 0:
            raise _invalid(
                f'batch_delay must be >= 0, got {self.batch_delay}',
                hint='Use 0 to disable the pause between batch groups.',
            )
        if not isinstance(self.dry_run, bool):
            raise _invalid(f'dry_run must be a boolean, got {type(self.dry_run).__name__}')
        return self


def _suggest_key(unknown: str) -> str:
    matches = difflib.get_close_matches(unknown, sorted(VALID_KEYS), n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return f'Valid keys: {", ".join(sorted(VALID_KEYS))}'


def _check_types(raw: dict[str, Any]) -> None:  # noqa: ANN401 - raw TOML
    for key, value in raw.items():
        if key not in VALID_KEYS:
            raise CrateKitError(
                code=E.CONFIG_INVALID_KEY,
                message=f"Unknown key '{key}' in {CONFIG_FILENAME}",
                hint=_suggest_key(key),
            )
        expected = _TYPE_MAP[key]
        wrong_bool = isinstance(value, bool) and bool not in expected
        if wrong_bool or not isinstance(value, expected):
            names = ' or '.join(t.__name__ for t in expected)
            raise _invalid(f"'{key}' must be {names}, got {type(value).__name__}")


def load_config(workspace_root: Path, env: Mapping[str, str] | None = None) -> PublishConfig:
    """Read ``cratekit.toml`` and return a validated :class:`PublishConfig`.

    A missing file yields the defaults.

    Args:
        workspace_root: Directory containing ``cratekit.toml``.
        env: Environment to read the registry token from. Defaults to
            ``os.environ``.

    Raises:
        CrateKitError: If the file cannot be parsed, has unknown keys, or
            holds invalid values.
    """
    environ = os.environ if env is None else env
    token = environ.get(TOKEN_ENV_VAR, '')
    config_path = workspace_root / CONFIG_FILENAME

    raw: dict[str, Any] = {}  # noqa: ANN401 - raw TOML
    if config_path.is_file():
        try:
            raw = tomlkit.parse(config_path.read_text(encoding='utf-8')).unwrap()
        except tomlkit.exceptions.TOMLKitError as exc:
            raise CrateKitError(
                code=E.CONFIG_PARSE_ERROR,
                message=f'Failed to parse {config_path}: {exc}',
            ) from exc
        _check_types(raw)
    else:
        logger.debug('no_cratekit_config', path=str(config_path))

    registry = RegistryConfig(
        staging=raw.pop('staging', False),
        registry_url=raw.pop('registry_url', None),
        token=token,
    )
    config = PublishConfig(registry=registry, **raw).validate()
    logger.debug(
        'config_loaded',
        max_concurrent=config.max_concurrent,
        batch_size=config.batch_size,
        batch_delay=config.batch_delay,
        parallel_batches=config.parallel_batches,
        dry_run=config.dry_run,
        registry=registry.resolved_url,
    )
    return config


__all__ = [
    'CONFIG_FILENAME',
    'DEFAULT_BATCH_DELAY',
    'DEFAULT_BATCH_SIZE',
    'DEFAULT_MAX_CONCURRENT',
    'DEFAULT_PARALLEL_BATCHES',
    'PRODUCTION_REGISTRY_URL',
    'STAGING_REGISTRY_URL',
    'TOKEN_ENV_VAR',
    'VALID_KEYS',
    'PublishConfig',
    'RegistryConfig',
    'load_config',
]
