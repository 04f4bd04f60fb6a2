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

"""Crate records and the ``Plan.toml`` loader.

The plan generator writes one ``[[crate]]`` table per crate it decided
to release::

    [[crate]]
    name = "sp-core"
    from = "20.0.0"
    to = "21.0.0"

    [[crate]]
    name = "sp-test-utils"
    from = "20.0.0"
    to = "21.0.0"
    publish = false

Only ``name``, ``to`` (or ``version``) and ``publish`` matter here.
Everything else the generator records (``from``, ``bump``, ``reason``,
``rewrite_dep``, ...) belongs to other stages and is ignored.

The plan carries no dependency information. Each crate's dependencies
come from the Cargo workspace (:func:`~cratekit.workspace.load_workspace`):
its non-dev dependencies on publishable workspace members. A hand-written
``dependencies = ["sp-std"]`` list on an entry replaces what the
workspace says for that crate.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from cratekit.errors import E, CrateKitError
from cratekit.logging import get_logger
from cratekit.workspace import WorkspaceMember

logger = get_logger(__name__)

PLAN_FILENAME = 'Plan.toml'


@dataclass(frozen=True)
class Crate:
    """A crate marked for release.

    Attributes:
        name: Crate name as published on the registry.
        version: Target version to publish.
        publish: Whether this crate is published in this run. Crates
            with ``publish=False`` are neither scheduled nor waited on.
        dependency_names: Names of the crates this one depends on.
            Names outside the plan are allowed and ignored by the graph.
    """

    name: str
    version: str
    publish: bool = True
    dependency_names: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def make(
        cls,
        name: str,
        version: str = '0.1.0',
        deps: Iterable[str] = (),
        *,
        publish: bool = True,
    ) -> Crate:
        """Convenience constructor accepting any iterable of dependency names."""
        return cls(name=name, version=version, publish=publish, dependency_names=frozenset(deps))


def _plan_error(path: Path, index: int, message: str) -> CrateKitError:
    return CrateKitError(
        code=E.PLAN_INVALID_CRATE,
        message=f'{path}: [[crate]] entry #{index + 1}: {message}',
        hint='Each [[crate]] needs a string "name" and a string "to" version.',
    )


def _workspace_dependencies(name: str, members: Mapping[str, WorkspaceMember]) -> frozenset[str]:
    if not members:
        return frozenset()
    member = members.get(name)
    if member is None:
        logger.warning('crate_not_in_workspace', crate=name)
        return frozenset()
    return member.internal_dependencies(members)


def _parse_entry(
    path: Path,
    index: int,
    entry: dict[str, Any],  # noqa: ANN401 - raw TOML
    members: Mapping[str, WorkspaceMember],
) -> Crate:
    name = entry.get('name')
    if not isinstance(name, str) or not name:
        raise _plan_error(path, index, 'missing or empty "name"')

    version = entry.get('to', entry.get('version'))
    if not isinstance(version, str) or not version:
        raise _plan_error(path, index, f'crate {name!r} has no target version')

    publish = entry.get('publish', True)
    if not isinstance(publish, bool):
        raise _plan_error(path, index, f'crate {name!r}: "publish" must be a boolean')

    deps = entry.get('dependencies')
    if deps is None:
        dependency_names = _workspace_dependencies(name, members)
    elif isinstance(deps, list) and all(isinstance(d, str) for d in deps):
        dependency_names = frozenset(str(d) for d in deps)
    else:
        raise _plan_error(path, index, f'crate {name!r}: "dependencies" must be a list of names')

    return Crate(
        name=str(name),
        version=str(version),
        publish=bool(publish),
        dependency_names=dependency_names,
    )


def load_crates(path: Path, *, members: Mapping[str, WorkspaceMember] | None = None) -> list[Crate]:
    """Load the crate list from a ``Plan.toml`` file.

    Args:
        path: Path to the plan file, or to the directory containing
            :data:`PLAN_FILENAME`.
        members: Workspace members from
            :func:`~cratekit.workspace.load_workspace`. Supplies the
            dependencies of every entry without a ``dependencies`` list.
            Without it, such entries have no dependencies.

    Returns:
        Crates in file order.

    Raises:
        CrateKitError: If the file is missing, unparsable, has an invalid
            entry, or lists the same crate twice.
    """
    if path.is_dir():
        path = path / PLAN_FILENAME
    if not path.is_file():
        raise CrateKitError(
            code=E.PLAN_NOT_FOUND,
            message=f'Release plan not found: {path}',
            hint='Generate a release plan before publishing.',
        )

    try:
        doc = tomlkit.parse(path.read_text(encoding='utf-8')).unwrap()
    except tomlkit.exceptions.TOMLKitError as exc:
        raise CrateKitError(
            code=E.PLAN_PARSE_ERROR,
            message=f'Failed to parse {path}: {exc}',
        ) from exc

    raw_entries = doc.get('crate', [])
    if not isinstance(raw_entries, list):
        raise CrateKitError(
            code=E.PLAN_PARSE_ERROR,
            message=f'{path}: "crate" must be an array of tables ([[crate]])',
        )

    crates: list[Crate] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw_entries):
        if not isinstance(entry, dict):
            raise _plan_error(path, index, 'entry is not a table')
        crate = _parse_entry(path, index, dict(entry), members or {})
        if crate.name in seen:
            raise CrateKitError(
                code=E.PLAN_DUPLICATE_CRATE,
                message=f'Crate {crate.name!r} is listed more than once in {path}',
                hint='Each [[crate]] entry must have a unique name.',
            )
        seen.add(crate.name)
        crates.append(crate)

    logger.info(
        'plan_loaded',
        path=str(path),
        crates=len(crates),
        publishable=sum(1 for c in crates if c.publish),
        from_workspace=bool(members),
    )
    return crates


__all__ = [
    'PLAN_FILENAME',
    'Crate',
    'load_crates',
]
