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

"""Cargo workspace manifests: where crate dependencies come from.

``Plan.toml`` says *which* crates to release and at what version. The
edges between them live in the workspace's ``Cargo.toml`` files::

    polkadot-sdk/
    ├── Cargo.toml         ← [workspace] members = ["primitives/*"]
    └── primitives/
        ├── std/
        │   └── Cargo.toml ← sp-std
        └── core/
            └── Cargo.toml ← sp-core: [dependencies] sp-std = { workspace = true }

Which declared dependencies count::

    ┌──────────────────────────────┬───────────────────────────────────────┐
    │ Declared in                  │ Ordering edge?                        │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ [dependencies]               │ yes, if the target is a publishable   │
    │ [build-dependencies]         │ workspace member                      │
    │ [target.'cfg(..)'.*]         │                                       │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ [dev-dependencies]           │ never (not needed to publish)         │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ a crates.io dependency       │ never (not a workspace member)        │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ a member with publish=false  │ never (nothing to wait for)           │
    │ or publish = ["registry"]    │                                       │
    └──────────────────────────────┴───────────────────────────────────────┘

Renamed dependencies (``foo = { package = "sp-core" }``), also through
``[workspace.dependencies]``, are recorded under the real package name.

Usage::

    from cratekit.workspace import load_workspace

    members = load_workspace(Path('.'))
    members['sp-core'].internal_dependencies(members)  # frozenset({'sp-std'})
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from cratekit.errors import E, CrateKitError
from cratekit.logging import get_logger

logger = get_logger(__name__)

MANIFEST_FILENAME = 'Cargo.toml'

# Dev-dependencies never order a publish.
_DEPENDENCY_TABLES = ('dependencies', 'build-dependencies')


@dataclass(frozen=True)
class WorkspaceMember:
    """One crate of the Cargo workspace.

    Attributes:
        name: ``[package].name``.
        manifest_path: Path to the crate's ``Cargo.toml``.
        publishable: False for ``publish = false`` and for crates
            restricted to named registries.
        dependencies: Package names of every non-dev dependency,
            workspace member or not.
    """

    name: str
    manifest_path: Path
    publishable: bool = True
    dependencies: frozenset[str] = field(default_factory=frozenset)

    def internal_dependencies(self, members: Mapping[str, WorkspaceMember]) -> frozenset[str]:
        """Dependencies that are publishable members of ``members``."""
        return frozenset(d for d in self.dependencies if d in members and members[d].publishable)


def _manifest_error(path: Path, message: str) -> CrateKitError:
    return CrateKitError(
        code=E.WORKSPACE_PARSE_ERROR,
        message=f'{path}: {message}',
        hint=f'Check that {path} is a valid Cargo manifest.',
    )


def _read_manifest(path: Path) -> dict[str, Any]:
    try:
        return tomlkit.parse(path.read_text(encoding='utf-8')).unwrap()
    except OSError as exc:
        raise _manifest_error(path, f'cannot be read: {exc}') from exc
    except tomlkit.exceptions.TOMLKitError as exc:
        raise _manifest_error(path, f'invalid TOML: {exc}') from exc


def _member_dirs(root: Path, patterns: list[str], exclude: list[str]) -> list[Path]:
    """Expand ``members`` globs to crate directories, minus ``exclude``."""
    excluded = {(root / e).resolve() for e in exclude}
    dirs: list[Path] = []
    for pattern in patterns:
        candidates = sorted(root.glob(pattern)) if any(ch in pattern for ch in '*?[') else [root / pattern]
        for candidate in candidates:
            if candidate.resolve() in excluded:
                continue
            if (candidate / MANIFEST_FILENAME).is_file() and candidate not in dirs:
                dirs.append(candidate)
    return dirs


def _package_name(key: str, requirement: object, inherited: Mapping[str, Any]) -> str:
    if isinstance(requirement, dict):
        if isinstance(requirement.get('package'), str):
            return requirement['package']
        if requirement.get('workspace') is True:
            base = inherited.get(key)
            if isinstance(base, dict) and isinstance(base.get('package'), str):
                return base['package']
    return key


def _dependency_names(manifest: Mapping[str, Any], inherited: Mapping[str, Any]) -> frozenset[str]:
    tables = [manifest.get(t) for t in _DEPENDENCY_TABLES]
    target = manifest.get('target')
    if isinstance(target, dict):
        for platform in target.values():
            if isinstance(platform, dict):
                tables.extend(platform.get(t) for t in _DEPENDENCY_TABLES)

    names: set[str] = set()
    for table in tables:
        if isinstance(table, dict):
            names.update(_package_name(key, requirement, inherited) for key, requirement in table.items())
    return frozenset(names)


def _is_publishable(package: Mapping[str, Any], workspace_package: Mapping[str, Any]) -> bool:
    publish = package.get('publish', True)
    if isinstance(publish, dict) and publish.get('workspace') is True:
        publish = workspace_package.get('publish', True)
    # A registry list restricts where the crate may go; treat it like false.
    return publish is True


def _table(doc: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = doc.get(key)
    return value if isinstance(value, dict) else {}


def _strings(doc: Mapping[str, Any], key: str) -> list[str]:
    value = doc.get(key)
    return [v for v in value if isinstance(v, str)] if isinstance(value, list) else []


def load_workspace(workspace_root: Path) -> dict[str, WorkspaceMember]:
    """Read every member manifest of a Cargo workspace.

    The root package, when the root ``Cargo.toml`` has a ``[package]``
    table, is a member too.

    Args:
        workspace_root: Directory holding the root ``Cargo.toml``.

    Returns:
        Mapping from crate name to :class:`WorkspaceMember`. Empty (with a
        warning) when there is no root ``Cargo.toml``.

    Raises:
        CrateKitError: ``CK-WORKSPACE-PARSE-ERROR`` if a manifest cannot
            be read or parsed, lacks ``[package].name``, or two members
            share a name.
    """
    root_manifest = workspace_root / MANIFEST_FILENAME
    if not root_manifest.is_file():
        logger.warning('cargo_toml_not_found', root=str(workspace_root))
        return {}

    root_doc = _read_manifest(root_manifest)
    workspace = root_doc.get('workspace', {})
    if not isinstance(workspace, dict):
        raise _manifest_error(root_manifest, '[workspace] must be a table')
    inherited = _table(workspace, 'dependencies')
    workspace_package = _table(workspace, 'package')
    patterns = _strings(workspace, 'members')
    exclude = _strings(workspace, 'exclude')

    manifests: list[tuple[Path, dict[str, Any]]] = []
    if isinstance(root_doc.get('package'), dict):
        manifests.append((root_manifest, root_doc))
    for crate_dir in _member_dirs(workspace_root, patterns, exclude):
        path = crate_dir / MANIFEST_FILENAME
        if path.resolve() != root_manifest.resolve():
            manifests.append((path, _read_manifest(path)))

    members: dict[str, WorkspaceMember] = {}
    for path, manifest in manifests:
        package = manifest.get('package')
        name = package.get('name') if isinstance(package, dict) else None
        if not isinstance(name, str) or not name:
            raise _manifest_error(path, 'missing [package].name')
        if name in members:
            raise _manifest_error(path, f'crate {name!r} is also defined in {members[name].manifest_path}')
        members[name] = WorkspaceMember(
            name=name,
            manifest_path=path,
            publishable=_is_publishable(package, workspace_package),
            dependencies=_dependency_names(manifest, inherited),
        )

    logger.info(
        'workspace_loaded',
        root=str(workspace_root),
        members=len(members),
        publishable=sum(1 for m in members.values() if m.publishable),
    )
    return members


__all__ = [
    'MANIFEST_FILENAME',
    'WorkspaceMember',
    'load_workspace',
]
