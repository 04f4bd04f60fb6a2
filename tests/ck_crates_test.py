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

"""Tests for cratekit.crates."""

from __future__ import annotations

from pathlib import Path

import pytest
from cratekit.api import plan_crates
from cratekit.crates import PLAN_FILENAME, Crate, load_crates
from cratekit.errors import E, CrateKitError
from cratekit.logging import configure_logging
from cratekit.workspace import WorkspaceMember

configure_logging(quiet=True)

_PLAN = """\
[[crate]]
name = "sp-std"
from = "20.0.0"
to = "21.0.0"
bump = "major"
reason = "changed"

[[crate]]
name = "sp-core"
to = "21.0.0"
dependencies = ["sp-std", "serde"]

[[crate]]
name = "sp-test-utils"
version = "0.1.0"
publish = false
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / PLAN_FILENAME
    path.write_text(content, encoding='utf-8')
    return path


class TestCrate:
    """Tests for the Crate record."""

    def test_make(self) -> None:
        """make() accepts any iterable of dependency names."""
        crate = Crate.make('a', '1.0.0', ['b', 'c', 'b'])
        assert crate.dependency_names == frozenset({'b', 'c'})
        assert crate.publish is True

    def test_frozen(self) -> None:
        """Crates are immutable."""
        crate = Crate.make('a')
        with pytest.raises(AttributeError):
            crate.name = 'b'  # type: ignore[misc]


class TestLoadCrates:
    """Tests for load_crates()."""

    def test_reads_entries_in_order(self, tmp_path: Path) -> None:
        """Entries come back in file order with extra keys ignored."""
        crates = load_crates(_write(tmp_path, _PLAN))

        assert [c.name for c in crates] == ['sp-std', 'sp-core', 'sp-test-utils']
        assert crates[0].version == '21.0.0'
        assert crates[1].dependency_names == frozenset({'sp-std', 'serde'})
        assert crates[2].version == '0.1.0'
        assert crates[2].publish is False

    def test_directory_argument(self, tmp_path: Path) -> None:
        """A directory resolves to its Plan.toml."""
        _write(tmp_path, _PLAN)
        assert len(load_crates(tmp_path)) == 3

    def test_empty_plan(self, tmp_path: Path) -> None:
        """A plan without [[crate]] entries is an empty list."""
        assert load_crates(_write(tmp_path, '')) == []

    def test_missing(self, tmp_path: Path) -> None:
        """No plan file is CK-PLAN-NOT-FOUND."""
        with pytest.raises(CrateKitError) as exc_info:
            load_crates(tmp_path)
        assert exc_info.value.code == E.PLAN_NOT_FOUND

    def test_parse_error(self, tmp_path: Path) -> None:
        """Broken TOML is CK-PLAN-PARSE-ERROR."""
        with pytest.raises(CrateKitError) as exc_info:
            load_crates(_write(tmp_path, '[[crate]\nname = '))
        assert exc_info.value.code == E.PLAN_PARSE_ERROR

    def test_crate_not_an_array(self, tmp_path: Path) -> None:
        """crate must be an array of tables."""
        with pytest.raises(CrateKitError) as exc_info:
            load_crates(_write(tmp_path, 'crate = "sp-core"\n'))
        assert exc_info.value.code == E.PLAN_PARSE_ERROR

    @pytest.mark.parametrize(
        'entry',
        [
            'to = "1.0.0"',
            'name = "a"',
            'name = "a"\nto = "1.0.0"\npublish = "yes"',
            'name = "a"\nto = "1.0.0"\ndependencies = "b"',
            'name = "a"\nto = 1',
        ],
    )
    def test_invalid_entry(self, tmp_path: Path, entry: str) -> None:
        """Malformed entries are CK-PLAN-INVALID-CRATE."""
        with pytest.raises(CrateKitError) as exc_info:
            load_crates(_write(tmp_path, f'[[crate]]\n{entry}\n'))
        assert exc_info.value.code == E.PLAN_INVALID_CRATE

    def test_duplicate(self, tmp_path: Path) -> None:
        """The same name twice is CK-PLAN-DUPLICATE-CRATE."""
        content = '[[crate]]\nname = "a"\nto = "1"\n\n[[crate]]\nname = "a"\nto = "2"\n'
        with pytest.raises(CrateKitError) as exc_info:
            load_crates(_write(tmp_path, content))
        assert exc_info.value.code == E.PLAN_DUPLICATE_CRATE


_GENERATED_PLAN = """\
[[crate]]
name = "sp-core"
from = "20.0.0"
to = "21.0.0"

[[crate]]
name = "sp-std"
from = "20.0.0"
to = "21.0.0"
"""


def _members() -> dict[str, WorkspaceMember]:
    return {
        'sp-std': WorkspaceMember(name='sp-std', manifest_path=Path('std/Cargo.toml')),
        'sp-core': WorkspaceMember(
            name='sp-core',
            manifest_path=Path('core/Cargo.toml'),
            dependencies=frozenset({'sp-std', 'serde', 'sp-test-utils'}),
        ),
        'sp-test-utils': WorkspaceMember(
            name='sp-test-utils',
            manifest_path=Path('test-utils/Cargo.toml'),
            publishable=False,
        ),
    }


class TestWorkspaceDependencies:
    """Dependencies come from the workspace unless the plan lists them."""

    def test_generated_plan_has_no_edges_on_its_own(self, tmp_path: Path) -> None:
        """Without workspace members, generator output carries no dependencies."""
        crates = load_crates(_write(tmp_path, _GENERATED_PLAN))
        assert all(c.dependency_names == frozenset() for c in crates)

    def test_dependencies_from_workspace(self, tmp_path: Path) -> None:
        """Publishable workspace members become the crate's dependencies."""
        crates = load_crates(_write(tmp_path, _GENERATED_PLAN), members=_members())
        by_name = {c.name: c for c in crates}
        assert by_name['sp-core'].dependency_names == frozenset({'sp-std'})
        assert by_name['sp-std'].dependency_names == frozenset()

    def test_generated_plan_orders_dependencies_first(self, tmp_path: Path) -> None:
        """A dependent listed first still lands in a later batch."""
        crates = load_crates(_write(tmp_path, _GENERATED_PLAN), members=_members())
        assert plan_crates(crates, 10).names() == [['sp-std'], ['sp-core']]

    def test_plan_list_overrides_workspace(self, tmp_path: Path) -> None:
        """An explicit dependencies list wins, even when empty."""
        content = '[[crate]]\nname = "sp-core"\nto = "21.0.0"\ndependencies = []\n'
        crates = load_crates(_write(tmp_path, content), members=_members())
        assert crates[0].dependency_names == frozenset()

    def test_crate_outside_workspace(self, tmp_path: Path) -> None:
        """A plan crate the workspace does not know has no dependencies."""
        content = '[[crate]]\nname = "sp-unknown"\nto = "1.0.0"\n'
        crates = load_crates(_write(tmp_path, content), members=_members())
        assert crates[0].dependency_names == frozenset()
