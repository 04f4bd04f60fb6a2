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

"""Subprocess wrapper for the publish backends.

Every ``cargo`` invocation goes through :func:`run_command`, which logs
the command line, merges environment overrides onto ``os.environ``, and
returns a :class:`CommandResult`. Override *values* are never logged;
they routinely carry registry tokens.

The function is blocking. Async callers run it with
``asyncio.to_thread`` so one slow ``cargo publish`` does not stall the
other crates of the batch.
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - subprocess is the core purpose of this module
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from cratekit.logging import get_logger

log = get_logger('cratekit.backends.run')

# cargo publish waits for the index to update; give it room.
DEFAULT_TIMEOUT_SECONDS = 600


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed.
        return_code: Process exit code (0 = success).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration: Wall-clock duration in seconds.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single shell-style string."""
        return ' '.join(self.command)

    @property
    def output(self) -> str:
        """Stdout and stderr joined, for diagnostics."""
        return '\n'.join(part for part in (self.stdout.rstrip(), self.stderr.rstrip()) if part)


def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> CommandResult:
    """Run ``cmd`` to completion and capture its output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Variables layered over the current environment.
        timeout: Seconds before the process is killed.

    Returns:
        The :class:`CommandResult`. A non-zero exit is not an exception.

    Raises:
        subprocess.TimeoutExpired: If the command exceeds ``timeout``.
        OSError: If the executable cannot be started.
    """
    cmd_str = ' '.join(cmd)
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'), env_keys=sorted(env or {}))

    full_env: dict[str, str] | None = None
    if env:
        full_env = {**os.environ, **env}

    start = time.monotonic()
    try:
        result = subprocess.run(  # noqa: S603 - argv built by the backends, no shell
            cmd,
            cwd=cwd,
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        log.error('command_timeout', cmd=cmd_str, timeout=timeout, duration=time.monotonic() - start)
        raise

    cmd_result = CommandResult(
        command=list(cmd),
        return_code=result.returncode,
        stdout=result.stdout or '',
        stderr=result.stderr or '',
        duration=time.monotonic() - start,
    )
    if cmd_result.ok:
        log.debug('command_ok', cmd=cmd_str, duration=round(cmd_result.duration, 3))
    else:
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=cmd_result.return_code,
            stderr=cmd_result.stderr[:500],
        )
    return cmd_result


TimeoutExpired = subprocess.TimeoutExpired

__all__ = [
    'DEFAULT_TIMEOUT_SECONDS',
    'CommandResult',
    'TimeoutExpired',
    'run_command',
]
