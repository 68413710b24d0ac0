"""Dependency shell invocations."""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class CommandResult:
    """Outcome of one external process."""

    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def failure_reason(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            return detail
        return f"{self.command} exited with status {self.returncode}"


class DependencyShell:
    """Run commands with a declared dependency set available.

    Command lists are joined with ``&&`` into a single ``--run`` argument so a
    failing command stops the rest of the list.
    """

    def __init__(self, nix_shell_path: Path) -> None:
        self._nix_shell_path = nix_shell_path

    def argv(self, deps: Sequence[str], commands: Sequence[str]) -> list[str]:
        return [str(self._nix_shell_path), "-p", *deps, "--run", " && ".join(commands)]

    def run(
        self,
        workdir: Path,
        deps: Sequence[str],
        commands: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
    ) -> CommandResult:
        """Run ``commands`` in ``workdir``; spawn errors propagate as ``OSError``."""
        command = self.argv(deps, commands)
        completed = subprocess.run(
            command,
            cwd=workdir,
            env=_merged_env(env),
            check=False,
            capture_output=capture,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        return CommandResult(
            command=shlex.join(command),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def unzip(self, archive: Path, target: Path) -> CommandResult:
        target.mkdir(parents=True, exist_ok=True)
        unpack = f"unzip -o {shlex.quote(str(archive))} -d {shlex.quote(str(target))}"
        return self.run(target, ["unzip"], [unpack])


def _merged_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if not env:
        return None
    return {**os.environ, **env}
