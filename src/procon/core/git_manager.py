"""Git operations for project sources."""

from __future__ import annotations

import subprocess
from pathlib import Path

from procon.core.shell import CommandResult


class GitManager:
    """Thin wrapper around git CLI."""

    def clone(self, url: str, target: Path) -> CommandResult:
        target.parent.mkdir(parents=True, exist_ok=True)
        return self._run_git(target.parent, "clone", url, str(target))

    @staticmethod
    def _run_git(cwd: Path, *args: str) -> CommandResult:
        command = ["git", *args]
        completed = subprocess.run(
            command,
            cwd=cwd,
            check=False,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        return CommandResult(
            command=" ".join(command),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
