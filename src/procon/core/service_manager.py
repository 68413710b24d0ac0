"""Per-user service manager client."""

from __future__ import annotations

import subprocess
from typing import Protocol

from procon.core.shell import CommandResult
from procon.models.action import SystemCtlVerb


class ServiceManagerError(RuntimeError):
    """Raised when a global service-manager precondition fails."""


class ServiceManager(Protocol):
    def run(self, verb: SystemCtlVerb, unit: str) -> CommandResult: ...

    def daemon_reload(self) -> None: ...


class SystemCtlClient:
    """Invoke ``systemctl`` scoped to the invoking user."""

    def __init__(self, executable: str = "systemctl", *, user: bool = True) -> None:
        self._executable = executable
        self._user = user

    def run(self, verb: SystemCtlVerb, unit: str) -> CommandResult:
        return self._run(verb.value, unit)

    def daemon_reload(self) -> None:
        try:
            result = self._run("daemon-reload")
        except OSError as exc:
            msg = f"daemon-reload failed: {exc}"
            raise ServiceManagerError(msg) from exc
        if not result.ok:
            msg = f"daemon-reload failed: {result.failure_reason()}"
            raise ServiceManagerError(msg)

    def _run(self, *args: str) -> CommandResult:
        command = [self._executable]
        if self._user:
            command.append("--user")
        command.extend(args)
        completed = subprocess.run(
            command,
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
