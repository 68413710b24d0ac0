"""Phase and action domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeAlias


class Phase(str, Enum):
    """Lifecycle stage of a project, declared in global execution order."""

    TEARDOWN = "teardown"
    SETUP = "setup"
    UPDATE = "update"
    BUILD = "build"
    START = "start"
    STOP = "stop"

    @property
    def rank(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)


class ConfigChange(str, Enum):
    """Classification of a project between two snapshots."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"

    def to_phases(self) -> list[Phase]:
        match self:
            case ConfigChange.ADDED:
                return [Phase.SETUP, Phase.BUILD, Phase.START]
            case ConfigChange.CHANGED:
                return [Phase.TEARDOWN, Phase.SETUP, Phase.BUILD, Phase.START]
            case ConfigChange.REMOVED:
                return [Phase.STOP, Phase.TEARDOWN]


class SystemCtlVerb(str, Enum):
    """Unit verbs understood by the service manager."""

    RESTART = "restart"
    START = "start"
    STOP = "stop"
    ENABLE = "enable"
    DISABLE = "disable"


@dataclass(frozen=True, slots=True)
class GitClone:
    """Clone a repository into ``target``."""

    url: str
    target: Path

    def describe(self) -> str:
        return f"git clone {self.url} {self.target}"


@dataclass(frozen=True, slots=True)
class NixShell:
    """Run commands inside the dependency shell at ``workdir``."""

    workdir: Path
    deps: tuple[str, ...]
    commands: tuple[str, ...]
    env: tuple[tuple[str, str], ...] = ()

    def describe(self) -> str:
        deps = " ".join(self.deps) or "-"
        return f"nix-shell [{deps}] in {self.workdir}: {' && '.join(self.commands)}"


@dataclass(frozen=True, slots=True)
class Unzip:
    """Unpack ``archive`` into ``target``."""

    archive: Path
    target: Path

    def describe(self) -> str:
        return f"unzip {self.archive} -> {self.target}"


@dataclass(frozen=True, slots=True)
class CreateDirAll:
    path: Path

    def describe(self) -> str:
        return f"mkdir -p {self.path}"


@dataclass(frozen=True, slots=True)
class CopyPath:
    source: Path
    target: Path

    def describe(self) -> str:
        return f"copy {self.source} -> {self.target}"


@dataclass(frozen=True, slots=True)
class WriteFile:
    path: Path
    content: str

    def describe(self) -> str:
        return f"write {self.path} ({len(self.content)} bytes)"


@dataclass(frozen=True, slots=True)
class SystemCtl:
    """Service-manager verb addressed at one unit."""

    verb: SystemCtlVerb
    unit: str

    def describe(self) -> str:
        return f"systemctl {self.verb.value} {self.unit}"


CommandKind: TypeAlias = GitClone | NixShell | Unzip
FilesystemKind: TypeAlias = CreateDirAll | CopyPath | WriteFile
ActionKind: TypeAlias = CommandKind | FilesystemKind | SystemCtl


def kind_family(kind: ActionKind) -> str:
    """Return the family label of an action kind."""
    match kind:
        case GitClone() | NixShell() | Unzip():
            return "command"
        case CreateDirAll() | CopyPath() | WriteFile():
            return "filesystem"
        case SystemCtl():
            return "systemctl"


class ActionStatus(str, Enum):
    """Execution status of one action."""

    TODO = "todo"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class Action:
    """One side effect belonging to a (project, phase) pair."""

    project_name: str
    phase: Phase
    kind: ActionKind
    status: ActionStatus = ActionStatus.TODO
    reason: str | None = field(default=None)

    def mark_todo(self) -> None:
        self.status = ActionStatus.TODO
        self.reason = None

    def mark_done(self) -> None:
        self.status = ActionStatus.DONE
        self.reason = None

    def mark_failed(self, reason: str) -> None:
        self.status = ActionStatus.FAILED
        self.reason = reason

    def mark_cancelled(self) -> None:
        self.status = ActionStatus.CANCELLED
        self.reason = None

    def describe(self) -> str:
        return self.kind.describe()

    def __str__(self) -> str:
        line = f"{self.status.value}: {self.phase.value} {self.project_name} {self.describe()}"
        if self.reason:
            line += f" ({self.reason})"
        return line
