"""Phase-ordered action execution with per-project failure containment."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from procon.core.git_manager import GitManager
from procon.core.service_manager import ServiceManager, ServiceManagerError
from procon.core.shell import CommandResult, DependencyShell
from procon.models.action import (
    PHASE_ORDER,
    Action,
    ActionKind,
    ActionStatus,
    CopyPath,
    CreateDirAll,
    GitClone,
    NixShell,
    Phase,
    SystemCtl,
    Unzip,
    WriteFile,
)
from procon.settings import RuntimeSettings

logger = logging.getLogger(__name__)


class ActionFailed(Exception):
    """Raised internally when one action does not succeed."""


@dataclass(slots=True)
class ApplyReport:
    """Actions of one apply pass and the projects that failed."""

    actions: list[Action]
    failed: dict[str, Phase] = field(default_factory=dict)
    dry_run: bool = False

    def succeeded(self, project_name: str) -> bool:
        return project_name not in self.failed

    @property
    def ok(self) -> bool:
        return not self.failed

    def count(self, status: ActionStatus) -> int:
        return sum(1 for action in self.actions if action.status is status)


def group_by_phase(actions: Iterable[Action]) -> list[tuple[Phase, list[Action]]]:
    """Bucket actions by phase, buckets in global phase order, input order kept inside."""
    buckets: dict[Phase, list[Action]] = {phase: [] for phase in PHASE_ORDER}
    for action in actions:
        buckets[action.phase].append(action)
    return [(phase, bucket) for phase, bucket in buckets.items() if bucket]


class Executor:
    """Run actions sequentially, one global phase bucket at a time."""

    def __init__(
        self,
        settings: RuntimeSettings,
        *,
        shell: DependencyShell,
        git: GitManager,
        service_manager: ServiceManager,
    ) -> None:
        self._settings = settings
        self._shell = shell
        self._git = git
        self._services = service_manager

    def apply(self, actions: Sequence[Action], *, directories: Iterable[Path] = ()) -> ApplyReport:
        report = ApplyReport(actions=list(actions), dry_run=self._settings.dry_run)
        if self._settings.dry_run:
            for action in report.actions:
                logger.info("would run: %s %s %s", action.phase.value, action.project_name, action.describe())
            return report

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

        for phase, bucket in group_by_phase(report.actions):
            logger.info("Phase: %s (%d actions)", phase.value, len(bucket))
            reload_error: str | None = None
            if phase is Phase.START:
                reload_error = self._daemon_reload()

            for action in bucket:
                if action.project_name in report.failed:
                    action.mark_cancelled()
                elif reload_error is not None:
                    action.mark_failed(reload_error)
                    report.failed[action.project_name] = action.phase
                else:
                    self._run_action(action, report)
                self._log_outcome(action)

        return report

    def _daemon_reload(self) -> str | None:
        if self._settings.safe_mode:
            logger.info("safe mode: skipping daemon-reload")
            return None
        logger.info("Sub-phase: daemon-reload")
        try:
            self._services.daemon_reload()
        except ServiceManagerError as exc:
            logger.error("%s", exc)
            return str(exc)
        return None

    def _run_action(self, action: Action, report: ApplyReport) -> None:
        try:
            self.execute(action.kind)
        except ActionFailed as exc:
            action.mark_failed(str(exc))
            report.failed[action.project_name] = action.phase
        else:
            action.mark_done()

    def execute(self, kind: ActionKind) -> None:
        """Perform one side effect; raises ``ActionFailed`` with the reason."""
        match kind:
            case NixShell(workdir=workdir, deps=deps, commands=commands, env=env):
                self._check(lambda: self._shell.run(workdir, deps, commands, env=dict(env)))
            case GitClone(url=url, target=target):
                self._check(lambda: self._git.clone(url, target))
            case Unzip(archive=archive, target=target):
                self._check(lambda: self._shell.unzip(archive, target))
            case CreateDirAll() | CopyPath() | WriteFile():
                try:
                    _apply_filesystem(kind)
                except OSError as exc:
                    raise ActionFailed(str(exc)) from exc
            case SystemCtl(verb=verb, unit=unit):
                if self._settings.safe_mode:
                    return
                self._check(lambda: self._services.run(verb, unit))

    @staticmethod
    def _check(invoke: Callable[[], CommandResult]) -> None:
        try:
            result = invoke()
        except (OSError, ValueError) as exc:
            raise ActionFailed(str(exc)) from exc
        if not result.ok:
            raise ActionFailed(result.failure_reason())

    @staticmethod
    def _log_outcome(action: Action) -> None:
        if action.status is ActionStatus.FAILED:
            logger.warning("%s", action)
        else:
            logger.info("%s", action)


def _apply_filesystem(kind: CreateDirAll | CopyPath | WriteFile) -> None:
    match kind:
        case CreateDirAll(path=path):
            path.mkdir(parents=True, exist_ok=True)
        case CopyPath(source=source, target=target):
            if source.is_dir():
                shutil.copytree(source, target, dirs_exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
        case WriteFile(path=path, content=content):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
