"""Coordinate the diff, plan, execute and persist loop."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from procon.config.loader import load_instance
from procon.core.executor import ApplyReport, Executor
from procon.core.git_manager import GitManager
from procon.core.planner import PlanBuilder
from procon.core.reconciler import compare, normalize_filter, plan
from procon.core.service_manager import ServiceManager, SystemCtlClient
from procon.core.shell import DependencyShell
from procon.db.store import SQLiteStore
from procon.models.action import Action, ConfigChange, Phase
from procon.models.instance import Instance
from procon.models.project import ProjectStatus
from procon.settings import RuntimeSettings

logger = logging.getLogger(__name__)


class ProjectNotFoundError(LookupError):
    """Raised when a named project is not part of the applied snapshot."""


@dataclass(slots=True)
class PlanResult:
    """Everything computed before any side effect happens."""

    current: Instance
    previous: Instance
    project_filter: frozenset[str] | None
    changes: dict[str, ConfigChange]
    phases: dict[str, list[Phase]]
    actions: list[Action]


@dataclass(slots=True)
class ApplyResult:
    """Plan plus the executor report and the snapshot that was persisted."""

    plan: PlanResult
    report: ApplyReport
    snapshot: Instance | None


class InstanceManager:
    """Run reconciliation passes against one working root."""

    def __init__(
        self,
        settings: RuntimeSettings,
        store: SQLiteStore | None = None,
        *,
        shell: DependencyShell | None = None,
        git: GitManager | None = None,
        service_manager: ServiceManager | None = None,
    ) -> None:
        self._settings = settings
        self._store = store or SQLiteStore(Instance(root=settings.root).state_path)
        self._shell = shell or DependencyShell(settings.nix_shell_path)
        self._git = git or GitManager()
        self._services = service_manager or SystemCtlClient()
        self._builder = PlanBuilder(settings)

    @property
    def settings(self) -> RuntimeSettings:
        return self._settings

    def with_settings(self, **changes: object) -> InstanceManager:
        """Return a manager sharing collaborators but with adjusted settings."""
        return InstanceManager(
            replace(self._settings, **changes),
            self._store,
            shell=self._shell,
            git=self._git,
            service_manager=self._services,
        )

    def load_declared(self) -> Instance:
        return load_instance(self._settings.root)

    async def load_state(self) -> Instance:
        return await self._store.load_snapshot(self._settings.root)

    async def init(self) -> Instance:
        """Create the working tree layout and an empty state file."""
        instance = Instance(root=self._settings.root)
        instance.projects_path.mkdir(parents=True, exist_ok=True)
        instance.artifacts_path.mkdir(parents=True, exist_ok=True)
        if not self._store.path.exists():
            await self._store.save_snapshot(instance)
            logger.info("Initialized %s", instance.root)
        return instance

    async def plan(self, projects: Iterable[str] | None = None) -> PlanResult:
        project_filter = normalize_filter(projects)
        current = self.load_declared()
        previous = await self.load_state()
        changes = compare(current.projects, previous.projects, project_filter)
        phases = plan(
            current.projects,
            previous.projects,
            project_filter,
            retry_failed=self._settings.retry_failed,
        )
        actions = self._builder.make_actions(current.projects, previous.projects, phases)
        return PlanResult(
            current=current,
            previous=previous,
            project_filter=project_filter,
            changes=changes,
            phases=phases,
            actions=actions,
        )

    async def apply(self, projects: Iterable[str] | None = None) -> ApplyResult:
        """Plan, execute and persist; persistence happens even when projects fail."""
        planned = await self.plan(projects)
        executor = Executor(
            self._settings,
            shell=self._shell,
            git=self._git,
            service_manager=self._services,
        )
        report = executor.apply(planned.actions, directories=self._directories(planned))
        if self._settings.dry_run:
            return ApplyResult(plan=planned, report=report, snapshot=None)

        snapshot = self.next_snapshot(planned, report)
        await self._store.save_snapshot(snapshot)
        if report.failed:
            logger.warning("Failed projects: %s", ", ".join(sorted(report.failed)))
        return ApplyResult(plan=planned, report=report, snapshot=snapshot)

    def next_snapshot(self, planned: PlanResult, report: ApplyReport) -> Instance:
        """Fold the run outcome into the declared projects.

        Projects outside the filter keep their previous snapshot entry.
        """
        project_filter = planned.project_filter
        previous = planned.previous.projects
        projects = dict(previous) if project_filter is not None else {}

        for name, project in planned.current.projects.items():
            if project_filter is not None and name not in project_filter:
                continue
            if name in report.failed:
                projects[name] = project.with_status(ProjectStatus.FAILED, report.failed[name])
            elif name in planned.phases:
                projects[name] = project.with_status(ProjectStatus.SUCCESS)
            elif name in previous:
                old = previous[name]
                projects[name] = project.with_status(old.status, old.failed_phase)
            else:
                projects[name] = project

        for name in planned.changes:
            if planned.changes[name] is ConfigChange.REMOVED:
                projects.pop(name, None)

        return Instance(root=self._settings.root, projects=projects)

    def clean(self, projects: Iterable[str] | None = None) -> list[Path]:
        """Remove artifact directories of declared projects."""
        project_filter = normalize_filter(projects)
        removed: list[Path] = []
        for name, project in sorted(self.load_declared().select(project_filter).items()):
            artifact_path = project.artifact_path(self._settings.root)
            if artifact_path.exists():
                shutil.rmtree(artifact_path)
                removed.append(artifact_path)
                logger.info("Removed artifacts of %s", name)
        return removed

    async def run_project(self, name: str) -> int:
        """Run an applied project's start commands in the foreground."""
        snapshot = await self.load_state()
        project = snapshot.projects.get(name)
        if project is None:
            msg = f"Project not found in applied state: {name}"
            raise ProjectNotFoundError(msg)
        if not project.phase.start:
            logger.warning("Project %s declares no start commands", name)
            return 0

        logger.info("Running %s", name)
        try:
            result = self._shell.run(
                project.source_path(self._settings.root),
                project.nix_deps,
                project.phase.start,
                env=project.env,
                capture=False,
            )
        except (OSError, ValueError) as exc:
            logger.error("Could not start %s: %s", name, exc)
            return 1
        if result.returncode < 0:
            # Shell convention for a child killed by a signal.
            logger.info("%s terminated by signal %d", name, -result.returncode)
            return 128 - result.returncode
        logger.info("%s exited with code %d", name, result.returncode)
        return result.returncode

    def _directories(self, planned: PlanResult) -> list[Path]:
        root = self._settings.root
        directories = [self._settings.unit_dir]
        for name in planned.phases:
            project = planned.current.projects.get(name)
            if project is None:
                continue
            directories.append(project.artifact_path(root))
            directories.append(project.source_path(root))
        return directories
