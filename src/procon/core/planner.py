"""Expand per-project phase lists into concrete actions."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path

from procon.models.action import (
    Action,
    ActionKind,
    CopyPath,
    GitClone,
    NixShell,
    Phase,
    SystemCtl,
    SystemCtlVerb,
    Unzip,
    WriteFile,
)
from procon.models.project import GitSource, NoSource, PathSource, Project, ZipSource
from procon.settings import RuntimeSettings

logger = logging.getLogger(__name__)


def render_unit(
    project: Project,
    root: Path,
    self_command: Sequence[str],
    unit_prefix: str,
    nix_shell_path: Path,
) -> str:
    """Return the unit descriptor for ``project``.

    The unit re-invokes procon's ``run`` subcommand so the dependency shell is
    assembled in one place. The dependency shell path applied with is pinned
    in the unit environment.
    """
    exec_start = shlex.join([*self_command, "--root", str(root), "run", project.name])
    return (
        "[Unit]\n"
        f"Description=procon project {project.name} ({project.unit_name(unit_prefix)})\n"
        "\n"
        "[Service]\n"
        f"WorkingDirectory={root}\n"
        f'Environment="PROCON_NIX_SHELL={nix_shell_path}"\n'
        f"ExecStart={exec_start}\n"
        f"Restart={project.service.restart_on.unit_value}\n"
        "\n"
        "[Install]\n"
        "WantedBy=default.target\n"
    )


def source_actions(project: Project, root: Path) -> list[Action]:
    """Source acquisition for the Setup phase."""
    target = project.source_path(root)
    kind: ActionKind
    match project.source:
        case NoSource():
            return []
        case PathSource(path=path):
            kind = CopyPath(source=project.resolve(path), target=target)
        case GitSource(url=url):
            kind = GitClone(url=url, target=target)
        case ZipSource(archive=archive):
            kind = Unzip(archive=project.resolve(archive), target=target)
    return [Action(project.name, Phase.SETUP, kind)]


class PlanBuilder:
    """Build the flat action list for one apply pass."""

    def __init__(self, settings: RuntimeSettings) -> None:
        self._settings = settings

    def make_actions(
        self,
        current: Mapping[str, Project],
        previous: Mapping[str, Project],
        phases: Mapping[str, Sequence[Phase]],
    ) -> list[Action]:
        actions: list[Action] = []
        for name in sorted(phases):
            project = current.get(name) or previous.get(name)
            if project is None:
                continue
            for phase in phases[name]:
                actions.extend(self.phase_actions(project, phase))
        return actions

    def phase_actions(self, project: Project, phase: Phase) -> list[Action]:
        root = self._settings.root
        unit = project.unit_name(self._settings.unit_prefix)
        match phase:
            case Phase.SETUP:
                actions = source_actions(project, root)
                if project.has_service:
                    service_path = project.service_path(root)
                    unit_text = render_unit(
                        project,
                        root,
                        self._settings.self_command,
                        self._settings.unit_prefix,
                        self._settings.nix_shell_path,
                    )
                    actions.append(
                        Action(project.name, phase, WriteFile(path=service_path, content=unit_text))
                    )
                    actions.append(
                        Action(
                            project.name,
                            phase,
                            CopyPath(source=service_path, target=self._settings.unit_dir / unit),
                        )
                    )
                actions.extend(self._command_actions(project, phase, project.phase.setup))
                return actions
            case Phase.UPDATE:
                # Source refresh is not implemented; only the setup commands re-run.
                return self._command_actions(project, phase, project.phase.setup)
            case Phase.BUILD:
                return self._command_actions(project, phase, project.phase.build)
            case Phase.START:
                if project.service.autostart and project.has_service:
                    return [Action(project.name, phase, SystemCtl(SystemCtlVerb.RESTART, unit))]
                return []
            case Phase.STOP:
                if project.has_service:
                    return [Action(project.name, phase, SystemCtl(SystemCtlVerb.STOP, unit))]
                return []
            case Phase.TEARDOWN:
                logger.warning(
                    "Teardown is not implemented; artifacts and unit of %s are left in place",
                    project.name,
                )
                return []

    def _command_actions(
        self, project: Project, phase: Phase, commands: Sequence[str]
    ) -> list[Action]:
        workdir = project.source_path(self._settings.root)
        deps = tuple(project.nix_deps)
        env = tuple(sorted(project.env.items()))
        return [
            Action(
                project.name,
                phase,
                NixShell(workdir=workdir, deps=deps, commands=(command,), env=env),
            )
            for command in commands
        ]
