"""Human-readable plan and apply reports."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from procon.core.executor import ApplyReport, group_by_phase
from procon.models.action import Action, ActionStatus, ConfigChange, Phase, kind_family


def render_changes(changes: Mapping[str, ConfigChange], phases: Mapping[str, Sequence[Phase]]) -> list[str]:
    if not phases:
        return ["No changes."]
    lines = []
    for name, project_phases in phases.items():
        change = changes.get(name)
        label = change.value if change is not None else "resume"
        lines.append(f"{name}: {label} -> {', '.join(phase.value for phase in project_phases)}")
    return lines


def render_actions(actions: Sequence[Action], *, would_run: bool = False) -> list[str]:
    lines: list[str] = []
    for phase, bucket in group_by_phase(actions):
        lines.append(f"Phase: {phase.value}")
        for action in bucket:
            if would_run:
                lines.append(f"  would run: {action.project_name} [{kind_family(action.kind)}] {action.describe()}")
            else:
                lines.append(f"  {action}")
    return lines


def render_apply(report: ApplyReport) -> list[str]:
    lines = render_actions(report.actions, would_run=report.dry_run)
    if report.dry_run:
        lines.append(f"Dry run: {len(report.actions)} actions not executed.")
        return lines
    lines.append(
        "Summary: "
        f"{report.count(ActionStatus.DONE)} done, "
        f"{report.count(ActionStatus.FAILED)} failed, "
        f"{report.count(ActionStatus.CANCELLED)} cancelled"
    )
    for name, phase in sorted(report.failed.items()):
        lines.append(f"Project {name} failed during {phase.value}")
    return lines
