"""Snapshot comparison and phase planning."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TypeAlias

from procon.models.action import ConfigChange, Phase
from procon.models.project import Project, ProjectStatus

ProjectSet: TypeAlias = Mapping[str, Project]


def normalize_filter(names: Iterable[str] | None) -> frozenset[str] | None:
    """Turn an optional name list into a filter; an empty list means no filter."""
    if names is None:
        return None
    selected = frozenset(names)
    return selected or None


def compare(
    current: ProjectSet,
    previous: ProjectSet,
    project_filter: frozenset[str] | None = None,
) -> dict[str, ConfigChange]:
    """Classify every project that differs between two snapshots."""

    def visible(name: str) -> bool:
        return project_filter is None or name in project_filter

    changes: dict[str, ConfigChange] = {}
    for name, project in current.items():
        if not visible(name):
            continue
        old = previous.get(name)
        if old is None:
            changes[name] = ConfigChange.ADDED
        elif not old.same_config(project):
            changes[name] = ConfigChange.CHANGED

    for name in previous:
        if visible(name) and name not in current:
            changes[name] = ConfigChange.REMOVED

    return changes


def resume_phases(failed_phase: Phase) -> list[Phase]:
    """Phases that pick a failed project back up from where it stopped."""
    match failed_phase:
        case Phase.TEARDOWN:
            return [Phase.TEARDOWN]
        case Phase.SETUP:
            return [Phase.SETUP, Phase.BUILD, Phase.START]
        case Phase.UPDATE:
            return [Phase.UPDATE, Phase.BUILD, Phase.START]
        case Phase.BUILD:
            return [Phase.BUILD, Phase.START]
        case Phase.START:
            return [Phase.START]
        case Phase.STOP:
            return [Phase.STOP]


def plan(
    current: ProjectSet,
    previous: ProjectSet,
    project_filter: frozenset[str] | None = None,
    *,
    retry_failed: bool = True,
) -> dict[str, list[Phase]]:
    """Map every project needing work to its ordered phase list, sorted by name."""
    phases = {
        name: change.to_phases()
        for name, change in compare(current, previous, project_filter).items()
    }

    if retry_failed:
        for name, project in current.items():
            if name in phases or (project_filter is not None and name not in project_filter):
                continue
            old = previous.get(name)
            if old is None or old.status is not ProjectStatus.FAILED or old.failed_phase is None:
                continue
            phases[name] = resume_phases(old.failed_phase)

    return dict(sorted(phases.items()))
