"""Project API schemas."""

from __future__ import annotations

from pydantic import BaseModel

from procon.models.action import Phase
from procon.models.project import ProjectStatus


class ProjectSummary(BaseModel):
    """Declared and applied view of one project."""

    name: str
    declared: bool
    applied: bool
    status: ProjectStatus | None = None
    failed_phase: Phase | None = None
    unit: str | None = None


class ProjectsResponse(BaseModel):
    """Collection response for projects."""

    items: list[ProjectSummary]
