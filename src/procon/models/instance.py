"""Instance snapshot model."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from procon.models.project import Project

STATE_FILENAME = "state.db"


class Instance(BaseModel):
    """Working root plus the projects known at one point in time."""

    root: Path
    projects: dict[str, Project] = Field(default_factory=dict)

    @property
    def projects_path(self) -> Path:
        return self.root / "projects"

    @property
    def artifacts_path(self) -> Path:
        return self.root / "artifacts"

    @property
    def state_path(self) -> Path:
        return self.root / STATE_FILENAME

    def select(self, project_filter: frozenset[str] | None) -> dict[str, Project]:
        """Return the projects visible under ``project_filter``."""
        if project_filter is None:
            return dict(self.projects)
        return {name: project for name, project in self.projects.items() if name in project_filter}
