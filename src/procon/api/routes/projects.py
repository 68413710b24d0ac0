"""Project routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from procon.api.deps import get_instance_manager
from procon.api.routes.common import translate_errors
from procon.api.schemas.projects import ProjectsResponse, ProjectSummary
from procon.core.instance_manager import InstanceManager
from procon.models.project import Project

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.get("", response_model=ProjectsResponse)
async def list_projects(
    manager: InstanceManager = Depends(get_instance_manager),
) -> ProjectsResponse:
    with translate_errors():
        declared = manager.load_declared().projects
    applied = (await manager.load_state()).projects
    prefix = manager.settings.unit_prefix

    items = []
    for name in sorted(declared.keys() | applied.keys()):
        project = declared.get(name) or applied[name]
        state = applied.get(name)
        items.append(
            ProjectSummary(
                name=name,
                declared=name in declared,
                applied=state is not None,
                status=state.status if state is not None else None,
                failed_phase=state.failed_phase if state is not None else None,
                unit=project.unit_name(prefix) if project.has_service else None,
            )
        )
    return ProjectsResponse(items=items)


@router.get("/{name}")
async def get_project(
    name: str,
    manager: InstanceManager = Depends(get_instance_manager),
) -> dict[str, Project]:
    with translate_errors():
        project = manager.load_declared().projects.get(name)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return {"project": project}
