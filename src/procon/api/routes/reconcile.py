"""Plan and apply routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from procon.api.deps import get_instance_manager
from procon.api.routes.common import translate_errors
from procon.api.schemas.reconcile import ActionView, ApplyRequest, ApplyResponse, PlanResponse
from procon.core.instance_manager import InstanceManager

router = APIRouter(prefix="/api/v1", tags=["reconcile"])


@router.get("/plan", response_model=PlanResponse)
async def get_plan(
    project: list[str] | None = Query(default=None),
    manager: InstanceManager = Depends(get_instance_manager),
) -> PlanResponse:
    with translate_errors():
        planned = await manager.plan(project)
    return PlanResponse(
        changes=planned.changes,
        phases=planned.phases,
        actions=[ActionView.from_action(action) for action in planned.actions],
    )


@router.post("/apply", response_model=ApplyResponse)
async def post_apply(
    request: ApplyRequest,
    manager: InstanceManager = Depends(get_instance_manager),
) -> ApplyResponse:
    if request.dry_run:
        manager = manager.with_settings(dry_run=True)
    with translate_errors():
        result = await manager.apply(request.projects)
    return ApplyResponse(
        actions=[ActionView.from_action(action) for action in result.report.actions],
        failed=result.report.failed,
        dry_run=result.report.dry_run,
        persisted=result.snapshot is not None,
    )
