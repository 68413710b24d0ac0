"""Plan and apply API schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from procon.models.action import Action, ActionStatus, ConfigChange, Phase, kind_family


class ActionView(BaseModel):
    """Serializable view of one action."""

    project: str
    phase: Phase
    family: str
    description: str
    status: ActionStatus
    reason: str | None = None

    @classmethod
    def from_action(cls, action: Action) -> ActionView:
        return cls(
            project=action.project_name,
            phase=action.phase,
            family=kind_family(action.kind),
            description=action.describe(),
            status=action.status,
            reason=action.reason,
        )


class PlanResponse(BaseModel):
    """Changes, phases and actions of a plan."""

    changes: dict[str, ConfigChange]
    phases: dict[str, list[Phase]]
    actions: list[ActionView]


class ApplyRequest(BaseModel):
    """Apply payload."""

    projects: list[str] = Field(default_factory=list)
    dry_run: bool = False


class ApplyResponse(BaseModel):
    """Outcome of an apply pass."""

    actions: list[ActionView]
    failed: dict[str, Phase]
    dry_run: bool
    persisted: bool
