"""Project domain models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from procon.models.action import Phase

PROJECT_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"
DEFAULT_UNIT_PREFIX = "procon-proj-"
NIX_SCOPE = "nix"

_TRANSIENT_FIELDS = {"status", "failed_phase"}


class ProjectStatus(str, Enum):
    """Outcome of the last apply pass that touched a project."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class RestartOn(str, Enum):
    """Service restart policy."""

    NEVER = "never"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"

    @property
    def unit_value(self) -> str:
        return "no" if self is RestartOn.NEVER else self.value


class NoSource(BaseModel):
    kind: Literal["none"] = "none"


class PathSource(BaseModel):
    kind: Literal["path"] = "path"
    path: Path


class GitSource(BaseModel):
    kind: Literal["git"] = "git"
    url: str


class ZipSource(BaseModel):
    kind: Literal["zip"] = "zip"
    archive: Path


Source = Annotated[
    NoSource | PathSource | GitSource | ZipSource,
    Field(discriminator="kind"),
]

_SOURCE_SHORTHAND = {"path": "path", "git": "url", "zip": "archive"}


def _normalize_source(value: Any) -> Any:
    """Accept ``"none"`` and single-key tables such as ``{git = "..."}``."""
    if value is None or value == "none":
        return {"kind": "none"}
    if isinstance(value, dict) and "kind" not in value and len(value) == 1:
        ((key, inner),) = value.items()
        if key in _SOURCE_SHORTHAND:
            return {"kind": key, _SOURCE_SHORTHAND[key]: inner}
    return value


def _normalize_commands(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


class Phases(BaseModel):
    """Per-phase command lists."""

    model_config = ConfigDict(extra="forbid")

    setup: list[str] = Field(default_factory=list)
    update: list[str] = Field(default_factory=list)
    build: list[str] = Field(default_factory=list)
    start: list[str] = Field(default_factory=list)
    stop: list[str] = Field(default_factory=list)
    teardown: list[str] = Field(default_factory=list)

    @field_validator("setup", "update", "build", "start", "stop", "teardown", mode="before")
    @classmethod
    def _coerce_commands(cls, value: Any) -> Any:
        return _normalize_commands(value)


class ServiceConfig(BaseModel):
    """Service-manager behaviour of a project."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    autostart: bool = True
    restart_on: RestartOn = Field(default=RestartOn.NEVER, alias="restart-on")


class Project(BaseModel):
    """Declared project plus the outcome of its last apply."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(pattern=PROJECT_NAME_PATTERN)
    source: Source = Field(default_factory=NoSource)
    deps: dict[str, list[str]] = Field(default_factory=dict)
    phase: Phases = Field(default_factory=Phases)
    env: dict[str, str] = Field(default_factory=dict)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    definition_dir: Path = Path(".")
    status: ProjectStatus = ProjectStatus.PENDING
    failed_phase: Phase | None = None

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: Any) -> Any:
        return _normalize_source(value)

    def same_config(self, other: Project) -> bool:
        """Compare every declared field, ignoring execution status."""
        return self.model_dump(exclude=_TRANSIENT_FIELDS) == other.model_dump(
            exclude=_TRANSIENT_FIELDS
        )

    def with_status(self, status: ProjectStatus, failed_phase: Phase | None = None) -> Project:
        return self.model_copy(update={"status": status, "failed_phase": failed_phase})

    @property
    def nix_deps(self) -> list[str]:
        return list(self.deps.get(NIX_SCOPE, []))

    @property
    def has_service(self) -> bool:
        return bool(self.phase.start)

    def artifact_path(self, root: Path) -> Path:
        return root / "artifacts" / self.name

    def source_path(self, root: Path) -> Path:
        return self.artifact_path(root) / "source"

    def service_path(self, root: Path) -> Path:
        return self.artifact_path(root) / "daemon.service"

    def unit_name(self, prefix: str = DEFAULT_UNIT_PREFIX) -> str:
        return f"{prefix}{self.name}.service"

    def resolve(self, path: Path) -> Path:
        """Resolve a definition-relative path."""
        return path if path.is_absolute() else self.definition_dir / path
