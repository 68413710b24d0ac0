"""Load declarative project definitions from the working root."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError

from procon.models.instance import Instance
from procon.models.project import Project

logger = logging.getLogger(__name__)

DEFINITION_SUFFIX = ".toml"
_RESERVED_KEYS = frozenset({"status", "failed_phase", "definition_dir"})


class ConfigurationError(ValueError):
    """A project definition could not be read or validated."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


def load_project(path: Path) -> Project:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(path, f"invalid TOML: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(path, f"unreadable: {exc}") from exc

    reserved = sorted(_RESERVED_KEYS.intersection(data))
    if reserved:
        raise ConfigurationError(path, f"reserved keys are not allowed: {', '.join(reserved)}")

    try:
        return Project.model_validate({**data, "definition_dir": path.parent.resolve()})
    except ValidationError as exc:
        raise ConfigurationError(path, _format_validation_error(exc)) from exc


def discover(projects_path: Path) -> list[Path]:
    if not projects_path.is_dir():
        return []
    return sorted(path for path in projects_path.rglob(f"*{DEFINITION_SUFFIX}") if path.is_file())


def load_instance(root: Path) -> Instance:
    """Read every definition under ``root/projects`` into an Instance."""
    instance = Instance(root=root)
    origins: dict[str, Path] = {}
    for path in discover(instance.projects_path):
        project = load_project(path)
        if project.name in origins:
            msg = f"duplicate project name {project.name!r} (also declared in {origins[project.name]})"
            raise ConfigurationError(path, msg)
        origins[project.name] = path
        instance.projects[project.name] = project
    logger.debug("Loaded %d project definitions from %s", len(instance.projects), instance.projects_path)
    return instance


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "<root>"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)
