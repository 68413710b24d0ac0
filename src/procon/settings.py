"""Runtime settings for procon."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from procon.models.project import DEFAULT_UNIT_PREFIX

DEFAULT_NIX_SHELL_PATH = Path("/nix/var/nix/profiles/default/bin/nix-shell")


def _default_unit_dir() -> Path:
    config_home = os.getenv("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "systemd" / "user"


def _default_self_command() -> tuple[str, ...]:
    return (sys.executable, "-m", "procon.cli")


@dataclass(frozen=True)
class RuntimeSettings:
    """Settings threaded through the reconciliation loop.

    ``safe_mode`` turns every service-manager call into a successful no-op.
    ``dry_run`` executes nothing and persists nothing.
    """

    root: Path = field(default_factory=Path.cwd)
    nix_shell_path: Path = DEFAULT_NIX_SHELL_PATH
    unit_dir: Path = field(default_factory=_default_unit_dir)
    unit_prefix: str = DEFAULT_UNIT_PREFIX
    self_command: tuple[str, ...] = field(default_factory=_default_self_command)
    safe_mode: bool = False
    dry_run: bool = False
    retry_failed: bool = True

    @classmethod
    def from_env(cls) -> RuntimeSettings:
        root = os.getenv("PROCON_ROOT")
        unit_dir = os.getenv("PROCON_UNIT_DIR")
        return cls(
            root=Path(root) if root else Path.cwd(),
            nix_shell_path=Path(os.getenv("PROCON_NIX_SHELL", str(DEFAULT_NIX_SHELL_PATH))),
            unit_dir=Path(unit_dir) if unit_dir else _default_unit_dir(),
            unit_prefix=os.getenv("PROCON_UNIT_PREFIX", DEFAULT_UNIT_PREFIX),
            safe_mode=_get_env_bool("PROCON_SAFE_MODE", default=False),
            retry_failed=_get_env_bool("PROCON_RETRY_FAILED", default=True),
        ).normalized()

    def normalized(self) -> RuntimeSettings:
        """Validate fields. Raises ValueError on invalid configuration."""
        unit_prefix = self.unit_prefix.strip()
        if not unit_prefix:
            raise ValueError("PROCON_UNIT_PREFIX must be non-empty")
        if "/" in unit_prefix:
            raise ValueError(f"PROCON_UNIT_PREFIX must not contain '/', got: {unit_prefix!r}")
        if not str(self.nix_shell_path).strip():
            raise ValueError("PROCON_NIX_SHELL must be non-empty")
        if not self.self_command:
            raise ValueError("self_command must contain at least the executable")
        return RuntimeSettings(
            root=self.root.expanduser().resolve(),
            nix_shell_path=self.nix_shell_path.expanduser(),
            unit_dir=self.unit_dir.expanduser(),
            unit_prefix=unit_prefix,
            self_command=self.self_command,
            safe_mode=self.safe_mode,
            dry_run=self.dry_run,
            retry_failed=self.retry_failed,
        )


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got: {raw!r}")
