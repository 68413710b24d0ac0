from __future__ import annotations

import logging
from pathlib import Path

import pytest

from procon.core.instance_manager import InstanceManager, ProjectNotFoundError
from procon.models.action import ActionStatus, ConfigChange, Phase, SystemCtlVerb
from procon.models.project import ProjectStatus
from procon.settings import RuntimeSettings
from tests.support.fakes import (
    FakeGit,
    FakeServiceManager,
    FakeShell,
    make_settings,
    write_definition,
)

WEB = """
name = "web"

[phase]
setup = ["echo hi"]
start = ["serve"]
"""

BATCH = """
name = "batch"

[phase]
build = ["make"]
"""


def _manager(
    settings: RuntimeSettings,
    journal: list[str] | None = None,
    *,
    shell: FakeShell | None = None,
    services: FakeServiceManager | None = None,
) -> InstanceManager:
    journal = journal if journal is not None else []
    return InstanceManager(
        settings,
        shell=shell or FakeShell(journal),
        git=FakeGit(journal),
        service_manager=services or FakeServiceManager(journal),
    )


@pytest.mark.asyncio
async def test_first_apply_then_noop(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    journal: list[str] = []
    manager = _manager(settings, journal)

    first = await manager.apply()

    assert first.plan.changes == {"web": ConfigChange.ADDED}
    assert first.report.ok
    assert [action.status for action in first.report.actions] == [ActionStatus.DONE] * 4
    assert journal == [
        "shell:echo hi",
        "systemctl:daemon-reload",
        "systemctl:restart:procon-proj-web.service",
    ]
    assert (settings.unit_dir / "procon-proj-web.service").is_file()
    assert (settings.root / "artifacts" / "web" / "source").is_dir()
    assert first.snapshot is not None
    assert first.snapshot.projects["web"].status is ProjectStatus.SUCCESS

    journal.clear()
    second = await manager.apply()

    assert second.plan.changes == {}
    assert second.plan.phases == {}
    assert second.report.actions == []
    assert journal == []
    stored = await manager.load_state()
    assert stored.projects["web"].status is ProjectStatus.SUCCESS


@pytest.mark.asyncio
async def test_failed_project_is_resumed_on_next_apply(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    write_definition(settings.root, "batch.toml", BATCH)

    failing = _manager(settings, shell=FakeShell(failing={"echo hi": "boom"}))
    result = await failing.apply()

    assert result.report.failed == {"web": Phase.SETUP}
    state = await failing.load_state()
    assert state.projects["web"].status is ProjectStatus.FAILED
    assert state.projects["web"].failed_phase is Phase.SETUP
    assert state.projects["batch"].status is ProjectStatus.SUCCESS

    journal: list[str] = []
    retry = await _manager(settings, journal).apply()

    assert retry.plan.changes == {}
    assert retry.plan.phases == {"web": [Phase.SETUP, Phase.BUILD, Phase.START]}
    assert "shell:make" not in journal
    assert retry.report.ok
    state = await failing.load_state()
    assert state.projects["web"].status is ProjectStatus.SUCCESS
    assert state.projects["web"].failed_phase is None


@pytest.mark.asyncio
async def test_failed_project_stays_failed_without_retry(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    await _manager(settings, shell=FakeShell(failing={"echo hi": "boom"})).apply()

    result = await _manager(make_settings(tmp_path, retry_failed=False)).apply()

    assert result.plan.phases == {}
    assert result.snapshot is not None
    assert result.snapshot.projects["web"].status is ProjectStatus.FAILED


@pytest.mark.asyncio
async def test_filtered_apply_keeps_other_projects_pending(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    write_definition(settings.root, "batch.toml", BATCH)
    manager = _manager(settings)

    filtered = await manager.apply(["batch"])

    assert filtered.plan.changes == {"batch": ConfigChange.ADDED}
    assert {action.project_name for action in filtered.report.actions} == {"batch"}
    assert filtered.snapshot is not None
    assert list(filtered.snapshot.projects) == ["batch"]

    rest = await manager.apply()

    assert rest.plan.changes == {"web": ConfigChange.ADDED}
    assert rest.snapshot is not None
    assert sorted(rest.snapshot.projects) == ["batch", "web"]


@pytest.mark.asyncio
async def test_changed_definition_is_replanned(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    path = write_definition(settings.root, "batch.toml", BATCH)
    manager = _manager(settings)
    await manager.apply()

    path.write_text(BATCH.replace('"make"', '"make all"'), encoding="utf-8")
    planned = await manager.plan()

    assert planned.changes == {"batch": ConfigChange.CHANGED}
    assert planned.phases == {"batch": [Phase.TEARDOWN, Phase.SETUP, Phase.BUILD, Phase.START]}
    assert [action.kind.commands for action in planned.actions] == [("make all",)]


@pytest.mark.asyncio
async def test_removed_project_is_stopped_and_forgotten(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    path = write_definition(settings.root, "web.toml", WEB)
    services = FakeServiceManager()
    manager = _manager(settings, services=services)
    await manager.apply()

    path.unlink()
    result = await manager.apply()

    assert result.plan.changes == {"web": ConfigChange.REMOVED}
    assert [action.phase for action in result.report.actions] == [Phase.STOP]
    assert services.calls[-1] == (SystemCtlVerb.STOP, "procon-proj-web.service")
    assert result.snapshot is not None
    assert result.snapshot.projects == {}


@pytest.mark.asyncio
async def test_dry_run_persists_nothing(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    journal: list[str] = []
    manager = _manager(settings, journal).with_settings(dry_run=True)

    result = await manager.apply()

    assert result.snapshot is None
    assert result.report.dry_run is True
    assert len(result.report.actions) == 4
    assert journal == []
    assert not (settings.root / "state.db").exists()
    assert not settings.unit_dir.exists()


@pytest.mark.asyncio
async def test_init_creates_layout(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    manager = _manager(settings)

    instance = await manager.init()

    assert instance.projects_path.is_dir()
    assert instance.artifacts_path.is_dir()
    assert instance.state_path.is_file()
    assert (await manager.load_state()).projects == {}


@pytest.mark.asyncio
async def test_run_project_uses_applied_snapshot(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    shell = FakeShell()
    manager = _manager(settings, shell=shell)

    with pytest.raises(ProjectNotFoundError):
        await manager.run_project("web")

    await manager.apply()
    returncode = await manager.run_project("web")

    assert returncode == 0
    workdir, deps, commands, env = shell.calls[-1]
    assert workdir == settings.root / "artifacts" / "web" / "source"
    assert deps == ()
    assert commands == ("serve",)
    assert env == {}


@pytest.mark.asyncio
async def test_run_project_without_start_commands(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "batch.toml", BATCH)
    shell = FakeShell()
    manager = _manager(settings, shell=shell)
    await manager.apply()
    calls = len(shell.calls)

    assert await manager.run_project("batch") == 0
    assert len(shell.calls) == calls


def test_clean_removes_artifacts(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    write_definition(settings.root, "batch.toml", BATCH)
    artifacts = settings.root / "artifacts" / "web" / "source"
    artifacts.mkdir(parents=True)

    removed = _manager(settings).clean()

    assert removed == [settings.root / "artifacts" / "web"]
    assert not artifacts.exists()


@pytest.mark.asyncio
async def test_run_project_maps_signal_exit_to_shell_status(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    await _manager(settings).apply()

    killed = _manager(settings, shell=FakeShell(exit_codes={"serve": -15}))
    failing = _manager(settings, shell=FakeShell(exit_codes={"serve": 3}))

    assert await killed.run_project("web") == 143
    assert await failing.run_project("web") == 3


@pytest.mark.asyncio
async def test_run_project_spawn_error_returns_one(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    await _manager(settings).apply()
    missing = FileNotFoundError(2, "No such file or directory", "nix-shell")
    manager = _manager(settings, shell=FakeShell(spawn_error=missing))

    with caplog.at_level(logging.ERROR, logger="procon.core.instance_manager"):
        assert await manager.run_project("web") == 1

    assert "Could not start web" in caplog.text


@pytest.mark.asyncio
async def test_plan_and_dry_run_do_not_write_state(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    write_definition(settings.root, "web.toml", WEB)
    manager = _manager(settings)
    await manager.apply()
    write_definition(settings.root, "batch.toml", BATCH)
    state_file = settings.root / "state.db"
    before = state_file.read_bytes()

    planned = await manager.plan()
    await manager.with_settings(dry_run=True).apply()

    assert planned.changes == {"batch": ConfigChange.ADDED}
    assert state_file.read_bytes() == before
