import logging
from pathlib import Path

import pytest

from procon.core.planner import PlanBuilder, render_unit, source_actions
from procon.models.action import (
    CopyPath,
    GitClone,
    NixShell,
    Phase,
    SystemCtl,
    SystemCtlVerb,
    Unzip,
    WriteFile,
)
from tests.support.fakes import make_project, make_settings, web_project


def test_web_project_added_actions(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    project = web_project()
    builder = PlanBuilder(settings)

    actions = builder.make_actions(
        {"web": project}, {}, {"web": [Phase.SETUP, Phase.BUILD, Phase.START]}
    )

    assert [(action.phase, type(action.kind)) for action in actions] == [
        (Phase.SETUP, WriteFile),
        (Phase.SETUP, CopyPath),
        (Phase.SETUP, NixShell),
        (Phase.START, SystemCtl),
    ]
    write, install, setup, start = (action.kind for action in actions)
    assert write.path == settings.root / "artifacts" / "web" / "daemon.service"
    assert f"PROCON_NIX_SHELL={settings.nix_shell_path}" in write.content
    assert install.source == write.path
    assert install.target == settings.unit_dir / "procon-proj-web.service"
    assert setup.commands == ("echo hi",)
    assert setup.workdir == settings.root / "artifacts" / "web" / "source"
    assert start == SystemCtl(SystemCtlVerb.RESTART, "procon-proj-web.service")


def test_command_actions_carry_nix_deps_and_env(tmp_path: Path) -> None:
    project = make_project(
        "api",
        deps={"nix": ["python3", "git"]},
        env={"B": "2", "A": "1"},
        phase={"build": ["make", "make install"]},
    )
    actions = PlanBuilder(make_settings(tmp_path)).phase_actions(project, Phase.BUILD)

    assert [action.kind.commands for action in actions] == [("make",), ("make install",)]
    assert all(action.kind.deps == ("python3", "git") for action in actions)
    assert actions[0].kind.env == (("A", "1"), ("B", "2"))


def test_update_reruns_setup_commands(tmp_path: Path) -> None:
    project = make_project("api", phase={"setup": ["a", "b"]})
    actions = PlanBuilder(make_settings(tmp_path)).phase_actions(project, Phase.UPDATE)
    assert [action.kind.commands for action in actions] == [("a",), ("b",)]
    assert {action.phase for action in actions} == {Phase.UPDATE}


def test_start_requires_autostart_and_start_commands(tmp_path: Path) -> None:
    builder = PlanBuilder(make_settings(tmp_path))
    manual = web_project(service={"autostart": False})
    no_service = make_project("batch", phase={"build": ["make"]})

    assert builder.phase_actions(manual, Phase.START) == []
    assert builder.phase_actions(no_service, Phase.START) == []
    assert [type(action.kind) for action in builder.phase_actions(no_service, Phase.SETUP)] == []


def test_removed_project_is_expanded_from_previous_snapshot(tmp_path: Path) -> None:
    builder = PlanBuilder(make_settings(tmp_path))
    actions = builder.make_actions({}, {"web": web_project()}, {"web": [Phase.STOP, Phase.TEARDOWN]})

    assert len(actions) == 1
    assert actions[0].phase is Phase.STOP
    assert actions[0].kind == SystemCtl(SystemCtlVerb.STOP, "procon-proj-web.service")


def test_teardown_emits_nothing_and_warns(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    builder = PlanBuilder(make_settings(tmp_path))
    with caplog.at_level(logging.WARNING, logger="procon.core.planner"):
        actions = builder.phase_actions(web_project(), Phase.TEARDOWN)
    assert actions == []
    assert "Teardown is not implemented" in caplog.text
    assert "web" in caplog.text


def test_actions_are_ordered_by_project_name(tmp_path: Path) -> None:
    builder = PlanBuilder(make_settings(tmp_path))
    current = {
        "zeta": make_project("zeta", phase={"build": ["z"]}),
        "alpha": make_project("alpha", phase={"build": ["a"]}),
    }
    actions = builder.make_actions(current, {}, {"zeta": [Phase.BUILD], "alpha": [Phase.BUILD]})
    assert [action.project_name for action in actions] == ["alpha", "zeta"]


def test_source_actions_per_variant(tmp_path: Path) -> None:
    target = tmp_path / "artifacts" / "p" / "source"

    assert source_actions(make_project("p"), tmp_path) == []

    (copy,) = source_actions(make_project("p", source={"path": "app"}), tmp_path)
    assert copy.kind == CopyPath(source=Path("/defs/app"), target=target)

    (clone,) = source_actions(make_project("p", source={"git": "https://h/r.git"}), tmp_path)
    assert clone.kind == GitClone(url="https://h/r.git", target=target)

    (unzip,) = source_actions(make_project("p", source={"zip": "/srv/p.zip"}), tmp_path)
    assert unzip.kind == Unzip(archive=Path("/srv/p.zip"), target=target)
    assert unzip.phase is Phase.SETUP


def test_render_unit_reinvokes_the_tool(tmp_path: Path) -> None:
    project = web_project(service={"restart-on": "always"})
    text = render_unit(
        project,
        tmp_path,
        ["/usr/bin/python3", "-m", "procon.cli"],
        "procon-proj-",
        Path("/opt/nix/bin/nix-shell"),
    )

    assert "[Service]" in text
    assert f"WorkingDirectory={tmp_path}\n" in text
    assert f"ExecStart=/usr/bin/python3 -m procon.cli --root {tmp_path} run web\n" in text
    assert 'Environment="PROCON_NIX_SHELL=/opt/nix/bin/nix-shell"\n' in text
    assert "Restart=always\n" in text
    assert "serve" not in text.split("ExecStart=")[1].split("\n")[0]
    assert "WantedBy=default.target" in text
