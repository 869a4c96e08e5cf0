import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from deskentry.core.decoder import parse
from deskentry.core.launcher import (
    LaunchRequest,
    activation_env,
    detect_terminal,
    launch,
    launch_entry,
    overlay_env,
)
from deskentry.shared.dbus_helpers import GpuPreference

BASE_ENV = {"PATH": "/usr/bin", "HOME": "/home/user"}


@pytest.fixture
def spawner():
    return MagicMock()


@pytest.fixture
def resolver():
    resolver = MagicMock()
    resolver.resolve.return_value = {"DRI_PRIME": "1"}
    return resolver


class TestEnvironment:
    def test_activation_env(self):
        assert activation_env("tok123") == {
            "XDG_ACTIVATION_TOKEN": "tok123",
            "DESKTOP_STARTUP_ID": "tok123",
        }
        assert activation_env(None) == {}
        assert activation_env("") == {}

    def test_overlay_later_layers_win(self):
        base = {"A": "1", "B": "1"}
        merged = overlay_env(base, None, {"B": "2"}, {"C": "3"})
        assert merged == {"A": "1", "B": "2", "C": "3"}
        assert base == {"A": "1", "B": "1"}


class TestLaunch:
    def test_token_overlays_base_environment(self, spawner, logger):
        env = dict(BASE_ENV, DESKTOP_STARTUP_ID="stale")
        launch(
            LaunchRequest("myapp --flag", activation_token="tok123", env=env),
            spawner=spawner,
            logger=logger,
        )
        spawner.assert_called_once()
        argv, spawned_env = spawner.call_args.args
        assert argv == ["myapp", "--flag"]
        assert spawned_env == dict(
            BASE_ENV, XDG_ACTIVATION_TOKEN="tok123", DESKTOP_STARTUP_ID="tok123"
        )
        assert env["DESKTOP_STARTUP_ID"] == "stale"

    def test_without_token_environment_is_unchanged(self, spawner, logger):
        launch(LaunchRequest("myapp", env=BASE_ENV), spawner=spawner, logger=logger)
        assert spawner.call_args.args[1] == BASE_ENV

    def test_gpu_variables_are_applied_last(self, spawner, resolver, logger):
        env = dict(BASE_ENV, DRI_PRIME="0")
        launch(
            LaunchRequest(
                "myapp",
                activation_token="tok",
                gpu_preference=GpuPreference.NON_DEFAULT,
                env=env,
            ),
            resolver=resolver,
            spawner=spawner,
            logger=logger,
        )
        resolver.resolve.assert_called_once_with(GpuPreference.NON_DEFAULT)
        spawned_env = spawner.call_args.args[1]
        assert spawned_env["DRI_PRIME"] == "1"
        assert spawned_env["XDG_ACTIVATION_TOKEN"] == "tok"

    def test_unavailable_gpu_still_launches(self, spawner, resolver, logger):
        resolver.resolve.return_value = None
        launch(
            LaunchRequest("myapp", gpu_preference=GpuPreference.DEFAULT, env=BASE_ENV),
            resolver=resolver,
            spawner=spawner,
            logger=logger,
        )
        assert spawner.call_args.args[1] == BASE_ENV

    def test_no_preference_skips_resolver(self, spawner, resolver, logger):
        launch(LaunchRequest("myapp", env=BASE_ENV), resolver=resolver, spawner=spawner, logger=logger)
        resolver.resolve.assert_not_called()

    @pytest.mark.parametrize("command", ["", "FOO=bar myapp", "%U", 'app "open'])
    def test_nothing_to_launch_is_a_no_op(self, command, spawner, resolver, logger):
        launch(
            LaunchRequest(command, gpu_preference=GpuPreference.DEFAULT),
            resolver=resolver,
            spawner=spawner,
            logger=logger,
        )
        spawner.assert_not_called()
        resolver.resolve.assert_not_called()

    def test_uses_process_environment_by_default(self, spawner, logger, monkeypatch):
        monkeypatch.setenv("DESKENTRY_TEST_MARKER", "present")
        launch(LaunchRequest("myapp"), spawner=spawner, logger=logger)
        assert spawner.call_args.args[1]["DESKENTRY_TEST_MARKER"] == "present"

    def test_cwd_and_uris_are_forwarded(self, spawner, logger):
        launch(
            LaunchRequest("viewer %F", env=BASE_ENV, cwd="/srv", uris=["a.png", "b.png"]),
            spawner=spawner,
            logger=logger,
        )
        assert spawner.call_args.args[0] == ["viewer", "a.png", "b.png"]
        assert spawner.call_args.kwargs["cwd"] == "/srv"

    def test_terminal_prefixes_expanded_command(self, spawner, logger):
        launch(
            LaunchRequest("top -d 1", env=BASE_ENV, terminal=("xterm", "-e")),
            spawner=spawner,
            logger=logger,
        )
        assert spawner.call_args.args[0] == ["xterm", "-e", "top", "-d", "1"]


class TestLaunchEntry:
    def test_entry_fields_fill_field_codes(self, spawner, logger):
        entry = parse(
            "[Desktop Entry]\nName=Viewer\nName[fr]=Visionneuse\nIcon=viewer\n"
            "Exec=viewer %i %c %k %f\nPath=/srv/pictures\n",
            path="/usr/share/applications/viewer.desktop",
        )
        launch_entry(
            entry,
            uris=["pic.png"],
            candidates=["fr", None],
            env=BASE_ENV,
            spawner=spawner,
            logger=logger,
        )
        argv = spawner.call_args.args[0]
        assert argv == [
            "viewer",
            "--icon",
            "viewer",
            "Visionneuse",
            "/usr/share/applications/viewer.desktop",
            "pic.png",
        ]
        assert spawner.call_args.kwargs["cwd"] == Path("/srv/pictures")

    def test_action_exec(self, files_entry_path, spawner, logger):
        entry = parse(files_entry_path.read_text(encoding="utf-8"), path=files_entry_path)
        launch_entry(entry, action="new-window", env=BASE_ENV, spawner=spawner, logger=logger)
        assert spawner.call_args.args[0] == ["files", "--new-window"]

    def test_missing_exec_warns(self, spawner, logger):
        entry = parse("[Desktop Entry]\nName=NoExec\n")
        launch_entry(entry, spawner=spawner, logger=logger)
        spawner.assert_not_called()
        logger.warning.assert_called_once()

    def test_prefers_non_default_gpu(self, spawner, resolver, logger):
        entry = parse("[Desktop Entry]\nExec=game\nPrefersNonDefaultGPU=true\n")
        launch_entry(entry, env=BASE_ENV, resolver=resolver, spawner=spawner, logger=logger)
        resolver.resolve.assert_called_once_with(GpuPreference.NON_DEFAULT)
        assert spawner.call_args.args[1]["DRI_PRIME"] == "1"

    def test_explicit_preference_wins_over_entry(self, spawner, resolver, logger):
        entry = parse("[Desktop Entry]\nExec=game\nPrefersNonDefaultGPU=true\n")
        launch_entry(
            entry,
            gpu_preference=GpuPreference.DEFAULT,
            env=BASE_ENV,
            resolver=resolver,
            spawner=spawner,
            logger=logger,
        )
        resolver.resolve.assert_called_once_with(GpuPreference.DEFAULT)

    def test_activation_token(self, spawner, logger):
        entry = parse("[Desktop Entry]\nExec=app\n")
        launch_entry(entry, activation_token="abc", env=BASE_ENV, spawner=spawner, logger=logger)
        assert spawner.call_args.args[1]["XDG_ACTIVATION_TOKEN"] == "abc"

    def test_terminal_entry_runs_inside_given_terminal(self, spawner, logger):
        entry = parse("[Desktop Entry]\nExec=vim %f\nTerminal=true\n")
        launch_entry(
            entry,
            uris=["notes.txt"],
            terminal=["foot", "-e"],
            env=BASE_ENV,
            spawner=spawner,
            logger=logger,
        )
        assert spawner.call_args.args[0] == ["foot", "-e", "vim", "notes.txt"]

    def test_terminal_entry_uses_detected_terminal(self, spawner, logger, monkeypatch):
        monkeypatch.setattr(
            "deskentry.core.launcher.detect_terminal",
            lambda: ["/usr/bin/konsole", "-e"],
        )
        entry = parse("[Desktop Entry]\nExec=htop\nTerminal=true\n")
        launch_entry(entry, env=BASE_ENV, spawner=spawner, logger=logger)
        assert spawner.call_args.args[0] == ["/usr/bin/konsole", "-e", "htop"]

    def test_graphical_entry_ignores_terminal(self, spawner, logger):
        entry = parse("[Desktop Entry]\nExec=gedit\n")
        launch_entry(entry, terminal=["foot", "-e"], env=BASE_ENV, spawner=spawner, logger=logger)
        assert spawner.call_args.args[0] == ["gedit"]


class TestDetectTerminal:
    def _executable(self, path):
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)
        return path

    def test_x_terminal_emulator_pointing_at_gnome_terminal(self, tmp_path):
        target = self._executable(tmp_path / "gnome-terminal.wrapper")
        link = tmp_path / "x-terminal-emulator"
        link.symlink_to(target)
        assert detect_terminal(str(link), ()) == [os.path.realpath(target), "--"]

    def test_x_terminal_emulator_pointing_elsewhere(self, tmp_path):
        target = self._executable(tmp_path / "xterm")
        link = tmp_path / "x-terminal-emulator"
        link.symlink_to(target)
        assert detect_terminal(str(link), ()) == [os.path.realpath(target), "-e"]

    def test_first_existing_fallback(self, tmp_path):
        konsole = self._executable(tmp_path / "konsole")
        fallbacks = ((str(tmp_path / "gnome-terminal"), "--"), (str(konsole), "-e"))
        assert detect_terminal(str(tmp_path / "missing"), fallbacks) == [str(konsole), "-e"]

    def test_last_fallback_when_nothing_exists(self, tmp_path):
        fallbacks = ((str(tmp_path / "gnome-terminal"), "--"), (str(tmp_path / "konsole"), "-e"))
        assert detect_terminal(str(tmp_path / "missing"), fallbacks) == [
            str(tmp_path / "konsole"),
            "-e",
        ]
