import argparse
import shlex
import sys
from typing import List, Optional

from deskentry.core.decoder import parse_file
from deskentry.core.entry import DESKTOP_ENTRY_GROUP
from deskentry.core.errors import DeskEntryError
from deskentry.core.exec_expander import expand_exec
from deskentry.core.launcher import launch_entry
from deskentry.core.locales import languages_from_env, locale_candidates
from deskentry.core.log_setup import setup_logging
from deskentry.shared.config_handler import ConfigHandler
from deskentry.shared.dbus_helpers import GpuPreference, GpuResolver


class DeskEntryCli:
    def __init__(self, config: Optional[ConfigHandler] = None):
        self.config = config
        self.logger = None
        self.parser = argparse.ArgumentParser(
            prog="deskentry",
            description="Inspect and launch freedesktop .desktop entries.",
        )
        self.parser.add_argument(
            "--config",
            help="path of the config.toml to use",
        )
        self.parser.add_argument(
            "--lang",
            action="append",
            help="preferred locale, may be repeated (default: from the environment)",
        )
        self.parser.add_argument(
            "--log-level",
            help="override logging.level from the configuration",
        )
        commands = self.parser.add_subparsers(dest="command", required=True)

        show = commands.add_parser("show", help="print the entry back in canonical form")
        show.add_argument("file")

        get = commands.add_parser("get", help="print one localized value")
        get.add_argument("file")
        get.add_argument("key")
        get.add_argument("--group", default=DESKTOP_ENTRY_GROUP)

        exec_ = commands.add_parser("exec", help="print the expanded command line")
        exec_.add_argument("file")
        exec_.add_argument("uris", nargs="*")

        launch = commands.add_parser("launch", help="launch the entry detached")
        launch.add_argument("file")
        launch.add_argument("uris", nargs="*")
        launch.add_argument("--token", help="activation token for the new window")
        launch.add_argument(
            "--gpu", help="'default', 'non-default' or a GPU index"
        )
        launch.add_argument("--action", help="desktop action to launch instead")

        commands.add_parser("gpus", help="list GPUs reported by switcheroo-control")

    def run(self, argv: Optional[List[str]] = None) -> int:
        self.args = self.parser.parse_args(argv)
        if self.config is None:
            self.config = ConfigHandler(self.args.config)
        level = self.args.log_level or self.config.get_root_setting(
            ["logging", "level"], "INFO"
        )
        self.logger = setup_logging(level)
        self.candidates = locale_candidates(self.args.lang or languages_from_env())
        handler = getattr(self, f"cmd_{self.args.command}")
        try:
            return handler()
        except (DeskEntryError, OSError, ValueError) as e:
            print(f"deskentry: {e}", file=sys.stderr)
            return 1

    def _load(self):
        return parse_file(
            self.args.file,
            duplicate_policy=self.config.get_root_setting(
                ["parser", "duplicate_keys"], "last"
            ),
            logger=self.logger,
        )

    def _resolver(self) -> GpuResolver:
        if not self.config.get_root_setting(["gpu", "enabled"], True):
            return _DisabledGpuResolver(logger=self.logger)
        return GpuResolver(
            timeout=float(self.config.get_root_setting(["gpu", "timeout"], 2.0)),
            logger=self.logger,
        )

    def cmd_show(self) -> int:
        sys.stdout.write(self._load().serialize())
        return 0

    def cmd_get(self) -> int:
        entry = self._load()
        print(entry.get_localized(self.args.group, self.args.key, self.candidates))
        return 0

    def cmd_exec(self) -> int:
        entry = self._load()
        argv = expand_exec(
            entry.exec,
            uris=self.args.uris,
            icon=entry.icon,
            name=entry.name(self.candidates),
            location=self.args.file,
            logger=self.logger,
        )
        if argv is None:
            print("deskentry: nothing to launch", file=sys.stderr)
            return 1
        print(" ".join(argv))
        return 0

    def cmd_launch(self) -> int:
        entry = self._load()
        preference_text = self.args.gpu or self.config.get_root_setting(
            ["launch", "gpu_preference"], ""
        )
        preference = GpuPreference.parse(preference_text) if preference_text else None
        terminal = shlex.split(self.config.get_root_setting(["launch", "terminal"], ""))
        launch_entry(
            entry,
            activation_token=self.args.token,
            uris=self.args.uris,
            candidates=self.candidates,
            gpu_preference=preference,
            action=self.args.action,
            terminal=terminal or None,
            resolver=self._resolver(),
            logger=self.logger,
        )
        return 0

    def cmd_gpus(self) -> int:
        resolver = self._resolver()
        if isinstance(resolver, _DisabledGpuResolver):
            print("deskentry: GPU support is disabled (gpu.enabled = false)", file=sys.stderr)
            return 1
        gpus = resolver.list_gpus()
        if gpus is None:
            print("deskentry: GPU service not available", file=sys.stderr)
            return 1
        for index, gpu in enumerate(gpus):
            marker = "*" if gpu.is_default else " "
            env = " ".join(f"{k}={v}" for k, v in gpu.environment.items())
            print(f"{marker} {index}: {gpu.name} {env}".rstrip())
        return 0


class _DisabledGpuResolver(GpuResolver):
    """Used when gpu.enabled is false: never touches the bus."""

    async def list_gpus_async(self):
        return None

    def list_gpus(self):
        return None


def main(argv: Optional[List[str]] = None) -> int:
    return DeskEntryCli().run(argv)
