import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from deskentry.core.entry import Candidate, Entry
from deskentry.core.exec_expander import expand_exec
from deskentry.core.spawner import spawn
from deskentry.shared.dbus_helpers import GpuPreference, GpuResolver

ACTIVATION_TOKEN_VARS = ("XDG_ACTIVATION_TOKEN", "DESKTOP_STARTUP_ID")

X_TERMINAL_EMULATOR = "/usr/bin/x-terminal-emulator"
FALLBACK_TERMINALS = (
    ("/usr/bin/gnome-terminal", "--"),
    ("/usr/bin/konsole", "-e"),
)

Spawner = Callable[..., None]


@dataclass
class LaunchRequest:
    """
    Everything needed for one launch attempt.

    Attributes:
        command: An Exec-style command line.
        activation_token: Startup notification / activation token, if any.
        gpu_preference: GPU to ask for, or None for no GPU hint.
        env: Base environment; None means the current process environment.
        cwd: Working directory of the launched program.
        uris: Files or URLs substituted for %f/%F/%u/%U.
        icon: Substituted for %i.
        name: Substituted for %c.
        location: Substituted for %k.
        terminal: Terminal emulator and its "run this" option, prepended
            to the expanded command, e.g. ["/usr/bin/konsole", "-e"].
    """

    command: str
    activation_token: Optional[str] = None
    gpu_preference: Optional[GpuPreference] = None
    env: Optional[Mapping[str, str]] = None
    cwd: Optional[Union[str, Path]] = None
    uris: Sequence[str] = ()
    icon: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    terminal: Optional[Sequence[str]] = None


def detect_terminal(
    link: str = X_TERMINAL_EMULATOR,
    fallbacks: Sequence[Sequence[str]] = FALLBACK_TERMINALS,
) -> List[str]:
    """
    Picks the terminal used for ``Terminal=true`` entries.

    The Debian-style ``x-terminal-emulator`` alternative wins when it is a
    symlink; gnome-terminal takes ``--`` before the command, everything else
    ``-e``. Otherwise the first existing fallback is used, and the last
    fallback when none exists.
    """
    if os.path.islink(link):
        target = os.path.realpath(link)
        separator = "--" if "gnome-terminal" in os.path.basename(target) else "-e"
        return [target, separator]
    for path, separator in fallbacks:
        if os.path.exists(path):
            return [path, separator]
    return list(fallbacks[-1])


def activation_env(token: Optional[str]) -> Dict[str, str]:
    if not token:
        return {}
    return {var: token for var in ACTIVATION_TOKEN_VARS}


def overlay_env(*layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Merges environment layers into a new dict; later layers win."""
    merged: Dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def launch(
    request: LaunchRequest,
    resolver: Optional[GpuResolver] = None,
    spawner: Optional[Spawner] = None,
    logger: Any = None,
) -> None:
    """
    Expands the request's command and starts it detached.

    The environment is the base map, then the activation token variables,
    then the GPU variables. Nothing is returned and nothing is raised: a
    command that expands to nothing is skipped silently, GPU lookup failures
    only drop the GPU hint and spawn failures are logged.
    """
    logger = logger or structlog.get_logger()
    spawner = spawner or spawn
    argv = expand_exec(
        request.command,
        uris=request.uris,
        icon=request.icon,
        name=request.name,
        location=request.location,
        logger=logger,
    )
    if argv is None:
        logger.debug(f"Nothing to launch for {request.command!r}")
        return

    gpu_env = None
    if request.gpu_preference is not None:
        resolver = resolver or GpuResolver(logger=logger)
        gpu_env = resolver.resolve(request.gpu_preference)

    base_env = request.env if request.env is not None else os.environ
    env = overlay_env(base_env, activation_env(request.activation_token), gpu_env)
    if request.terminal:
        argv = list(request.terminal) + argv
    spawner(argv, env, cwd=request.cwd, logger=logger)


def launch_entry(
    entry: Entry,
    activation_token: Optional[str] = None,
    uris: Sequence[str] = (),
    candidates: Optional[Sequence[Candidate]] = None,
    gpu_preference: Optional[GpuPreference] = None,
    env: Optional[Mapping[str, str]] = None,
    action: Optional[str] = None,
    terminal: Optional[Sequence[str]] = None,
    resolver: Optional[GpuResolver] = None,
    spawner: Optional[Spawner] = None,
    logger: Any = None,
) -> None:
    """
    Launches a parsed entry, or one of its desktop actions.

    Field codes are filled from the entry (icon, localized name, file path)
    and the entry's ``Path`` becomes the working directory. When no GPU
    preference is given and the entry sets ``PrefersNonDefaultGPU=true``,
    the non-default GPU is requested. ``Terminal=true`` entries run inside
    ``terminal`` (emulator plus option), or the one found by
    :func:`detect_terminal`.
    """
    logger = logger or structlog.get_logger()
    command = entry.action_exec(action) if action else entry.exec
    if not command:
        logger.warning(
            f"Entry {entry.appid!r} has no Exec"
            + (f" for action {action!r}" if action else "")
        )
        return
    if gpu_preference is None and entry.prefers_non_default_gpu:
        gpu_preference = GpuPreference.NON_DEFAULT
    launch(
        LaunchRequest(
            command=command,
            activation_token=activation_token,
            gpu_preference=gpu_preference,
            env=env,
            cwd=entry.working_dir,
            uris=uris,
            icon=(entry.action_icon(action) if action else None) or entry.icon,
            name=entry.name(candidates),
            location=str(entry.path) if entry.path is not None else None,
            terminal=(terminal or detect_terminal()) if entry.terminal else None,
        ),
        resolver=resolver,
        spawner=spawner,
        logger=logger,
    )
