import shlex
from typing import List, Optional, Sequence

import structlog

DEPRECATED_FIELD_CODES = ("%d", "%D", "%n", "%N", "%v", "%m")


def expand_exec(
    exec_string: Optional[str],
    uris: Sequence[str] = (),
    icon: Optional[str] = None,
    name: Optional[str] = None,
    location: Optional[str] = None,
    logger=None,
) -> Optional[List[str]]:
    """
    Turns an ``Exec`` value into an argument vector.

    The string is split with POSIX shell quoting rules. Arguments starting
    with ``%`` are field codes: ``%f``/``%u`` take the first URI, ``%F``/``%U``
    all URIs, ``%i`` the icon, ``%c`` the name and ``%k`` the location, each
    only when that value was given. Every other field code is dropped.

    Args:
        exec_string: The raw ``Exec`` value.
        uris: Files or URLs handed to the application.
        icon: Value for ``%i``.
        name: Value for ``%c`` (already localized).
        location: Value for ``%k``, the desktop file path.
        logger: Optional structlog logger.
    Returns:
        The argument vector, or None when there is nothing to launch: the
        string is empty or badly quoted, or its first word is an environment
        assignment such as ``FOO=bar``.
    """
    logger = logger or structlog.get_logger()
    if not exec_string or not exec_string.strip():
        return None
    try:
        tokens = shlex.split(exec_string)
    except ValueError as e:
        logger.warning(f"Cannot split Exec string {exec_string!r}: {e}")
        return None

    argv: List[str] = []
    for token in tokens:
        if not token.startswith("%"):
            argv.append(token)
        elif token in ("%f", "%u"):
            argv.extend(uris[:1])
        elif token in ("%F", "%U"):
            argv.extend(uris)
        elif token == "%i":
            if icon:
                argv.extend(["--icon", icon])
        elif token == "%c":
            if name:
                argv.append(name)
        elif token == "%k":
            if location:
                argv.append(location)
        elif token in DEPRECATED_FIELD_CODES:
            logger.debug(f"Dropping deprecated field code {token}")
        else:
            logger.debug(f"Dropping field code {token}")

    if not argv:
        return None
    if "=" in argv[0]:
        logger.debug(f"Exec string starts with an assignment: {argv[0]!r}")
        return None
    return argv
