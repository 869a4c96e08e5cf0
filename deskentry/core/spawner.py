"""
Detached process creation.

``spawn`` uses the classic double fork: the intermediate child becomes a
session leader, forks the grandchild that execs the program and exits at
once. The caller only reaps the intermediate child, so the program is
re-parented to init and its lifetime is never awaited.
"""

import errno
import os
from typing import Any, Mapping, Optional, Sequence, Union

import structlog

_EXEC_FAILED = 127


def _run_grandchild(
    argv: Sequence[str],
    env: Mapping[str, str],
    cwd: Optional[Union[str, os.PathLike]],
    error_fd: int,
) -> None:
    try:
        null_fd = os.open(os.devnull, os.O_RDWR)
        for fd in (0, 1, 2):
            os.dup2(null_fd, fd)
        if null_fd > 2:
            os.close(null_fd)
        if cwd is not None:
            os.chdir(cwd)
        os.execvpe(argv[0], list(argv), dict(env))
    except OSError as e:
        os.write(error_fd, str(e.errno or errno.EIO).encode())
    finally:
        os._exit(_EXEC_FAILED)


def _run_intermediate(
    argv: Sequence[str],
    env: Mapping[str, str],
    cwd: Optional[Union[str, os.PathLike]],
    error_fd: int,
) -> None:
    status = 0
    try:
        os.setsid()
        if os.fork() == 0:
            _run_grandchild(argv, env, cwd, error_fd)
    except OSError:
        status = 1
    finally:
        os._exit(status)


def spawn(
    argv: Sequence[str],
    env: Mapping[str, str],
    cwd: Optional[Union[str, os.PathLike]] = None,
    logger: Any = None,
) -> None:
    """
    Starts ``argv`` as a fully detached process.

    Returns once the intermediate child has been reaped and the program has
    either been exec'd or failed to start; it never waits on the program
    itself. By then the program already runs in a session of its own.
    Failures are logged and swallowed.

    Args:
        argv: Program and arguments; the program is looked up on env's PATH.
        env: The complete environment of the new process.
        cwd: Working directory for the new process.
        logger: Optional structlog logger.
    """
    logger = logger or structlog.get_logger()
    if not argv:
        logger.error("Refusing to spawn an empty command")
        return
    # the write end is close-on-exec: EOF means exec succeeded
    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        logger.error(f"Failed to create status pipe for {argv[0]!r}: {e}")
        return
    try:
        pid = os.fork()
    except OSError as e:
        os.close(read_fd)
        os.close(write_fd)
        logger.error(f"Failed to fork for {argv[0]!r}: {e}")
        return

    if pid == 0:
        os.close(read_fd)
        _run_intermediate(argv, env, cwd, write_fd)

    os.close(write_fd)
    try:
        _, status = os.waitpid(pid, 0)
        report = b""
        while True:
            chunk = os.read(read_fd, 64)
            if not chunk:
                break
            report += chunk
    except OSError as e:
        logger.error(f"Lost track of launcher child for {argv[0]!r}: {e}")
        return
    finally:
        os.close(read_fd)

    if os.waitstatus_to_exitcode(status) != 0:
        logger.error(f"Failed to detach {argv[0]!r}: intermediate child exited with {status}")
        return
    if report:
        code = int(report.decode() or errno.EIO)
        logger.error(f"Failed to execute {argv[0]!r}: {os.strerror(code)}")
        return
    logger.info(f"Launched {' '.join(argv)}")
