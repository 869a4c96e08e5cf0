import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import BoundLogger, ProcessorFormatter, add_logger_name

from deskentry.shared.path_handler import PathHandler

LOGGER_NAME = "deskentry"
LOG_FILE_NAME = "deskentry.log"
LOG_FILE_MAX_BYTES = 512 * 1024
LOG_FILE_BACKUPS = 1


def _pre_chain() -> List:
    return [
        add_log_level,
        TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        StackInfoRenderer(),
        format_exc_info,
    ]


def _json_file_handler(path: Path) -> logging.Handler:
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=_pre_chain() + [add_logger_name],
            processor=JSONRenderer(),
        )
    )
    return handler


def _stderr_handler() -> logging.Handler:
    # stdout is reserved for command output
    handler = RichHandler(
        console=Console(stderr=True),
        markup=False,
        show_path=False,
        show_time=False,
    )
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processor=ConsoleRenderer(colors=False),
            fmt="%(message)s",
        )
    )
    return handler


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> BoundLogger:
    """
    Routes structlog through the stdlib "deskentry" logger.

    Records go as JSON lines to a small rotating file (by default
    $XDG_STATE_HOME/deskentry/deskentry.log) and, unless ``console`` is
    false, as plain text to stderr through rich. Calling it again replaces
    the handlers installed by the previous call.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    structlog.configure(
        processors=_pre_chain() + [add_logger_name, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    std_logger = logging.getLogger(LOGGER_NAME)
    std_logger.setLevel(level)
    std_logger.propagate = False
    for handler in list(std_logger.handlers):
        std_logger.removeHandler(handler)
        handler.close()

    handlers = [_json_file_handler(log_file or PathHandler().get_state_path(LOG_FILE_NAME))]
    if console:
        handlers.append(_stderr_handler())
    for handler in handlers:
        handler.setLevel(level)
        std_logger.addHandler(handler)
    return structlog.get_logger(LOGGER_NAME)
