# rent_aggregator/config/logging_config.py

"""Run logging for rent_aggregator.

Every CLI invocation writes ``logs/run_YYYYmmdd_HHMMSS.log``.  The
file gets all ``rent_aggregator.*`` records at DEBUG, including the
worker thread name, since connectors run in parallel threads and
their lines interleave.  Stderr only shows records at
``Settings.CONSOLE_LOG_LEVEL`` (``LOG_LEVEL`` env, WARNING by default)
so JSON on stdout stays clean.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from rent_aggregator.config.settings import Settings

ROOT_LOGGER_NAME = "rent_aggregator"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(threadName)-12s | %(name)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _active_log_file(logger: logging.Logger) -> Path | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def _console_level() -> int:
    level = logging.getLevelName(Settings.CONSOLE_LOG_LEVEL)
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(logs_dir: Path | None = None) -> Path:
    """Attach the run-file and stderr handlers once; return the log path.

    Later calls leave the handlers alone and return the file already
    in use.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    existing = _active_log_file(root_logger)
    if existing is not None:
        return existing

    target_dir = logs_dir or Settings.LOGS_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(_console_level())
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.debug(
        "Logging to %s (console level %s)",
        log_file,
        logging.getLevelName(console_handler.level),
    )
    return log_file
