# runlog.py
# Per-invocation run log.
#
# Every entry point opens exactly one log file under the log directory.
# display.py and shell.py write to the "so101_toolkit.run" logger; this
# module only decides where those records land.

import logging
from datetime import datetime
from pathlib import Path

RUN_LOGGER = "so101_toolkit.run"
LINE_FORMAT = "[%(asctime)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logger = logging.getLogger(RUN_LOGGER)
_logger.setLevel(logging.INFO)
_logger.propagate = False
_logger.addHandler(logging.NullHandler())


def get_run_logger() -> logging.Logger:
    return _logger


def open_run_log(log_dir: Path, script_name: str) -> Path:
    """
    Attach a fresh file handler named <script_name>_<YYYYmmdd_HHMMSS>.log.

    Any handler from a previous invocation in the same process is closed
    first, so one run never writes into another run's file.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"{script_name}_{timestamp}.log"

    close_run_log()
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
    _logger.addHandler(handler)
    return log_file


def close_run_log() -> None:
    for handler in list(_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            _logger.removeHandler(handler)
            handler.close()
