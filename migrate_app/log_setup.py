import logging
import sys
from pathlib import Path
from datetime import datetime, timezone

LOGGER_NAME = "migrate_app"
VERBOSE_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s'


def setup_logging(log_level_console=logging.INFO, log_file=None):
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(logging.DEBUG)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()

    # Console
    log_fmt_console = '%(levelname)-8s: %(message)s'
    if log_level_console <= logging.DEBUG:
        log_fmt_console = VERBOSE_FORMAT

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level_console)
    console_handler.setFormatter(logging.Formatter(log_fmt_console, datefmt='%H:%M:%S'))
    log.addHandler(console_handler)

    # File
    if log_file:
        try:
            log_file_path = Path(log_file).resolve()
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, mode='a', encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S%z'))
            log.addHandler(file_handler)
            log.info(f"--- Log session started: {datetime.now(timezone.utc).isoformat()} ---")
            log.info(f"Command: {' '.join(sys.argv)}")
        except OSError as e:
            log.error(f"Failed to configure file logging to '{log_file}': {e}")
    return log
