import logging
import sys

from app_paths import get_log_path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO", console=True, log_file=None):
    """Log to the app log file and, optionally, stdout."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers = [logging.FileHandler(log_file or get_log_path(), encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # requests' connection pool chatter drowns out our own debug output
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
