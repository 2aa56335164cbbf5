import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure the root logger for the whole process.

    Safe to call more than once: handlers are only installed on the first call,
    later calls just adjust the level.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel(log_level.upper())
    if _configured:
        return

    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # uvicorn installs its own access logger; keep it but route through ours
    logging.getLogger("uvicorn.access").propagate = True
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
