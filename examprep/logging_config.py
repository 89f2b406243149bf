import logging
import sys

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging():
    """Configure the root logger once for the API process.

    Calling this more than once is a no-op so test modules can import the
    application repeatedly without stacking handlers.
    """
    root_logger = logging.getLogger()
    if any(getattr(h, "_examprep", False) for h in root_logger.handlers):
        return
    log_level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.setLevel(log_level)
    console_handler._examprep = True

    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)
