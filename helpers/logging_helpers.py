import logging
import os
from typing import Optional

LOG_LEVEL_ENV = "ERA_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _to_level(value: Optional[str]) -> int:
    if not value:
        return logging.INFO
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> int:
    """
    Configure the root logger once for the console assistant.

    The level comes from the argument, then ERA_LOG_LEVEL, then INFO.
    Returns the numeric level that was applied.
    """
    log_level = _to_level(level or os.getenv(LOG_LEVEL_ENV))
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=log_level, format=LOG_FORMAT)
    root.setLevel(log_level)

    # Chatty third-party loggers
    for name in ("urllib3", "httpx", "google_genai"):
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
    return log_level
