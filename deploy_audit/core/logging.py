"""
Logging for the deployment audit service.

Every module logs through `get_logger(__name__)`; `setup_logging` is called
once from the FastAPI lifespan.

    logger = get_logger(__name__)
    logger.info("Deployment %s verified: %s", deployment_id, status)
"""

import logging
import sys
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request and per-statement output from these is rarely useful.
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def setup_logging(level: str = "INFO", quiet: Iterable[str] = QUIET_LOGGERS) -> None:
    """
    Configure the root logger to write to stdout.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        quiet: Loggers held at WARNING regardless of `level`.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
