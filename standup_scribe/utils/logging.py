import logging
import sys
from typing import Iterable

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "slack_sdk", "google.auth", "aiosqlite")


def setup_logging(level: str = "INFO", quiet: Iterable[str] = NOISY_LOGGERS) -> None:
    """Configure the root logger for the service and the background workers."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

    for name in quiet:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
