"""Logging setup for the LearnLoop backend."""

import logging
import logging.handlers
from pathlib import Path

from .config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """
    Configure root logging from settings.

    Installs a console handler and, when LOG_FILE is set, a rotating file
    handler. Safe to call more than once.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_learnloop", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console._learnloop = True
        root.addHandler(console)

        if settings.LOG_FILE:
            log_path = Path(settings.LOG_FILE)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler._learnloop = True
            root.addHandler(file_handler)

    # SQL echo is controlled by DEBUG on the engine; keep the noisy HTTP clients quiet.
    for noisy in ("httpx", "httpcore", "openai", "chromadb"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
