import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

RED = "\033[91m"
YELLOW = "\033[93m"
GREEN = "\033[92m"
RESET = "\033[0m"
WHITE = "\033[97m"

LOGGER_NAME = "schema_reporting"


def log_status(status, message, extra=""):
    status = status.lower()
    color = WHITE  # default

    if status == "error":
        color = RED
    elif status == "warning":
        color = YELLOW
    elif status == "good":
        color = GREEN

    if not extra:
        logging.info(f"{color}{message}{RESET}")
    else:
        logging.info(f"{color}{message}{extra}{RESET}")


def log_event(logger: logging.Logger, level: int, event: str, exc_info: bool = False, **fields) -> None:
    """Emit one JSON line: {"event": <event>, **fields}."""
    logger.log(level, json.dumps({"event": event, **fields}), exc_info=exc_info)


def setup_reporting_logging(env: str = "", log_path_str: str = "logs/schema_reporting.log") -> logging.Logger:
    """
    Configure the "schema_reporting" logger.

    - JSON-lines only (one json.dumps payload per record) so log files are machine-parseable
    - FLASK_ENV=testing -> rotating file at log_path_str (relative to CWD), otherwise stdout
    - Handlers are cleared on every call so the latest configuration always applies
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False  # don't duplicate logs through root logger

    env = (env or "").lower().strip()

    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    log_path = None
    if env == "testing":
        # Use CWD so both server and tests refer to the same relative path
        log_path = (Path(os.getcwd()) / log_path_str).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=2_000_000,
            backupCount=2,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    log_event(
        logger,
        logging.INFO,
        "logger_ready",
        env=env or "unknown",
        log_path=str(log_path) if log_path else None,
    )
    return logger
