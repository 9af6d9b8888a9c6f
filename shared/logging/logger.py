import logging
import os
from datetime import datetime
from pathlib import Path

_LOGGERS = {}


def _log_dir() -> Path | None:
    """
    Resolve the log directory for file handlers.

    LIVEWALL_LOG_DIR="" disables file logging (console only).
    """
    raw = os.getenv("LIVEWALL_LOG_DIR", "logs")
    if not raw.strip():
        return None
    path = Path(raw)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_logger(
    name: str,
    *,
    runtime: str = "livewall",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. youtube.resolver, external.prober)
    - runtime: log file prefix (livewall | scripts)
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # ------------------------------
    # Console handler
    # ------------------------------
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    log_dir = _log_dir()
    if log_dir is not None:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        logfile = log_dir / f"{runtime}-{timestamp}.log"

        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger
