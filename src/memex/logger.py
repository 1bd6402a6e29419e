"""Logging configuration for memex."""

import datetime
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_FILE = "~/.config/memex/logs/memex.log"
MAX_LOG_FILE_BYTES = 5 * 1024 * 1024  # 5 MiB per rotated file.
LOG_BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
NOISY_LIBRARIES = (
    "urllib3",
    "requests",
    "trafilatura",
    "htmldate",
    "sentence_transformers",
    "filelock",
    "huggingface_hub",
)
_ROLLED_LOG_PATHS: set[Path] = set()


def generate_timestamped_log_path(base_path: Union[str, Path]) -> Path:
    """Generate a log file path with a timestamp prefix."""
    path = Path(base_path).expanduser()
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return path.parent / f"{timestamp}_{path.name}"


def _archive_existing_log_file(log_path: Path) -> None:
    """Archive an existing log file to a timestamp-prefixed name once per process."""
    resolved_path = log_path.resolve()
    if resolved_path in _ROLLED_LOG_PATHS:
        return
    if not log_path.exists():
        _ROLLED_LOG_PATHS.add(resolved_path)
        return
    archived_path = generate_timestamped_log_path(log_path)
    suffix = 1
    while archived_path.exists():
        archived_path = archived_path.parent / f"{suffix}_{archived_path.name}"
        suffix += 1
    log_path.rename(archived_path)
    _ROLLED_LOG_PATHS.add(resolved_path)


def _build_file_handler(log_path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        log_path,
        mode="a",
        maxBytes=MAX_LOG_FILE_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    return handler


def setup_logging(
    level_name: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    archive_existing: bool = True,
) -> None:
    """Configure root logging to a rotating file.

    Only file handlers are installed. The native host relies on this: its
    stdout carries protocol frames and must never receive log records.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    if not log_file:
        return
    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    if archive_existing:
        _archive_existing_log_file(log_path)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates if re-initialized
    for existing_handler in list(logger.handlers):
        logger.removeHandler(existing_handler)
        existing_handler.close()

    logger.addHandler(_build_file_handler(log_path, level))

    for lib in NOISY_LIBRARIES:
        logging.getLogger(lib).setLevel(logging.WARNING)
