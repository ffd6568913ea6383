"""
Logging configuration using Loguru.

Task workers run inside `task_log_context`, so every record written while a
task executes carries its task, dataset and document ids without each call
site passing them.
"""

import sys
from contextlib import AbstractContextManager
from pathlib import Path

from loguru import logger

from ragweave.config import LoggingConfig

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[task_id]}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[task_id]} | {name}:{line} - {message}"


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure console and (optionally) rotating file sinks."""
    config = config or LoggingConfig()
    logger.remove()
    logger.configure(extra={"task_id": "-", "dataset_id": None, "document_id": None})

    logger.add(sys.stderr, level=config.level, format=_CONSOLE_FORMAT, colorize=True)

    if config.log_to_file:
        log_path = Path(config.log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        # JSON lines when serialize is on
        logger.add(
            log_path / "ragweave_{time:YYYY-MM-DD}.log",
            level=config.level,
            format=_FILE_FORMAT,
            rotation=config.file_rotation,
            retention=config.file_retention,
            compression=config.compression,
            serialize=config.serialize,
            enqueue=True,
        )


def task_log_context(
    task_id: str, dataset_id: str, document_id: str | None = None
) -> AbstractContextManager:
    """Bind task identifiers to every record logged inside the block."""
    return logger.contextualize(task_id=task_id, dataset_id=dataset_id, document_id=document_id)


def get_logger(name: str):
    """Get a logger instance for a module."""
    return logger.bind(module=name)
