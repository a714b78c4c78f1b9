"""Logging configuration for the outreach engine with structured output and file logging."""

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from outreach_queue.config.trace_context import configure_trace_logging


def configure_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the outreach engine.
    Every record includes the trace_id of the batch run or sync pass that
    emitted it.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
    """
    # Remove default logger to reconfigure
    logger.remove()
    configure_trace_logging()

    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    log_file = log_file or os.getenv("OUTREACH_LOG_FILE")

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>outreach-queue</cyan> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "trace_id={extra[trace_id]} - <level>{message}</level>"
    )

    logger.add(
        sys.stderr,
        format=console_format,
        level=log_level,
        colorize=True,
        backtrace=True,
        diagnose=False,
        enqueue=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "outreach-queue | "
                "{name}:{function}:{line} | "
                "trace_id={extra[trace_id]} | "
                "{message} | {extra}"
            ),
            level=log_level,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )
        logger.info(f"Logging configured - file: {log_file}, level: {log_level}")
    else:
        logger.info(f"Logging configured - console only, level: {log_level}")
