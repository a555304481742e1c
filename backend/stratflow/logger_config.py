"""
Central loguru configuration
Call init_logger() once at process start (server or script), never on import.
"""
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def init_logger(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Replace loguru's default sink with console (and optional file) output"""
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=True)

    if log_file:
        logger.add(
            log_file,
            level=level,
            format=LOG_FORMAT,
            rotation="1 day",
            retention="7 days",
            enqueue=True,
        )

    logger.debug(f"Logger initialized (level {level})")
