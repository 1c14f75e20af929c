"""
CAPM Allocator - Logger Configuration
Loguru sinks shared by the estimator, the reducer and the solvers
"""
import sys
from pathlib import Path
from loguru import logger

from capm_allocator.config import settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[app]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[app]} ({extra[env]}) | {name}:{function}:{line} - {message}"

logger.remove()

# Every record carries the application name and environment
logger.configure(extra={"app": settings.APP_NAME, "env": settings.APP_ENV})

logger.add(
    sys.stderr,
    colorize=True,
    format=CONSOLE_FORMAT,
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
)

if settings.LOG_TO_FILE:
    log_path = Path(settings.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_path / "allocator.log",
        rotation="10 MB",
        retention="30 days",
        compression="gz",
        format=FILE_FORMAT,
        level="DEBUG",
    )

    # Errors only
    logger.add(
        log_path / "error.log",
        rotation="10 MB",
        retention="30 days",
        compression="gz",
        format=FILE_FORMAT,
        level="ERROR",
    )


__all__ = ["logger"]
