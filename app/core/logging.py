import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from app.config import get_settings

# Noisy request paths that only show up at DEBUG level
QUIET_PATHS = ("/health", "/api/sse/status")


class InterceptHandler(logging.Handler):
    """Intercept stdlib logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the stdlib call
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _quiet_path_filter(record: dict[str, Any]) -> bool:
    """Only show polling/health request logs at DEBUG level."""
    message = record.get("message", "")
    if any(path in message for path in QUIET_PATHS):
        return bool(record["level"].no <= 10)
    return True


def _format_extra(record: dict[str, Any]) -> str:
    """Render bound context (job_id, dataset_id, ...) after the message."""
    extra = {k: v for k, v in record["extra"].items() if k != "name"}
    record["extra"]["_context"] = " ".join(f"{k}={v}" for k, v in extra.items())
    return (
        "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | "
        "{message} {extra[_context]}\n{exception}"
    )


def setup_logging() -> None:
    """Configure loguru for the application."""
    settings = get_settings()

    logger.remove()

    if settings.debug:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level> {extra}"
            ),
            backtrace=True,
            diagnose=True,
        )
    else:
        logger.add(
            sys.stderr,
            level="INFO",
            format=_format_extra,
            filter=_quiet_path_filter,
            backtrace=True,
            diagnose=False,
        )

        # Audit-adjacent events are kept on disk for compliance review
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "maskwise-jobs.log",
            level="INFO",
            format=_format_extra,
            rotation="50 MB",
            retention="30 days",
            compression="gz",
            enqueue=True,
        )

    # Intercept stdlib logging (uvicorn, sqlalchemy, httpx)
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in [
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "sqlalchemy.engine",
        "httpx",
    ]:
        logging.getLogger(name).handlers = [InterceptHandler()]


def get_logger(name: str) -> Any:
    """Get a logger bound to a module name."""
    return logger.bind(name=name)
