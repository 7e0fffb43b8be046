"""Logging configuration for the warehouse gateway."""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

MB = 1024 * 1024

# (filename, max bytes, backups, minimum level or None for the configured level)
ROTATING_LOG_FILES: tuple[tuple[str, int, int, int | None], ...] = (
    ("app.log", 10 * MB, 5, None),
    ("error.log", 5 * MB, 3, logging.ERROR),
)

# Third-party loggers that are too chatty at the gateway's own level
QUIET_LOGGERS = ("httpx", "httpcore")


class LoggingService:
    """Routes structlog events through standard library handlers.

    Console output goes to stderr, leaving stdout to command results. With a
    ``log_dir`` every event is also written as JSON to rotating files.
    """

    def __init__(self, log_level: str = "INFO", log_dir: Path | None = None) -> None:
        self.log_level = log_level.upper()
        self.log_dir = log_dir
        self.is_development = os.getenv("ENVIRONMENT", "development") == "development"

    @property
    def numeric_level(self) -> int:
        # getLevelName maps known names to ints and anything else to a "Level x" string
        level = logging.getLevelName(self.log_level)
        return level if isinstance(level, int) else logging.INFO

    def configure(self) -> None:
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(self.numeric_level)

        for handler in self._build_handlers():
            root_logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(self.numeric_level, logging.WARNING))

        structlog.configure(
            processors=self._processors(),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _build_handlers(self) -> list[logging.Handler]:
        plain = logging.Formatter("%(message)s")

        console = logging.StreamHandler(sys.stderr)
        console.setLevel(self.numeric_level)
        console.setFormatter(plain)
        handlers: list[logging.Handler] = [console]

        if self.log_dir is None:
            return handlers

        self.log_dir.mkdir(parents=True, exist_ok=True)
        for filename, max_bytes, backups, level in ROTATING_LOG_FILES:
            handler = logging.handlers.RotatingFileHandler(
                filename=self.log_dir / filename,
                maxBytes=max_bytes,
                backupCount=backups,
                encoding="utf-8",
            )
            handler.setLevel(level if level is not None else self.numeric_level)
            handler.setFormatter(plain)
            handlers.append(handler)
        return handlers

    def _processors(self) -> list[Any]:
        processors: list[Any] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        # Log files must stay machine-readable, so the pretty console is development-only
        if self.is_development and self.log_dir is None:
            processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
        else:
            processors.append(structlog.processors.JSONRenderer())
        return processors

    def get_logger(self, name: str | None = None) -> structlog.stdlib.BoundLogger:
        return structlog.stdlib.get_logger(name)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    environment: str | None = None,
) -> LoggingService:
    """Configure logging for the process and return the service.

    Args:
        log_level: Minimum level to capture
        log_dir: Directory for rotating JSON log files (None for console only)
        environment: Overrides the ENVIRONMENT variable (development/production)
    """
    if environment:
        os.environ["ENVIRONMENT"] = environment

    service = LoggingService(log_level=log_level, log_dir=log_dir)
    service.configure()
    return service
