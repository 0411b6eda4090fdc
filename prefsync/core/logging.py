"""
Structured Logging
structlog-backed logger with keyword context, shared by every component
"""
import logging
import sys
from typing import Any, Optional

import structlog

_configured = False


def configure_logging(log_level: str = "INFO", json_logs: bool = False):
    """Configure structlog processors and the stdlib root handler"""
    global _configured

    level = getattr(logging, str(log_level).upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _configured = True


class StructuredLogger:
    """Structured logger bound to a service name and environment"""

    def __init__(self, service_name: str = "prefsync", environment: str = "development",
                 log_level: str = "INFO", json_logs: Optional[bool] = None):
        self.service_name = service_name
        self.environment = environment

        if not _configured:
            configure_logging(log_level, json_logs if json_logs is not None else environment == "production")

        self.logger = structlog.get_logger(service_name).bind(
            service=service_name,
            environment=environment
        )

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Return a child logger carrying extra context"""
        child = StructuredLogger.__new__(StructuredLogger)
        child.service_name = self.service_name
        child.environment = self.environment
        child.logger = self.logger.bind(**kwargs)
        return child

    def debug(self, message: str, **kwargs: Any):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs: Any):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs: Any):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs: Any):
        self.logger.error(message, **kwargs)

