"""Structured logging configuration for macro-mcp.

All records go to stderr as JSON so they never mix with the MCP stdio stream.
Each engine run binds its own context (operation, document path, application)
so the host, trust and teardown events of one run can be correlated.
"""

import logging
import sys
import structlog

# Log level applied to the stdlib root logger.
DEFAULT_LOG_LEVEL = logging.INFO


def configure_logging(level: int = DEFAULT_LOG_LEVEL) -> None:
    """Configure structlog with JSON rendering routed through stdlib logging.

    Args:
        level: Minimum stdlib log level (default: INFO)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound with the module name."""
    return structlog.get_logger(name)


def get_run_logger(name: str, operation: str, path: str) -> structlog.stdlib.BoundLogger:
    """Get a module logger bound to one engine run.

    Args:
        name: Module name (typically __name__)
        operation: Engine operation ("inspect" or "remove")
        path: Absolute path of the target document

    Returns:
        BoundLogger carrying operation and path on every event; the engine
        binds the application once the file type is resolved
    """
    return structlog.get_logger(name).bind(operation=operation, path=path)


configure_logging()
