"""Logging utilities."""
import json
import logging
import sys
from typing import Any, Optional


def setup_logger(
    name: str = "exportgate", level: Optional[int] = None
) -> logging.Logger:
    """Set up and configure a logger.

    Args:
        name: Logger name
        level: Logging level (defaults to INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if level is None:
        level = logging.INFO

    logger.setLevel(level)

    # Check if logger already has handlers
    if not logger.handlers:
        # Create console handler
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)

        # Create formatter
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

        # Add handler to logger
        logger.addHandler(handler)

    return logger


class RequestLogger(logging.LoggerAdapter):
    """Logger adapter prefixing every message with the request id."""

    def process(self, msg, kwargs):
        return f"[{self.extra['request_id']}] {msg}", kwargs


def request_logger(request_id: str) -> RequestLogger:
    """Bind the global logger to one request.

    Args:
        request_id: Short correlation id of the current request

    Returns:
        Adapter writing ``[request_id] message`` lines
    """
    return RequestLogger(logger, {"request_id": request_id})


def audit_event(event: str, request_id: str, **fields: Any) -> None:
    """Emit one audit event as a single JSON line.

    Never raises: audit consumers are fire-and-forget.

    Args:
        event: Event name, e.g. ``export.denied``
        request_id: Correlation id of the request
        **fields: Extra event attributes
    """
    try:
        payload = {"event": event, "requestId": request_id, **fields}
        audit_logger.info(json.dumps(payload, default=str, ensure_ascii=False))
    except Exception as e:
        logger.warning(f"[{request_id}] Could not emit audit event {event}: {e}")


# Global logger instances
logger = setup_logger()
audit_logger = setup_logger("exportgate.audit")
audit_logger.propagate = False
