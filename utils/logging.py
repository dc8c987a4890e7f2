"""Central logging configuration for the Flask app."""
from __future__ import annotations

import logging
import os


class ContextFilter(logging.Filter):
    """Attach the request path and caller address to records emitted in a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        from flask import has_request_context, request

        if has_request_context():
            record.path = request.path
            record.remote_addr = request.remote_addr or "-"
        else:
            record.path = "-"
            record.remote_addr = "-"
        return True


def configure_logging() -> None:
    """Configure root logging handlers.

    ``LOG_FORMAT=json`` switches to JSON-style lines for log shippers; the
    default is a human readable format for local development.  Each line
    carries the request path and remote address when logged inside a
    request so downstream failures can be traced back to the caller.
    """

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT", "text")

    if log_format == "json":
        formatter = logging.Formatter(
            "{\"timestamp\": \"%(asctime)s\", \"level\": \"%(levelname)s\", "
            "\"name\": \"%(name)s\", \"path\": \"%(path)s\", "
            "\"remote_addr\": \"%(remote_addr)s\", \"message\": \"%(message)s\"}"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-7s | %(name)s | %(path)s | %(message)s"
        )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
