"""Observability helpers."""

from .logging import JsonFormatter, configure_logging
from .queries import add_query_logger

__all__ = ["JsonFormatter", "add_query_logger", "configure_logging"]
