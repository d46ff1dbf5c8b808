"""Structured logging: JSON formatter and setup."""

from chouse_rbac.logging.formatter import JSONLogFormatter
from chouse_rbac.logging.setup import configure_logging

__all__ = ["JSONLogFormatter", "configure_logging"]
