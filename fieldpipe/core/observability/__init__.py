"""Observability — process-wide logging setup."""

from fieldpipe.core.observability.logging_config import setup_logging

__all__ = ["setup_logging"]
