"""Logging configuration for the currency exchange API."""

from common.logging_config import configure_structlog, get_logger

configure_structlog("exchange-api")

__all__ = ["get_logger"]
