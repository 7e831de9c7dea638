"""Shared utilities."""

from .logging import get_request_id, request_context, setup_logging

__all__ = ["get_request_id", "request_context", "setup_logging"]
