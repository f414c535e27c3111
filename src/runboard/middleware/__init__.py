# src/runboard/middleware/__init__.py

"""Middleware components for Runboard API."""

from .logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
