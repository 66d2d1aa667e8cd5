"""Utility functions and helpers."""

from .health import get_health_server, start_health_server, stop_health_server
from .logging import setup_logging
from .observability import ExceptionCapture, LoggingExceptionCapture, RecordingExceptionCapture
from .tasks import BackgroundTasks

__all__ = [
    "BackgroundTasks",
    "ExceptionCapture",
    "LoggingExceptionCapture",
    "RecordingExceptionCapture",
    "setup_logging",
    "start_health_server",
    "stop_health_server",
    "get_health_server",
]
