"""Exception capture collaborators."""

from typing import Any, Protocol

import structlog


logger = structlog.get_logger(__name__)


class ExceptionCapture(Protocol):
    """Destination for unexpected errors (error tracker, log sink, ...)."""

    def capture_exception(self, error: BaseException, **context: Any) -> None: ...


class LoggingExceptionCapture:
    """Default capture that writes the exception, with traceback, to the log."""

    name = "log"

    def capture_exception(self, error: BaseException, **context: Any) -> None:
        logger.error(
            "Captured exception",
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
            **context,
        )


class RecordingExceptionCapture:
    """Keeps captured exceptions in memory; useful for tests and debugging."""

    name = "memory"

    def __init__(self) -> None:
        self.captured: list[tuple[BaseException, dict[str, Any]]] = []

    def capture_exception(self, error: BaseException, **context: Any) -> None:
        self.captured.append((error, context))
