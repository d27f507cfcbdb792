"""
Logging Configuration Module

Queue-based logging for the guest pass service, plus silencing of noisy
third-party loggers.
"""

import logging
import logging.handlers
import sys
from queue import Queue
from typing import Optional


class QueueLoggingConfig:
    """Logging configuration with a QueueHandler feeding one console listener."""

    def __init__(self):
        self._log_listener: Optional[logging.handlers.QueueListener] = None
        self._log_queue: Optional[Queue] = None

    def setup_logging(self, debug: bool = False) -> None:
        """
        Route all records through a queue to a single stdout handler.

        Flask async views run on their own event loops in worker threads;
        the listener keeps their lines from interleaving.

        Args:
            debug: Whether to enable debug logging
        """
        if self._log_listener is not None:
            self.stop()

        self._log_queue = Queue()
        queue_handler = logging.handlers.QueueHandler(self._log_queue)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s")
        )

        self._log_listener = logging.handlers.QueueListener(
            self._log_queue, console_handler, respect_handler_level=True
        )
        self._log_listener.start()

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.addHandler(queue_handler)
        root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

        if not debug:
            self._silence_noisy_libraries()

    def _silence_noisy_libraries(self) -> None:
        """Silence noisy third-party libraries."""
        # Per-request access lines from the dev server
        class _MuteAccessLogFilter(logging.Filter):
            def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
                msg = record.getMessage()
                return not (record.name == "werkzeug" and isinstance(msg, str) and '"GET /' in msg)

        for handler in logging.getLogger().handlers:
            handler.addFilter(_MuteAccessLogFilter())

        noisy_loggers = [
            "asyncio",
            "urllib3",
            "asgiref",
        ]

        for name in noisy_loggers:
            logger = logging.getLogger(name)
            logger.setLevel(logging.WARNING)
            logger.handlers.clear()
            logger.addHandler(logging.NullHandler())
            logger.propagate = False

    def stop(self) -> None:
        """Stop the logging listener and cleanup."""
        if self._log_listener:
            self._log_listener.stop()
            self._log_listener = None
        if self._log_queue:
            self._log_queue = None


# Global logging configuration instance
logging_config = QueueLoggingConfig()


def setup_logging(debug: bool = False) -> None:
    """
    Setup queue-based logging configuration.

    Args:
        debug: Whether to enable debug logging
    """
    logging_config.setup_logging(debug)


def stop_logging() -> None:
    """Stop the logging listener and cleanup."""
    logging_config.stop()
