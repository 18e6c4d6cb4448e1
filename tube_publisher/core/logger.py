"""
Logging configuration for tube-publisher.

This module sets up the logging system with multiple outputs:
    - Console: Real-time progress with tqdm-compatible formatting
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - transfer_failures.log: Uploads that were permanently rejected
    - playlist_changes.log: Every playlist edit actually applied

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized files.

Log File Locations:
    All log files are created in a 'logs' subdirectory of the output
    directory specified in config.yaml, one set per run.

Usage:
    from tube_publisher.core.logger import setup_logging, get_logger

    setup_logging(output_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting upload")
"""

import logging
import sys
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log format for console output (compact, tqdm-friendly)
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with a colored level name."""
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    Progress bars redraw themselves in place with carriage returns;
    plain writes to stderr would interleave with them. tqdm.write()
    prints above any active bar instead.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class _ReportHandler(logging.Handler, ABC):
    """
    Base for handlers that write selected records to a plain report file.

    Subclasses set MARKER (the extra field that selects a record) and
    implement _render(record) returning the text block to append.
    """

    MARKER = ""

    def __init__(self, report_path: Path) -> None:
        """
        Args:
            report_path: Path of the report file. Created/overwritten by open().
        """
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (called by setup_logging())."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, self.MARKER):
            return

        if self.report_file is None:
            return

        try:
            self.acquire()
            try:
                self.report_file.write(self._render(record))
                self.report_file.flush()
            finally:
                self.release()
        except Exception:
            self.handleError(record)

    @abstractmethod
    def _render(self, record: logging.LogRecord) -> str:
        pass

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class TransferFailureHandler(_ReportHandler):
    """
    Captures permanently failed uploads for transfer_failures.log.

    Written format:

        videos/day-01.mp4 (status 403)
        https://www.googleapis.com/upload/youtube/v3/videos?upload_id=xxx
        {"error": {"message": "quotaExceeded"}}

    Records are selected by the 'transfer_failed_source' extra field.
    Use log_transfer_failure() rather than building the extras by hand.
    """

    MARKER = "transfer_failed_source"

    def _render(self, record: logging.LogRecord) -> str:
        source = getattr(record, "transfer_failed_source", "unknown")
        status = getattr(record, "transfer_failed_status", None)
        url = getattr(record, "transfer_failed_url", "")
        body = getattr(record, "transfer_failed_body", "")

        header = f"{source} (status {status})" if status is not None else source
        lines = [header, url]
        if body:
            lines.append(body.strip())
        return "\n".join(lines) + "\n\n"


class PlaylistChangeHandler(_ReportHandler):
    """
    Captures applied playlist edits for playlist_changes.log.

    Written format (one line per operation):

        PLxxxx  delete at 3 (dQw4w9WgXcQ)
        PLxxxx  insert at 1 (9bZkp7q19f0)

    Records are selected by the 'playlist_change_id' extra field.
    """

    MARKER = "playlist_change_id"

    def _render(self, record: logging.LogRecord) -> str:
        playlist_id = getattr(record, "playlist_change_id", "")
        operation = getattr(record, "playlist_change_op", "")
        return f"{playlist_id}  {operation}\n"


class ErrorOnlyFilter(logging.Filter):
    """
    Filter that only allows ERROR and CRITICAL level records.

    Used by the error log file handler to exclude DEBUG, INFO, and WARNING.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(output_dir: Path, console_level: int = logging.INFO) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        output_dir: Directory where log files will be created.
                    Logs are stored in a 'logs' subdirectory.
        console_level: Minimum level printed to the console.

    Behavior:
        1. Create output_dir/logs if it doesn't exist
        2. Generate timestamp for this run's log files
        3. Configure root logger level to DEBUG
        4. Console handler (TqdmLoggingHandler), colored, console_level
        5. log_full_{timestamp}.log, DEBUG, full format
        6. log_errors_{timestamp}.log, ERROR+ via ErrorOnlyFilter
        7. transfer_failures_{timestamp}.log
        8. playlist_changes_{timestamp}.log

    Thread Safety:
        This function is NOT thread-safe. Call it once from the main
        thread before starting any worker threads.
    """
    logs_dir = output_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_handler = logging.FileHandler(
        logs_dir / f"log_full_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        logs_dir / f"log_errors_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    failures_handler = TransferFailureHandler(logs_dir / f"transfer_failures_{timestamp}.log")
    failures_handler.open()
    root_logger.addHandler(failures_handler)

    changes_handler = PlaylistChangeHandler(logs_dir / f"playlist_changes_{timestamp}.log")
    changes_handler.open()
    root_logger.addHandler(changes_handler)

    # urllib3 logs every connection at DEBUG; keep it out of log_full
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    This is a convenience wrapper around logging.getLogger() that ensures
    consistent logger naming throughout the application.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Returns:
        logging.Logger: A logger instance configured by setup_logging().

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def format_transfer_progress(offset: int, total: int) -> str:
    """
    Format an upload progress line.

    Example:
        format_transfer_progress(8388608, 33554432)
        # "uploaded 8388608 of 33554432 bytes (25.00%)"
    """
    percent = (offset / total * 100) if total else 0.0
    return f"uploaded {offset} of {total} bytes ({percent:.2f}%)"


def log_transfer_failure(
    logger: logging.Logger,
    source_descriptor: str,
    upload_url: str,
    status_code: int | None,
    body: str
) -> None:
    """
    Log an upload that the endpoint permanently rejected.

    Logs an ERROR level message and attaches the extra fields that
    TransferFailureHandler writes to transfer_failures.log.

    Args:
        logger: The logger to use for the message.
        source_descriptor: Local path or cloud file id of the content.
        upload_url: The resumable session URL that was rejected.
        status_code: HTTP status of the rejection.
        body: Response body of the rejection.
    """
    logger.error(
        f"Upload failed: {source_descriptor} (status {status_code})",
        extra={
            "transfer_failed_source": source_descriptor,
            "transfer_failed_status": status_code,
            "transfer_failed_url": upload_url,
            "transfer_failed_body": body,
        }
    )


def log_playlist_change(logger: logging.Logger, playlist_id: str, operation: str) -> None:
    """
    Log one applied playlist operation.

    Logs an INFO level message and attaches the extra fields that
    PlaylistChangeHandler writes to playlist_changes.log.

    Example:
        log_playlist_change(logger, "PLxxxx", "insert at 1 (9bZkp7q19f0)")
    """
    logger.info(
        f"Playlist {playlist_id}: {operation}",
        extra={
            "playlist_change_id": playlist_id,
            "playlist_change_op": operation,
        }
    )


def shutdown_logging() -> None:
    """
    Properly shut down the logging system.

    Flushes and closes every handler on the root logger, then removes them.
    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
