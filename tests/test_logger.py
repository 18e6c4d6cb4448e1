"""Test logging setup and report files"""

import logging

import pytest

from tube_publisher.core.logger import (
    _ReportHandler,
    format_transfer_progress,
    get_logger,
    log_playlist_change,
    log_transfer_failure,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def logs_dir(temp_dir):
    setup_logging(temp_dir, console_level=logging.CRITICAL)
    yield temp_dir / "logs"
    shutdown_logging()


def read_log(logs_dir, prefix):
    (path,) = logs_dir.glob(f"{prefix}_*.log")
    for handler in logging.getLogger().handlers:
        handler.flush()
    return path.read_text(encoding="utf-8")


class TestSetupLogging:
    """Test the log files of a run"""

    def test_creates_all_files(self, logs_dir):
        names = sorted(p.name.rsplit("_", 2)[0] for p in logs_dir.iterdir())
        assert names == ["log_errors", "log_full", "playlist_changes", "transfer_failures"]

    def test_error_log_only_has_errors(self, logs_dir):
        logger = get_logger("tube_publisher.test")
        logger.info("just info")
        logger.error("something broke")

        errors = read_log(logs_dir, "log_errors")
        full = read_log(logs_dir, "log_full")

        assert "something broke" in errors
        assert "just info" not in errors
        assert "just info" in full

    def test_transfer_failure_report(self, logs_dir):
        log_transfer_failure(
            get_logger("tube_publisher.test"),
            "videos/day-01.mp4",
            "https://upload.example/session",
            403,
            '{"error": "quotaExceeded"}'
        )

        report = read_log(logs_dir, "transfer_failures")

        assert "videos/day-01.mp4 (status 403)" in report
        assert "https://upload.example/session" in report
        assert "quotaExceeded" in report

    def test_playlist_change_report(self, logs_dir):
        logger = get_logger("tube_publisher.test")
        log_playlist_change(logger, "PL1", "insert at 1 (abc)")
        logger.info("unrelated")

        report = read_log(logs_dir, "playlist_changes")

        assert report == "PL1  insert at 1 (abc)\n"


class TestFormatTransferProgress:

    def test_format(self):
        assert format_transfer_progress(8388608, 33554432) == "uploaded 8388608 of 33554432 bytes (25.00%)"
        assert format_transfer_progress(0, 0) == "uploaded 0 of 0 bytes (0.00%)"


class TestReportHandler:

    def test_base_cannot_be_instantiated(self, temp_dir):
        with pytest.raises(TypeError):
            _ReportHandler(temp_dir / "report.log")
