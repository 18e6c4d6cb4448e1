"""Test upload response classification"""

import pytest

from tube_publisher.transfer.status import TransferStatus, classify, is_server_error


class TestClassify:
    """Test the status table of the resumable protocol"""

    def test_created_is_completed(self):
        """201 completes the upload whatever the request was"""
        assert classify(201) == TransferStatus.COMPLETED
        assert classify(201, final_chunk=True) == TransferStatus.COMPLETED

    def test_ok_depends_on_final_chunk(self):
        """200 only completes the request carrying the last byte"""
        assert classify(200, final_chunk=True) == TransferStatus.COMPLETED
        assert classify(200) == TransferStatus.RESUMABLE

    def test_resume_incomplete(self):
        assert classify(308) == TransferStatus.RESUMABLE
        assert classify(308, final_chunk=True) == TransferStatus.RESUMABLE

    @pytest.mark.parametrize("status_code", [500, 502, 503, 504])
    def test_server_errors_are_resumable(self, status_code):
        """Transient server errors keep the session alive"""
        assert classify(status_code) == TransferStatus.RESUMABLE
        assert is_server_error(status_code)

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 410, 501, 505])
    def test_everything_else_is_permanent(self, status_code):
        assert classify(status_code) == TransferStatus.PERMANENT_FAILURE
        assert not is_server_error(status_code)
