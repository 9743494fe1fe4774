"""Tests for failure classification."""

import pytest

from outcome_engine.breakers.classifier import classify_error, error_message
from outcome_engine.breakers.errors import OperationTimeoutError
from outcome_engine.breakers.models import FailureType


class TestErrorMessage:
    """Test suite for error_message."""

    def test_message(self):
        assert error_message(RuntimeError("boom")) == "boom"

    def test_no_args(self):
        assert error_message(RuntimeError()) == ""


class TestClassifyError:
    """Test suite for classify_error."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Request timeout after 30s", FailureType.TIMEOUT),
            ("OPERATION_TIMEOUT", FailureType.TIMEOUT),
            ("CONNECTION reset by peer", FailureType.CONNECTION),
            ("connect ECONNREFUSED 127.0.0.1:27017", FailureType.CONNECTION),
            ("MongoDB primary stepped down", FailureType.DATABASE),
            ("DATABASE locked", FailureType.DATABASE),
            ("validation failed for field score", FailureType.VALIDATION),
            ("AI provider returned 503", FailureType.AI_SERVICE),
            ("analytics pipeline crashed", FailureType.AI_SERVICE),
            ("something else entirely", FailureType.UNKNOWN),
        ],
    )
    def test_message_markers(self, message: str, expected: FailureType):
        """Test message-based buckets."""
        assert classify_error(RuntimeError(message)) is expected

    def test_priority_order(self):
        """Test the first matching bucket wins."""
        assert classify_error(RuntimeError("MongoDB timeout")) is FailureType.TIMEOUT
        assert classify_error(RuntimeError("DATABASE validation")) is FailureType.DATABASE

    def test_markers_are_case_sensitive(self):
        """Test lowercase variants without a marker stay UNKNOWN."""
        assert classify_error(RuntimeError("connection reset")) is FailureType.UNKNOWN
        assert classify_error(RuntimeError("mongodb down")) is FailureType.UNKNOWN

    def test_timeout_error_type(self):
        """Test TimeoutError subclasses classify as TIMEOUT."""
        assert classify_error(OperationTimeoutError(30)) is FailureType.TIMEOUT
        assert classify_error(TimeoutError()) is FailureType.TIMEOUT

    def test_connection_error_type(self):
        """Test ConnectionError subclasses classify as CONNECTION."""
        assert classify_error(ConnectionResetError()) is FailureType.CONNECTION

    def test_empty_message(self):
        assert classify_error(RuntimeError()) is FailureType.UNKNOWN
