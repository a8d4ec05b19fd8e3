"""Tests for the error taxonomy and logging setup."""

import logging

import pytest

from scanprep.utils.exceptions import (
    BackendUnavailableError,
    ImageLoadError,
    InvalidArgumentError,
    InvalidStateError,
    OperationCancelledError,
    ScanPrepError,
)
from scanprep.utils.logger import setup_logger


class TestExceptions:
    @pytest.mark.parametrize(
        "error",
        [
            InvalidArgumentError("image", "image is required"),
            InvalidStateError("deskew"),
            OperationCancelledError("punch:inpaint"),
            BackendUnavailableError("LEADTOOLS"),
            ImageLoadError("/tmp/x.png", "truncated"),
        ],
    )
    def test_all_derive_from_base(self, error):
        assert isinstance(error, ScanPrepError)
        assert error.message
        assert error.message in str(error)

    def test_invalid_argument_is_value_error(self):
        error = InvalidArgumentError("image", "only 8-bit images are supported")
        assert isinstance(error, ValueError)
        assert error.argument == "image"
        assert "only 8-bit" in str(error)

    def test_invalid_state_is_runtime_error(self):
        error = InvalidStateError("binarize")
        assert isinstance(error, RuntimeError)
        assert str(error) == "binarize: image is empty"

    def test_cancelled_without_stage(self):
        error = OperationCancelledError()
        assert error.stage is None
        assert error.details is None
        assert str(error) == "Processing cancelled by user"

    def test_details_appended(self):
        error = ScanPrepError("boom", details="code=7")
        assert str(error) == "boom (code=7)"


class TestSetupLogger:
    def test_level_applied_to_package_logger(self):
        configured = setup_logger(logging.DEBUG)
        try:
            assert configured.name == "scanprep"
            assert logging.getLogger("scanprep.services.processor").isEnabledFor(logging.DEBUG)
        finally:
            configured.setLevel(logging.NOTSET)

    def test_custom_name(self):
        configured = setup_logger(logging.ERROR, logger_name="scanprep.test")
        try:
            assert configured.level == logging.ERROR
        finally:
            configured.setLevel(logging.NOTSET)
