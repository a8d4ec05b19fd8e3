"""Tests for cooperative cancellation."""

import threading

import pytest

from scanprep.services.cancellation import CancellationToken, ensure_token
from scanprep.utils.exceptions import OperationCancelledError, ScanPrepError


class TestCancellationToken:
    def test_new_token_not_cancelled(self):
        token = CancellationToken()
        assert not token.is_cancelled
        token.raise_if_cancelled("anything")

    def test_cancel_sets_flag(self):
        token = CancellationToken()
        token.cancel()
        assert token.is_cancelled

    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.is_cancelled

    def test_raise_reports_stage(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError) as exc_info:
            token.raise_if_cancelled("retinex:log")
        assert exc_info.value.stage == "retinex:log"
        assert "stage=retinex:log" in str(exc_info.value)

    def test_cancelled_error_is_scanprep_error(self):
        assert issubclass(OperationCancelledError, ScanPrepError)

    def test_cancel_from_other_thread(self):
        token = CancellationToken()
        worker = threading.Thread(target=token.cancel)
        worker.start()
        worker.join()
        assert token.is_cancelled

    def test_none_tokens_are_independent(self):
        first = CancellationToken.none()
        second = CancellationToken.none()
        first.cancel()
        assert not second.is_cancelled


class TestEnsureToken:
    def test_none_gives_fresh_token(self):
        token = ensure_token(None)
        assert isinstance(token, CancellationToken)
        assert not token.is_cancelled

    def test_existing_token_passed_through(self, cancelled_token):
        assert ensure_token(cancelled_token) is cancelled_token
