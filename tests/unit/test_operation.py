"""
Unit tests for operation state, cancellation and statistics.
"""
import re

import pytest

from envclone.exceptions import CloneError, OperationCancelledError
from envclone.models import CloneStatistics
from envclone.operation import CancellationToken, CloneOperation, OperationStatus, new_operation_id


class TestCloneOperation:
    """Test operation lifecycle rules."""

    def test_operation_id_format(self):
        """Test clone_<millis>_<suffix> identifiers."""
        assert re.fullmatch(r'clone_\d{13,}_[0-9a-f]{9}', new_operation_id())
        assert new_operation_id() != new_operation_id()

    def test_successful_lifecycle(self):
        """Test pending -> in_progress -> completed."""
        operation = CloneOperation()
        operation.transition(OperationStatus.IN_PROGRESS)
        operation.advance('copy', 40)
        operation.transition(OperationStatus.COMPLETED)

        assert operation.is_finished
        assert operation.progress == 100
        assert operation.completed_at is not None

    def test_terminal_state_frozen(self):
        """Test that nothing changes after a terminal status."""
        operation = CloneOperation()
        operation.transition(OperationStatus.IN_PROGRESS)
        operation.transition(OperationStatus.FAILED, error='boom')

        with pytest.raises(CloneError):
            operation.transition(OperationStatus.COMPLETED)
        with pytest.raises(CloneError):
            operation.advance('copy', 50)
        assert operation.error == 'boom'

    def test_cannot_complete_without_running(self):
        """Test that pending cannot jump straight to completed."""
        with pytest.raises(CloneError, match="Invalid transition"):
            CloneOperation().transition(OperationStatus.COMPLETED)

    def test_progress_monotonic(self):
        """Test that progress never goes backwards and caps at 100."""
        operation = CloneOperation()
        operation.advance('dump', 50)
        operation.advance('restore', 30)
        assert operation.progress == 50
        assert operation.phase == 'restore'

        operation.advance('restore', 150)
        assert operation.progress == 100


class TestCancellationToken:
    """Test cooperative cancellation."""

    def test_raise_if_cancelled(self):
        """Test that checks only raise after cancel()."""
        token = CancellationToken()
        token.raise_if_cancelled('copy')
        token.cancel()

        assert token.cancelled
        with pytest.raises(OperationCancelledError, match='during copy'):
            token.raise_if_cancelled('copy')

    def test_callbacks_run_once(self):
        """Test that registered callbacks run on the first cancel only."""
        calls = []
        token = CancellationToken()
        token.on_cancel(lambda: calls.append(1))
        token.cancel()
        token.cancel()
        assert calls == [1]

    def test_unregister(self):
        """Test that unregistered callbacks are not run."""
        calls = []
        token = CancellationToken()
        unregister = token.on_cancel(lambda: calls.append(1))
        unregister()
        token.cancel()
        assert calls == []

    def test_late_registration_runs_immediately(self):
        """Test that registering on a cancelled token calls back at once."""
        calls = []
        token = CancellationToken()
        token.cancel()
        token.on_cancel(lambda: calls.append(1))
        assert calls == [1]


class TestCloneStatistics:
    """Test statistics counters."""

    def test_add(self):
        """Test incrementing several counters."""
        stats = CloneStatistics()
        stats.add(records_processed=10, records_anonymized=4)
        stats.add(records_processed=5)

        assert stats.records_processed == 15
        assert stats.to_dict()['records_anonymized'] == 4

    def test_counters_never_decrease(self):
        """Test that negative increments are rejected."""
        with pytest.raises(ValueError):
            CloneStatistics().add(records_processed=-1)

    def test_unknown_counter(self):
        """Test that unknown counter names are rejected."""
        with pytest.raises(AttributeError):
            CloneStatistics().add(rows=1)
