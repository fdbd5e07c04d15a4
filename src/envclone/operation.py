"""Clone operation state and cancellation."""

import enum
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from envclone.exceptions import CloneError, OperationCancelledError
from envclone.models import CloneLog, CloneStatistics


class OperationStatus(enum.Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


TERMINAL_STATUSES = frozenset({
    OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED,
})

_ALLOWED_TRANSITIONS = {
    OperationStatus.PENDING: {OperationStatus.IN_PROGRESS, OperationStatus.FAILED,
                              OperationStatus.CANCELLED},
    OperationStatus.IN_PROGRESS: TERMINAL_STATUSES,
}


def new_operation_id() -> str:
    return f"clone_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class CancellationToken:
    """
    Cooperative cancellation shared by every phase of one operation.

    Code checks ``raise_if_cancelled()`` between tables and pages. Code that
    blocks on an external process registers a callback with ``on_cancel`` so
    the process can be killed as soon as cancellation is requested.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        with self._lock:
            already = self._event.is_set()
            if not already:
                self._callbacks.append(callback)
        if already:
            callback()

        def unregister():
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)
        return unregister

    def raise_if_cancelled(self, where: str = ''):
        if self._event.is_set():
            suffix = f" during {where}" if where else ''
            raise OperationCancelledError(f"Operation cancelled{suffix}")


@dataclass
class CloneOperation:
    """Mutable while running, frozen once a terminal status is reached."""
    operation_id: str = field(default_factory=new_operation_id)
    status: OperationStatus = OperationStatus.PENDING
    progress: float = 0.0
    phase: str = 'pending'
    statistics: CloneStatistics = field(default_factory=CloneStatistics)
    logs: List[CloneLog] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _check_mutable(self):
        if self.is_finished:
            raise CloneError(
                f"Operation {self.operation_id} is {self.status.value} and can no longer change"
            )

    def transition(self, status: OperationStatus, error: Optional[str] = None):
        self._check_mutable()
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise CloneError(f"Invalid transition {self.status.value} -> {status.value}")
        self.status = status
        if error:
            self.error = error
        if status in TERMINAL_STATUSES:
            self.completed_at = datetime.now()
            if status is OperationStatus.COMPLETED:
                self.progress = 100.0

    def advance(self, phase: str, progress: Optional[float] = None):
        """Move to ``phase``; progress never goes backwards."""
        self._check_mutable()
        self.phase = phase
        if progress is not None:
            self.progress = max(self.progress, min(progress, 100.0))
