"""Pending calls and completion callbacks.

A PendingCall is a built request waiting to be executed (or in flight on a
worker thread). It belongs to the caller: the executor keeps no reference
to it once the call has been handed off.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from concurrent.futures import wait as wait_futures
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lakefs_client.errors import ApiError
    from lakefs_client.models import ApiRequest, ApiResponse, OperationDescriptor


class ApiCallback:
    """Completion and progress hooks for a call.

    Subclass and override what you need; every hook defaults to doing
    nothing. Hooks run on whichever thread moves the bytes: the caller's
    thread for blocking calls, a worker thread for non-blocking ones.

    content_length is -1 when the size is not known in advance.
    """

    def on_success(self, response: ApiResponse) -> None:
        """Called once with the decoded result."""

    def on_failure(self, error: ApiError) -> None:
        """Called once with the failure, including cancellation."""

    def on_upload_progress(self, bytes_written: int, content_length: int, done: bool) -> None:
        pass

    def on_download_progress(self, bytes_read: int, content_length: int, done: bool) -> None:
        pass


class PendingCall:
    """A built request plus the state needed to run or cancel it once."""

    def __init__(
        self,
        request: ApiRequest,
        descriptor: OperationDescriptor,
        callback: ApiCallback | None = None,
    ) -> None:
        self.request = request
        self.descriptor = descriptor
        self.callback = callback
        self._cancel_event = threading.Event()
        self._claim_lock = threading.Lock()
        self._executed = False
        self._future: Future | None = None

    def __repr__(self) -> str:
        return f"PendingCall({self.request.method} {self.request.path}, op={self.descriptor.operation_id})"

    @property
    def operation_id(self) -> str:
        return self.descriptor.operation_id

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def executed(self) -> bool:
        return self._executed

    def cancel(self) -> None:
        """Cancel the call.

        A call that has not started yet never runs. A call already in flight
        stops at the next chunk boundary and reports a cancellation failure
        instead of its result.
        """
        self._cancel_event.set()
        if self._future is not None:
            self._future.cancel()

    def claim(self) -> None:
        """Mark the call as executed.

        Raises:
            RuntimeError: If the call was already executed.
        """
        with self._claim_lock:
            if self._executed:
                raise RuntimeError(f"Already executed: {self!r}")
            self._executed = True

    def attach_future(self, future: Future) -> None:
        self._future = future
        # cancel() may have raced ahead of the submission
        if self.cancelled:
            future.cancel()

    def done(self) -> bool:
        """True once a dispatched call has finished or was cancelled."""
        if self._future is None:
            return False
        return self._future.done()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a dispatched call finishes. Returns done()."""
        if self._future is None:
            raise RuntimeError(f"Call was not dispatched: {self!r}")
        wait_futures([self._future], timeout=timeout)
        return self._future.done()
