# src/async_resource_storage/base/context.py

import logging
import time
import uuid
from logging import LoggerAdapter
from typing import Optional

from async_resource_storage.base.exceptions import (ContextDoneException,
                                                    DeadlineExceededException,
                                                    OperationCancelledException)

_package_logger = logging.getLogger("async_resource_storage")


class OperationContext:
    """
    Execution context passed as the first argument of every storage operation.

    Carries an optional deadline, a cancellation flag and the logger used to
    record the operation. Storages check it before issuing a database call,
    forward the remaining time as the server-side time budget, and check it
    again once results arrive.

    Args:
        timeout: Seconds from now until the deadline. None means no deadline.
        logger: Logger adapter for the operation. Defaults to an adapter on the
                package logger tagged with the request id.
        request_id: Correlation id, generated when omitted.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        logger: Optional[LoggerAdapter] = None,
        request_id: Optional[str] = None,
    ):
        if timeout is not None and timeout < 0:
            raise ValueError("Timeout must be a non-negative number or None.")
        self.request_id = request_id or uuid.uuid4().hex
        self._deadline: Optional[float] = (
            time.monotonic() + timeout if timeout is not None else None
        )
        self._cancelled = False
        self.logger = logger or LoggerAdapter(
            _package_logger, {"request_id": self.request_id}
        )

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the `time.monotonic()` clock, or None."""
        return self._deadline

    def cancel(self) -> None:
        """Marks the context as cancelled. Operations in flight stop at their next check."""
        if not self._cancelled:
            self.logger.debug(f"Context {self.request_id} cancelled.")
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (never negative), or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def max_time_ms(self) -> Optional[int]:
        """Remaining time as a server-side budget in milliseconds, or None."""
        remaining = self.remaining()
        if remaining is None:
            return None
        # A zero budget means "no limit" to the server.
        return max(1, int(remaining * 1000))

    def err(self) -> Optional[ContextDoneException]:
        """Returns the reason the context is done, or None while it is still live."""
        if self._cancelled:
            return OperationCancelledException()
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceededException()
        return None

    def raise_if_done(self) -> None:
        error = self.err()
        if error is not None:
            raise error

    def __repr__(self) -> str:
        return (
            f"OperationContext(request_id={self.request_id!r}, "
            f"remaining={self.remaining()!r}, cancelled={self._cancelled!r})"
        )
