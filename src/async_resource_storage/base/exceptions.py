from typing import Optional


class ObjectNotFoundException(Exception):
    """Exception raised when an object with the specified identifier does not exist."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class ConflictException(Exception):
    """Exception raised when a conditional write finds the object in a different state."""

    def __init__(self, message: str = "The object was modified concurrently."):
        super().__init__(message)


class KeyAlreadyExistsException(ConflictException):
    """Exception raised when trying to insert an item that would violate a unique constraint."""

    def __init__(self, message: str = "An object with the same key already exists."):
        super().__init__(message)


class NotImplementedException(NotImplementedError):
    """Exception raised when a query uses a construct the storage cannot translate."""

    def __init__(self, message: str = "Not implemented by this storage."):
        super().__init__(message)


class ContextDoneException(Exception):
    """Base class for errors signalled by an OperationContext."""

    def __init__(self, message: str = "The operation context is done."):
        super().__init__(message)


class OperationCancelledException(ContextDoneException):
    def __init__(self, message: str = "The operation was cancelled."):
        super().__init__(message)


class DeadlineExceededException(ContextDoneException, TimeoutError):
    def __init__(self, message: str = "The operation deadline was exceeded."):
        super().__init__(message)


class ClearIncompleteException(Exception):
    """
    Raised when a bulk clear fails after some documents may already be gone.

    `removed_count` holds the number of documents the storage reported as
    removed; the underlying error is chained as `__cause__`.
    """

    def __init__(self, removed_count: int = 0, message: Optional[str] = None):
        self.removed_count = removed_count
        super().__init__(
            message or f"Clear did not complete ({removed_count} item(s) removed)."
        )
