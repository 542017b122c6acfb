"""
Custom exception types used across genops.

Only whole-batch and whole-request failures are exceptions. Problems
with a single operation inside a batch (a bad path, an oversized write,
a rename the OS refused) are reported as data on the ApplyResult so the
rest of the batch can still be applied.
"""

from __future__ import annotations


class GenOpsError(Exception):
    """Base class for all genops specific errors."""


class OpParseError(GenOpsError):
    """Raised when raw operation markup cannot be accepted."""


class UnclosedWriteError(OpParseError):
    """
    Raised when the number of <op-write> openers and closers differ.

    This usually means the generator output was truncated mid-file, so
    the whole batch is rejected before anything touches disk.
    """

    def __init__(self, opens: int, closes: int) -> None:
        self.opens = opens
        self.closes = closes
        super().__init__(
            f"unclosed <op-write> tag detected ({opens} opened, {closes} closed); "
            "the markup looks truncated, request a fresh batch"
        )


class ProjectNotFoundError(GenOpsError):
    """Raised when a project id is unknown to the store."""


class LogEntryNotFoundError(GenOpsError):
    """Raised when an operation log entry does not exist for a project."""


class PersistenceError(GenOpsError):
    """Raised by stores when reading or writing persistent state fails."""


class RollbackError(GenOpsError):
    """Raised when a rollback request is malformed."""
