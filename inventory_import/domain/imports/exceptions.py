"""
Errors raised by the inventory import pipeline.

Only file-level and transaction-level problems are raised. Row-level problems
(mapping, transformer, validation and construction failures) are collected
into ``ImportResult.invalid_records`` instead.
"""
from typing import List, Optional


class ImportPipelineError(Exception):
    """Base class for errors that abort an import run."""

    # Whether re-running the whole file could plausibly succeed.
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SecurityValidationError(ImportPipelineError):
    """The input file failed a pre-processing check; nothing was read or written."""

    def __init__(self, reason: str, missing_headers: Optional[List[str]] = None):
        self.reason = reason
        self.missing_headers = missing_headers or []
        super().__init__(reason)


class MalformedCsvError(ImportPipelineError):
    """The CSV parser failed part-way through the file."""

    def __init__(self, file_path: str, detail: str):
        self.file_path = file_path
        self.detail = detail
        super().__init__(f"Malformed CSV in '{file_path}': {detail}")


class BatchWriteError(ImportPipelineError):
    """A set-oriented insert, an update save or an audit insert failed."""

    retryable = True

    def __init__(self, operation: str, batch_number: int, record_count: int, cause: Exception):
        self.operation = operation
        self.batch_number = batch_number
        self.record_count = record_count
        self.cause = cause
        message = (
            f"{operation.capitalize()} batch {batch_number} ({record_count} records) failed: "
            f"{cause.__class__.__name__}: {cause}"
        )
        super().__init__(message)


class CorrelationWarning(UserWarning):
    """
    An inserted row could not be matched back to its source attributes.

    Never raised by the pipeline; instances are logged and returned in
    ``ImportResult.correlation_warnings``.
    """

    def __init__(self, batch_number: int, position: int, reason: str):
        self.batch_number = batch_number
        self.position = position
        self.reason = reason
        super().__init__(
            f"Batch {batch_number}, record {position}: no audit entry written ({reason})"
        )


def is_retryable(error: BaseException) -> bool:
    """Tell an external retry scheduler whether re-running the file is worthwhile."""
    if isinstance(error, ImportPipelineError):
        return error.retryable
    return True
