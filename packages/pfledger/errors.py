"""Exception hierarchy for ledger ingestion and categorization."""

from __future__ import annotations


class LedgerError(Exception):
    """Base exception for all pfledger errors."""


class MalformedStatementError(LedgerError):
    """The tabular export cannot be read (no header row, broken CSV)."""


class ImportFailedError(LedgerError):
    """A batch import aborted; nothing from the batch was committed.

    Carries the counters reached before the failure so callers can report
    how far the import got. The underlying cause is chained.
    """

    def __init__(
        self,
        message: str,
        *,
        file_label: str,
        rows_seen: int,
        rows_inserted: int,
        rows_skipped: int,
    ) -> None:
        super().__init__(message)
        self.file_label = file_label
        self.rows_seen = rows_seen
        self.rows_inserted = rows_inserted
        self.rows_skipped = rows_skipped

    def __str__(self) -> str:
        base = super().__str__()
        return (
            f"{base} (file={self.file_label!r} rows_seen={self.rows_seen} "
            f"inserted={self.rows_inserted} skipped={self.rows_skipped})"
        )


class TransactionNotFoundError(LedgerError):
    """No ledger transaction exists with the requested id."""


class AssistUnavailableError(LedgerError):
    """Assistive classification could not produce a suggestion.

    Every gateway failure is one of these; callers treat them uniformly as
    "no suggestion available".
    """


class AssistTimeoutError(AssistUnavailableError):
    """The external classifier did not answer within the timeout."""


class AssistCancelledError(AssistUnavailableError):
    """The caller cancelled the call before it completed."""


class AssistInvocationError(AssistUnavailableError):
    """The external classifier could not be invoked or exited with an error."""


class AssistFormatError(AssistUnavailableError):
    """The classifier output held no parseable suggestion object."""

    def __init__(self, message: str, raw_output: str = "") -> None:
        super().__init__(message)
        self.raw_output = raw_output
