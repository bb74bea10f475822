"""Batch import of a statement CSV into the ledger.

One call imports one file inside one database transaction:

1. Read the header row (a stream without one is malformed).
2. Insert the ``ledger_imports`` row with zero counts to obtain its id.
3. Canonicalize and insert each data row. Rows with an unusable date/amount,
   and rows whose fingerprint already exists, are counted as skipped.
4. Finalize the batch with the fingerprint digest and totals.
5. Commit. Any other failure rolls back everything, batch row included.

Re-importing the same file inserts nothing and skips every row, while still
recording a new batch.
"""

from __future__ import annotations

import csv
import hashlib
import io
from dataclasses import dataclass, field
from typing import IO, Any

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.ledger import LedgerImport, LedgerTransaction

from ..errors import ImportFailedError, LedgerError, MalformedStatementError
from ..logging_setup import get_logger
from ..models import CanonicalRow, ImportSummary
from .canonicalize import canonicalize, index_header

IMPORT_SOURCE = "cc_csv"

_logger = get_logger("pfledger.ingest.importer")


@dataclass(slots=True)
class _BatchProgress:
    file_label: str
    rows_seen: int = 0
    rows_inserted: int = 0
    rows_skipped: int = 0
    digest: Any = field(default_factory=hashlib.sha256)

    def failure(self, message: str) -> ImportFailedError:
        return ImportFailedError(
            message,
            file_label=self.file_label,
            rows_seen=self.rows_seen,
            rows_inserted=self.rows_inserted,
            rows_skipped=self.rows_skipped,
        )


def _as_text(stream: IO[bytes] | IO[str]) -> tuple[IO[str], bool]:
    """Return a text view of ``stream`` and whether we wrapped it."""

    if isinstance(stream, io.TextIOBase):
        return stream, False
    # utf-8-sig tolerates the BOM that spreadsheet exports like to prepend.
    # Undecodable bytes (e.g. a cp1252 accent) decode to U+FFFD.
    wrapper = io.TextIOWrapper(
        stream,  # type: ignore[arg-type]
        encoding="utf-8-sig",
        errors="replace",
        newline="",
    )
    return wrapper, True


def _read_header(reader: Any, file_label: str) -> list[str]:
    try:
        header = next(reader)
    except StopIteration:
        raise MalformedStatementError(f"CSV appears to have no header row: {file_label}") from None
    except (csv.Error, UnicodeDecodeError) as e:
        raise MalformedStatementError(f"Failed to read CSV header of {file_label}: {e}") from e
    if not any(cell.strip() for cell in header):
        raise MalformedStatementError(f"CSV header row is blank: {file_label}")
    return header


def _row_values(import_id: int, row: CanonicalRow) -> dict[str, Any]:
    return {
        "import_id": import_id,
        "txn_date": row.txn_date,
        "processed_on": row.processed_on,
        "amount_cents": row.amount_cents,
        "account": row.account,
        "txn_type": row.txn_type,
        "details": row.details,
        "category_raw": row.category_raw,
        "merchant_raw": row.merchant_raw,
        "category_norm": row.category_norm,
        "merchant_norm": row.merchant_norm,
        "row_hash": row.row_hash,
    }


def _is_row_hash_conflict(exc: IntegrityError) -> bool:
    msg = str(exc.orig).lower()
    return "row_hash" in msg and ("unique" in msg or "duplicate" in msg)


def _insert_unless_duplicate(session: Session, values: dict[str, Any]) -> bool:
    """Insert one ledger row; ``False`` when its fingerprint already exists.

    Only the ``row_hash`` uniqueness conflict is absorbed. Every other
    failure propagates and aborts the batch.
    """

    dialect = session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        dialect_insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            dialect_insert(LedgerTransaction)
            .values(**values)
            .on_conflict_do_nothing(index_elements=[LedgerTransaction.row_hash])
        )
        result = session.execute(stmt)
        return result.rowcount == 1

    # Generic stores: let the constraint fire inside a savepoint.
    try:
        with session.begin_nested():
            session.execute(insert(LedgerTransaction).values(**values))
    except IntegrityError as e:
        if _is_row_hash_conflict(e):
            return False
        raise
    return True


def _process_rows(
    session: Session,
    reader: Any,
    index: dict[str, int],
    batch_id: int,
    progress: _BatchProgress,
) -> None:
    for row in reader:
        if not row:
            # csv yields [] for blank lines; they are not records.
            continue
        progress.rows_seen += 1

        canon = canonicalize(row, index)
        if canon is None:
            progress.rows_skipped += 1
            _logger.debug(
                "import:row_skipped reason=unparseable line=%d file=%s",
                reader.line_num,
                progress.file_label,
            )
            continue

        progress.digest.update(canon.row_hash.encode("ascii"))
        if _insert_unless_duplicate(session, _row_values(batch_id, canon)):
            progress.rows_inserted += 1
        else:
            progress.rows_skipped += 1
            _logger.debug(
                "import:row_skipped reason=duplicate line=%d row_hash=%s",
                reader.line_num,
                canon.row_hash,
            )


def import_rows(session: Session, stream: IO[bytes] | IO[str], file_label: str) -> ImportSummary:
    """Import ``stream`` into the ledger using the caller's open transaction.

    Nothing is committed here; the caller owns the transaction boundary and
    must roll back when this raises.

    Raises
    ------
    MalformedStatementError
        When the header row cannot be read.
    ImportFailedError
        On any non-recoverable failure after the header (broken CSV body,
        non-duplicate insert failure, storage errors). The cause is chained.
    """

    text, wrapped = _as_text(stream)
    try:
        reader = csv.reader(text)
        index = index_header(_read_header(reader, file_label))

        progress = _BatchProgress(file_label=file_label)
        try:
            batch = LedgerImport(
                source=IMPORT_SOURCE,
                file_name=file_label,
                sha256="",
                rows_total=0,
                rows_inserted=0,
                rows_skipped=0,
            )
            session.add(batch)
            session.flush()

            _process_rows(session, reader, index, batch.id, progress)

            batch.sha256 = progress.digest.hexdigest()
            batch.rows_total = progress.rows_seen
            batch.rows_inserted = progress.rows_inserted
            batch.rows_skipped = progress.rows_skipped
            session.flush()
        except (csv.Error, UnicodeDecodeError) as e:
            raise progress.failure(f"malformed CSV body: {e}") from e
        except SQLAlchemyError as e:
            raise progress.failure(f"ledger write failed: {e}") from e

        return ImportSummary(
            import_id=batch.id,
            rows_seen=progress.rows_seen,
            rows_inserted=progress.rows_inserted,
            rows_skipped=progress.rows_skipped,
            digest=batch.sha256,
        )
    finally:
        if wrapped:
            # Leave the caller's byte stream open.
            text.detach()  # type: ignore[attr-defined]


def import_statement(
    stream: IO[bytes] | IO[str],
    file_label: str,
    *,
    database_url: str | None = None,
) -> ImportSummary:
    """Import one statement file atomically and return its summary.

    The caller is responsible for bounding the stream size beforehand.
    """

    summary: ImportSummary | None = None
    try:
        with session_scope(database_url=database_url) as session:
            summary = import_rows(session, stream, file_label)
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        # Storage unavailable or commit failure: nothing was committed.
        raise ImportFailedError(
            f"import could not be committed: {e}",
            file_label=file_label,
            rows_seen=summary.rows_seen if summary else 0,
            rows_inserted=summary.rows_inserted if summary else 0,
            rows_skipped=summary.rows_skipped if summary else 0,
        ) from e

    _logger.info(
        "import:done import_id=%d file=%s rows_seen=%d inserted=%d skipped=%d",
        summary.import_id,
        file_label,
        summary.rows_seen,
        summary.rows_inserted,
        summary.rows_skipped,
    )
    return summary


__all__ = ["IMPORT_SOURCE", "import_rows", "import_statement"]
