from __future__ import annotations

import hashlib
import io
from pathlib import Path

import pytest
from db.client import session_scope
from db.models.ledger import LedgerImport, LedgerTransaction
from sqlalchemy import func, select

from pfledger.errors import ImportFailedError, MalformedStatementError
from pfledger.ingest.importer import IMPORT_SOURCE, import_statement
from tests.helpers.db import (
    bootstrap_sqlite_db,
    count_transactions,
    import_bytes,
    install_failing_insert_trigger,
    statement_csv,
)

CAFE = "07 Feb 26,08 Feb 26,-45.30,1234,Debit,CORNER CAFE SYDNEY,Dining,Corner Cafe"
GROCER = "08 Feb 26,09 Feb 26,-120.00,1234,Debit,WOOLWORTHS 123,Groceries,Woolworths"
SALARY = "10 Feb 26,10 Feb 26,3000,1234,Credit,ACME PAYROLL,Income,Acme"


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.db")


def _import_count(url: str) -> int:
    with session_scope(database_url=url) as session:
        return session.scalar(select(func.count()).select_from(LedgerImport)) or 0


def test_import_inserts_rows_and_records_batch(db_url: str):
    summary = import_bytes(statement_csv(CAFE, GROCER, SALARY), database_url=db_url)

    assert (summary.rows_seen, summary.rows_inserted, summary.rows_skipped) == (3, 3, 0)
    assert count_transactions(db_url) == 3

    with session_scope(database_url=db_url) as session:
        batch = session.get(LedgerImport, summary.import_id)
        assert batch is not None
        assert batch.source == IMPORT_SOURCE
        assert batch.file_name == "statement.csv"
        assert (batch.rows_total, batch.rows_inserted, batch.rows_skipped) == (3, 3, 0)

        tx = session.scalars(
            select(LedgerTransaction).where(LedgerTransaction.details == "CORNER CAFE SYDNEY")
        ).one()
        assert tx.import_id == summary.import_id
        assert tx.amount_cents == -4530
        assert tx.category_norm == "Dining"
        assert tx.merchant_norm == "Corner Cafe"
        assert tx.notes == ""


def test_reimport_is_idempotent_and_records_new_batch(db_url: str):
    data = statement_csv(CAFE, GROCER)
    first = import_bytes(data, database_url=db_url)
    second = import_bytes(data, database_url=db_url)

    assert first.rows_inserted == 2
    assert second.rows_seen == 2
    assert second.rows_inserted == 0
    assert second.rows_skipped == 2
    assert second.import_id != first.import_id
    assert count_transactions(db_url) == 2
    assert _import_count(db_url) == 2


def test_overlapping_files_only_add_new_rows(db_url: str):
    import_bytes(statement_csv(CAFE, GROCER), database_url=db_url)
    summary = import_bytes(statement_csv(GROCER, SALARY), database_url=db_url)
    assert (summary.rows_inserted, summary.rows_skipped) == (1, 1)
    assert count_transactions(db_url) == 3


def test_duplicate_rows_within_one_file_are_skipped(db_url: str):
    summary = import_bytes(statement_csv(CAFE, CAFE), database_url=db_url)
    assert (summary.rows_seen, summary.rows_inserted, summary.rows_skipped) == (2, 1, 1)


def test_unparseable_rows_are_counted_as_skipped(db_url: str):
    bad_date = "someday,,-1.00,1234,Debit,X,,"
    bad_amount = "07 Feb 26,,n/a,1234,Debit,Y,,"
    summary = import_bytes(statement_csv(CAFE, bad_date, bad_amount), database_url=db_url)
    assert (summary.rows_seen, summary.rows_inserted, summary.rows_skipped) == (3, 1, 2)


def test_blank_lines_are_ignored(db_url: str):
    data = statement_csv(CAFE, "", GROCER, "")
    summary = import_bytes(data, database_url=db_url)
    assert summary.rows_seen == 2
    assert summary.rows_inserted == 2


def test_batch_digest_covers_fingerprints_in_order(db_url: str):
    summary = import_bytes(statement_csv(CAFE, GROCER), database_url=db_url)
    with session_scope(database_url=db_url) as session:
        hashes = list(
            session.scalars(select(LedgerTransaction.row_hash).order_by(LedgerTransaction.id))
        )
        batch = session.get(LedgerImport, summary.import_id)
        assert batch is not None
        stored_digest = batch.sha256

    expected = hashlib.sha256("".join(hashes).encode("ascii")).hexdigest()
    assert summary.digest == expected
    assert stored_digest == expected


def test_header_case_and_column_order_do_not_matter(db_url: str):
    header = "merchant name,AMOUNT,date,Transaction Details"
    data = statement_csv("Corner Cafe,-45.30,07 Feb 26,CORNER CAFE SYDNEY", header=header)
    summary = import_bytes(data, database_url=db_url)
    assert summary.rows_inserted == 1


def test_text_stream_and_bom_are_accepted(db_url: str):
    text = "\ufeff" + statement_csv(CAFE).decode("utf-8")
    summary = import_statement(io.StringIO(text), "statement.csv", database_url=db_url)
    assert summary.rows_inserted == 1

    # The same row as UTF-8 bytes with a BOM is a duplicate.
    bom_bytes = "\ufeff".encode() + statement_csv(CAFE)
    again = import_bytes(bom_bytes, database_url=db_url)
    assert again.rows_skipped == 1


def test_headerless_stream_is_malformed(db_url: str):
    with pytest.raises(MalformedStatementError):
        import_bytes(b"", database_url=db_url)
    assert _import_count(db_url) == 0


def test_failure_mid_batch_rolls_back_everything(db_url: str):
    install_failing_insert_trigger(db_url, details="WOOLWORTHS 123")

    with pytest.raises(ImportFailedError) as excinfo:
        import_bytes(statement_csv(CAFE, GROCER, SALARY), database_url=db_url)

    err = excinfo.value
    assert err.file_label == "statement.csv"
    assert err.rows_seen == 2
    assert err.rows_inserted == 1
    assert err.__cause__ is not None
    assert count_transactions(db_url) == 0
    assert _import_count(db_url) == 0


def test_out_of_range_amount_skips_only_that_row(db_url: str):
    huge = "08 Feb 26,,1e20,1234,Debit,HUGE TRANSFER,,Bank"
    summary = import_bytes(statement_csv(CAFE, huge, GROCER), database_url=db_url)
    assert (summary.rows_seen, summary.rows_inserted, summary.rows_skipped) == (3, 2, 1)
    assert count_transactions(db_url) == 2


def test_undecodable_bytes_do_not_reject_the_file(db_url: str):
    latin1_row = "08 Feb 26,,-3.00,1234,Debit,CAF\u00c9 BLEU,,Cafe".encode("cp1252")
    data = statement_csv(CAFE) + latin1_row + b"\n"

    summary = import_bytes(data, database_url=db_url)
    assert (summary.rows_seen, summary.rows_inserted, summary.rows_skipped) == (2, 2, 0)

    with session_scope(database_url=db_url) as session:
        details = session.scalars(
            select(LedgerTransaction.details).where(LedgerTransaction.amount_cents == -300)
        ).one()
    assert details == "CAF\ufffd BLEU"

    # Replacement is deterministic, so the same bytes dedupe on re-import.
    again = import_bytes(data, database_url=db_url)
    assert (again.rows_inserted, again.rows_skipped) == (0, 2)
