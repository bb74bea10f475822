"""DB helpers for tests: bootstrap a temporary SQLite ledger and seed it."""

from __future__ import annotations

import io
import os
from pathlib import Path

from db.client import create_schema, get_engine, session_scope
from db.models.ledger import LedgerTransaction
from sqlalchemy import func, select

from pfledger.ingest.importer import import_statement
from pfledger.models import ImportSummary, RuleSpec
from pfledger.rules import seed_rules

STATEMENT_HEADER = (
    "Date,Processed On,Amount,Account Number,Transaction Type,"
    "Transaction Details,Category,Merchant Name"
)


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    create_schema(database_url=url)

    if set_default_env:
        # Preserve prior non-overriding semantics
        os.environ.setdefault("DATABASE_URL", url)
    return url


def statement_csv(*rows: str, header: str = STATEMENT_HEADER) -> bytes:
    """Build statement CSV bytes from pre-formatted data lines."""

    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


def import_bytes(data: bytes, *, database_url: str, label: str = "statement.csv") -> ImportSummary:
    return import_statement(io.BytesIO(data), label, database_url=database_url)


def seed_rule_list(database_url: str, *rules: tuple[str, str] | tuple[str, str, bool]) -> None:
    """Seed ``(contains, category[, enabled])`` tuples in the given order."""

    specs = [RuleSpec(*r) for r in rules]
    with session_scope(database_url=database_url) as session:
        seed_rules(session, specs)


def count_transactions(database_url: str) -> int:
    with session_scope(database_url=database_url) as session:
        return session.scalar(select(func.count()).select_from(LedgerTransaction)) or 0


def install_failing_insert_trigger(database_url: str, *, details: str) -> None:
    """Make any ledger insert whose details equal ``details`` abort (SQLite only)."""

    with get_engine(database_url=database_url).begin() as conn:
        conn.exec_driver_sql(
            f"""
            CREATE TRIGGER fail_on_details BEFORE INSERT ON ledger_transactions
            WHEN NEW.details = '{details}'
            BEGIN
                SELECT RAISE(ABORT, 'forced failure');
            END
            """
        )
