# ruff: noqa: I001
"""CLI for the ``pfledger`` package.

This module exposes callable command handlers (``cmd_import_csv`` and
friends, each returning a process exit code) and a Typer-based console
interface. Environment variables (``DATABASE_URL``, ``PFLEDGER_*``) are loaded
from a local ``.env`` using ``python-dotenv`` before delegating to command
logic. Business logic lives in ``pfledger.ingest``, ``pfledger.resolve``,
``pfledger.ledger`` and ``pfledger.assist``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging

DEFAULT_MAX_IMPORT_BYTES: int = 25 * 1024 * 1024


# ---- Small module-level helpers used by CLI commands -------------------------


def _resolve_max_import_bytes() -> int:
    """Caller-side import size limit from ``PFLEDGER_MAX_IMPORT_BYTES``."""

    raw = os.getenv("PFLEDGER_MAX_IMPORT_BYTES")
    try:
        value = int(raw) if raw else DEFAULT_MAX_IMPORT_BYTES
    except ValueError:
        value = DEFAULT_MAX_IMPORT_BYTES
    return value if value > 0 else DEFAULT_MAX_IMPORT_BYTES


def _print_suggestion(label: str, suggestion) -> None:
    conf = f" confidence={suggestion.confidence}" if suggestion.confidence else ""
    print(f"{label}: {suggestion.category}\t[{suggestion.source}] {suggestion.reason}{conf}")


# ---- Command handlers --------------------------------------------------------


def cmd_init_db(*, database_url: str | None = None) -> int:
    from db.client import create_schema

    try:
        create_schema(database_url=database_url)
    except Exception as e:
        print(f"Error: failed to create schema: {e}", file=sys.stderr)
        return 1
    print("Schema ready.")
    return 0


def cmd_import_csv(csv_path: str, *, database_url: str | None = None) -> int:
    """Import a statement CSV and print ``import #<id>: rows=.. inserted=.. skipped=..``.

    The size limit is enforced here, before the importer sees the stream.
    """

    from .errors import ImportFailedError, MalformedStatementError
    from .ingest.importer import import_statement

    path = Path(csv_path)
    limit = _resolve_max_import_bytes()
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {csv_path}", file=sys.stderr)
        return 1
    if size > limit:
        print(f"Error: {csv_path} is {size} bytes; the import limit is {limit}", file=sys.stderr)
        return 1

    try:
        with path.open("rb") as f:
            summary = import_statement(f, path.name, database_url=database_url)
    except MalformedStatementError as e:
        print(f"Error: Failed to parse CSV: {e}", file=sys.stderr)
        return 1
    except ImportFailedError as e:
        cause = e.__cause__
        detail = f" (cause: {cause})" if cause is not None else ""
        print(f"Error: import failed: {e}{detail}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: Unexpected failure importing '{csv_path}': {e}", file=sys.stderr)
        return 1

    print(
        f"import #{summary.import_id}: rows={summary.rows_seen} "
        f"inserted={summary.rows_inserted} skipped={summary.rows_skipped}"
    )
    return 0


def cmd_list_transactions(*, database_url: str | None = None, limit: int = 200) -> int:
    from db.client import session_scope
    from .ledger import format_money, list_transactions

    try:
        with session_scope(database_url=database_url) as session:
            rows = list_transactions(session, limit=limit)
    except Exception as e:
        print(f"Error: failed to list transactions: {e}", file=sys.stderr)
        return 1
    for tx in rows:
        print(
            f"{tx.id}\t{tx.txn_date.isoformat()}\t{format_money(tx.amount_cents)}\t"
            f"{tx.category_norm}\t{tx.merchant_norm}\t{tx.details}"
        )
    return 0


def cmd_list_imports(*, database_url: str | None = None, limit: int = 50) -> int:
    from db.client import session_scope
    from .ledger import list_imports

    try:
        with session_scope(database_url=database_url) as session:
            rows = list_imports(session, limit=limit)
    except Exception as e:
        print(f"Error: failed to list imports: {e}", file=sys.stderr)
        return 1
    for batch in rows:
        print(
            f"{batch.id}\t{batch.created_at}\t{batch.file_name}\t"
            f"rows={batch.rows_total} inserted={batch.rows_inserted} skipped={batch.rows_skipped}"
        )
    return 0


def cmd_suggest(tx_id: int, *, database_url: str | None = None) -> int:
    """Print the deterministic (override/rule) suggestion for a transaction."""

    from db.client import session_scope
    from .errors import TransactionNotFoundError
    from .ledger import get_transaction
    from .resolve import suggest_for_transaction

    try:
        with session_scope(database_url=database_url) as session:
            suggestion = suggest_for_transaction(session, get_transaction(session, tx_id))
    except TransactionNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: suggestion failed: {e}", file=sys.stderr)
        return 1

    if suggestion is None:
        print("No suggestion.")
    else:
        _print_suggestion("Suggestion", suggestion)
    return 0


def cmd_assist(tx_id: int, *, database_url: str | None = None) -> int:
    """Ask the external classifier; unavailability is not an error."""

    from .assist import AssistGateway
    from .errors import TransactionNotFoundError
    from .ledger import assist_for_transaction

    try:
        gateway = AssistGateway.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        suggestion = assist_for_transaction(tx_id, gateway, database_url=database_url)
    except TransactionNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: failed to load transaction {tx_id}: {e}", file=sys.stderr)
        return 1

    if suggestion is None:
        print("No suggestion available.")
    else:
        _print_suggestion("Assistive suggestion", suggestion)
    return 0


def cmd_edit(
    tx_id: int,
    *,
    category: str,
    merchant: str,
    notes: str = "",
    database_url: str | None = None,
) -> int:
    from db.client import session_scope
    from .errors import TransactionNotFoundError
    from .ledger import edit_transaction

    try:
        with session_scope(database_url=database_url) as session:
            edit_transaction(
                session, tx_id, category_norm=category, merchant_norm=merchant, notes=notes
            )
    except TransactionNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: edit failed: {e}", file=sys.stderr)
        return 1
    print(f"Saved transaction {tx_id}.")
    return 0


def cmd_seed_rules(rules_path: str, *, database_url: str | None = None) -> int:
    from .rules import reseed_rules

    try:
        count = reseed_rules(database_url=database_url, file=Path(rules_path))
    except FileNotFoundError:
        print(f"Error: File not found: {rules_path}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: invalid rules file: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: failed to seed rules: {e}", file=sys.stderr)
        return 1
    print(f"Seeded {count} rules.")
    return 0


def cmd_list_rules(*, database_url: str | None = None, include_disabled: bool = False) -> int:
    from db.client import session_scope
    from .rules import list_rules

    try:
        with session_scope(database_url=database_url) as session:
            rules = list_rules(session, enabled_only=not include_disabled)
    except Exception as e:
        print(f"Error: failed to list rules: {e}", file=sys.stderr)
        return 1
    for pos, rule in enumerate(rules):
        flag = "" if rule.enabled else "\t(disabled)"
        print(f"{pos}\t{rule.contains}\t{rule.category}{flag}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank-statement CSVs into a deduplicated ledger and suggest categories. "
        "Loads DATABASE_URL and PFLEDGER_* settings from a local .env before running."
    ),
)

# Module-level option object to satisfy ruff B008 (no calls in parameter
# defaults). Typer inspects it when used in Annotated below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a statement CSV export",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)


@app.command("init-db")
def init_db_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Create the ledger tables (local SQLite; use Alembic for deployed DBs)."""

    raise typer.Exit(cmd_init_db(database_url=database_url))


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Import one statement file; re-importing the same rows is a no-op."""

    raise typer.Exit(cmd_import_csv(str(csv_path), database_url=database_url))


@app.command("transactions")
def transactions_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    limit: int = typer.Option(200, help="Maximum number of rows to print."),
) -> None:
    raise typer.Exit(cmd_list_transactions(database_url=database_url, limit=limit))


@app.command("imports")
def imports_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    limit: int = typer.Option(50, help="Maximum number of batches to print."),
) -> None:
    raise typer.Exit(cmd_list_imports(database_url=database_url, limit=limit))


@app.command("suggest")
def suggest_cmd(
    tx_id: int,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Show the override/rule suggestion for a transaction."""

    raise typer.Exit(cmd_suggest(tx_id, database_url=database_url))


@app.command("assist")
def assist_cmd(
    tx_id: int,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Ask the external classifier for a suggestion (nothing is saved)."""

    raise typer.Exit(cmd_assist(tx_id, database_url=database_url))


@app.command("edit")
def edit_cmd(
    tx_id: int,
    category: str = typer.Option(..., help="Normalized category to store."),
    merchant: str = typer.Option(..., help="Normalized merchant to store."),
    notes: str = typer.Option("", help="Free-text notes."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Edit a transaction; merchant+category are remembered as an override."""

    raise typer.Exit(
        cmd_edit(
            tx_id, category=category, merchant=merchant, notes=notes, database_url=database_url
        )
    )


@app.command("seed-rules")
def seed_rules_cmd(
    rules_path: Path = typer.Option(
        ..., "--file", help="JSON array of rules, in priority order."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Replace the category rule list from a JSON file."""

    raise typer.Exit(cmd_seed_rules(str(rules_path), database_url=database_url))


@app.command("rules")
def rules_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    include_disabled: bool = typer.Option(False, help="Also list disabled rules."),
) -> None:
    raise typer.Exit(cmd_list_rules(database_url=database_url, include_disabled=include_disabled))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:
    """Console-script entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover - `python -m pfledger.cli`
    app()
