"""Ledger read and edit operations built on the imported transactions.

Scope:
- Fetch/list transactions and import batches for display.
- Apply a user's edit of normalized category/merchant/notes and feed the
  correction back into the override table.
- Gather facts for an on-demand assistive suggestion without holding a
  database transaction open while the external classifier runs.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

from db.client import session_scope
from db.models.ledger import LedgerImport, LedgerTransaction
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .assist import AssistGateway
from .errors import TransactionNotFoundError
from .logging_setup import get_logger
from .models import Suggestion
from .overrides import learn_override

_logger = get_logger("pfledger.ledger")


def format_money(cents: int) -> str:
    """Render signed cents for display, e.g. ``-4530`` -> ``"-$45.30"``."""

    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}${whole}.{frac:02d}"


def get_transaction(session: Session, tx_id: int) -> LedgerTransaction:
    tx = session.get(LedgerTransaction, tx_id)
    if tx is None:
        raise TransactionNotFoundError(f"transaction {tx_id} not found")
    return tx


def list_transactions(session: Session, *, limit: int = 200) -> list[LedgerTransaction]:
    """Newest first by transaction date, then by id."""

    stmt = (
        select(LedgerTransaction)
        .order_by(LedgerTransaction.txn_date.desc(), LedgerTransaction.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt))


def list_imports(session: Session, *, limit: int = 50) -> list[LedgerImport]:
    stmt = select(LedgerImport).order_by(LedgerImport.id.desc()).limit(limit)
    return list(session.scalars(stmt))


def _effective_category():
    # User category when set, else the category supplied by the export.
    return func.coalesce(
        func.nullif(LedgerTransaction.category_norm, ""), LedgerTransaction.category_raw
    )


def known_categories(session: Session, *, limit: int = 50) -> list[str]:
    """Distinct non-empty effective categories present in the ledger."""

    cat = _effective_category()
    stmt = select(cat).where(cat != "").distinct().order_by(cat).limit(limit)
    return [c for c in session.scalars(stmt) if c]


def edit_transaction(
    session: Session,
    tx_id: int,
    *,
    category_norm: str,
    merchant_norm: str,
    notes: str = "",
) -> LedgerTransaction:
    """Store the user's edit and learn ``merchant -> category`` when both are set.

    Concurrent edits of the same row are last-write-wins.
    """

    tx = get_transaction(session, tx_id)
    tx.category_norm = category_norm.strip()
    tx.merchant_norm = merchant_norm.strip()
    tx.notes = notes.strip()
    session.flush()

    learned = learn_override(session, tx.merchant_norm, tx.category_norm)
    _logger.info("ledger:edited tx_id=%d learned_override=%s", tx_id, learned)
    return tx


def assist_for_transaction(
    tx_id: int,
    gateway: AssistGateway,
    *,
    database_url: str | None = None,
    cancel: threading.Event | None = None,
    categories: Sequence[str] | None = None,
) -> Suggestion | None:
    """Request an assistive suggestion for one stored transaction.

    The transaction facts and known categories are read in a short session
    that is closed before the external call starts. Failures of the
    classifier degrade to ``None``; a missing transaction still raises.
    """

    with session_scope(database_url=database_url) as session:
        tx = get_transaction(session, tx_id)
        merchant_raw = tx.merchant_raw
        details = tx.details
        amount_cents = tx.amount_cents
        known = list(categories) if categories is not None else known_categories(session)

    return gateway.try_classify(merchant_raw, details, amount_cents, known, cancel=cancel)


__all__ = [
    "assist_for_transaction",
    "edit_transaction",
    "format_money",
    "get_transaction",
    "known_categories",
    "list_imports",
    "list_transactions",
]
