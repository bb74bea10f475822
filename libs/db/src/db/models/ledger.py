from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    CHAR,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements an ``INTEGER PRIMARY KEY`` (rowid alias); keep
# BIGINT everywhere else.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Import batches: ledger_imports
# ---------------------------


class LedgerImport(Base):
    __tablename__ = "ledger_imports"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    # Digest over every row fingerprint seen in the run (processing order).
    # Empty until the batch is finalized in the same transaction.
    sha256: Mapped[str] = mapped_column(String, nullable=False, server_default=text("''"))
    rows_total: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    rows_inserted: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    rows_skipped: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    # Record-only ownership; deleting a batch never cascades to its rows.
    import_id: Mapped[int | None] = mapped_column(
        _PK, ForeignKey("ledger_imports.id"), nullable=True
    )
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Kept verbatim from the export; it participates in the fingerprint.
    processed_on: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    account: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    txn_type: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    details: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    category_raw: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    merchant_raw: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    # User-editable fields. Raw provider fields and row_hash stay the source of
    # truth for deduplication and are never mutated after import.
    category_norm: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    merchant_norm: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    row_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_ledger_tx_date_id", "txn_date", "id"),
        Index("ix_ledger_tx_import_id", "import_id"),
    )


# ---------------------------
# Categorization inputs
# ---------------------------


class MerchantCategoryOverride(Base):
    """User-learned merchant -> category mapping (exact match on merchant)."""

    __tablename__ = "merchant_category_overrides"

    merchant_norm: Mapped[str] = mapped_column(Text, primary_key=True)
    category_norm: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class CategoryRule(Base):
    """Substring rule; evaluated in ``(position, id)`` order, first match wins."""

    __tablename__ = "category_rules"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    match_contains: Mapped[str] = mapped_column(Text, nullable=False)
    category_norm: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true())

    __table_args__ = (Index("ix_category_rules_position", "position", "id"),)


__all__ = [
    "Base",
    "CategoryRule",
    "LedgerImport",
    "LedgerTransaction",
    "MerchantCategoryOverride",
]
