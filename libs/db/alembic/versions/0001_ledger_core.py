# ruff: noqa: I001
"""Ledger core tables: imports, transactions, overrides and rules.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-02-09
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


# SQLite only autoincrements an INTEGER PRIMARY KEY.
_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _empty_text(name: str) -> sa.Column:
    return sa.Column(name, sa.Text(), nullable=False, server_default=sa.text("''"))


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "ledger_imports",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("source", sa.String(), nullable=False),
        _empty_text("file_name"),
        sa.Column("sha256", sa.String(), nullable=False, server_default=sa.text("''")),
        sa.Column("rows_total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("rows_inserted", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("rows_skipped", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("import_id", _ID, nullable=True),
        sa.Column("txn_date", sa.Date(), nullable=False),
        _empty_text("processed_on"),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        _empty_text("account"),
        _empty_text("txn_type"),
        _empty_text("details"),
        _empty_text("category_raw"),
        _empty_text("merchant_raw"),
        _empty_text("category_norm"),
        _empty_text("merchant_norm"),
        _empty_text("notes"),
        sa.Column("row_hash", sa.CHAR(64), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        # No ON DELETE CASCADE: batches own their rows for the record only.
        sa.ForeignKeyConstraint(["import_id"], ["ledger_imports.id"]),
        sa.UniqueConstraint("row_hash", name="uq_ledger_tx_row_hash"),
    )
    op.create_index("ix_ledger_tx_date_id", "ledger_transactions", ["txn_date", "id"])
    op.create_index("ix_ledger_tx_import_id", "ledger_transactions", ["import_id"])

    op.create_table(
        "merchant_category_overrides",
        sa.Column("merchant_norm", sa.Text(), primary_key=True),
        sa.Column("category_norm", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "category_rules",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("match_contains", sa.Text(), nullable=False),
        sa.Column("category_norm", sa.Text(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_category_rules_position", "category_rules", ["position", "id"])


def downgrade() -> None:
    op.drop_index("ix_category_rules_position", table_name="category_rules")
    op.drop_table("category_rules")
    op.drop_table("merchant_category_overrides")
    op.drop_index("ix_ledger_tx_import_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_date_id", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("ledger_imports")
