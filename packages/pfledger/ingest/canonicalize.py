"""Row canonicalization for bank-statement CSV exports.

Known columns (matched case-insensitively after trimming):
Date, Amount, Account Number, Transaction Type, Transaction Details,
Category, Merchant Name, Processed On

Unknown columns are ignored and missing ones read as ``""``. A row whose
date or amount cannot be parsed canonicalizes to ``None`` and is skipped by
the importer.
"""

from __future__ import annotations

import hashlib
import math
from collections.abc import Sequence
from datetime import date, datetime

from ..models import CanonicalRow, HeaderIndex, RawFields, RawRecord

# Example: "07 Feb 26"
STATEMENT_DATE_FORMAT = "%d %b %y"

# Stored in a signed 64-bit column.
MIN_AMOUNT_CENTS = -(2**63)
MAX_AMOUNT_CENTS = 2**63 - 1

COLUMN_DATE = "Date"
COLUMN_AMOUNT = "Amount"
COLUMN_ACCOUNT = "Account Number"
COLUMN_TYPE = "Transaction Type"
COLUMN_DETAILS = "Transaction Details"
COLUMN_CATEGORY = "Category"
COLUMN_MERCHANT = "Merchant Name"
COLUMN_PROCESSED_ON = "Processed On"


def index_header(header: Sequence[str]) -> HeaderIndex:
    """Map lower-cased, trimmed column names to their positions.

    Blank header cells are ignored, as is a leading byte-order mark; when a
    name repeats, the last column wins.
    """

    index: HeaderIndex = {}
    for pos, name in enumerate(header):
        key = name.strip().lstrip("\ufeff").strip().lower()
        if not key:
            continue
        index[key] = pos
    return index


def _cell(row: RawRecord, index: HeaderIndex, column: str) -> str:
    pos = index.get(column.lower())
    if pos is None or pos >= len(row):
        return ""
    return row[pos].strip()


def extract_fields(row: RawRecord, index: HeaderIndex) -> RawFields:
    return RawFields(
        date=_cell(row, index, COLUMN_DATE),
        amount=_cell(row, index, COLUMN_AMOUNT),
        account=_cell(row, index, COLUMN_ACCOUNT),
        txn_type=_cell(row, index, COLUMN_TYPE),
        details=_cell(row, index, COLUMN_DETAILS),
        category=_cell(row, index, COLUMN_CATEGORY),
        merchant=_cell(row, index, COLUMN_MERCHANT),
        processed_on=_cell(row, index, COLUMN_PROCESSED_ON),
    )


def parse_statement_date(value: str) -> date | None:
    s = value.strip()
    if not s:
        return None
    try:
        return datetime.strptime(s, STATEMENT_DATE_FORMAT).date()
    except ValueError:
        return None


def parse_amount_cents(value: str) -> int | None:
    """Convert a whole-units decimal string to signed integer cents.

    The value is scaled by 100 in binary floating point and truncated toward
    zero (``"0.29"`` -> ``28``). Ledger fingerprints of already-imported rows
    depend on this exact conversion, so it must not be changed to rounding.
    Values outside the signed 64-bit range are rejected like any other
    unusable amount.
    """

    s = value.strip()
    if not s or "_" in s:
        return None
    try:
        f = float(s)
    except ValueError:
        return None
    if not math.isfinite(f):
        return None
    cents = int(f * 100)
    if not MIN_AMOUNT_CENTS <= cents <= MAX_AMOUNT_CENTS:
        return None
    return cents


def compute_row_hash(
    *,
    txn_date: date,
    processed_on: str,
    amount_cents: int,
    account: str,
    txn_type: str,
    details: str,
    category: str,
    merchant: str,
) -> str:
    """Return the hex SHA-256 fingerprint of one physical statement row.

    The labelled field order is fixed; normalized category/merchant and notes
    are deliberately not part of it.
    """

    canon = "\n".join(
        [
            "date=" + txn_date.isoformat(),
            "processed=" + processed_on,
            "amount_cents=" + str(amount_cents),
            "acct=" + account,
            "type=" + txn_type,
            "details=" + details,
            "cat=" + category,
            "merchant=" + merchant,
        ]
    )
    return hashlib.sha256(canon.encode("utf-8")).hexdigest()


def canonicalize(row: RawRecord, index: HeaderIndex) -> CanonicalRow | None:
    """Canonicalize one raw row; ``None`` when its date or amount is unusable."""

    fields = extract_fields(row, index)
    txn_date = parse_statement_date(fields.date)
    if txn_date is None:
        return None
    amount_cents = parse_amount_cents(fields.amount)
    if amount_cents is None:
        return None

    row_hash = compute_row_hash(
        txn_date=txn_date,
        processed_on=fields.processed_on,
        amount_cents=amount_cents,
        account=fields.account,
        txn_type=fields.txn_type,
        details=fields.details,
        category=fields.category,
        merchant=fields.merchant,
    )
    return CanonicalRow(
        txn_date=txn_date,
        processed_on=fields.processed_on,
        amount_cents=amount_cents,
        account=fields.account,
        txn_type=fields.txn_type,
        details=fields.details,
        category_raw=fields.category,
        merchant_raw=fields.merchant,
        row_hash=row_hash,
    )


__all__ = [
    "canonicalize",
    "compute_row_hash",
    "extract_fields",
    "index_header",
    "parse_amount_cents",
    "parse_statement_date",
]
