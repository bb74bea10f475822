"""Data models and type aliases for ``pfledger``.

Persistent shapes live in ``db.models.ledger``; this module holds the
in-process values that flow between the canonicalizer, the importer, the
resolver and the assistive gateway.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------

type RawRecord = Sequence[str]
"""One CSV data row as read from the export (cells in header order)."""

type HeaderIndex = dict[str, int]
"""Lower-cased, trimmed column name -> cell position."""


class RawFields(NamedTuple):
    """Trimmed text of the known statement columns; missing columns are ``""``."""

    date: str
    amount: str
    account: str
    txn_type: str
    details: str
    category: str
    merchant: str
    processed_on: str


# ---------------------------------------------------------------------------
# Canonical rows and import results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CanonicalRow:
    """A parsed statement row ready to be inserted into the ledger.

    ``category_norm`` and ``merchant_norm`` start as the trimmed raw values
    and are the only fields (besides notes) a user may edit later; they never
    participate in ``row_hash``.
    """

    txn_date: date
    processed_on: str
    amount_cents: int
    account: str
    txn_type: str
    details: str
    category_raw: str
    merchant_raw: str
    row_hash: str

    @property
    def category_norm(self) -> str:
        return self.category_raw.strip()

    @property
    def merchant_norm(self) -> str:
        return self.merchant_raw.strip()


class ImportSummary(NamedTuple):
    """Outcome of one committed import batch."""

    import_id: int
    rows_seen: int
    rows_inserted: int
    rows_skipped: int
    digest: str


# ---------------------------------------------------------------------------
# Category suggestions
# ---------------------------------------------------------------------------

type SuggestionSource = Literal["override", "rule", "assistive"]
type Confidence = Literal["low", "medium", "high"]


@dataclass(frozen=True, slots=True)
class Suggestion:
    """A transient category suggestion shown to the user for acceptance."""

    category: str
    reason: str
    source: SuggestionSource
    # Only assistive suggestions carry a confidence tier.
    confidence: Confidence | None = None


@dataclass(frozen=True, slots=True)
class RuleSpec:
    """One declared substring rule, independent of storage."""

    contains: str
    category: str
    enabled: bool = True


class AssistDecision(BaseModel):
    """Validated shape of the external classifier's JSON answer."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category: str
    reason: str
    confidence: Confidence

    @field_validator("category")
    @classmethod
    def _category_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("category must be non-empty")
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: object) -> object:
        if isinstance(v, str):
            tier = v.strip().lower()
            return "medium" if tier == "med" else tier
        return v

    def to_suggestion(self) -> Suggestion:
        return Suggestion(
            category=self.category,
            reason=self.reason,
            source="assistive",
            confidence=self.confidence,
        )
