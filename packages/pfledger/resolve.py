"""Deterministic category resolution.

Precedence, first success wins:

1. an exact-match merchant override learned from a user edit;
2. the enabled substring rules, in their declared order;
3. nothing (a normal outcome, not an error).

An override is never shadowed by a rule, and rules are never re-sorted by
pattern. Resolution is read-only and makes no external calls.
"""

from __future__ import annotations

from collections.abc import Sequence

from db.models.ledger import LedgerTransaction, MerchantCategoryOverride
from sqlalchemy import select
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import RuleSpec, Suggestion
from .rules import list_rules

_logger = get_logger("pfledger.resolve")


def lookup_override(session: Session, merchant_norm: str) -> str | None:
    """Return the learned category for ``merchant_norm`` (exact match), if any."""

    merchant = merchant_norm.strip()
    if not merchant:
        return None
    category = session.execute(
        select(MerchantCategoryOverride.category_norm).where(
            MerchantCategoryOverride.merchant_norm == merchant
        )
    ).scalar_one_or_none()
    if category is None or not category.strip():
        return None
    return category.strip()


def match_rules(rules: Sequence[RuleSpec], merchant_norm: str, details: str) -> Suggestion | None:
    """Return the first enabled rule whose pattern occurs in the transaction text.

    The pattern is tested case-insensitively against ``"<merchant> <details>"``.
    Blank patterns never match.
    """

    text = f"{merchant_norm.strip()} {details.strip()}".lower()
    for rule in rules:
        if not rule.enabled:
            continue
        pattern = rule.contains.strip()
        if not pattern:
            continue
        if pattern.lower() in text:
            return Suggestion(
                category=rule.category.strip(),
                reason=f"rule contains: {pattern}",
                source="rule",
            )
    return None


def resolve_category(
    session: Session,
    merchant_norm: str,
    details: str,
    *,
    rules: Sequence[RuleSpec] | None = None,
) -> Suggestion | None:
    """Suggest a category for a merchant/details pair.

    ``rules`` defaults to the enabled rules stored in ``category_rules``.
    Storage errors propagate to the caller; nothing is written.
    """

    category = lookup_override(session, merchant_norm)
    if category is not None:
        return Suggestion(category=category, reason="merchant override", source="override")

    if rules is None:
        rules = list_rules(session, enabled_only=True)
    suggestion = match_rules(rules, merchant_norm, details)
    if suggestion is None:
        _logger.debug("resolve:no_match merchant=%r", merchant_norm)
    return suggestion


def effective_merchant(tx: LedgerTransaction) -> str:
    """The user's merchant when set, else the merchant from the export."""

    return (tx.merchant_norm or "").strip() or (tx.merchant_raw or "").strip()


def suggest_for_transaction(session: Session, tx: LedgerTransaction) -> Suggestion | None:
    return resolve_category(session, effective_merchant(tx), tx.details or "")


__all__ = [
    "effective_merchant",
    "lookup_override",
    "match_rules",
    "resolve_category",
    "suggest_for_transaction",
]
