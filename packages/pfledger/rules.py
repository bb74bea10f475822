from __future__ import annotations

# Category rule storage and seeding.
#
# Usage (example):
#   python -m pfledger.rules --database-url sqlite:///data/finance.db \
#     --file rules.json
#
# The JSON file is an array of objects, evaluated top to bottom:
#   [{"contains": "woolworths", "category": "Groceries"},
#    {"contains": "uber", "category": "Transport", "enabled": false}]
#
# Seeding replaces the whole rule list and stores the array order in
# ``position``; the resolver reads rules back in that order.
import argparse
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from db.client import session_scope
from db.models.ledger import CategoryRule
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .logging_setup import configure_logging, get_logger
from .models import RuleSpec

_logger = get_logger("pfledger.rules")


def _parse_rule(item: Any, pos: int) -> RuleSpec:
    if not isinstance(item, dict):
        raise ValueError(f"Rule #{pos} must be an object")
    contains = item.get("contains")
    category = item.get("category")
    if not isinstance(contains, str) or not contains.strip():
        raise ValueError(f"Rule #{pos}: 'contains' must be a non-empty string")
    if not isinstance(category, str) or not category.strip():
        raise ValueError(f"Rule #{pos}: 'category' must be a non-empty string")
    enabled = item.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ValueError(f"Rule #{pos}: 'enabled' must be a boolean")
    return RuleSpec(contains=contains.strip(), category=category.strip(), enabled=enabled)


def load_rules_file(path: Path) -> list[RuleSpec]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError("Rules JSON must be a list of rule objects")
    return [_parse_rule(item, pos) for pos, item in enumerate(data)]


def list_rules(session: Session, *, enabled_only: bool = True) -> list[RuleSpec]:
    """Return stored rules in declared order (``position``, then ``id``)."""

    stmt = select(CategoryRule).order_by(CategoryRule.position, CategoryRule.id)
    if enabled_only:
        stmt = stmt.where(CategoryRule.enabled.is_(True))
    return [
        RuleSpec(contains=r.match_contains, category=r.category_norm, enabled=r.enabled)
        for r in session.scalars(stmt)
    ]


def seed_rules(session: Session, rules: Sequence[RuleSpec]) -> int:
    """Replace the stored rule list with ``rules``, preserving their order."""

    session.execute(delete(CategoryRule))
    for pos, rule in enumerate(rules):
        session.add(
            CategoryRule(
                position=pos,
                match_contains=rule.contains,
                category_norm=rule.category,
                enabled=rule.enabled,
            )
        )
    session.flush()
    _logger.info("rules:seeded count=%d", len(rules))
    return len(rules)


def reseed_rules(*, database_url: str | None, file: Path) -> int:
    rules = load_rules_file(file)
    with session_scope(database_url=database_url) as session:
        return seed_rules(session, rules)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Replace the ordered category rule list")
    ap.add_argument(
        "--database-url",
        required=False,
        default=None,
        help="SQLAlchemy database URL; falls back to $DATABASE_URL when not set",
    )
    ap.add_argument("--file", type=Path, required=True)
    args = ap.parse_args(argv)

    configure_logging()
    reseed_rules(database_url=args.database_url or None, file=args.file)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual utility
    raise SystemExit(main())
