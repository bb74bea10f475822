"""Override learning: the only write path into ``merchant_category_overrides``."""

from __future__ import annotations

from db.models.ledger import MerchantCategoryOverride
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .logging_setup import get_logger

_logger = get_logger("pfledger.overrides")


def learn_override(session: Session, merchant_norm: str, category_norm: str) -> bool:
    """Record ``merchant -> category``, replacing any earlier category.

    Returns ``False`` (and writes nothing) when either value is blank.
    """

    merchant = merchant_norm.strip()
    category = category_norm.strip()
    if not merchant or not category:
        return False

    dialect = session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        dialect_insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = dialect_insert(MerchantCategoryOverride).values(
            merchant_norm=merchant, category_norm=category
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[MerchantCategoryOverride.merchant_norm],
            set_={"category_norm": stmt.excluded.category_norm, "updated_at": func.now()},
        )
        session.execute(stmt)
    else:
        existing = session.execute(
            select(MerchantCategoryOverride).where(
                MerchantCategoryOverride.merchant_norm == merchant
            )
        ).scalar_one_or_none()
        if existing is None:
            session.add(MerchantCategoryOverride(merchant_norm=merchant, category_norm=category))
        else:
            existing.category_norm = category
        session.flush()

    _logger.info("overrides:learned merchant=%r category=%r", merchant, category)
    return True


__all__ = ["learn_override"]
