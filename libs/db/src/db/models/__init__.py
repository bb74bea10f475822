"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the ledger domain models used by ``pfledger``.
"""

from .ledger import (
    Base,
    CategoryRule,
    LedgerImport,
    LedgerTransaction,
    MerchantCategoryOverride,
)

__all__ = [
    "Base",
    "CategoryRule",
    "LedgerImport",
    "LedgerTransaction",
    "MerchantCategoryOverride",
]
