"""Pytest configuration for test isolation.

Every test gets its own SQLite file (see ``tests.helpers.db``), but the
``db.client`` module caches one engine per URL for the life of the process
and the application reads its settings from ``DATABASE_URL`` and
``PFLEDGER_*`` environment variables. A developer's shell (or a local
``.env``) could therefore leak into tests, and engines from earlier tests
would keep SQLite files open. The CLI also configures the ``pfledger`` logger
once per process.

The autouse fixture below clears those variables for each test, then disposes
cached engines and resets logging afterwards.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make the workspace packages importable without an editable install.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines  # noqa: E402

from pfledger.logging_setup import reset_logging  # noqa: E402

_ENV_PREFIXES = ("PFLEDGER_",)
_ENV_NAMES = ("DATABASE_URL", "OPENAI_API_KEY")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start each test without ledger/assist settings inherited from the shell."""

    for name in list(os.environ):
        if name in _ENV_NAMES or name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()
    reset_logging()
