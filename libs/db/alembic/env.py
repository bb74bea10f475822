# ruff: noqa: I001
"""
Alembic environment for the ledger database (`db` library).

Run from the repo root or from libs/db, e.g.::

    DATABASE_URL=sqlite:///data/ledger.db alembic -c libs/db/alembic.ini upgrade head

The URL is taken from `DATABASE_URL` (a workspace `.env` is honored, already
exported variables win) and only then from `sqlalchemy.url` in alembic.ini.
"""

from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

import db as ledger_db

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = ledger_db.metadata


def _resolve_url() -> str:
    env_file = find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(dotenv_path=env_file, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; export it (or add it to .env) before running migrations"
        )
    return url


def _context_options(dialect_name: str) -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # SQLite rebuilds tables for most ALTERs.
        "render_as_batch": dialect_name == "sqlite",
    }


DATABASE_URL = _resolve_url()
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""

    dialect_name = DATABASE_URL.split(":", 1)[0].split("+", 1)[0]
    context.configure(url=DATABASE_URL, literal_binds=True, **_context_options(dialect_name))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = DATABASE_URL
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with engine.connect() as connection:
        context.configure(connection=connection, **_context_options(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
