"""Database initialization utilities."""

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from motocare.db import models  # noqa: F401 - ensure model metadata is registered
from motocare.db.session import Base, engine as default_engine
from motocare.db.types import LEGACY_STATUS_ALIASES

logger = logging.getLogger(__name__)


def _table_exists(engine: Engine, table_name: str) -> bool:
    return table_name in inspect(engine).get_table_names()


def _get_columns(engine: Engine, table_name: str) -> set[str]:
    if not _table_exists(engine, table_name):
        return set()
    return {column["name"] for column in inspect(engine).get_columns(table_name)}


def _ensure_column(engine: Engine, table_name: str, column_name: str, column_ddl: str) -> None:
    if column_name in _get_columns(engine, table_name):
        return

    with engine.begin() as connection:
        connection.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_ddl}"))


def _has_duplicate_rows(engine: Engine, table_name: str, columns: list[str]) -> bool:
    if not _table_exists(engine, table_name):
        return False

    columns_sql = ", ".join(columns)
    duplicate_query = (
        f"SELECT 1 FROM {table_name} "
        f"GROUP BY {columns_sql} "
        "HAVING COUNT(*) > 1 "
        "LIMIT 1"
    )
    with engine.connect() as connection:
        return connection.execute(text(duplicate_query)).first() is not None


def _ensure_unique_index_if_clean(
    engine: Engine,
    table_name: str,
    index_name: str,
    columns: list[str],
) -> None:
    if not _table_exists(engine, table_name):
        return

    if _has_duplicate_rows(engine, table_name=table_name, columns=columns):
        logger.warning(
            "Skipping unique index %s on %s due to duplicate existing data.",
            index_name,
            table_name,
        )
        return

    columns_sql = ", ".join(columns)
    with engine.begin() as connection:
        connection.execute(
            text(
                f"CREATE UNIQUE INDEX IF NOT EXISTS {index_name} "
                f"ON {table_name} ({columns_sql})"
            )
        )


def _backfill_legacy_statuses(engine: Engine) -> int:
    if "status" not in _get_columns(engine, "appointments"):
        return 0

    updated = 0
    with engine.begin() as connection:
        for legacy, canonical in LEGACY_STATUS_ALIASES.items():
            result = connection.execute(
                text("UPDATE appointments SET status = :canonical WHERE status = :legacy"),
                {"canonical": canonical.value, "legacy": legacy},
            )
            updated += result.rowcount or 0
    return updated


def init_db(engine: Engine | None = None) -> None:
    """Create and migrate schema in a SQLite-safe, additive manner."""
    engine = engine or default_engine
    try:
        Base.metadata.create_all(bind=engine)

        _ensure_column(
            engine,
            table_name="appointments",
            column_name="internal_notes",
            column_ddl="internal_notes TEXT",
        )
        _ensure_column(
            engine,
            table_name="invoices",
            column_name="cancelled_at",
            column_ddl="cancelled_at TIMESTAMP",
        )

        backfilled = _backfill_legacy_statuses(engine)
        if backfilled:
            logger.info("Normalized %d legacy appointment statuses.", backfilled)

        _ensure_unique_index_if_clean(
            engine,
            table_name="reward_transactions",
            index_name="uq_reward_transactions_user_appointment_type",
            columns=["user_id", "appointment_id", "type"],
        )
    except SQLAlchemyError:
        logger.exception("Database initialization failed.")
        raise
