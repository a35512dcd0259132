"""Database adapter contract and its SQLAlchemy implementation.

This module reads query results as records and writes records into tables
with overwrite, append, or upsert semantics.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, Sequence

from core.errors import SluiceDependencyError, SluiceError, SluiceExtractError, SluiceLoadError
from core.logging_config import get_logger
from core.types import Record

_LOGGER = get_logger(__name__)

_UNSUPPORTED_DRIVERS = ("surreal",)


class DatabaseAdapter(Protocol):
    """Record-level access to a relational database."""

    def query(self, connection_string: str, query: str) -> list[Record]:
        """Run a query and return its rows as records."""

    def write(
        self,
        connection_string: str,
        table: str,
        mode: str,
        records: Sequence[Record],
        key_columns: Sequence[str] = (),
    ) -> None:
        """Write records into a table."""


def ensure_supported_driver(driver: str, error_type: type[SluiceError]) -> None:
    """Reject drivers that have no adapter.

    Raises:
        SluiceError: Instance of ``error_type`` naming the driver.
    """
    if driver in _UNSUPPORTED_DRIVERS:
        raise error_type(
            f"Database driver '{driver}' is not supported. Use postgres, mysql, or sqlite."
        )


def normalize_connection_url(connection_string: str, driver: str) -> str:
    """Turn a configured connection string into a SQLAlchemy URL."""
    if driver == "sqlite" and "://" not in connection_string:
        return f"sqlite:///{connection_string}"
    if connection_string.startswith("postgres://"):
        return "postgresql://" + connection_string[len("postgres://"):]
    return connection_string


class SqlAlchemyDatabase:
    """Database adapter backed by SQLAlchemy Core."""

    def query(self, connection_string: str, query: str) -> list[Record]:
        """Run a query.

        Args:
            connection_string: SQLAlchemy database URL.
            query: SQL text.

        Returns:
            One record per result row, keyed by column name.

        Raises:
            SluiceExtractError: If the query fails.
        """
        sqlalchemy = _import_sqlalchemy()
        try:
            engine = sqlalchemy.create_engine(connection_string)
            with engine.connect() as connection:
                result = connection.execute(sqlalchemy.text(query))
                records = [dict(row) for row in result.mappings()]
            engine.dispose()
        except sqlalchemy.exc.SQLAlchemyError as error:
            raise SluiceExtractError(
                f"Database query failed: {error}. Check the connection string and query."
            ) from error
        _LOGGER.info("database_query_completed", record_count=len(records))
        return records

    def write(
        self,
        connection_string: str,
        table: str,
        mode: str,
        records: Sequence[Record],
        key_columns: Sequence[str] = (),
    ) -> None:
        """Write records in a single transaction.

        ``overwrite`` recreates the table, ``append`` inserts rows, and
        ``upsert`` replaces rows matching ``key_columns`` before inserting.

        Raises:
            SluiceLoadError: If the write fails.
        """
        sqlalchemy = _import_sqlalchemy()
        columns = _collect_columns(records)
        try:
            engine = sqlalchemy.create_engine(connection_string)
            with engine.begin() as connection:
                target = _prepare_table(sqlalchemy, connection, table, mode, columns, records)
                rows = [_row_values(record, columns) for record in records]
                if mode == "upsert":
                    _delete_matching_rows(sqlalchemy, connection, target, key_columns, rows)
                if rows:
                    connection.execute(target.insert(), rows)
            engine.dispose()
        except sqlalchemy.exc.SQLAlchemyError as error:
            raise SluiceLoadError(
                f"Failed to write {len(records)} records to table '{table}' ({mode}): {error}."
            ) from error
        _LOGGER.info("database_write_completed", table=table, mode=mode, record_count=len(records))


def _import_sqlalchemy() -> Any:
    try:
        import sqlalchemy
        import sqlalchemy.exc
    except ImportError as error:
        raise SluiceDependencyError(
            "Database support requires SQLAlchemy, but it is not installed. "
            "Install sqlalchemy to use database sources and destinations."
        ) from error
    return sqlalchemy


def _prepare_table(
    sqlalchemy: Any,
    connection: Any,
    table: str,
    mode: str,
    columns: list[str],
    records: Sequence[Record],
) -> Any:
    """Return a table object ready for inserts, creating it when needed."""
    metadata = sqlalchemy.MetaData()
    exists = sqlalchemy.inspect(connection).has_table(table)
    if exists and mode != "overwrite":
        return sqlalchemy.Table(table, metadata, autoload_with=connection)
    if exists:
        sqlalchemy.Table(table, metadata, autoload_with=connection).drop(connection)
        metadata = sqlalchemy.MetaData()
    target = sqlalchemy.Table(
        table,
        metadata,
        *[
            sqlalchemy.Column(column, _column_type(sqlalchemy, records, column))
            for column in columns
        ],
    )
    target.create(connection)
    return target


def _delete_matching_rows(
    sqlalchemy: Any,
    connection: Any,
    target: Any,
    key_columns: Sequence[str],
    rows: list[dict[str, Any]],
) -> None:
    for row in rows:
        clauses = [target.c[column] == row.get(column) for column in key_columns]
        connection.execute(target.delete().where(sqlalchemy.and_(*clauses)))


def _collect_columns(records: Sequence[Record]) -> list[str]:
    columns: dict[str, None] = {}
    for record in records:
        for key in record:
            columns.setdefault(key, None)
    return list(columns)


def _column_type(sqlalchemy: Any, records: Sequence[Record], column: str) -> Any:
    """Infer a column type from the first non-null value."""
    for record in records:
        value = record.get(column)
        if value is None:
            continue
        if isinstance(value, bool):
            return sqlalchemy.Boolean
        if isinstance(value, int):
            return sqlalchemy.BigInteger
        if isinstance(value, float):
            return sqlalchemy.Float
        return sqlalchemy.Text
    return sqlalchemy.Text


def _row_values(record: Record, columns: list[str]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for column in columns:
        value = record.get(column)
        if isinstance(value, (dict, list)):
            value = json.dumps(value, separators=(",", ":"))
        row[column] = value
    return row
