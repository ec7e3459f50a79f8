"""Adapter for PEP 249 (DB-API 2.0) connections."""

import contextlib
import logging
from typing import TYPE_CHECKING, Any, Optional

from sqlvec.adapters.base import AdapterBase
from sqlvec.exceptions import AdapterError
from sqlvec.protocols import CursorProtocol, DBAPIConnectionProtocol
from sqlvec.utils.logging import get_logger, log_event

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlvec.config import QueryConfig

__all__ = ("DBAPICursor", "DBAPIAdapter")

logger = get_logger("adapters.dbapi")


class DBAPICursor:
    """Context manager for DB-API cursor management."""

    def __init__(self, connection: DBAPIConnectionProtocol) -> None:
        self.connection = connection
        self.cursor: Optional[CursorProtocol] = None

    def __enter__(self) -> CursorProtocol:
        cursor = self.connection.cursor()
        if not isinstance(cursor, CursorProtocol):
            msg = f"Connection returned an unusable cursor: {type(cursor).__name__}"
            raise AdapterError(msg)
        self.cursor = cursor
        return cursor

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.cursor is not None:
            with contextlib.suppress(Exception):
                self.cursor.close()


def _rows_as_dicts(cursor: CursorProtocol) -> "list[dict[str, Any]]":
    rows = cursor.fetchall()
    if not cursor.description:
        return []
    column_names = [column[0] for column in cursor.description]
    return [dict(zip(column_names, row)) for row in rows]


class DBAPIAdapter(AdapterBase):
    """Runs statements on any DB-API connection using ``?`` placeholders.

    Rows are returned as dictionaries keyed by column name. Drivers using
    another paramstyle need their own adapter.
    """

    __slots__ = ("autocommit",)

    def __init__(self, autocommit: bool = True) -> None:
        """Initialize the adapter.

        Args:
            autocommit: Commit after every ``execute`` call
        """
        self.autocommit = autocommit

    def with_cursor(self, db: Any) -> DBAPICursor:
        if not isinstance(db, DBAPIConnectionProtocol):
            msg = f"Expected a DB-API connection, got {type(db).__name__}"
            raise AdapterError(msg)
        return DBAPICursor(db)

    def execute(self, db: Any, sql: str, values: "Sequence[Any]", options: "QueryConfig") -> int:
        with self.with_cursor(db) as cursor:
            cursor.execute(sql, tuple(values))
            affected = cursor.rowcount
        if self.autocommit:
            db.commit()
        log_event(logger, logging.DEBUG, "statement.executed", affected=affected)
        return affected

    def query(self, db: Any, sql: str, values: "Sequence[Any]", options: "QueryConfig") -> "list[dict[str, Any]]":
        with self.with_cursor(db) as cursor:
            cursor.execute(sql, tuple(values))
            rows = _rows_as_dicts(cursor)
        if self.autocommit and sql.lstrip()[:6].upper() != "SELECT":
            db.commit()
        log_event(logger, logging.DEBUG, "query.rows", rows=len(rows))
        return rows

    def __repr__(self) -> str:
        return f"DBAPIAdapter(autocommit={self.autocommit})"
