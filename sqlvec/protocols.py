"""Runtime-checkable protocols for sqlvec.

These describe what sqlvec needs from collaborators, so adapters and
connections can be checked with ``isinstance()`` instead of ``hasattr()``.
"""

from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlvec.config import QueryConfig

__all__ = ("AdapterProtocol", "CursorProtocol", "DBAPIConnectionProtocol")


@runtime_checkable
class AdapterProtocol(Protocol):
    """Operations a database adapter exposes to db functions."""

    def execute(self, db: Any, sql: str, values: "Sequence[Any]", options: "QueryConfig") -> Any:
        """Run a statement that does not return rows."""
        ...

    def query(self, db: Any, sql: str, values: "Sequence[Any]", options: "QueryConfig") -> Any:
        """Run a statement that returns rows."""
        ...

    def result_one(self, result: Any, options: "QueryConfig") -> Any:
        """Shape a raw result into a single row or None."""
        ...

    def result_many(self, result: Any, options: "QueryConfig") -> Any:
        """Shape a raw result into a list of rows."""
        ...

    def result_affected(self, result: Any, options: "QueryConfig") -> Any:
        """Shape a raw result into an affected-row count."""
        ...

    def result_raw(self, result: Any, options: "QueryConfig") -> Any:
        """Return the raw result unchanged."""
        ...

    def on_exception(self, error: BaseException) -> Any:
        """Handle an error raised by any of the operations above."""
        ...


@runtime_checkable
class CursorProtocol(Protocol):
    """The PEP 249 cursor surface used by the DB-API adapter."""

    description: "Optional[Sequence[Sequence[Any]]]"
    rowcount: int

    def execute(self, operation: str, parameters: "Sequence[Any]" = ...) -> Any:
        """Execute a statement."""
        ...

    def fetchall(self) -> "Sequence[Any]":
        """Fetch all remaining rows."""
        ...

    def close(self) -> Any:
        """Close the cursor."""
        ...


@runtime_checkable
class DBAPIConnectionProtocol(Protocol):
    """The PEP 249 connection surface used by the DB-API adapter."""

    def cursor(self) -> Any:
        """Open a cursor."""
        ...

    def commit(self) -> Any:
        """Commit the current transaction."""
        ...
