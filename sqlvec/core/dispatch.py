"""Command and result dispatch.

Commands and result shapes are closed enums. Callers extend the alias
table with :meth:`DispatchTable.register_command` and
:meth:`DispatchTable.register_result`; unknown tokens resolve to the
defaults (``query`` and ``raw``).
"""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Final, Optional, Union

from mypy_extensions import mypyc_attr

from sqlvec.utils.logging import get_logger, log_event

if TYPE_CHECKING:
    from sqlvec.protocols import AdapterProtocol

__all__ = (
    "Command",
    "DispatchTable",
    "ResultShape",
    "get_dispatch_table",
    "normalize_token",
    "resolve_operations",
)

logger = get_logger("core.dispatch")


class Command(str, Enum):
    """How a statement is sent to the adapter."""

    EXECUTE = "execute"
    QUERY = "query"

    def __str__(self) -> str:
        return self.value


class ResultShape(str, Enum):
    """How the raw adapter result is shaped."""

    ONE = "one"
    MANY = "many"
    AFFECTED = "affected"
    RAW = "raw"

    def __str__(self) -> str:
        return self.value


DEFAULT_COMMAND: Final = Command.QUERY
DEFAULT_RESULT: Final = ResultShape.RAW

DEFAULT_COMMAND_ALIASES: Final = {
    "!": Command.EXECUTE,
    "execute": Command.EXECUTE,
    "insert!": Command.EXECUTE,
    "i!": Command.EXECUTE,
    "<!": Command.QUERY,
    "returning-execute": Command.QUERY,
    "?": Command.QUERY,
    "query": Command.QUERY,
}

DEFAULT_RESULT_ALIASES: Final = {
    "1": ResultShape.ONE,
    "one": ResultShape.ONE,
    "*": ResultShape.MANY,
    "many": ResultShape.MANY,
    "n": ResultShape.AFFECTED,
    "affected": ResultShape.AFFECTED,
    "raw": ResultShape.RAW,
}

_COMMAND_OPERATIONS: Final = {Command.EXECUTE: "execute", Command.QUERY: "query"}
_RESULT_OPERATIONS: Final = {
    ResultShape.ONE: "result_one",
    ResultShape.MANY: "result_many",
    ResultShape.AFFECTED: "result_affected",
    ResultShape.RAW: "result_raw",
}


def normalize_token(token: Any) -> Optional[str]:
    """Turn ``:?``, ``"?"`` or an enum member into a lookup token."""
    if token is None:
        return None
    if isinstance(token, Enum):
        return str(token.value)
    return str(token).strip().lstrip(":")


@mypyc_attr(allow_interpreted_subclasses=False)
class DispatchTable:
    """Alias table from command/result tokens to :class:`Command`/:class:`ResultShape`."""

    __slots__ = ("_commands", "_lock", "_results")

    def __init__(self) -> None:
        self._commands: dict[str, Command] = dict(DEFAULT_COMMAND_ALIASES)
        self._results: dict[str, ResultShape] = dict(DEFAULT_RESULT_ALIASES)
        self._lock = threading.Lock()

    def register_command(self, token: str, command: "Union[Command, str]") -> None:
        """Map a caller-defined command token to a command."""
        key = normalize_token(token)
        with self._lock:
            self._commands = {**self._commands, key: Command(command)}  # type: ignore[dict-item]

    def register_result(self, token: str, result: "Union[ResultShape, str]") -> None:
        """Map a caller-defined result token to a result shape."""
        key = normalize_token(token)
        with self._lock:
            self._results = {**self._results, key: ResultShape(result)}  # type: ignore[dict-item]

    def resolve_command(self, token: Any) -> Command:
        if isinstance(token, Command):
            return token
        key = normalize_token(token)
        command = self._commands.get(key) if key is not None else None
        if command is None:
            if key not in {None, "", "default"}:
                log_event(
                    logger,
                    logging.DEBUG,
                    "dispatch.unknown_token",
                    kind="command",
                    token=token,
                    fallback=DEFAULT_COMMAND.value,
                )
            return DEFAULT_COMMAND
        return command

    def resolve_result(self, token: Any) -> ResultShape:
        if isinstance(token, ResultShape):
            return token
        key = normalize_token(token)
        result = self._results.get(key) if key is not None else None
        if result is None:
            if key not in {None, "", "default"}:
                log_event(
                    logger,
                    logging.DEBUG,
                    "dispatch.unknown_token",
                    kind="result",
                    token=token,
                    fallback=DEFAULT_RESULT.value,
                )
            return DEFAULT_RESULT
        return result

    def resolve(self, command: Any, result: Any) -> "tuple[Command, ResultShape]":
        return self.resolve_command(command), self.resolve_result(result)

    def reset(self) -> None:
        """Drop registered aliases, keeping the built-in ones."""
        with self._lock:
            self._commands = dict(DEFAULT_COMMAND_ALIASES)
            self._results = dict(DEFAULT_RESULT_ALIASES)


_dispatch_table: Optional[DispatchTable] = None
_dispatch_lock = threading.Lock()


def get_dispatch_table() -> DispatchTable:
    """Get the process-wide dispatch table."""
    global _dispatch_table
    if _dispatch_table is None:
        with _dispatch_lock:
            if _dispatch_table is None:
                _dispatch_table = DispatchTable()
    return _dispatch_table


def resolve_operations(
    adapter: "AdapterProtocol", command: Any, result: Any, table: Optional[DispatchTable] = None
) -> "tuple[Callable[..., Any], Callable[..., Any]]":
    """Resolve command and result tokens to the adapter's bound operations.

    Returns:
        The ``execute``/``query`` operation and the result shaping operation
    """
    resolved_command, resolved_result = (table or get_dispatch_table()).resolve(command, result)
    return (
        getattr(adapter, _COMMAND_OPERATIONS[resolved_command]),
        getattr(adapter, _RESULT_OPERATIONS[resolved_result]),
    )
