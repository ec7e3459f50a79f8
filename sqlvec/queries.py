"""Callable query functions built from templates.

``SQLVecFunction`` assembles a template into :class:`~sqlvec.core.assembly.SQLVec`.
``DBFunction`` additionally hands the result to an adapter, picking the
adapter operations from the declared command and result shape.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional, Union

from sqlvec.config import DEFAULT_DB_CONFIG, DEFAULT_SQLVEC_CONFIG, QueryConfig, get_adapter
from sqlvec.core.assembly import SQLVec, prepare_sql
from sqlvec.core.dispatch import get_dispatch_table, resolve_operations
from sqlvec.core.lexer import parse_template
from sqlvec.utils.logging import get_logger, log_event, query_context

if TYPE_CHECKING:
    from sqlvec.core.fragments import Template

__all__ = (
    "DBFunction",
    "OptionsT",
    "SQLVecFunction",
    "db_fn",
    "db_fn_from_template",
    "db_run",
    "sqlvec",
    "sqlvec_fn",
    "sqlvec_fn_from_template",
)

logger = get_logger("queries")

OptionsT = Union[QueryConfig, Mapping[str, Any], None]


class SQLVecFunction:
    """Assembles its template against parameter data on every call.

    Args:
        template: Parsed template
        config: Definition-site configuration, already merged over the defaults
        name: Function name, for introspection
        doc: Docstring
        meta: Metadata from the definition header
        private: Whether the definition was declared private
    """

    def __init__(
        self,
        template: "Template",
        config: QueryConfig = DEFAULT_SQLVEC_CONFIG,
        name: str = "sqlvec_fn",
        doc: str = "",
        meta: "Optional[dict[str, Any]]" = None,
        private: bool = False,
    ) -> None:
        self.template = template
        self.config = config
        self.__name__ = name
        self.__doc__ = doc
        self.meta = dict(meta or {})
        self.private = private

    def __call__(self, params: Any = None, options: OptionsT = None) -> SQLVec:
        with query_context(self.__name__):
            return prepare_sql(self.template, params, self.config.merge(options))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.__name__}>"


class DBFunction:
    """Assembles its template and runs the result through an adapter.

    The declared ``command`` and ``result`` tokens win over any passed in
    options. Errors raised by adapter operations are handed to the adapter's
    ``on_exception`` hook; assembly errors propagate unchanged.

    Args:
        template: Parsed template
        command: Command token (``:!``, ``:?``, ``execute``...), None for the default
        result: Result token (``:1``, ``:*``, ``:n``, ``raw``...), None for the default
        config: Definition-site configuration, already merged over the defaults
        name: Function name, for introspection
        doc: Docstring
        meta: Metadata from the definition header
        private: Whether the definition was declared private
    """

    def __init__(
        self,
        template: "Template",
        command: Any = None,
        result: Any = None,
        config: QueryConfig = DEFAULT_DB_CONFIG,
        name: str = "db_fn",
        doc: str = "",
        meta: "Optional[dict[str, Any]]" = None,
        private: bool = False,
    ) -> None:
        self.template = template
        self.command = command
        self.result = result
        self.config = config
        self.__name__ = name
        self.__doc__ = doc
        self.meta = dict(meta or {})
        self.private = private

    def resolve_config(self, options: OptionsT = None, command_options: "tuple[Any, ...]" = ()) -> QueryConfig:
        """Merge call-site options over the definition config."""
        config = self.config.merge(options)
        overrides: dict[str, Any] = {}
        if self.command is not None:
            overrides["command"] = self.command
        if self.result is not None:
            overrides["result"] = self.result
        if command_options:
            overrides["command_options"] = command_options
        return config.merge(overrides)

    def __call__(self, db: Any, params: Any = None, options: OptionsT = None, *command_options: Any) -> Any:
        config = self.resolve_config(options, command_options)
        with query_context(self.__name__):
            sql, values = prepare_sql(self.template, params, config)
            adapter = config.adapter if config.adapter is not None else get_adapter()
            command, result = get_dispatch_table().resolve(config.command, config.result)
            run_command, shape_result = resolve_operations(adapter, command, result)
            log_event(
                logger, logging.DEBUG, "query.dispatch", command=command.value, result=result.value, values=len(values)
            )
            try:
                return shape_result(run_command(db, sql, values, config), config)
            except Exception as e:
                return adapter.on_exception(e)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.__name__} {self.command or 'query'} {self.result or 'raw'}>"


def sqlvec_fn_from_template(template: "Template", options: OptionsT = None) -> SQLVecFunction:
    """Build a sqlvec function from an already parsed template."""
    return SQLVecFunction(template, DEFAULT_SQLVEC_CONFIG.merge(options))


def sqlvec_fn(sql: str, options: OptionsT = None) -> SQLVecFunction:
    """Build a sqlvec function from template text.

    Example:
        >>> get_user = sqlvec_fn("SELECT * FROM users WHERE id = :id")
        >>> get_user({"id": 42})
        SQLVec(sql='SELECT * FROM users WHERE id = ?', values=(42,))
    """
    return sqlvec_fn_from_template(parse_template(sql), options)


def sqlvec(sql: str, params: Any = None, options: OptionsT = None) -> SQLVec:
    """Assemble template text against parameter data in one step."""
    return sqlvec_fn(sql, options)(params)


def db_fn_from_template(
    template: "Template", command: Any = None, result: Any = None, options: OptionsT = None
) -> DBFunction:
    """Build a db function from an already parsed template."""
    return DBFunction(template, command, result, DEFAULT_DB_CONFIG.merge(options))


def db_fn(sql: str, command: Any = None, result: Any = None, options: OptionsT = None) -> DBFunction:
    """Build a db function from template text.

    Args:
        sql: Template text
        command: Command token, e.g. ``":!"`` or ``"execute"``
        result: Result token, e.g. ``":1"`` or ``"many"``
        options: Definition-site options

    Returns:
        A callable taking ``(db, params=None, options=None, *command_options)``
    """
    return db_fn_from_template(parse_template(sql), command, result, options)


def db_run(
    db: Any,
    sql: str,
    params: Any = None,
    command: Any = None,
    result: Any = None,
    options: OptionsT = None,
    *command_options: Any,
) -> Any:
    """Assemble and run template text in one step."""
    return db_fn(sql, command, result, options)(db, params, None, *command_options)
