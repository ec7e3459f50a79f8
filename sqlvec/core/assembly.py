"""Template assembly: flatten, validate, bind."""

import logging
from typing import TYPE_CHECKING, Any, NamedTuple, Optional

from sqlvec.config import DEFAULT_SQLVEC_CONFIG
from sqlvec.core.flatten import flatten_template
from sqlvec.core.parameters import bind_parameters, validate_parameters
from sqlvec.utils.logging import get_logger, log_event

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlvec.config import QueryConfig
    from sqlvec.core.fragments import Fragment

__all__ = ("SQLVec", "prepare_sql")

logger = get_logger("core.assembly")


class SQLVec(NamedTuple):
    """Final SQL with positional ``?`` placeholders and the values they bind."""

    sql: str
    values: "tuple[Any, ...]" = ()

    def as_list(self) -> "list[Any]":
        """The ``[sql, value1, value2, ...]`` form some drivers expect."""
        return [self.sql, *self.values]


def prepare_sql(
    template: "Iterable[Fragment]", params: Any = None, options: "Optional[QueryConfig]" = None
) -> SQLVec:
    """Assemble a template against parameter data.

    Expression runs are evaluated first, then every remaining parameter is
    checked for presence, then the template is bound. Nothing is rendered when
    a parameter is missing.

    Args:
        template: Fragments as produced by the lexer
        params: Nested parameter data; read only
        options: Active configuration, defaults to the sqlvec defaults

    Raises:
        ParameterMismatchError: If a parameter path is absent from ``params``.
        ExpressionCompileError: If an embedded expression does not compile.

    Returns:
        The assembled SQL and its values
    """
    config = options if options is not None else DEFAULT_SQLVEC_CONFIG
    data = params if params is not None else {}
    flat = flatten_template(template, data, config)
    validate_parameters(flat, data)
    sql, values = bind_parameters(flat, data, config)
    log_event(logger, logging.DEBUG, "sql.prepared", values=len(values), sql=sql)
    return SQLVec(sql, tuple(values))
