"""sqlvec: SQL templates assembled into (sql, values) pairs."""

from sqlvec import adapters, config, core, exceptions, loader, queries, utils
from sqlvec.__metadata__ import __version__
from sqlvec.adapters import AdapterBase, DBAPIAdapter
from sqlvec.config import QueryConfig, Quoting, get_adapter, reset_adapter, set_adapter
from sqlvec.core import Command, ResultShape, SQLVec, get_dispatch_table, parse_template, prepare_sql
from sqlvec.exceptions import (
    AdapterError,
    ExpressionCompileError,
    ExpressionError,
    ExpressionEvaluationError,
    ImproperConfigurationError,
    ParameterError,
    ParameterMismatchError,
    SQLVecError,
    TemplateParseError,
    UnreadableSourceError,
)
from sqlvec.loader import (
    Definition,
    QueryRegistry,
    load_db_functions,
    load_db_functions_from_string,
    load_sqlvec_functions,
    load_sqlvec_functions_from_string,
    parse_definitions,
)
from sqlvec.protocols import AdapterProtocol
from sqlvec.queries import DBFunction, SQLVecFunction, db_fn, db_run, sqlvec, sqlvec_fn

__all__ = (
    "AdapterBase",
    "AdapterError",
    "AdapterProtocol",
    "Command",
    "DBAPIAdapter",
    "DBFunction",
    "Definition",
    "ExpressionCompileError",
    "ExpressionError",
    "ExpressionEvaluationError",
    "ImproperConfigurationError",
    "ParameterError",
    "ParameterMismatchError",
    "QueryConfig",
    "QueryRegistry",
    "Quoting",
    "ResultShape",
    "SQLVec",
    "SQLVecError",
    "SQLVecFunction",
    "TemplateParseError",
    "UnreadableSourceError",
    "__version__",
    "adapters",
    "config",
    "core",
    "db_fn",
    "db_run",
    "exceptions",
    "get_adapter",
    "get_dispatch_table",
    "load_db_functions",
    "load_db_functions_from_string",
    "load_sqlvec_functions",
    "load_sqlvec_functions_from_string",
    "parse_definitions",
    "parse_template",
    "prepare_sql",
    "queries",
    "reset_adapter",
    "set_adapter",
    "sqlvec",
    "sqlvec_fn",
    "utils",
)
