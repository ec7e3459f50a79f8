"""Parameter binding.

Maps each :class:`~sqlvec.core.fragments.Param` of a flattened template to
inline SQL text (identifiers, raw SQL) or positional ``?`` placeholders plus
the values to bind.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Callable, Final, Union

from sqlvec.config import Quoting
from sqlvec.core.fragments import Param, ParameterKind, Text
from sqlvec.exceptions import ParameterError, ParameterMismatchError

if TYPE_CHECKING:
    from sqlvec.config import QueryConfig
    from sqlvec.core.fragments import Fragment

__all__ = (
    "MISSING",
    "apply_parameter",
    "bind_parameters",
    "lookup_path",
    "quote_identifier",
    "validate_parameters",
)

MISSING: Final = object()
PLACEHOLDER: Final = "?"
SNIPPET_PAIR_LENGTH: Final = 2

_QUOTE_CHARACTERS: Final = {
    Quoting.ANSI: ('"', '"'),
    Quoting.MYSQL: ("`", "`"),
    Quoting.MSSQL: ("[", "]"),
}


def lookup_path(data: Any, path: "Sequence[Union[str, int]]") -> Any:
    """Walk ``path`` through nested mappings and sequences.

    Returns:
        The value found, or :data:`MISSING` when any step is absent.
    """
    current = data
    for key in path:
        if isinstance(current, Mapping):
            if key in current:
                current = current[key]
            elif isinstance(key, int) and str(key) in current:
                current = current[str(key)]
            else:
                return MISSING
        elif isinstance(key, int) and _is_sequence(current):
            if not -len(current) <= key < len(current):
                return MISSING
            current = current[key]
        else:
            return MISSING
    return current


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def validate_parameters(template: "Iterable[Fragment]", params: Any) -> None:
    """Ensure every parameter of ``template`` has matching parameter data.

    Raises:
        ParameterMismatchError: For the first parameter whose path is absent.
    """
    for fragment in template:
        if isinstance(fragment, Param) and lookup_path(params, fragment.path) is MISSING:
            raise ParameterMismatchError(fragment.name)


def quote_identifier(identifier: str, quoting: "Union[Quoting, str]") -> str:
    """Quote an identifier for the active quoting style.

    Dotted identifiers are split, each part quoted on its own and rejoined, so
    ``schema.table`` becomes ``"schema"."table"`` with ANSI quoting.
    """
    quotes = _QUOTE_CHARACTERS.get(Quoting.coerce(quoting))
    if quotes is None:
        return identifier
    open_quote, close_quote = quotes
    return ".".join(
        f"{open_quote}{part.replace(close_quote, close_quote * 2)}{close_quote}" for part in identifier.split(".")
    )


def _expect_sequence(param: Param, value: Any) -> "Sequence[Any]":
    if isinstance(value, Mapping) or not _is_sequence(value):
        msg = f"Parameter {param.name!r} of type {param.kind} expects a sequence, got {type(value).__name__}"
        raise ParameterError(msg)
    return value  # type: ignore[no-any-return]


def _placeholders(count: int) -> str:
    return ", ".join([PLACEHOLDER] * count)


def _apply_value(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    return PLACEHOLDER, [value]


def _apply_value_list(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    values = list(_expect_sequence(param, value))
    return _placeholders(len(values)), values


def _apply_tuple(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    values = list(_expect_sequence(param, value))
    return f"({_placeholders(len(values))})", values


def _apply_tuple_list(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    rows = [list(_expect_sequence(param, row)) for row in _expect_sequence(param, value)]
    sql = ", ".join(f"({_placeholders(len(row))})" for row in rows)
    return sql, [item for row in rows for item in row]


def _render_identifier(param: Param, value: Any, quoting: Quoting) -> str:
    if isinstance(value, str):
        return quote_identifier(value, quoting)
    if _is_sequence(value) and len(value) == SNIPPET_PAIR_LENGTH:
        name, alias = value
        return f"{quote_identifier(str(name), quoting)} AS {quote_identifier(str(alias), quoting)}"
    msg = f"Parameter {param.name!r} expects an identifier or (identifier, alias) pair, got {value!r}"
    raise ParameterError(msg)


def _apply_identifier(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    return _render_identifier(param, value, config.quoting), []


def _apply_identifier_list(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    items = list(value.items()) if isinstance(value, Mapping) else _expect_sequence(param, value)
    return ", ".join(_render_identifier(param, item, config.quoting) for item in items), []


def _apply_sql(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    if not isinstance(value, str):
        msg = f"Parameter {param.name!r} of type sql expects a string, got {type(value).__name__}"
        raise ParameterError(msg)
    return value, []


def _apply_sql_list(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    parts = [_apply_sql(param, item, config)[0] for item in _expect_sequence(param, value)]
    return " ".join(parts), []


def _apply_snippet(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    if isinstance(value, str):
        return value, []
    if _is_sequence(value) and len(value) == SNIPPET_PAIR_LENGTH and isinstance(value[0], str):
        sql, values = value
        return sql, list(values or ())
    msg = f"Parameter {param.name!r} of type snip expects a (sql, values) pair, got {value!r}"
    raise ParameterError(msg)


def _apply_snippet_list(param: Param, value: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    applied = [_apply_snippet(param, item, config) for item in _expect_sequence(param, value)]
    return " ".join(sql for sql, _ in applied), [item for _, values in applied for item in values]


_APPLIERS: "Final[dict[ParameterKind, Callable[[Param, Any, QueryConfig], tuple[str, list[Any]]]]]" = {
    ParameterKind.VALUE: _apply_value,
    ParameterKind.VALUE_LIST: _apply_value_list,
    ParameterKind.TUPLE: _apply_tuple,
    ParameterKind.TUPLE_LIST: _apply_tuple_list,
    ParameterKind.IDENTIFIER: _apply_identifier,
    ParameterKind.IDENTIFIER_LIST: _apply_identifier_list,
    ParameterKind.SQL: _apply_sql,
    ParameterKind.SQL_LIST: _apply_sql_list,
    ParameterKind.SNIPPET: _apply_snippet,
    ParameterKind.SNIPPET_LIST: _apply_snippet_list,
}


def apply_parameter(param: Param, params: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    """Render one parameter to SQL text and the values it binds.

    Raises:
        ParameterMismatchError: If the parameter path is absent.
        ParameterError: If the value does not fit the parameter kind.
    """
    value = lookup_path(params, param.path)
    if value is MISSING:
        raise ParameterMismatchError(param.name)
    return _APPLIERS[param.kind](param, value, config)


def bind_parameters(template: "Iterable[Fragment]", params: Any, config: "QueryConfig") -> "tuple[str, list[Any]]":
    """Linearize a flattened template into SQL and positional values.

    Only ``Text`` and ``Param`` fragments may remain at this point.

    Returns:
        The trimmed SQL string and the ordered values
    """
    sql_parts: list[str] = []
    values: list[Any] = []
    for fragment in template:
        if isinstance(fragment, Text):
            sql_parts.append(fragment.sql)
        elif isinstance(fragment, Param):
            sql, param_values = apply_parameter(fragment, params, config)
            sql_parts.append(sql)
            values.extend(param_values)
        else:
            msg = f"Unexpected {type(fragment).__name__} fragment after expression evaluation"
            raise ParameterError(msg)
    return "".join(sql_parts).strip(), values
