"""Definition loader.

Splits a multi-definition source into named definitions and builds explicit
registries of query functions from them. Each definition starts with a header
block of ``-- :key value`` comment lines::

    -- :name get-user-by-id :? :1
    -- :doc Fetch a single user.
    --   Continuation lines extend the doc.
    -- :meta {"tags": ["users"]}
    SELECT * FROM users WHERE id = :id

Recognized keys are ``:name``, ``:name-`` (private), ``:doc``, ``:command``,
``:result``, ``:meta`` (a JSON object) and ``:snip``.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Optional, Union

from msgspec import DecodeError

from sqlvec.config import DEFAULT_DB_CONFIG, DEFAULT_SQLVEC_CONFIG
from sqlvec.core.lexer import parse_template
from sqlvec.exceptions import TemplateParseError, UnreadableSourceError
from sqlvec.queries import DBFunction, SQLVecFunction
from sqlvec.utils.logging import get_logger, log_event
from sqlvec.utils.serializers import from_json

if TYPE_CHECKING:
    from sqlvec.core.fragments import Template
    from sqlvec.queries import OptionsT

__all__ = (
    "Definition",
    "QueryRegistry",
    "load_db_functions",
    "load_db_functions_from_string",
    "load_sqlvec_functions",
    "load_sqlvec_functions_from_string",
    "parse_definitions",
    "parse_definitions_from_path",
)

logger = get_logger("loader")

HEADER_PATTERN: Final = re.compile(r"^\s*--\s*:(?P<key>name-|[a-zA-Z]+)(?:\s+(?P<value>.*?))?\s*$")
COMMENT_PATTERN: Final = re.compile(r"^\s*--(?P<text>.*)$")
TRIM_SPECIAL_CHARS: Final = re.compile(r"[^\w-]")
HEADER_KEYS: Final = frozenset({"name", "name-", "doc", "command", "result", "meta", "snip"})

QueryFunction = Union[DBFunction, SQLVecFunction]


def normalize_function_name(name: str) -> str:
    """Turn a definition name into a Python identifier.

    Special characters are stripped and hyphens become underscores, so
    ``get-user!`` is exposed as ``get_user``.
    """
    return TRIM_SPECIAL_CHARS.sub("", name).replace("-", "_")


@dataclass
class Definition:
    """A named template parsed from a definition source."""

    name: str
    sql: str
    template: "Template"
    command: Optional[str] = None
    result: Optional[str] = None
    doc: str = ""
    meta: "dict[str, Any]" = field(default_factory=dict)
    private: bool = False
    snippet: bool = False
    line: int = 1
    source: Optional[str] = None

    @property
    def function_name(self) -> str:
        return normalize_function_name(self.name)


@dataclass
class _PendingDefinition:
    line: int
    name: Optional[str] = None
    command: Optional[str] = None
    result: Optional[str] = None
    doc_lines: "list[str]" = field(default_factory=list)
    meta: "dict[str, Any]" = field(default_factory=dict)
    private: bool = False
    snippet: bool = False
    body: "list[str]" = field(default_factory=list)
    body_line: int = 0
    last_key: Optional[str] = None

    @property
    def has_body(self) -> bool:
        return any(line.strip() for line in self.body)


def _parse_meta(value: str, line: int) -> "dict[str, Any]":
    try:
        meta = from_json(value)
    except DecodeError as e:
        msg = f"Invalid :meta header: {e}"
        raise TemplateParseError(msg, line=line) from e
    if not isinstance(meta, dict):
        msg = ":meta header must be a JSON object"
        raise TemplateParseError(msg, line=line)
    return meta


def _apply_header(pending: _PendingDefinition, key: str, value: str, line: int) -> None:
    if key in {"name", "name-", "snip"}:
        if pending.name is not None:
            msg = f"Definition {pending.name!r} declares more than one name"
            raise TemplateParseError(msg, line=line)
        tokens = value.split()
        if not tokens:
            msg = f"Header :{key} requires a name"
            raise TemplateParseError(msg, line=line)
        pending.name, *flags = tokens
        pending.private = key == "name-"
        pending.snippet = key == "snip"
        if flags:
            pending.command = flags[0]
        if len(flags) > 1:
            pending.result = flags[1]
    elif key == "doc":
        pending.doc_lines.append(value)
    elif key == "command":
        pending.command = value or None
    elif key == "result":
        pending.result = value or None
    elif key == "meta":
        pending.meta.update(_parse_meta(value, line))
    pending.last_key = key


def _finish(pending: _PendingDefinition, source: Optional[str]) -> Definition:
    if pending.name is None:
        msg = "Definition header has no :name or :snip"
        raise TemplateParseError(msg, line=pending.line)
    if not pending.has_body:
        msg = f"Definition {pending.name!r} has no SQL"
        raise TemplateParseError(msg, line=pending.line)
    sql = "\n".join(pending.body).strip()
    try:
        template = parse_template(sql)
    except TemplateParseError as e:
        line = pending.body_line + (e.line or 1) - 1
        msg = f"{e.message} in definition {pending.name!r}"
        raise TemplateParseError(msg, line=line) from e
    return Definition(
        name=pending.name,
        sql=sql,
        template=template,
        command=pending.command,
        result=pending.result,
        doc="\n".join(pending.doc_lines).strip(),
        meta=pending.meta,
        private=pending.private,
        snippet=pending.snippet,
        line=pending.line,
        source=source,
    )


def _iter_definitions(text: str, source: Optional[str]) -> "Iterator[Definition]":
    pending: Optional[_PendingDefinition] = None
    for number, line in enumerate(text.splitlines(), start=1):
        header = HEADER_PATTERN.match(line)
        is_header = header is not None and header.group("key") in HEADER_KEYS

        if is_header and (pending is None or pending.has_body):
            if pending is not None:
                yield _finish(pending, source)
            pending = _PendingDefinition(line=number)

        if pending is None:
            if line.strip() and not COMMENT_PATTERN.match(line):
                msg = "SQL found before the first definition header"
                raise TemplateParseError(msg, line=number)
            continue

        if not pending.has_body:
            if is_header:
                _apply_header(pending, header.group("key"), header.group("value") or "", number)  # type: ignore[union-attr]
                continue
            if header is not None:
                msg = f"Unknown definition header :{header.group('key')}"
                raise TemplateParseError(msg, line=number)
            comment = COMMENT_PATTERN.match(line)
            if comment is not None and pending.last_key == "doc":
                pending.doc_lines.append(comment.group("text").strip())
                continue
            if not line.strip():
                continue
            pending.body_line = number
        pending.body.append(line)

    if pending is not None:
        yield _finish(pending, source)


def parse_definitions(text: str, source: Optional[str] = None) -> "list[Definition]":
    """Parse every definition in ``text``.

    Args:
        text: Definition source
        source: Label used in log messages, usually the file path

    Raises:
        TemplateParseError: On malformed headers, duplicate names, empty
            definitions or SQL before the first header.

    Returns:
        Definitions in source order
    """
    definitions: list[Definition] = []
    seen: dict[str, int] = {}
    for definition in _iter_definitions(text, source):
        if definition.function_name in seen:
            first_line = seen[definition.function_name]
            msg = f"Duplicate definition name {definition.name!r} (first defined on line {first_line})"
            raise TemplateParseError(msg, line=definition.line)
        seen[definition.function_name] = definition.line
        definitions.append(definition)
    log_event(logger, logging.DEBUG, "definitions.parsed", count=len(definitions), source=str(source or "<string>"))
    return definitions


def parse_definitions_from_path(path: "Union[str, Path]") -> "list[Definition]":
    """Read and parse a definition file.

    Raises:
        UnreadableSourceError: If the file cannot be read.
    """
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise UnreadableSourceError(file_path) from e
    return parse_definitions(text, str(file_path))


class QueryRegistry:
    """Explicit map of function names to query functions.

    Functions are reachable as attributes and by item lookup. Iteration and
    :meth:`list_functions` skip private definitions unless asked.
    """

    __slots__ = ("_functions",)

    def __init__(self) -> None:
        self._functions: dict[str, QueryFunction] = {}

    def add(self, name: str, function: QueryFunction) -> None:
        if name in self._functions:
            msg = f"Function {name!r} is already registered"
            raise TemplateParseError(msg)
        self._functions[name] = function

    def get(self, name: str) -> Optional[QueryFunction]:
        return self._functions.get(name)

    def has_function(self, name: str) -> bool:
        return name in self._functions

    def list_functions(self, include_private: bool = False) -> "list[str]":
        return sorted(name for name, fn in self._functions.items() if include_private or not fn.private)

    def __getitem__(self, name: str) -> QueryFunction:
        return self._functions[name]

    def __getattr__(self, name: str) -> QueryFunction:
        try:
            return self._functions[name]
        except KeyError:
            msg = f"{type(self).__name__!r} has no function {name!r}"
            raise AttributeError(msg) from None

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __iter__(self) -> "Iterator[str]":
        return iter(self.list_functions())

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        return f"QueryRegistry({', '.join(self.list_functions(include_private=True))})"


def _sqlvec_function(definition: Definition, options: "OptionsT", suffix: str) -> SQLVecFunction:
    config = DEFAULT_SQLVEC_CONFIG.merge(options)
    doc = f"{definition.doc} (sqlvec)".strip()
    return SQLVecFunction(
        definition.template,
        config,
        name=definition.function_name + suffix,
        doc=doc,
        meta=definition.meta,
        private=definition.private,
    )


def _db_function(definition: Definition, options: "OptionsT") -> DBFunction:
    return DBFunction(
        definition.template,
        definition.command,
        definition.result,
        DEFAULT_DB_CONFIG.merge(options),
        name=definition.function_name,
        doc=definition.doc,
        meta=definition.meta,
        private=definition.private,
    )


def _build_db_registry(definitions: "list[Definition]", options: "OptionsT") -> QueryRegistry:
    registry = QueryRegistry()
    for definition in definitions:
        if definition.snippet:
            registry.add(definition.function_name, _sqlvec_function(definition, options, ""))
        else:
            registry.add(definition.function_name, _db_function(definition, options))
    return registry


def _build_sqlvec_registry(definitions: "list[Definition]", options: "OptionsT") -> QueryRegistry:
    suffix = DEFAULT_SQLVEC_CONFIG.merge(options).fn_suffix
    registry = QueryRegistry()
    for definition in definitions:
        registry.add(definition.function_name + suffix, _sqlvec_function(definition, options, suffix))
    return registry


def load_db_functions(path: "Union[str, Path]", options: "OptionsT" = None) -> QueryRegistry:
    """Build db functions for every definition in a file.

    Snippet definitions (``:snip``) become sqlvec functions under their own
    name, so they can be passed as ``:snip`` parameters.
    """
    return _build_db_registry(parse_definitions_from_path(path), options)


def load_db_functions_from_string(text: str, options: "OptionsT" = None) -> QueryRegistry:
    """Build db functions for every definition in ``text``."""
    return _build_db_registry(parse_definitions(text), options)


def load_sqlvec_functions(path: "Union[str, Path]", options: "OptionsT" = None) -> QueryRegistry:
    """Build sqlvec functions, named ``<name><fn_suffix>``, for every definition in a file."""
    return _build_sqlvec_registry(parse_definitions_from_path(path), options)


def load_sqlvec_functions_from_string(text: str, options: "OptionsT" = None) -> QueryRegistry:
    """Build sqlvec functions, named ``<name><fn_suffix>``, for every definition in ``text``."""
    return _build_sqlvec_registry(parse_definitions(text), options)
