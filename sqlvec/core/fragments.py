"""Fragment model for parsed SQL templates.

A template is an immutable tuple of fragments. ``Text`` and ``Param``
fragments survive to the binder; the ``Expr*`` fragments bracket embedded
expression runs and are consumed by the flattening pass.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final, Union

from typing_extensions import TypeAlias

from sqlvec.exceptions import TemplateParseError

__all__ = (
    "BLOCK_END_CODES",
    "ExprClose",
    "ExprOpen",
    "ExprPart",
    "Fragment",
    "Param",
    "ParameterKind",
    "Template",
    "Text",
    "is_expression_fragment",
    "split_path",
)

BLOCK_END_CODES: Final = frozenset({"", "end"})


class ParameterKind(str, Enum):
    """Substitution strategy for a parameter placeholder."""

    VALUE = "value"
    VALUE_LIST = "value*"
    TUPLE = "tuple"
    TUPLE_LIST = "tuple*"
    IDENTIFIER = "identifier"
    IDENTIFIER_LIST = "identifier*"
    SQL = "sql"
    SQL_LIST = "sql*"
    SNIPPET = "snip"
    SNIPPET_LIST = "snip*"

    def __str__(self) -> str:
        return self.value

    @property
    def is_list(self) -> bool:
        return self.value.endswith("*")

    @classmethod
    def from_token(cls, token: str) -> "ParameterKind":
        """Resolve a parameter type token (``v``, ``i*``, ``snip``...) to a kind.

        Raises:
            TemplateParseError: If the token names no known kind.
        """
        kind = _KIND_ALIASES.get(token.lower())
        if kind is None:
            msg = f"Unknown parameter type {token!r}"
            raise TemplateParseError(msg)
        return kind


_KIND_ALIASES: "dict[str, ParameterKind]" = {kind.value: kind for kind in ParameterKind}
_KIND_ALIASES.update(
    {
        "v": ParameterKind.VALUE,
        "v*": ParameterKind.VALUE_LIST,
        "t": ParameterKind.TUPLE,
        "t*": ParameterKind.TUPLE_LIST,
        "i": ParameterKind.IDENTIFIER,
        "i*": ParameterKind.IDENTIFIER_LIST,
        "sqlvec": ParameterKind.SNIPPET,
        "sqlvec*": ParameterKind.SNIPPET_LIST,
    }
)


def split_path(name: str) -> "tuple[Union[str, int], ...]":
    """Split a dotted parameter name into lookup keys.

    Numeric segments become integers so they can index sequences.
    """
    return tuple(int(part) if part.isdigit() else part for part in name.split("."))


@dataclass(frozen=True)
class Text:
    """Literal SQL text."""

    sql: str


@dataclass(frozen=True)
class Param:
    """A named parameter placeholder."""

    name: str
    kind: ParameterKind = ParameterKind.VALUE

    @property
    def path(self) -> "tuple[Union[str, int], ...]":
        return split_path(self.name)


@dataclass(frozen=True)
class ExprOpen:
    """Opens an expression block, e.g. ``if LENGTH(cols) > 0``."""

    code: str


@dataclass(frozen=True)
class ExprPart:
    """Separates sections of an expression block (``elif``/``else``)."""

    code: str


@dataclass(frozen=True)
class ExprClose:
    """Closes an expression block, or holds a standalone expression.

    An empty code (or ``end``) closes the innermost open block. Any other code
    is a self-contained expression whose value is emitted in place.
    """

    code: str = ""

    @property
    def ends_block(self) -> bool:
        return self.code.strip().lower() in BLOCK_END_CODES


Fragment: TypeAlias = Union[Text, Param, ExprOpen, ExprPart, ExprClose]
Template: TypeAlias = "tuple[Fragment, ...]"


def is_expression_fragment(fragment: Fragment) -> bool:
    return isinstance(fragment, (ExprOpen, ExprPart, ExprClose))
