"""Template text tokenizer.

Template syntax:

- ``:name`` or ``:name.path`` binds a value; ``:kind:name`` picks another
  :class:`~sqlvec.core.fragments.ParameterKind` (``:v*:ids``, ``:i:table``).
- ``::`` is kept verbatim (PostgreSQL casts); ``\\:`` emits a literal colon.
- Quoted strings, quoted identifiers and comments are passed through.
- ``--~ expr`` is a standalone expression; ``/*~ if cond ~*/``,
  ``/*~ elif cond ~*/``, ``/*~ else ~*/`` and ``/*~ end ~*/`` (or ``/*~*/``)
  delimit conditional blocks. The same directives may also be written on
  ``--~`` lines.
"""

import re
from typing import Final

from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Fragment, Param, ParameterKind, Template, Text
from sqlvec.exceptions import TemplateParseError

__all__ = ("parse_template",)

_TEMPLATE_REGEX: Final = re.compile(
    r"""
    # Literals and comments are matched first and passed through
    (?P<squote>'(?:[^']|'')*') |
    (?P<dquote>"(?:[^"]|"")*") |
    (?P<dollar_quoted_string>\$(?P<dollar_tag>\w*)\$[\s\S]*?\$(?P=dollar_tag)\$) |
    (?P<expr_line>--~(?P<expr_line_code>[^\r\n]*)) |
    (?P<line_comment>--[^\r\n]*) |
    (?P<expr_block>/\*~(?P<expr_block_code>[\s\S]*?)~?\*/) |
    (?P<block_comment>/\*[\s\S]*?\*/) |
    (?P<escaped_colon>\\:) |
    (?P<double_colon>::) |
    # :name, :name.path, :kind:name
    (?P<param>:(?:(?P<param_type>[a-zA-Z]+\*?):)?(?P<param_name>[a-zA-Z_]\w*(?:\.\w+)*))
    """,
    re.VERBOSE,
)

_BLOCK_OPEN: Final = re.compile(r"^if\s+\S", re.IGNORECASE)
_BLOCK_PART: Final = re.compile(r"^(?:elif\s+\S|else$)", re.IGNORECASE)


def _line_of(text: str, position: int) -> int:
    return text.count("\n", 0, position) + 1


def _directive(code: str) -> Fragment:
    stripped = code.strip()
    if _BLOCK_OPEN.match(stripped):
        return ExprOpen(stripped)
    if _BLOCK_PART.match(stripped):
        return ExprPart(stripped)
    return ExprClose(stripped)


def parse_template(text: str) -> Template:
    """Tokenize template text into fragments.

    Args:
        text: Template source without definition headers

    Raises:
        TemplateParseError: If a parameter names an unknown type or an
            expression line is empty.

    Returns:
        The fragment tuple, with adjacent literal text merged
    """
    fragments: list[Fragment] = []
    buffer: list[str] = []

    def flush() -> None:
        chunk = "".join(buffer)
        if chunk:
            fragments.append(Text(chunk))
        buffer.clear()

    position = 0
    for match in _TEMPLATE_REGEX.finditer(text):
        buffer.append(text[position : match.start()])
        position = match.end()

        if match.group("escaped_colon"):
            buffer.append(":")
        elif match.group("param"):
            token = match.group("param_type")
            try:
                kind = ParameterKind.from_token(token) if token else ParameterKind.VALUE
            except TemplateParseError as e:
                raise TemplateParseError(e.message, line=_line_of(text, match.start())) from e
            flush()
            fragments.append(Param(match.group("param_name"), kind))
        elif match.group("expr_line") is not None:
            code = match.group("expr_line_code").strip()
            if not code:
                raise TemplateParseError("Empty expression line", line=_line_of(text, match.start()))
            flush()
            fragments.append(_directive(code))
        elif match.group("expr_block") is not None:
            flush()
            fragments.append(_directive(match.group("expr_block_code")))
        else:
            buffer.append(match.group(0))

    buffer.append(text[position:])
    flush()
    return tuple(fragments)
