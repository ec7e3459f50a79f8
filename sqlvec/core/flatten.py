"""Template flattening pass.

Walks a template once, evaluating embedded expression runs and splicing
their results back in. The output holds only ``Text`` and ``Param``
fragments, in source order.
"""

from typing import TYPE_CHECKING, Any

from sqlvec.core.expressions import evaluate_run
from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Param, Text
from sqlvec.exceptions import ExpressionCompileError
from sqlvec.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlvec.config import QueryConfig
    from sqlvec.core.fragments import Fragment, Template

__all__ = ("flatten_template",)

logger = get_logger("core.flatten")


class _FlatBuffer:
    """Output accumulator that keeps tokens of adjacent fragments apart.

    Top-level text is padded on both sides, but a space is only inserted where
    neither neighbour already supplies whitespace.
    """

    __slots__ = ("fragments", "needs_space")

    def __init__(self) -> None:
        self.fragments: list[Fragment] = []
        self.needs_space = False

    def _last_is_solid(self) -> bool:
        if not self.fragments:
            return False
        last = self.fragments[-1]
        return isinstance(last, Param) or (isinstance(last, Text) and not last.sql[-1].isspace())

    def append_text(self, sql: str, pad: bool) -> None:
        if not sql:
            return
        if (self.needs_space or (pad and self._last_is_solid())) and not sql[0].isspace():
            self.fragments.append(Text(" "))
        self.fragments.append(Text(sql))
        self.needs_space = pad and not sql[-1].isspace()

    def append_param(self, param: Param) -> None:
        if self.needs_space:
            self.fragments.append(Text(" "))
        self.fragments.append(param)
        self.needs_space = False


def _splice(buffer: _FlatBuffer, run: "list[Fragment]", params: Any, options: "QueryConfig") -> None:
    result = evaluate_run(tuple(run), params, options)
    if result is None:
        logger.debug("Expression run of %d fragments produced no output", len(run))
        return
    _flatten_into(buffer, result, params, options, pad=False)


def _flatten_into(
    buffer: _FlatBuffer, fragments: "Iterable[Fragment]", params: Any, options: "QueryConfig", pad: bool
) -> None:
    run: list[Fragment] = []
    depth = 0
    for fragment in fragments:
        if run:
            run.append(fragment)
            if isinstance(fragment, ExprOpen):
                depth += 1
            elif isinstance(fragment, ExprClose) and fragment.ends_block:
                depth -= 1
                if depth == 0:
                    _splice(buffer, run, params, options)
                    run = []
            continue

        if isinstance(fragment, (ExprOpen, ExprPart)):
            run = [fragment]
            depth = 1
        elif isinstance(fragment, ExprClose):
            _splice(buffer, [fragment], params, options)
        elif isinstance(fragment, Text):
            buffer.append_text(fragment.sql, pad)
        else:
            buffer.append_param(fragment)

    if run:
        msg = "Expression block is not terminated"
        source = "\n".join(f.code for f in run if isinstance(f, (ExprOpen, ExprPart, ExprClose)))
        raise ExpressionCompileError(msg, source)


def flatten_template(template: "Iterable[Fragment]", params: Any, options: "QueryConfig") -> "Template":
    """Evaluate every expression run of ``template`` and splice the results.

    Args:
        template: Fragments as produced by the lexer
        params: Parameter data expressions read from
        options: Active query configuration

    Raises:
        ExpressionCompileError: If a run is malformed or fails to compile.
        ExpressionEvaluationError: If an expression fails at runtime.

    Returns:
        A template holding only ``Text`` and ``Param`` fragments
    """
    buffer = _FlatBuffer()
    _flatten_into(buffer, template, params, options, pad=True)
    return tuple(buffer.fragments)
