"""Embedded expression compilation and evaluation.

Expressions use a closed grammar: they are parsed with Lark and every rule
of the parse tree is compiled into a Python closure taking
``(params, options)``. Anything outside the grammar is rejected at compile
time, so template text can never reach a general purpose evaluator.

Two kinds of runs are compiled:

- blocks, ``if <cond>`` ... [``elif <cond>`` ...] [``else`` ...] ``end``,
  which yield the fragments of the first branch whose condition holds;
- standalone expressions (a lone ``ExprClose``), whose value is emitted.
  String values are parsed again as template text.
"""

import hashlib
import operator
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence, Sized
from typing import TYPE_CHECKING, Any, Final, Optional

from lark import Lark, Token, Tree
from lark.exceptions import LarkError
from mypy_extensions import mypyc_attr
from typing_extensions import TypeAlias

from sqlvec.core.cache import CacheKey, get_expression_cache
from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Param, Text, split_path
from sqlvec.core.lexer import parse_template
from sqlvec.core.parameters import MISSING, lookup_path
from sqlvec.exceptions import ExpressionCompileError, ExpressionEvaluationError

if TYPE_CHECKING:
    from sqlvec.config import QueryConfig
    from sqlvec.core.fragments import Fragment, Template

__all__ = (
    "EXPRESSION_GRAMMAR",
    "CompiledBlock",
    "CompiledExpression",
    "CompiledValue",
    "compile_condition",
    "compile_node",
    "compile_run",
    "evaluate_run",
    "expression_cache_key",
)

Evaluator: TypeAlias = "Callable[[Any, QueryConfig], Any]"

EXPRESSION_GRAMMAR: Final = r"""
    ?start: expr

    ?expr: expr _OR and_test                -> or_
         | and_test
    ?and_test: and_test _AND not_test       -> and_
             | not_test
    ?not_test: _NOT not_test                -> not_
             | comparison
    ?comparison: sum COMPARATOR sum         -> compare
               | sum _IS _NULL              -> is_null
               | sum _IS _NOT _NULL         -> is_not_null
               | sum _IN "(" args ")"       -> in_
               | sum _NOT _IN "(" args ")"  -> not_in
               | sum
    ?sum: sum "+" term                      -> add
        | sum "-" term                      -> sub
        | sum "||" term                     -> concat_op
        | term
    ?term: term "*" factor                  -> mul
         | term "/" factor                  -> div
         | term "%" factor                  -> mod
         | factor
    ?factor: "-" factor                     -> neg
           | atom
    ?atom: NUMBER                           -> number
         | STRING                           -> string
         | _TRUE                            -> true
         | _FALSE                           -> false
         | _NULL                            -> null
         | PATH "(" [args] ")"              -> call
         | _CASE when_clause+ [_ELSE expr] _END -> case
         | PATH                             -> path
         | "(" expr ")"

    args: expr ("," expr)*
    when_clause: _WHEN expr _THEN expr

    COMPARATOR: "==" | "!=" | "<>" | "<=" | ">=" | "=" | "<" | ">"
    _OR: "or"i
    _AND: "and"i
    _NOT: "not"i
    _IS: "is"i
    _IN: "in"i
    _TRUE: "true"i
    _FALSE: "false"i
    _NULL: "null"i
    _CASE: "case"i
    _WHEN: "when"i
    _THEN: "then"i
    _ELSE: "else"i
    _END: "end"i
    PATH: /[a-z_]\w*(?:\.\w+)*/i
    NUMBER: /\d+(?:\.\d+)?/
    STRING: /'(?:[^']|'')*'/

    %ignore /\s+/
"""

_PARSER: Final = Lark(EXPRESSION_GRAMMAR, start="start", parser="lalr")

_COMPARATORS: Final = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_ARITHMETIC: Final = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "div": operator.truediv,
    "mod": operator.mod,
}


def _constant(value: Any) -> Evaluator:
    def evaluate(params: Any, options: "QueryConfig") -> Any:
        return value

    return evaluate


def _lookup(name: str) -> Evaluator:
    path = split_path(name)

    def evaluate(params: Any, options: "QueryConfig") -> Any:
        value = lookup_path(params, path)
        return None if value is MISSING else value

    return evaluate


def _number(token: Token) -> Any:
    text = str(token)
    return float(text) if "." in text else int(text)


def _unquote(token: Token) -> str:
    return str(token)[1:-1].replace("''", "'")


def _concat(parts: "list[Evaluator]") -> Evaluator:
    def evaluate(params: Any, options: "QueryConfig") -> Any:
        return "".join("" if value is None else str(value) for value in (part(params, options) for part in parts))

    return evaluate


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, Sized) and len(value) == 0


def _length(value: Any) -> int:
    if value is None:
        return 0
    return len(value)


def _if(condition: Evaluator, when_true: Evaluator, when_false: Evaluator) -> Evaluator:
    def evaluate(params: Any, options: "QueryConfig") -> Any:
        return when_true(params, options) if condition(params, options) else when_false(params, options)

    return evaluate


def _coalesce(parts: "list[Evaluator]") -> Evaluator:
    def evaluate(params: Any, options: "QueryConfig") -> Any:
        for part in parts:
            value = part(params, options)
            if value is not None:
                return value
        return None

    return evaluate


def _membership(needle: Evaluator, candidates: "list[Evaluator]", negate: bool) -> Evaluator:
    def evaluate(params: Any, options: "QueryConfig") -> Any:
        value = needle(params, options)
        haystack = [candidate(params, options) for candidate in candidates]
        if len(haystack) == 1 and isinstance(haystack[0], (list, tuple, set, frozenset)):
            found = value in haystack[0]
        else:
            found = value in haystack
        return not found if negate else found

    return evaluate


def _compile_case(node: Tree, source: str) -> Evaluator:
    branches = []
    otherwise = _constant(None)
    for child in node.children:
        if isinstance(child, Tree) and child.data == "when_clause":
            condition, result = child.children
            branches.append((compile_node(condition, source), compile_node(result, source)))
        elif child is not None:
            otherwise = compile_node(child, source)

    def evaluate(params: Any, options: "QueryConfig") -> Any:
        for condition, result in branches:
            if condition(params, options):
                return result(params, options)
        return otherwise(params, options)

    return evaluate


def _expect_arguments(name: str, arguments: "list[Any]", minimum: int, maximum: int, source: str) -> None:
    if not minimum <= len(arguments) <= maximum:
        expected = str(minimum) if minimum == maximum else f"{minimum} to {maximum}"
        msg = f"{name}() takes {expected} argument(s), got {len(arguments)}"
        raise ExpressionCompileError(msg, source)


def _compile_call(node: Tree, source: str) -> Evaluator:  # noqa: PLR0911
    name_token, args = node.children
    name = str(name_token).upper()
    arguments = list(args.children) if args is not None else []

    if name == "DEFINED":
        _expect_arguments(name, arguments, 1, 1, source)
        target = arguments[0]
        if not (isinstance(target, Tree) and target.data == "path"):
            msg = "DEFINED() expects a parameter name"
            raise ExpressionCompileError(msg, source)
        path = split_path(str(target.children[0]))
        return lambda params, options: lookup_path(params, path) is not MISSING
    if name == "OPT":
        _expect_arguments(name, arguments, 1, 1, source)
        option = arguments[0]
        if not (isinstance(option, Tree) and option.data == "string"):
            msg = "OPT() expects a string literal option name"
            raise ExpressionCompileError(msg, source)
        key = _unquote(option.children[0])
        return lambda params, options: options.get(key)

    compiled = [compile_node(argument, source) for argument in arguments]
    if name == "IF":
        _expect_arguments(name, arguments, 2, 3, source)
        return _if(compiled[0], compiled[1], compiled[2] if len(compiled) > 2 else _constant(None))  # noqa: PLR2004
    if name == "COALESCE":
        _expect_arguments(name, arguments, 1, len(arguments) or 1, source)
        return _coalesce(compiled)
    if name == "CONCAT":
        return _concat(compiled)
    if name in {"LEN", "LENGTH"}:
        _expect_arguments(name, arguments, 1, 1, source)
        inner = compiled[0]
        return lambda params, options: _length(inner(params, options))
    if name == "EMPTY":
        _expect_arguments(name, arguments, 1, 1, source)
        inner = compiled[0]
        return lambda params, options: _is_empty(inner(params, options))
    if name in {"UPPER", "LOWER"}:
        _expect_arguments(name, arguments, 1, 1, source)
        inner = compiled[0]
        convert = str.upper if name == "UPPER" else str.lower

        def evaluate(params: Any, options: "QueryConfig") -> Any:
            value = inner(params, options)
            return None if value is None else convert(str(value))

        return evaluate
    msg = f"Unsupported function {name}()"
    raise ExpressionCompileError(msg, source)


def compile_node(node: Tree, source: str) -> Evaluator:  # noqa: C901, PLR0911, PLR0912
    """Compile one parse tree node into a closure.

    Raises:
        ExpressionCompileError: If the node is outside the supported grammar.
    """
    rule = str(node.data)
    children = node.children
    if rule == "number":
        return _constant(_number(children[0]))
    if rule == "string":
        return _constant(_unquote(children[0]))
    if rule in {"true", "false", "null"}:
        return _constant({"true": True, "false": False, "null": None}[rule])
    if rule == "path":
        return _lookup(str(children[0]))
    if rule == "call":
        return _compile_call(node, source)
    if rule == "case":
        return _compile_case(node, source)
    if rule == "not_":
        inner = compile_node(children[0], source)
        return lambda params, options: not inner(params, options)
    if rule == "neg":
        inner = compile_node(children[0], source)
        return lambda params, options: -inner(params, options)
    if rule in {"is_null", "is_not_null"}:
        subject = compile_node(children[0], source)
        if rule == "is_null":
            return lambda params, options: subject(params, options) is None
        return lambda params, options: subject(params, options) is not None
    if rule in {"in_", "not_in"}:
        needle, args = children
        candidates = [compile_node(candidate, source) for candidate in args.children]
        return _membership(compile_node(needle, source), candidates, negate=rule == "not_in")
    if rule == "compare":
        left_node, comparator, right_node = children
        function = _COMPARATORS[str(comparator)]
        left, right = compile_node(left_node, source), compile_node(right_node, source)
        return lambda params, options: function(left(params, options), right(params, options))

    left, right = (compile_node(child, source) for child in children)
    if rule == "and_":
        return lambda params, options: bool(left(params, options)) and bool(right(params, options))
    if rule == "or_":
        return lambda params, options: bool(left(params, options)) or bool(right(params, options))
    if rule == "concat_op":
        return _concat([left, right])
    if rule in _ARITHMETIC:
        function = _ARITHMETIC[rule]
        return lambda params, options: function(left(params, options), right(params, options))
    msg = f"Unsupported expression {rule!r}"
    raise ExpressionCompileError(msg, source)


def compile_condition(code: str) -> Evaluator:
    """Parse and compile a single expression.

    Raises:
        ExpressionCompileError: On syntax errors or unsupported constructs.
    """
    if not code.strip():
        msg = "Empty expression"
        raise ExpressionCompileError(msg, code)
    try:
        tree = _PARSER.parse(code)
    except LarkError as e:
        msg = f"Invalid expression: {e}"
        raise ExpressionCompileError(msg, code) from e
    if not isinstance(tree, Tree):
        msg = f"Unsupported expression {code!r}"
        raise ExpressionCompileError(msg, code)
    return compile_node(tree, code)


@mypyc_attr(allow_interpreted_subclasses=True)
class CompiledExpression(ABC):
    """A compiled expression run, callable with ``(params, options)``."""

    __slots__ = ("source",)

    def __init__(self, source: str) -> None:
        self.source = source

    @abstractmethod
    def run(self, params: Any, options: "QueryConfig") -> Any: ...

    def __call__(self, params: Any, options: "QueryConfig") -> Any:
        try:
            return self.run(params, options)
        except (TypeError, ValueError, ArithmeticError, AttributeError) as e:
            msg = f"Expression failed: {e}"
            raise ExpressionEvaluationError(msg, self.source) from e


class CompiledValue(CompiledExpression):
    """Standalone expression; its value is emitted in place."""

    __slots__ = ("evaluator",)

    def __init__(self, source: str, evaluator: Evaluator) -> None:
        super().__init__(source)
        self.evaluator = evaluator

    def run(self, params: Any, options: "QueryConfig") -> Any:
        return self.evaluator(params, options)


class CompiledBlock(CompiledExpression):
    """Conditional block; yields the body of the first matching branch.

    A branch without a condition is the ``else`` branch.
    """

    __slots__ = ("branches",)

    def __init__(self, source: str, branches: "Sequence[tuple[Optional[Evaluator], Template]]") -> None:
        super().__init__(source)
        self.branches = tuple(branches)

    def run(self, params: Any, options: "QueryConfig") -> "Optional[Template]":
        for condition, body in self.branches:
            if condition is None or condition(params, options):
                return body
        return None


def _split_directive(code: str) -> "tuple[str, str]":
    parts = code.split(None, 1)
    if not parts:
        return "", ""
    return parts[0].lower(), parts[1].strip() if len(parts) > 1 else ""


def _normalized_source(run: "Sequence[Fragment]") -> str:
    lines = []
    for fragment in run:
        if isinstance(fragment, Text):
            lines.append(f"text:{fragment.sql!r}")
        elif isinstance(fragment, Param):
            lines.append(f"param:{fragment.kind.value}:{fragment.name}")
        else:
            lines.append(f"{type(fragment).__name__}:{' '.join(fragment.code.split())}")
    return "\n".join(lines)


def expression_cache_key(run: "Sequence[Fragment]") -> CacheKey:
    """Content-addressed key for an expression run."""
    digest = hashlib.sha256(_normalized_source(run).encode("utf-8")).hexdigest()
    return CacheKey(("expression", digest))


def _compile_block(run: "Sequence[Fragment]", source: str) -> CompiledBlock:
    opener, closer = run[0], run[-1]
    if not isinstance(closer, ExprClose) or not closer.ends_block:
        msg = "Expression block is not terminated"
        raise ExpressionCompileError(msg, source)

    branches: list[tuple[Optional[Evaluator], Template]] = []
    keyword, rest = _split_directive(opener.code)  # type: ignore[union-attr]
    if keyword != "if" or not rest:
        msg = f"Expression block must open with 'if <condition>', got {opener.code!r}"
        raise ExpressionCompileError(msg, source)
    condition: Optional[Evaluator] = compile_condition(rest)
    body: list[Fragment] = []
    seen_else = False
    depth = 0
    for fragment in run[1:-1]:
        if isinstance(fragment, ExprOpen):
            depth += 1
        elif isinstance(fragment, ExprClose) and fragment.ends_block:
            depth -= 1
        elif isinstance(fragment, ExprPart) and depth == 0:
            if seen_else:
                msg = f"{fragment.code!r} after else"
                raise ExpressionCompileError(msg, source)
            branches.append((condition, tuple(body)))
            body = []
            keyword, rest = _split_directive(fragment.code)
            if keyword == "else" and not rest:
                condition = None
                seen_else = True
            elif keyword == "elif" and rest:
                condition = compile_condition(rest)
            else:
                msg = f"Expected 'elif <condition>' or 'else', got {fragment.code!r}"
                raise ExpressionCompileError(msg, source)
            continue
        body.append(fragment)
    if depth != 0:
        msg = "Unbalanced nested expression block"
        raise ExpressionCompileError(msg, source)
    branches.append((condition, tuple(body)))
    return CompiledBlock(source, branches)


def compile_run(run: "Sequence[Fragment]") -> CompiledExpression:
    """Compile an expression run into a callable unit.

    Raises:
        ExpressionCompileError: If the run is malformed or an expression in it
            does not compile.
    """
    source = _normalized_source(run)
    if not run:
        msg = "Empty expression run"
        raise ExpressionCompileError(msg, source)
    first = run[0]
    if isinstance(first, ExprOpen):
        return _compile_block(run, source)
    if isinstance(first, ExprClose) and len(run) == 1 and not first.ends_block:
        return CompiledValue(source, compile_condition(first.code))
    msg = f"{first.code!r} without a matching if" if isinstance(first, (ExprPart, ExprClose)) else "Malformed run"
    raise ExpressionCompileError(msg, source)


def _coerce_result(result: Any, source: str) -> "Optional[Template]":
    if result is None or result is False or result == "":
        return None
    if isinstance(result, str):
        return parse_template(result)
    if isinstance(result, (int, float)) and not isinstance(result, bool):
        return (Text(str(result)),)
    msg = f"Expression must produce a string or NULL, got {type(result).__name__}"
    raise ExpressionEvaluationError(msg, source)


def evaluate_run(run: "Sequence[Fragment]", params: Any, options: "QueryConfig") -> "Optional[Template]":
    """Evaluate an expression run against parameter data and options.

    The run is compiled at most once per process; later calls with the same
    normalized source reuse the cached unit.

    Returns:
        Fragments to splice in place of the run, or None when it contributes
        nothing
    """
    compiled = get_expression_cache().get_or_compile(expression_cache_key(run), lambda: compile_run(run))
    if isinstance(compiled, CompiledBlock):
        return compiled(params, options)  # type: ignore[no-any-return]
    return _coerce_result(compiled(params, options), compiled.source)
