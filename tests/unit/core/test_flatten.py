"""Unit tests for the expression flattening pass."""

import pytest

from sqlvec.config import QueryConfig
from sqlvec.core.flatten import flatten_template
from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Param, ParameterKind, Text
from sqlvec.exceptions import ExpressionCompileError

OPTIONS = QueryConfig()

CONDITIONAL_IN = (
    Text("SELECT * FROM t"),
    ExprOpen("if LENGTH(cols) > 0"),
    Text(" WHERE c IN ("),
    Param("cols", ParameterKind.VALUE_LIST),
    Text(")"),
    ExprClose(),
)


def render(fragments: tuple) -> str:
    return "".join(f.sql if isinstance(f, Text) else "?" for f in fragments)


def test_conditional_block_elided() -> None:
    assert flatten_template(CONDITIONAL_IN, {"cols": []}, OPTIONS) == (Text("SELECT * FROM t"),)


def test_conditional_block_spliced() -> None:
    assert flatten_template(CONDITIONAL_IN, {"cols": [1, 2]}, OPTIONS) == (
        Text("SELECT * FROM t"),
        Text(" WHERE c IN ("),
        Param("cols", ParameterKind.VALUE_LIST),
        Text(")"),
    )


def test_output_contains_only_text_and_params() -> None:
    template = (
        Text("SELECT * FROM t"),
        ExprOpen("if a"),
        Text("WHERE x = "),
        Param("x"),
        ExprPart("else"),
        Text("WHERE y = "),
        Param("y"),
        ExprClose("end"),
    )

    for params in ({"a": True, "x": 1}, {"a": False, "y": 2}):
        flat = flatten_template(template, params, OPTIONS)
        assert all(isinstance(fragment, (Text, Param)) for fragment in flat)


class TestWhitespace:
    """Tests for token boundary handling."""

    def test_adjacent_text_never_collides(self) -> None:
        flat = flatten_template((Text("WHERE"), Text("id=1")), {}, OPTIONS)

        assert render(flat) == "WHERE id=1"

    def test_existing_whitespace_is_not_doubled(self) -> None:
        assert render(flatten_template((Text("WHERE "), Text("id=1")), {}, OPTIONS)) == "WHERE id=1"
        assert render(flatten_template((Text("WHERE"), Text(" id=1")), {}, OPTIONS)) == "WHERE id=1"

    def test_text_around_parameters(self) -> None:
        template = (Text("WHERE id ="), Param("id"), Text("AND x = 1"))

        assert render(flatten_template(template, {"id": 1}, OPTIONS)) == "WHERE id = ? AND x = 1"

    def test_block_body_is_separated_from_surrounding_text(self) -> None:
        template = (
            Text("SELECT * FROM t"),
            ExprOpen("if a"),
            Text("WHERE a = 1"),
            ExprClose(),
            Text("ORDER BY id"),
        )

        assert render(flatten_template(template, {"a": True}, OPTIONS)) == "SELECT * FROM t WHERE a = 1 ORDER BY id"
        assert render(flatten_template(template, {"a": False}, OPTIONS)) == "SELECT * FROM t ORDER BY id"


def test_string_result_with_parameter_is_reparsed() -> None:
    template = (Text("SELECT * FROM users\n"), ExprClose("IF(DEFINED(id), 'WHERE id = :id', '')"))

    assert flatten_template(template, {"id": 5}, OPTIONS) == (
        Text("SELECT * FROM users\n"),
        Text("WHERE id = "),
        Param("id"),
    )
    assert flatten_template(template, {}, OPTIONS) == (Text("SELECT * FROM users\n"),)


def test_nested_blocks() -> None:
    template = (
        ExprOpen("if a"),
        Text("x "),
        ExprOpen("if b"),
        Text("y"),
        ExprClose(),
        ExprClose(),
    )

    assert render(flatten_template(template, {"a": True, "b": True}, OPTIONS)) == "x y"
    assert render(flatten_template(template, {"a": True, "b": False}, OPTIONS)) == "x "
    assert flatten_template(template, {"a": False, "b": True}, OPTIONS) == ()


def test_unterminated_block() -> None:
    template = (Text("SELECT 1"), ExprOpen("if a"), Text("x"))

    with pytest.raises(ExpressionCompileError, match="not terminated") as exc_info:
        flatten_template(template, {"a": True}, OPTIONS)

    assert exc_info.value.source == "if a"


def test_flatten_is_deterministic() -> None:
    params = {"cols": [1, 2]}

    assert flatten_template(CONDITIONAL_IN, params, OPTIONS) == flatten_template(CONDITIONAL_IN, params, OPTIONS)
    assert params == {"cols": [1, 2]}
