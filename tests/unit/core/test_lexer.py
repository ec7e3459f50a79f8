"""Unit tests for the template tokenizer."""

import pytest

from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Param, ParameterKind, Text
from sqlvec.core.lexer import parse_template
from sqlvec.exceptions import TemplateParseError


def test_plain_value_parameter() -> None:
    assert parse_template("SELECT * FROM users WHERE id = :id") == (
        Text("SELECT * FROM users WHERE id = "),
        Param("id"),
    )


def test_typed_parameters() -> None:
    assert parse_template("SELECT :v*:ids, :i:col FROM t") == (
        Text("SELECT "),
        Param("ids", ParameterKind.VALUE_LIST),
        Text(", "),
        Param("col", ParameterKind.IDENTIFIER),
        Text(" FROM t"),
    )


def test_dotted_parameter_name() -> None:
    assert parse_template("WHERE name = :user.name") == (Text("WHERE name = "), Param("user.name"))


def test_literals_casts_and_comments_pass_through() -> None:
    """Colons inside strings, comments and casts are not parameters."""
    template = "SELECT x::int, '10:30', \"a:b\" -- :not_a_param\nFROM t"

    assert parse_template(template) == (Text(template),)


def test_escaped_colon() -> None:
    assert parse_template(r"SELECT '1' AS \:label") == (Text("SELECT '1' AS :label"),)


def test_dollar_quoted_string() -> None:
    template = "SELECT $body$ :inside $body$"

    assert parse_template(template) == (Text(template),)


def test_block_directives() -> None:
    template = "SELECT * FROM t /*~ if LENGTH(cols) > 0 ~*/WHERE c IN (:v*:cols)/*~ end ~*/"

    assert parse_template(template) == (
        Text("SELECT * FROM t "),
        ExprOpen("if LENGTH(cols) > 0"),
        Text("WHERE c IN ("),
        Param("cols", ParameterKind.VALUE_LIST),
        Text(")"),
        ExprClose("end"),
    )


def test_elif_else_and_bare_close() -> None:
    assert parse_template("/*~ if a ~*/x/*~ elif b ~*/y/*~ else ~*/z/*~*/") == (
        ExprOpen("if a"),
        Text("x"),
        ExprPart("elif b"),
        Text("y"),
        ExprPart("else"),
        Text("z"),
        ExprClose(""),
    )


def test_line_expression() -> None:
    assert parse_template("SELECT 1\n--~ IF(flag, 'x', 'y')\n") == (
        Text("SELECT 1\n"),
        ExprClose("IF(flag, 'x', 'y')"),
        Text("\n"),
    )


def test_line_directives() -> None:
    fragments = parse_template("--~ if DEFINED(id)\nWHERE id = :id\n--~ end")

    assert fragments[0] == ExprOpen("if DEFINED(id)")
    assert fragments[-1] == ExprClose("end")


def test_empty_expression_line_reports_line() -> None:
    with pytest.raises(TemplateParseError, match=r"Empty expression line \(line 2\)") as exc_info:
        parse_template("SELECT 1\n--~\n")

    assert exc_info.value.line == 2


def test_unknown_parameter_type_reports_line() -> None:
    with pytest.raises(TemplateParseError) as exc_info:
        parse_template("SELECT *\nFROM t\nWHERE a = :zz:foo")

    assert exc_info.value.line == 3
    assert "Unknown parameter type" in str(exc_info.value)


def test_empty_template() -> None:
    assert parse_template("") == ()
