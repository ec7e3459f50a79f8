"""Unit tests for end-to-end template assembly."""

from unittest.mock import patch

import pytest

from sqlvec.config import QueryConfig, Quoting
from sqlvec.core.assembly import SQLVec, prepare_sql
from sqlvec.core.lexer import parse_template
from sqlvec.exceptions import ExpressionEvaluationError, ParameterMismatchError

CONDITIONAL_IN = parse_template("SELECT * FROM t /*~ if LENGTH(cols) > 0 ~*/WHERE c IN (:v*:cols)/*~ end ~*/")


def test_simple_value() -> None:
    result = prepare_sql(parse_template("SELECT * FROM users WHERE id = :id"), {"id": 1})

    assert result == SQLVec("SELECT * FROM users WHERE id = ?", (1,))
    assert result.as_list() == ["SELECT * FROM users WHERE id = ?", 1]


@pytest.mark.parametrize(
    ("params", "expected"),
    [
        ({"cols": []}, SQLVec("SELECT * FROM t", ())),
        ({"cols": [1, 2]}, SQLVec("SELECT * FROM t WHERE c IN (?, ?)", (1, 2))),
    ],
)
def test_conditional_list(params: dict, expected: SQLVec) -> None:
    assert prepare_sql(CONDITIONAL_IN, params) == expected


def test_placeholder_count_matches_values() -> None:
    template = parse_template(
        "INSERT INTO t (a, b) VALUES :t*:rows\n--~ IF(DEFINED(tag), 'RETURNING :i:tag', '')"
    )

    sql, values = prepare_sql(template, {"rows": [[1, 2], [3, 4]], "tag": "id"})

    assert sql.count("?") == len(values) == 4
    assert values == (1, 2, 3, 4)
    assert sql.endswith("RETURNING id")


def test_top_level_list_is_padded() -> None:
    result = prepare_sql(parse_template("SELECT * FROM t WHERE c IN (:v*:ids)"), {"ids": [1, 2, 3]})

    assert result.sql == "SELECT * FROM t WHERE c IN ( ?, ?, ? )"
    assert result.values == (1, 2, 3)


@pytest.mark.parametrize(
    ("quoting", "expected"),
    [(Quoting.ANSI, 'SELECT * FROM "schema"."tbl"'), (Quoting.OFF, "SELECT * FROM schema.tbl")],
)
def test_identifier_quoting(quoting: Quoting, expected: str) -> None:
    template = parse_template("SELECT * FROM :i:my.table")

    result = prepare_sql(template, {"my": {"table": "schema.tbl"}}, QueryConfig(quoting=quoting))

    assert result == SQLVec(expected, ())


def test_missing_parameter_produces_no_output() -> None:
    template = parse_template("SELECT * FROM t WHERE a = :a AND b = :b")

    with patch("sqlvec.core.assembly.bind_parameters") as mock_bind:
        with pytest.raises(ParameterMismatchError) as exc_info:
            prepare_sql(template, {"a": 1})

    assert exc_info.value.parameter == "b"
    mock_bind.assert_not_called()


def test_parameters_inside_skipped_blocks_are_not_required() -> None:
    template = parse_template("SELECT * FROM t /*~ if DEFINED(id) ~*/WHERE id = :id/*~ end ~*/")

    assert prepare_sql(template, {}) == SQLVec("SELECT * FROM t", ())
    assert prepare_sql(template) == SQLVec("SELECT * FROM t", ())


def test_assembly_is_deterministic() -> None:
    params = {"cols": [1, 2]}

    first = prepare_sql(CONDITIONAL_IN, params)
    second = prepare_sql(CONDITIONAL_IN, params)

    assert first == second
    assert params == {"cols": [1, 2]}


def test_none_value_binds_null() -> None:
    assert prepare_sql(parse_template("UPDATE t SET a = :a"), {"a": None}) == SQLVec("UPDATE t SET a = ?", (None,))


def test_case_function_of_missing_value_renders_nothing() -> None:
    assert prepare_sql(parse_template("SELECT 1\n--~ UPPER(x)"), {}) == SQLVec("SELECT 1", ())


def test_collection_from_expression_is_an_evaluation_error() -> None:
    with pytest.raises(ExpressionEvaluationError, match="must produce a string or NULL, got tuple"):
        prepare_sql(parse_template("SELECT 1\n--~ cols"), {"cols": ("a", "b")})
