"""Unit tests for embedded expression compilation and evaluation."""

from typing import Any

import pytest

from sqlvec.config import QueryConfig, Quoting
from sqlvec.core.expressions import CompiledBlock, CompiledValue, compile_condition, compile_run, evaluate_run
from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Param, Text
from sqlvec.exceptions import ExpressionCompileError, ExpressionEvaluationError

OPTIONS = QueryConfig(quoting=Quoting.ANSI)


def run_condition(code: str, params: Any) -> Any:
    return compile_condition(code)(params, OPTIONS)


class TestConditions:
    """Tests for the closed expression grammar."""

    @pytest.mark.parametrize(
        ("code", "params", "expected"),
        [
            ("a = 1", {"a": 1}, True),
            ("a == 1", {"a": 2}, False),
            ("a <> 1", {"a": 2}, True),
            ("a != 1", {"a": 1}, False),
            ("a >= 2 and a < 5", {"a": 2}, True),
            ("a > 2 OR b", {"a": 1, "b": True}, True),
            ("NOT flag", {"flag": False}, True),
            ("a.b > 2 AND NOT flag", {"a": {"b": 3}, "flag": False}, True),
            ("rows.0.id = 7", {"rows": [{"id": 7}]}, True),
            ("missing IS NULL", {}, True),
            ("present IS NOT NULL", {"present": 0}, True),
            ("status IN ('a', 'b')", {"status": "b"}, True),
            ("status NOT IN ('a', 'b')", {"status": "c"}, True),
            ("id IN (ids)", {"id": 2, "ids": [1, 2, 3]}, True),
            ("TRUE AND NOT FALSE", {}, True),
        ],
    )
    def test_boolean_logic(self, code: str, params: Any, expected: bool) -> None:
        assert run_condition(code, params) is expected

    @pytest.mark.parametrize(
        ("code", "params", "expected"),
        [
            ("1 + 2 * 3", {}, 7),
            ("(1 + 2) * 3", {}, 9),
            ("10 % 3", {}, 1),
            ("7 / 2", {}, 3.5),
            ("-n + 1", {"n": 4}, -3),
            ("1.5 + 1", {}, 2.5),
            ("name || '-' || suffix", {"name": "a", "suffix": "b"}, "a-b"),
            ("CONCAT('x', n, missing)", {"n": 1}, "x1"),
            ("'it''s'", {}, "it's"),
            ("NULL", {}, None),
            ("LENGTH(cols)", {"cols": [1, 2]}, 2),
            ("len(cols)", {}, 0),
            ("UPPER(dir)", {"dir": "asc"}, "ASC"),
            ("lower(dir)", {"dir": "DESC"}, "desc"),
            ("UPPER(dir)", {}, None),
            ("LOWER(dir)", {"dir": None}, None),
            ("COALESCE(a, b, 'z')", {"a": None, "b": "b"}, "b"),
            ("COALESCE(a, 'z')", {}, "z"),
            ("IF(desc, 'DESC', 'ASC')", {"desc": True}, "DESC"),
            ("IF(desc, 'DESC')", {"desc": False}, None),
            ("CASE WHEN n > 10 THEN 'big' WHEN n > 1 THEN 'some' ELSE 'none' END", {"n": 5}, "some"),
            ("case when n > 10 then 'big' end", {"n": 5}, None),
        ],
    )
    def test_values(self, code: str, params: Any, expected: Any) -> None:
        assert run_condition(code, params) == expected

    def test_defined_distinguishes_none_from_missing(self) -> None:
        assert run_condition("DEFINED(user.id)", {"user": {"id": None}}) is True
        assert run_condition("DEFINED(user.id)", {"user": {}}) is False

    def test_empty(self) -> None:
        assert run_condition("EMPTY(cols)", {"cols": []}) is True
        assert run_condition("EMPTY(cols)", {}) is True
        assert run_condition("EMPTY(cols)", {"cols": [1]}) is False

    def test_opt_reads_options(self) -> None:
        assert run_condition("OPT('quoting') = 'ansi'", {}) is True

    @pytest.mark.parametrize(
        "code",
        ["a = ", "a = = 1", "", "unknown_fn(1)", "IF(a)", "DEFINED('x')", "OPT(x)", "LENGTH(a, b)", "a; b", "\"x\""],
    )
    def test_compile_errors(self, code: str) -> None:
        with pytest.raises(ExpressionCompileError):
            compile_condition(code)


class TestCompileRun:
    """Tests for compiling expression runs."""

    def test_standalone_expression(self) -> None:
        compiled = compile_run((ExprClose("IF(d, 'DESC', 'ASC')"),))

        assert isinstance(compiled, CompiledValue)
        assert compiled({"d": False}, OPTIONS) == "ASC"

    def test_block_branches(self) -> None:
        run = (
            ExprOpen("if a > 1"),
            Text("big"),
            ExprPart("elif a > 0"),
            Text("small"),
            ExprPart("else"),
            Text("none"),
            ExprClose(""),
        )
        compiled = compile_run(run)

        assert isinstance(compiled, CompiledBlock)
        assert compiled({"a": 2}, OPTIONS) == (Text("big"),)
        assert compiled({"a": 1}, OPTIONS) == (Text("small"),)
        assert compiled({"a": 0}, OPTIONS) == (Text("none"),)

    def test_block_without_matching_branch(self) -> None:
        compiled = compile_run((ExprOpen("if a"), Text("x"), ExprClose("end")))

        assert compiled({"a": False}, OPTIONS) is None

    def test_nested_block_body_is_kept_whole(self) -> None:
        run = (
            ExprOpen("if a"),
            Text("x "),
            ExprOpen("if b"),
            Text("y"),
            ExprPart("else"),
            Text("z"),
            ExprClose(""),
            ExprClose(""),
        )

        assert compile_run(run)({"a": True}, OPTIONS) == (
            Text("x "),
            ExprOpen("if b"),
            Text("y"),
            ExprPart("else"),
            Text("z"),
            ExprClose(""),
        )

    @pytest.mark.parametrize(
        ("run", "message"),
        [
            ((ExprOpen("if a"), Text("x")), "not terminated"),
            ((ExprPart("else"), Text("x"), ExprClose("")), "without a matching if"),
            ((ExprClose("end"),), "without a matching if"),
            ((ExprOpen("when a"), ExprClose("")), "must open with"),
            (
                (ExprOpen("if a"), ExprPart("else"), Text("y"), ExprPart("elif b"), ExprClose("")),
                "after else",
            ),
            ((ExprOpen("if a"), ExprPart("otherwise"), ExprClose("")), "Expected 'elif <condition>' or 'else'"),
            ((ExprOpen("if a ="), ExprClose("")), "Invalid expression"),
        ],
    )
    def test_malformed_runs(self, run: Any, message: str) -> None:
        with pytest.raises(ExpressionCompileError, match=message):
            compile_run(run)


class TestEvaluateRun:
    """Tests for turning expression results into fragments."""

    def test_string_result_is_parsed_as_template(self) -> None:
        run = (ExprClose("IF(DEFINED(id), 'WHERE id = :id', '')"),)

        assert evaluate_run(run, {"id": 1}, OPTIONS) == (Text("WHERE id = "), Param("id"))
        assert evaluate_run(run, {}, OPTIONS) is None

    def test_number_result_is_rendered(self) -> None:
        assert evaluate_run((ExprClose("limit * 2"),), {"limit": 5}, OPTIONS) == (Text("10"),)

    def test_false_and_null_contribute_nothing(self) -> None:
        assert evaluate_run((ExprClose("FALSE"),), {}, OPTIONS) is None
        assert evaluate_run((ExprClose("missing"),), {}, OPTIONS) is None

    def test_boolean_result_is_rejected(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match="must produce a string or NULL"):
            evaluate_run((ExprClose("a = 1"),), {"a": 1}, OPTIONS)

    def test_case_functions_of_null_contribute_nothing(self) -> None:
        assert evaluate_run((ExprClose("UPPER(x)"),), {}, OPTIONS) is None
        assert evaluate_run((ExprClose("LOWER(x)"),), {"x": None}, OPTIONS) is None

    @pytest.mark.parametrize("value", [("a", "b"), ["a", "b"], {"a": 1}])
    def test_collection_result_is_rejected(self, value: Any) -> None:
        with pytest.raises(ExpressionEvaluationError, match="must produce a string or NULL, got"):
            evaluate_run((ExprClose("cols"),), {"cols": value}, OPTIONS)

    def test_runtime_failure_is_wrapped(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match="Expression failed") as exc_info:
            evaluate_run((ExprClose("a + 1"),), {"a": "x"}, OPTIONS)

        assert isinstance(exc_info.value.__cause__, TypeError)
        assert exc_info.value.source is not None
