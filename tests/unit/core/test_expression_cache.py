"""Tests for the compile-once expression cache.

These tests use mock.patch to count compile_run() invocations and ensure
each distinct expression is compiled exactly once per process.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from sqlvec.config import QueryConfig
from sqlvec.core.cache import CacheKey, CacheStats, clear_all_caches, get_cache_statistics, get_expression_cache
from sqlvec.core.expressions import compile_run, evaluate_run, expression_cache_key
from sqlvec.core.fragments import ExprClose, ExprOpen, Text
from sqlvec.exceptions import ExpressionCompileError

OPTIONS = QueryConfig()


def test_cache_key_equality() -> None:
    key1 = CacheKey(("expression", "abc"))
    key2 = CacheKey(("expression", "abc"))

    assert key1 == key2
    assert hash(key1) == hash(key2)
    assert key1 != CacheKey(("expression", "abd"))
    assert key1 != ("expression", "abc")


def test_cache_key_ignores_whitespace_differences() -> None:
    assert expression_cache_key((ExprClose("a  =   1"),)) == expression_cache_key((ExprClose("a = 1"),))
    assert expression_cache_key((ExprClose("a = 1"),)) != expression_cache_key((ExprClose("a = 2"),))


def test_cache_key_covers_block_bodies() -> None:
    run_x = (ExprOpen("if a"), Text("x"), ExprClose())
    run_y = (ExprOpen("if a"), Text("y"), ExprClose())

    assert expression_cache_key(run_x) != expression_cache_key(run_y)


def test_same_expression_compiles_once() -> None:
    run = (ExprClose("IF(a, 'x', 'y')"),)

    with patch("sqlvec.core.expressions.compile_run", wraps=compile_run) as mock_compile:
        first = evaluate_run(run, {"a": True}, OPTIONS)
        second = evaluate_run(run, {"a": False}, OPTIONS)

    assert first == (Text("x"),)
    assert second == (Text("y"),)
    assert mock_compile.call_count == 1

    stats = get_expression_cache().get_stats()
    assert stats.compilations == 1
    assert stats.misses == 1
    assert stats.hits == 1
    assert len(get_expression_cache()) == 1


def test_failed_compilation_is_not_cached() -> None:
    run = (ExprClose("a = = 1"),)

    with patch("sqlvec.core.expressions.compile_run", wraps=compile_run) as mock_compile:
        for _ in range(2):
            with pytest.raises(ExpressionCompileError):
                evaluate_run(run, {}, OPTIONS)

    assert mock_compile.call_count == 2
    assert len(get_expression_cache()) == 0
    assert expression_cache_key(run) not in get_expression_cache()


def test_concurrent_first_use_compiles_once() -> None:
    """Threads missing together still compile a single time."""
    run = (ExprOpen("if LENGTH(cols) > 0"), Text("WHERE c IN (1)"), ExprClose())
    workers = 16
    barrier = threading.Barrier(workers)

    def evaluate(index: int) -> object:
        barrier.wait()
        return evaluate_run(run, {"cols": [index]}, OPTIONS)

    with patch("sqlvec.core.expressions.compile_run", wraps=compile_run) as mock_compile:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(evaluate, range(workers)))

    assert mock_compile.call_count == 1
    assert all(result == (Text("WHERE c IN (1)"),) for result in results)
    assert get_expression_cache().get_stats().compilations == 1


def test_clear_all_caches() -> None:
    evaluate_run((ExprClose("'x'"),), {}, OPTIONS)
    assert len(get_expression_cache()) == 1

    clear_all_caches()

    assert len(get_expression_cache()) == 0
    assert get_cache_statistics()["expression"].compilations == 0


def test_cache_stats_hit_rate() -> None:
    stats = CacheStats()
    assert stats.hit_rate == 0.0

    stats.hits = 3
    stats.misses = 1

    assert stats.hit_rate == 75.0
    assert "hit_rate=75.0%" in repr(stats)

    stats.reset()
    assert stats.hits == 0
