# tests/engine/test_expression_parser.py
"""Tests for the restricted transform expression language."""

import pytest

from dataconductor.contracts import ParseError
from dataconductor.engine.expression_parser import (
    ExpressionEvaluationError,
    ExpressionParser,
    ExpressionSecurityError,
    ExpressionSyntaxError,
)


class TestEvaluation:
    @pytest.mark.parametrize(
        ("expression", "row", "expected"),
        [
            ('{"x": row.path("a.b")}', {"a": {"b": 5}}, {"x": 5}),
            ('row["price"] * row["qty"]', {"price": 2.5, "qty": 4}, 10.0),
            ('row.get("status", "unknown")', {}, "unknown"),
            ('row.path("items[1].sku")', {"items": [{"sku": "a"}, {"sku": "b"}]}, "b"),
            ('row.path("missing.deep", 0)', {}, 0),
            ('"vip" if row["total"] >= 100 else "std"', {"total": 150}, "vip"),
            ('row.get("a") is None or row["a"] == ""', {"a": ""}, True),
            ('[row["a"], row["b"]]', {"a": 1, "b": 2}, [1, 2]),
            ('"x" in row["tags"] and not row["hidden"]', {"tags": ["x"], "hidden": False}, True),
            ("-row['n'] // 2", {"n": 5}, -3),
            ("row", 7, 7),
        ],
    )
    def test_expressions(self, expression: str, row: object, expected: object) -> None:
        assert ExpressionParser(expression).evaluate(row) == expected

    def test_chained_comparison(self) -> None:
        parser = ExpressionParser('0 < row["v"] <= 10')

        assert parser.evaluate({"v": 10}) is True
        assert parser.evaluate({"v": 11}) is False

    def test_parser_is_reusable_across_items(self) -> None:
        parser = ExpressionParser('{"v": row["id"]}')

        assert [parser.evaluate({"id": i}) for i in (1, 2)] == [{"v": 1}, {"v": 2}]


class TestRejectedExpressions:
    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os')",
            "open('/etc/passwd')",
            "row.__class__",
            "row.keys()",
            "[x for x in row]",
            "lambda: 1",
            "(y := 1)",
            "f'{row}'",
            "row[1:3]",
            "{**row}",
            "other['a']",
            "row['a'] is 1",
            "2 ** 10",
            "row.get",
            "row.get('a', 1, 2)",
        ],
    )
    def test_forbidden(self, expression: str) -> None:
        with pytest.raises(ExpressionSecurityError):
            ExpressionParser(expression)

    def test_syntax_error(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Invalid syntax"):
            ExpressionParser("{'a': }")

    def test_all_errors_are_parse_errors(self) -> None:
        assert issubclass(ExpressionSecurityError, ParseError)
        assert issubclass(ExpressionSyntaxError, ParseError)
        assert issubclass(ExpressionEvaluationError, ParseError)


class TestEvaluationErrors:
    def test_missing_field_lists_available(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match=r"Field 'b' not found.*\['a'\]"):
            ExpressionParser('row["b"]').evaluate({"a": 1})

    def test_division_by_zero(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match="division by zero"):
            ExpressionParser('row["a"] / row["b"]').evaluate({"a": 1, "b": 0})

    def test_type_error(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match="type error"):
            ExpressionParser('row["a"] + 1').evaluate({"a": "x"})

    def test_get_on_non_object(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match="object item"):
            ExpressionParser('row.get("a")').evaluate([1, 2])
