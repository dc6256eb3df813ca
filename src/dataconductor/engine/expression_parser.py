# src/dataconductor/engine/expression_parser.py
"""Safe expression language for transform nodes.

A transform expression is a restricted subset of Python evaluated once
per item, with the item bound to the name `row`. It is parsed with the
ast module and checked against a whitelist before anything runs; this is
NOT eval().

Typical expressions:
    {"id": row["id"], "total": row["price"] * row["qty"]}
    {"city": row.path("customer.address.city")}
    row.get("status", "unknown")
    [row["a"], row["b"]] if row.get("a") is not None else None

Parsing and validation happen once at construction, evaluation per item.
Both failure modes surface as ParseError subclasses so the transform node
reports them the same way as bad input data.
"""

from __future__ import annotations

import ast
import operator
from typing import Any

from dataconductor.contracts.errors import ParseError
from dataconductor.plugins.utils import get_path


class ExpressionSecurityError(ParseError):
    """Raised when an expression contains forbidden constructs."""


class ExpressionSyntaxError(ParseError):
    """Raised when an expression is not valid Python syntax."""


class ExpressionEvaluationError(ParseError):
    """Raised when a valid expression fails against a particular item.

    Wraps KeyError, ZeroDivisionError, TypeError and friends; the original
    exception is chained via __cause__.
    """


# row methods callable from expressions: name -> (min args, max args)
_ROW_METHODS: dict[str, tuple[int, int]] = {
    "get": (1, 2),
    "path": (1, 2),
}

_COMPARISON_OPS: dict[type[ast.cmpop], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_FORBIDDEN_NODES: dict[type[ast.AST], str] = {
    ast.Lambda: "Lambda expressions are forbidden",
    ast.ListComp: "List comprehensions are forbidden",
    ast.DictComp: "Dict comprehensions are forbidden",
    ast.SetComp: "Set comprehensions are forbidden",
    ast.GeneratorExp: "Generator expressions are forbidden",
    ast.Await: "Await expressions are forbidden",
    ast.Yield: "Yield expressions are forbidden",
    ast.YieldFrom: "Yield from expressions are forbidden",
    ast.NamedExpr: "Assignment expressions (:=) are forbidden",
    ast.JoinedStr: "F-strings are forbidden",
    ast.Starred: "Starred expressions (*) are forbidden",
    ast.Slice: "Slice syntax (e.g., [1:3]) is forbidden",
}


def _row_method(node: ast.AST) -> str | None:
    """Return the method name if node is `row.<method>`, else None."""
    if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name) and node.value.id == "row":
        return node.attr
    return None


class _ExpressionValidator(ast.NodeVisitor):
    """Collects every forbidden construct in an expression tree."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def generic_visit(self, node: ast.AST) -> None:
        message = _FORBIDDEN_NODES.get(type(node))
        if message is not None:
            self.errors.append(message)
            return
        super().generic_visit(node)

    def _is_none(self, node: ast.expr) -> bool:
        return isinstance(node, ast.Constant) and node.value is None

    def _is_row_derived(self, node: ast.expr) -> bool:
        """row, row[...], row.get(...)[...], row.path(...)[...]"""
        if isinstance(node, ast.Name) and node.id == "row":
            return True
        if isinstance(node, ast.Subscript):
            return self._is_row_derived(node.value)
        return isinstance(node, ast.Call) and _row_method(node.func) in _ROW_METHODS

    def visit_Name(self, node: ast.Name) -> None:
        if node.id not in ("row", "True", "False", "None"):
            self.errors.append(f"Forbidden name: {node.id!r}")

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if not self._is_row_derived(node.value):
            self.errors.append(f"Subscript access is only allowed on row data; got subscript on {ast.dump(node.value)}")
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        # Reached only for attributes that are not the func of a row method call
        method = _row_method(node)
        if method in _ROW_METHODS:
            self.errors.append(f"Bare 'row.{method}' is forbidden; call it, e.g. row.{method}(key)")
        elif method is not None:
            allowed = ", ".join(sorted(_ROW_METHODS))
            self.errors.append(f"Forbidden row attribute: {method!r} (allowed: {allowed})")
        else:
            self.errors.append(f"Forbidden attribute access: {node.attr!r}")

    def visit_Call(self, node: ast.Call) -> None:
        method = _row_method(node.func)
        if method not in _ROW_METHODS:
            self.errors.append(f"Forbidden function call: {ast.dump(node.func)}")
            return
        min_args, max_args = _ROW_METHODS[method]
        if not min_args <= len(node.args) <= max_args:
            self.errors.append(f"row.{method}() requires {min_args} or {max_args} arguments, got {len(node.args)}")
        if node.keywords:
            self.errors.append(f"row.{method}() does not accept keyword arguments")
        for arg in node.args:
            self.visit(arg)

    def visit_Compare(self, node: ast.Compare) -> None:
        operands = [node.left, *node.comparators]
        for i, op in enumerate(node.ops):
            if type(op) not in _COMPARISON_OPS:
                self.errors.append(f"Forbidden comparison operator: {type(op).__name__}")
            elif isinstance(op, ast.Is | ast.IsNot) and not (self._is_none(operands[i]) or self._is_none(operands[i + 1])):
                self.errors.append("'is' and 'is not' operators are only allowed for None checks")
        self.generic_visit(node)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if type(node.op) not in _BINARY_OPS:
            self.errors.append(f"Forbidden binary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if type(node.op) not in _UNARY_OPS:
            self.errors.append(f"Forbidden unary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        if node.value is not None and not isinstance(node.value, str | int | float | bool):
            self.errors.append(f"Forbidden constant type: {type(node.value).__name__}")

    def visit_Dict(self, node: ast.Dict) -> None:
        if any(key is None for key in node.keys):
            self.errors.append("Dict spread (**) is forbidden")
        self.generic_visit(node)


class _ExpressionEvaluator(ast.NodeVisitor):
    """Evaluates a validated expression tree against one item."""

    def __init__(self, row: Any) -> None:
        self._row = row

    def generic_visit(self, node: ast.AST) -> Any:
        # Validation rejects everything without a visit_ method here
        raise ExpressionSecurityError(f"Unsupported expression node: {type(node).__name__}")

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Name(self, node: ast.Name) -> Any:
        names = {"row": self._row, "True": True, "False": False, "None": None}
        if node.id not in names:
            raise ExpressionSecurityError(f"Unknown name: {node.id}")
        return names[node.id]

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return value[key]
        except KeyError as e:
            if isinstance(value, dict):
                msg = f"Field '{key}' not found. Available fields: {list(value.keys())}"
            else:
                msg = f"Key '{key}' not found in {type(value).__name__}"
            raise ExpressionEvaluationError(msg) from e
        except IndexError as e:
            msg = f"Index {key} out of range for {type(value).__name__} of length {len(value)}"
            raise ExpressionEvaluationError(msg) from e
        except TypeError as e:
            msg = f"Cannot access '{key}' on {type(value).__name__}: {e}"
            raise ExpressionEvaluationError(msg) from e

    def visit_Call(self, node: ast.Call) -> Any:
        method = _row_method(node.func)
        args = [self.visit(arg) for arg in node.args]
        if method == "path":
            if not isinstance(args[0], str):
                raise ExpressionEvaluationError(f"row.path() expects a string path, got {type(args[0]).__name__}")
            default = args[1] if len(args) > 1 else None
            return get_path(self._row, args[0], default)
        if method == "get":
            if not isinstance(self._row, dict):
                raise ExpressionEvaluationError(f"row.get() requires an object item, got {type(self._row).__name__}")
            try:
                return self._row.get(*args)
            except TypeError as e:
                raise ExpressionEvaluationError(f"invalid argument to row.get(): {e}") from e
        raise ExpressionSecurityError(f"Forbidden function call: {ast.dump(node.func)}")

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = self.visit(comparator)
            try:
                if not _COMPARISON_OPS[type(op)](left, right):
                    return False
            except TypeError as e:
                msg = f"type error in comparison ({type(op).__name__}): cannot compare {type(left).__name__} and {type(right).__name__}"
                raise ExpressionEvaluationError(msg) from e
            left = right
        return True

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for value in node.values:
            result = self.visit(value)
            # and: stop at first falsy; or: stop at first truthy
            if isinstance(node.op, ast.And) != bool(result):
                return result
        return result

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        left = self.visit(node.left)
        right = self.visit(node.right)
        op_name = type(node.op).__name__
        try:
            return _BINARY_OPS[type(node.op)](left, right)
        except ZeroDivisionError as e:
            raise ExpressionEvaluationError(f"division by zero in {op_name} operation") from e
        except TypeError as e:
            msg = f"type error in {op_name}: cannot apply to {type(left).__name__} and {type(right).__name__}"
            raise ExpressionEvaluationError(msg) from e

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        try:
            return _UNARY_OPS[type(node.op)](operand)
        except TypeError as e:
            msg = f"type error in unary {type(node.op).__name__}: cannot apply to {type(operand).__name__}"
            raise ExpressionEvaluationError(msg) from e

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_Dict(self, node: ast.Dict) -> Any:
        try:
            return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values, strict=True) if k is not None}
        except TypeError as e:
            raise ExpressionEvaluationError(f"cannot create dict literal: {e}") from e

    def visit_Set(self, node: ast.Set) -> Any:
        try:
            return {self.visit(elt) for elt in node.elts}
        except TypeError as e:
            raise ExpressionEvaluationError(f"cannot create set literal: {e}") from e

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)


class ExpressionParser:
    """Validated transform expression.

    Allowed:
    - Item access: row['field'], row.get('field'[, default]), row.path('a.b[0]'[, default])
    - Comparisons, membership, `is None` checks, and / or / not
    - Literals: strings, numbers, booleans, None, and list/tuple/dict/set displays
    - Ternary expressions and basic arithmetic: +, -, *, /, //, %

    Everything else (other calls, attributes, names, lambdas, comprehensions,
    f-strings, walrus, slicing) is rejected at construction.

    Example:
        parser = ExpressionParser('{"x": row.path("a.b")}')
        parser.evaluate({"a": {"b": 5}})  # {"x": 5}
    """

    def __init__(self, expression: str) -> None:
        """Parse and validate expression.

        Raises:
            ExpressionSecurityError: If expression contains forbidden constructs
            ExpressionSyntaxError: If expression is not valid Python syntax
        """
        self._expression = expression
        try:
            self._ast = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionSyntaxError(f"Invalid syntax: {e.msg}") from e

        validator = _ExpressionValidator()
        validator.visit(self._ast)
        if validator.errors:
            raise ExpressionSecurityError("; ".join(validator.errors))

    @property
    def expression(self) -> str:
        return self._expression

    def evaluate(self, row: Any) -> Any:
        """Evaluate against one item.

        Raises:
            ExpressionEvaluationError: If evaluation fails for this item
        """
        return _ExpressionEvaluator(row).visit(self._ast)

    def __repr__(self) -> str:
        return f"ExpressionParser({self._expression!r})"
