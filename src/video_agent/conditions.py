# conditions.py
# Evaluator for PlannedStep.condition expressions.
#
# Conditions are small Python expressions evaluated against the context,
# e.g. `has_resource("final_video") and state["quality_score"] < 0.9`.
# Only a whitelisted subset of the AST is accepted; nothing is ever passed
# to eval().

from __future__ import annotations

import ast
import operator
from typing import Any

from video_agent.context import OrchestrationContext
from video_agent.errors import ConditionError

_COMPARATORS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_CONSTANT_NAMES = {"true": True, "false": False, "null": None, "True": True, "False": False, "None": None}


class _Evaluator:
    def __init__(self, context: OrchestrationContext) -> None:
        self._names: dict[str, Any] = {
            "resources": context.resources,
            "state": context.state,
            **_CONSTANT_NAMES,
        }
        self._functions = {
            "has_resource": lambda key: bool(context.get_resource(key)),
            "has_state": lambda key: context.get_state(key) is not None,
            "len": len,
        }

    def visit(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Expression):
            return self.visit(node.body)

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id not in self._names:
                raise ConditionError(f"Unknown name '{node.id}'.")
            return self._names[node.id]

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self.visit(v) for v in node.values)
            return any(self.visit(v) for v in node.values)

        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.Not):
                return not self.visit(node.operand)
            if isinstance(node.op, ast.USub):
                return -self.visit(node.operand)
            raise ConditionError("Unsupported unary operator.")

        if isinstance(node, ast.Compare):
            left = self.visit(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.visit(comparator)
                fn = _COMPARATORS.get(type(op))
                if fn is None:
                    raise ConditionError("Unsupported comparison operator.")
                try:
                    if not fn(left, right):
                        return False
                except TypeError:
                    # None < 0.7 and friends: a missing value never satisfies an ordering.
                    return False
                left = right
            return True

        if isinstance(node, ast.Subscript):
            container = self.visit(node.value)
            key = self.visit(node.slice)
            if isinstance(container, dict):
                return container.get(key)
            if isinstance(container, (list, tuple, str)) and isinstance(key, int):
                return container[key] if -len(container) <= key < len(container) else None
            return None

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in self._functions:
                raise ConditionError("Only has_resource(), has_state() and len() may be called.")
            if node.keywords:
                raise ConditionError("Keyword arguments are not allowed in conditions.")
            args = [self.visit(a) for a in node.args]
            try:
                return self._functions[node.func.id](*args)
            except TypeError as exc:
                raise ConditionError(str(exc)) from exc

        if isinstance(node, (ast.List, ast.Tuple)):
            return [self.visit(e) for e in node.elts]

        raise ConditionError(f"Unsupported expression element: {node.__class__.__name__}.")


def evaluate_condition(expression: str | None, context: OrchestrationContext) -> bool:
    """
    Evaluate `expression` against the context. An absent or blank condition is true.

    Raises ConditionError on syntax errors, disallowed constructs or operands
    the expression cannot be applied to.
    """
    if expression is None or not expression.strip():
        return True
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ConditionError(f"Condition is not a valid expression: {expression!r}") from exc
    try:
        return bool(_Evaluator(context).visit(tree))
    except (TypeError, ValueError, KeyError, IndexError, RecursionError) as exc:
        raise ConditionError(f"Condition could not be evaluated: {expression!r} ({exc})") from exc
