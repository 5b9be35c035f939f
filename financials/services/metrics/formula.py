"""Restricted arithmetic evaluation for metric formulas.

Formulas are parsed with ``ast`` and only arithmetic nodes are allowed:
binary ``+ - * / ** %``, unary minus/plus, numeric constants and names of
metric inputs. Anything else (calls, attribute access, comparisons) is
rejected before evaluation.
"""

import ast
import math
import operator
from typing import Dict, Optional, Set

from financials.core.exceptions import FormulaError

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
    ast.Mod: operator.mod,
}

_UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def parse_formula(formula: str) -> ast.Expression:
    """Parse and validate a formula.

    Raises:
        FormulaError: If the formula is not valid restricted arithmetic
    """
    try:
        tree = ast.parse(formula.strip(), mode="eval")
    except SyntaxError as e:
        raise FormulaError(f"Invalid formula syntax: {formula!r}", original_error=e)

    for node in ast.walk(tree):
        if isinstance(node, (ast.Expression, ast.Name, ast.Load)):
            continue
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
            continue
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
            continue
        if type(node) in _BINARY_OPERATORS or type(node) in _UNARY_OPERATORS:
            continue
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            continue
        raise FormulaError(f"Unsupported expression in formula {formula!r}: {type(node).__name__}")
    return tree


def formula_names(formula: str) -> Set[str]:
    """Input names referenced by a formula."""
    tree = parse_formula(formula)
    return {node.id for node in ast.walk(tree) if isinstance(node, ast.Name)}


def evaluate_formula(formula: str, inputs: Dict[str, float]) -> Optional[float]:
    """Evaluate a formula against named inputs.

    Args:
        formula: Arithmetic expression over input names (e.g. "cash_balance / burn_rate")
        inputs: Mapping of input name to value

    Returns:
        The result, or None on division by zero or a non-finite result

    Raises:
        FormulaError: If the formula uses unsupported syntax or unknown names
    """
    tree = parse_formula(formula)
    try:
        result = _evaluate(tree.body, inputs, formula)
        if isinstance(result, complex):
            return None
        result = float(result)
    except (ZeroDivisionError, OverflowError):
        return None

    if not math.isfinite(result):
        return None
    return result


def _evaluate(node: ast.AST, inputs: Dict[str, float], formula: str):
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name):
        if node.id not in inputs:
            raise FormulaError(f"Unknown name {node.id!r} in formula {formula!r}")
        return inputs[node.id]
    if isinstance(node, ast.BinOp):
        left = _evaluate(node.left, inputs, formula)
        right = _evaluate(node.right, inputs, formula)
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand, inputs, formula))
    raise FormulaError(f"Unsupported expression in formula {formula!r}: {type(node).__name__}")
