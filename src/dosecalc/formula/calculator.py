"""Direct calculation helpers for DoseCalc.

One-off tolerant calculations for document content: a missing value or a
broken expression yields 0 rather than an error. Use FormulaEngine where
errors must be reported.
"""

import math
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Optional

from dosecalc.formula.evaluator import EvaluationMode, evaluate
from dosecalc.formula.units import convert_unit

__all__ = ["Calculator", "calculate", "convert_unit", "format_precision", "get_value"]

MAX_PRECISION = 100


def calculate(expression: str, context: Optional[Mapping[str, Any]] = None) -> float:
    """Evaluate an expression tolerantly; failures give 0."""
    return evaluate(expression, context, mode=EvaluationMode.TOLERANT)


def get_value(key: str, context: Mapping[str, Any]) -> Any:
    """Top-level context lookup where absent and null both give 0."""
    value = context.get(key)
    return 0 if value is None else value


def format_precision(value: float, precision: int = 2) -> str:
    """
    Format a number with a fixed count of decimals.

    Ties round away from zero (2.5 -> "3", -2.5 -> "-3").

    Args:
        value: Number to format
        precision: Digits after the decimal point, 0 to 100

    Returns:
        Fixed-point string; "NaN", "Infinity" or "-Infinity" for non-finite input

    Raises:
        ValueError: If precision is out of range
    """
    if not 0 <= precision <= MAX_PRECISION:
        raise ValueError(f"precision must be between 0 and {MAX_PRECISION}, got {precision}")
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"

    if value == 0:
        value = 0.0  # no "-0.00"

    with localcontext() as ctx:
        # Room for every digit of the largest double plus the decimals
        ctx.prec = 330 + precision
        rounded = Decimal(value).quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)
    return format(rounded, "f")


class Calculator:
    """Tolerant helpers bound to one set of values."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self.values = dict(values or {})

    def get_value(self, key: str) -> Any:
        return get_value(key, self.values)

    def format_precision(self, value: float, precision: int = 2) -> str:
        return format_precision(value, precision)

    def calculate(self, expression: str) -> float:
        return calculate(expression, self.values)
