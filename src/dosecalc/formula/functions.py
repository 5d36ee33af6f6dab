"""Formula functions for DoseCalc.

Implements the fixed function library available in formulas. Every
numeric function follows IEEE-754 double semantics: domain errors give
NaN and overflow gives a signed infinity instead of raising.
"""

import difflib
import math
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from dosecalc.core.exceptions import FormulaEvaluationError
from dosecalc.formula.units import convert_unit

# Type alias for formula functions
FormulaFunction = Callable[..., Any]


@dataclass(frozen=True)
class FunctionSpec:
    """A library function together with its arity.

    ``max_args`` of None means variadic. The first ``numeric_args``
    arguments (all of them when None) are coerced to floats before the
    call; the rest are passed through as evaluated.
    """

    name: str
    func: FormulaFunction
    min_args: int
    max_args: int | None
    numeric_args: int | None = None

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def describe_arity(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return f"exactly {self.min_args}"
        return f"{self.min_args} to {self.max_args}"


# Registry of formula functions
FORMULA_FUNCTIONS: dict[str, FunctionSpec] = {}


def register_function(
    name: str,
    min_args: int = 1,
    max_args: int | None = 1,
    numeric_args: int | None = None,
) -> Callable[[FormulaFunction], FormulaFunction]:
    """Decorator to register a formula function."""

    def decorator(func: FormulaFunction) -> FormulaFunction:
        FORMULA_FUNCTIONS[name] = FunctionSpec(name, func, min_args, max_args, numeric_args)
        return func

    return decorator


def suggest_function(name: str) -> str | None:
    """Closest registered function name to a misspelt one, if any is close."""
    lowered = {known.lower(): known for known in FORMULA_FUNCTIONS}
    matches = difflib.get_close_matches(name.lower(), list(lowered), n=1, cutoff=0.6)
    return lowered[matches[0]] if matches else None


def _ieee(func: FormulaFunction) -> FormulaFunction:
    """Map math-module domain errors to NaN and overflow to infinity."""

    @wraps(func)
    def wrapper(*args: float) -> float:
        try:
            return float(func(*args))
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf

    return wrapper


def _is_odd_integer(value: float) -> bool:
    return math.isfinite(value) and value == int(value) and int(value) % 2 == 1


# =============================================================================
# Operators
# =============================================================================


def ieee_divide(left: float, right: float) -> float:
    """Division where x/0 is a signed infinity and 0/0 is NaN."""
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def ieee_modulo(left: float, right: float) -> float:
    """Truncated remainder (sign follows the dividend); x % 0 is NaN."""
    try:
        return math.fmod(left, right)
    except ValueError:
        return math.nan


def ieee_power(base: float, exponent: float) -> float:
    """Exponentiation without complex results or exceptions."""
    try:
        return math.pow(base, exponent)
    except OverflowError:
        if base < 0 and _is_odd_integer(exponent):
            return -math.inf
        return math.inf
    except ValueError:
        # 0 ** negative, or negative ** fraction
        if base == 0:
            if _is_odd_integer(exponent):
                return math.copysign(math.inf, base)
            return math.inf
        return math.nan


# =============================================================================
# Numeric Functions
# =============================================================================


@register_function("min", min_args=0, max_args=None)
def func_min(*args: float) -> float:
    """Minimum value; NaN if any argument is NaN."""
    if not args:
        return math.inf
    if any(math.isnan(a) for a in args):
        return math.nan
    return float(min(args))


@register_function("max", min_args=0, max_args=None)
def func_max(*args: float) -> float:
    """Maximum value; NaN if any argument is NaN."""
    if not args:
        return -math.inf
    if any(math.isnan(a) for a in args):
        return math.nan
    return float(max(args))


@register_function("round")
def func_round(value: float) -> float:
    """Round half toward positive infinity (2.5 -> 3, -2.5 -> -2)."""
    if not math.isfinite(value):
        return value
    return float(math.floor(value + 0.5))


@register_function("floor")
def func_floor(value: float) -> float:
    """Largest integer not greater than value."""
    if not math.isfinite(value):
        return value
    return float(math.floor(value))


@register_function("ceil")
def func_ceil(value: float) -> float:
    """Smallest integer not less than value."""
    if not math.isfinite(value):
        return value
    return float(math.ceil(value))


@register_function("abs")
def func_abs(value: float) -> float:
    """Absolute value."""
    return math.fabs(value)


@register_function("sqrt")
@_ieee
def func_sqrt(value: float) -> float:
    """Square root; NaN for negative input."""
    return math.sqrt(value)


@register_function("pow", min_args=2, max_args=2)
def func_pow(base: float, exponent: float) -> float:
    """Raise base to exponent."""
    return ieee_power(base, exponent)


@register_function("exp")
@_ieee
def func_exp(value: float) -> float:
    """e raised to value."""
    return math.exp(value)


@register_function("log")
def func_log(value: float) -> float:
    """Natural logarithm; -Infinity at zero, NaN below."""
    if value == 0:
        return -math.inf
    if value < 0:
        return math.nan
    return math.log(value)


# =============================================================================
# Trigonometric Functions
# =============================================================================


@register_function("sin")
@_ieee
def func_sin(value: float) -> float:
    return math.sin(value)


@register_function("cos")
@_ieee
def func_cos(value: float) -> float:
    return math.cos(value)


@register_function("tan")
@_ieee
def func_tan(value: float) -> float:
    return math.tan(value)


@register_function("asin")
@_ieee
def func_asin(value: float) -> float:
    return math.asin(value)


@register_function("acos")
@_ieee
def func_acos(value: float) -> float:
    return math.acos(value)


@register_function("atan")
@_ieee
def func_atan(value: float) -> float:
    return math.atan(value)


# =============================================================================
# Unit Conversion
# =============================================================================


@register_function("convert", min_args=3, max_args=3, numeric_args=1)
def func_convert(value: float, from_unit: Any, to_unit: Any) -> float:
    """Convert value between units; the evaluator coerces value beforehand."""
    if not isinstance(from_unit, str) or not isinstance(to_unit, str):
        raise FormulaEvaluationError(
            f"convert({value}, {from_unit!r}, {to_unit!r})",
            "unit arguments of convert must be unit names",
        )
    return convert_unit(value, from_unit, to_unit)
