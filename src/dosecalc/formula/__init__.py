"""Formula engine for DoseCalc.

This module provides a complete formula evaluation system supporting:
- Arithmetic operations (+, -, *, /, %, ^)
- Variable paths into nested contexts (patient.weight, values[0])
- Numeric functions (min, max, round, floor, ceil, abs, sqrt, pow, exp, log)
- Trigonometric functions (sin, cos, tan, asin, acos, atan)
- Unit conversion (convert(value, from_unit, to_unit))
- Batches of named formulas with dependency ordering and caching
"""

from dosecalc.formula.calculator import Calculator, calculate, format_precision, get_value
from dosecalc.formula.dependencies import FormulaDependencyGraph
from dosecalc.formula.engine import CalculationOptions, CalculationResult, FormulaEngine
from dosecalc.formula.evaluator import (
    EvaluationMode,
    FormulaEvaluator,
    MissingVariablePolicy,
    evaluate,
)
from dosecalc.formula.functions import FORMULA_FUNCTIONS, register_function
from dosecalc.formula.parser import FormulaParser
from dosecalc.formula.resolver import (
    MISSING,
    VariableResolver,
    extract_variables,
    merge_contexts,
    resolve,
    validate_variables,
)
from dosecalc.formula.units import UnitConverter, convert_unit
from dosecalc.formula.validator import FormulaValidator, ValidationReport

__all__ = [
    "Calculator",
    "CalculationOptions",
    "CalculationResult",
    "EvaluationMode",
    "FORMULA_FUNCTIONS",
    "FormulaDependencyGraph",
    "FormulaEngine",
    "FormulaEvaluator",
    "FormulaParser",
    "FormulaValidator",
    "MISSING",
    "MissingVariablePolicy",
    "UnitConverter",
    "ValidationReport",
    "VariableResolver",
    "calculate",
    "convert_unit",
    "evaluate",
    "extract_variables",
    "format_precision",
    "get_value",
    "merge_contexts",
    "register_function",
    "resolve",
    "validate_variables",
]
