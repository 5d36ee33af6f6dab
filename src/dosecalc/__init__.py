"""
DoseCalc - formula evaluation engine for clinical dosing documents.

Resolves variables out of nested patient contexts, evaluates arithmetic
formulas against them, and computes batches of inter-dependent named
formulas with dependency ordering, cycle detection and result caching.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from dosecalc.formula import (
    CalculationOptions,
    CalculationResult,
    EvaluationMode,
    FormulaEngine,
    VariableResolver,
    calculate,
    convert_unit,
    evaluate,
)

__all__ = [
    "CalculationOptions",
    "CalculationResult",
    "EvaluationMode",
    "FormulaEngine",
    "VariableResolver",
    "calculate",
    "convert_unit",
    "evaluate",
    "__version__",
]
