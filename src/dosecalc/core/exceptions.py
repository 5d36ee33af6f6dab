"""
Custom exceptions for DoseCalc.

Provides a hierarchy of exceptions that carry a machine-readable code
and structured error details.
"""

from typing import Any


class DoseCalcException(Exception):
    """
    Base exception for all DoseCalc errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for callers that report errors as data."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(DoseCalcException):
    """Invalid engine configuration."""

    def __init__(self, setting: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid setting '{setting}': {reason}",
            code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )


# =============================================================================
# Formula Errors
# =============================================================================


class FormulaError(DoseCalcException):
    """Base class for everything that can go wrong with a formula."""


class FormulaSyntaxError(FormulaError):
    """Formula text could not be parsed."""

    def __init__(self, formula: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid formula syntax: {reason}",
            code="FORMULA_SYNTAX_ERROR",
            details={"formula": formula[:200]},
        )


class UnknownFunctionError(FormulaError):
    """Formula calls a function outside the fixed library."""

    def __init__(self, name: str, suggestion: str | None = None) -> None:
        message = f"Unknown function: {name}"
        if suggestion:
            message += f". Did you mean '{suggestion}'?"
        super().__init__(
            message=message,
            code="UNKNOWN_FUNCTION",
            details={"function": name, "suggestion": suggestion},
        )
        self.name = name
        self.suggestion = suggestion


class FunctionArgumentError(FormulaError):
    """Function called with the wrong number of arguments."""

    def __init__(self, name: str, expected: str, received: int) -> None:
        super().__init__(
            message=f"Function '{name}' requires {expected} argument(s), got {received}",
            code="FUNCTION_ARGUMENTS",
            details={"function": name, "expected": expected, "received": received},
        )


class UndefinedVariableError(FormulaError):
    """Variable referenced by a formula is absent from the context."""

    def __init__(self, variable: str, reason: str | None = None) -> None:
        message = f"Undefined variable: {variable}"
        if reason:
            message = f"Variable '{variable}' {reason}"
        super().__init__(
            message=message,
            code="UNDEFINED_VARIABLE",
            details={"variable": variable},
        )
        self.variable = variable


class NonNumericValueError(FormulaError):
    """Operand of an arithmetic operation is not a number."""

    def __init__(self, label: str, value: Any) -> None:
        super().__init__(
            message=f"Value of '{label}' is not numeric: {str(value)[:50]!r}",
            code="NON_NUMERIC_VALUE",
            details={"operand": label, "type": type(value).__name__},
        )


class FormulaEvaluationError(FormulaError):
    """Formula parsed but could not be evaluated."""

    def __init__(self, formula: str, reason: str) -> None:
        super().__init__(
            message=f"Formula evaluation failed: {reason}",
            code="FORMULA_EVALUATION_ERROR",
            details={"formula": formula[:200]},
        )


class IncompatibleUnitsError(FormulaError):
    """Unit conversion across categories (e.g. weight to length)."""

    def __init__(self, from_unit: str, to_unit: str) -> None:
        super().__init__(
            message=f"Incompatible units: {from_unit} and {to_unit}",
            code="INCOMPATIBLE_UNITS",
            details={"from_unit": from_unit, "to_unit": to_unit},
        )


class CircularDependencyError(FormulaError):
    """Named formula cannot be ordered because of a dependency cycle."""

    def __init__(self, names: list[str], formula: str | None = None) -> None:
        message = f"Circular dependency detected: {', '.join(names)}"
        if formula is not None and formula not in names:
            message = f"Circular dependency detected: {formula} depends on {', '.join(names)}"
        super().__init__(
            message=message,
            code="CIRCULAR_DEPENDENCY",
            details={"formulas": names, "formula": formula},
        )
        self.names = names
        self.formula = formula
