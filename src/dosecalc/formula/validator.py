"""Static formula validation for DoseCalc.

Checks formulas before evaluation: syntax, known functions and their
arity, variables against a context, unit conversions, and complexity.
Also checks batches of named formulas for circular dependencies.
"""

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from dosecalc.core.config import settings
from dosecalc.core.exceptions import (
    FormulaSyntaxError,
    FunctionArgumentError,
    UnknownFunctionError,
)
from dosecalc.formula.dependencies import FormulaDependencyGraph
from dosecalc.formula.evaluator import CONSTANTS
from dosecalc.formula.functions import FORMULA_FUNCTIONS, suggest_function
from dosecalc.formula.parser import (
    FormulaParser,
    FunctionCallNode,
    StringNode,
    VariableNode,
    get_parser,
    walk,
)
from dosecalc.formula.resolver import MISSING, VariableResolver
from dosecalc.formula.units import UnitConverter

_OPERATOR_PATTERN = re.compile(r"[+\-*/%^]")
_FUNCTION_PATTERN = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\s*\(")
_POW_PATTERN = re.compile(r"\bpow\s*\(")
_STRING_LITERAL_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'")

MAX_POW_CALLS = 3


class ValidationLevel(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ValidationIssue(BaseModel):
    """A single validation finding."""

    level: ValidationLevel = Field(..., description="Issue severity")
    message: str = Field(..., description="Human-readable description")
    position: Optional[tuple[int, int]] = Field(
        None, description="Start and end offsets in the formula text"
    )
    suggestion: Optional[str] = Field(None, description="Suggested fix")


class ValidationReport(BaseModel):
    """Outcome of validating one formula or a batch."""

    is_valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    def add_error(self, message: str, **kwargs: Any) -> None:
        self.errors.append(ValidationIssue(level=ValidationLevel.ERROR, message=message, **kwargs))
        self.is_valid = False

    def add_warning(self, message: str, **kwargs: Any) -> None:
        self.warnings.append(
            ValidationIssue(level=ValidationLevel.WARNING, message=message, **kwargs)
        )

    @property
    def first_error(self) -> Optional[str]:
        return self.errors[0].message if self.errors else None


class ComplexityAnalysis(BaseModel):
    """Complexity metrics of a formula."""

    score: int
    operators: int
    functions: int
    variables: int
    depth: int


class FormulaValidator:
    """
    Validate formulas ahead of evaluation.

    Validation never raises; every finding is reported in a ValidationReport.
    """

    def __init__(
        self,
        parser: FormulaParser | None = None,
        resolver: VariableResolver | None = None,
        converter: UnitConverter | None = None,
        complexity_threshold: int | None = None,
        max_nesting_depth: int | None = None,
    ):
        self._parser = parser or get_parser()
        self._resolver = resolver or VariableResolver()
        self._converter = converter or UnitConverter()
        self.complexity_threshold = complexity_threshold or settings.formula_complexity_threshold
        self.max_nesting_depth = max_nesting_depth or settings.formula_max_nesting_depth

    def validate(
        self, formula: str, context: Mapping[str, Any] | None = None
    ) -> ValidationReport:
        """
        Validate a single formula.

        Variables are only checked when a context is given.

        Args:
            formula: Formula text
            context: Variable values to check references against

        Returns:
            ValidationReport with errors and warnings
        """
        report = ValidationReport()

        if not formula or not formula.strip():
            report.add_error("Formula cannot be empty")
            return report

        try:
            ast = self._parser.parse(formula)
        except FormulaSyntaxError as e:
            report.add_error(e.message)
            return report

        unit_arguments = self._validate_functions(ast, context, report)

        if context is not None:
            self._validate_variables(ast, context, unit_arguments, report)

        complexity = self.analyze_complexity(formula)
        if complexity.score > self.complexity_threshold:
            report.add_warning(
                f"Formula has high complexity (score: {complexity.score}). "
                "Consider simplifying."
            )
        if complexity.depth > self.max_nesting_depth:
            report.add_warning(
                f"Formula has deep nesting (depth: {complexity.depth}). "
                "This may impact performance."
            )

        pow_count = len(_POW_PATTERN.findall(formula))
        if pow_count > MAX_POW_CALLS:
            report.add_warning(
                f"Formula contains {pow_count} pow operations. "
                "Consider simplifying for better performance."
            )

        return report

    def validate_formulas(self, formulas: Mapping[str, str]) -> ValidationReport:
        """
        Validate a batch of named formulas for circular dependencies.

        Args:
            formulas: Mapping of formula name to expression

        Returns:
            ValidationReport with one error per cycle
        """
        report = ValidationReport()
        graph = FormulaDependencyGraph.from_formulas(formulas, self._resolver)
        for cycle in graph.find_cycles():
            path = " → ".join([*cycle, cycle[0]])
            report.add_error(f"Circular dependency detected: {path}")
        return report

    def analyze_complexity(self, formula: str) -> ComplexityAnalysis:
        """
        Score a formula's complexity from its text.

        Works on text that does not parse as well.
        """
        stripped = _STRING_LITERAL_PATTERN.sub('""', formula)
        operators = len(_OPERATOR_PATTERN.findall(stripped))
        functions = len(_FUNCTION_PATTERN.findall(stripped))
        variables = len(self._resolver.extract_variables(formula))
        depth = _nesting_depth(stripped)

        score = operators * 2 + functions * 5 + variables + depth * 10
        return ComplexityAnalysis(
            score=score,
            operators=operators,
            functions=functions,
            variables=variables,
            depth=depth,
        )

    def _validate_functions(
        self,
        ast: Any,
        context: Mapping[str, Any] | None,
        report: ValidationReport,
    ) -> set[str]:
        """Check function names, arity and unit conversions.

        Returns the variable paths used as unit arguments of convert.
        """
        unit_arguments: set[str] = set()

        for node in walk(ast):
            if not isinstance(node, FunctionCallNode):
                continue

            spec = FORMULA_FUNCTIONS.get(node.name)
            if spec is None:
                suggestion = suggest_function(node.name)
                report.add_error(
                    UnknownFunctionError(node.name).message,
                    suggestion=f"Did you mean '{suggestion}'?" if suggestion else None,
                )
                continue

            if not spec.accepts(len(node.arguments)):
                report.add_error(
                    FunctionArgumentError(
                        node.name, spec.describe_arity(), len(node.arguments)
                    ).message
                )
                continue

            if node.name == "convert":
                for arg in node.arguments[1:]:
                    if isinstance(arg, VariableNode):
                        unit_arguments.add(arg.path)
                self._validate_conversion(node, context, report)

        return unit_arguments

    def _validate_conversion(
        self,
        node: FunctionCallNode,
        context: Mapping[str, Any] | None,
        report: ValidationReport,
    ) -> None:
        from_unit = self._unit_name(node.arguments[1], context)
        to_unit = self._unit_name(node.arguments[2], context)
        if from_unit is None or to_unit is None:
            return

        from_type = self._converter.get_unit_type(from_unit)
        to_type = self._converter.get_unit_type(to_unit)

        for unit, unit_type in ((from_unit, from_type), (to_unit, to_type)):
            if unit_type is None:
                report.add_warning(
                    f"Unknown unit: {unit}",
                    suggestion="Check unit spelling or use a supported unit",
                )

        if from_type and to_type and from_type != to_type:
            report.add_error(
                f"Incompatible unit conversion: {from_unit} to {to_unit}",
                suggestion="Units must be of the same type (e.g., both weight units)",
            )

    def _unit_name(self, node: Any, context: Mapping[str, Any] | None) -> str | None:
        """Static unit name of a convert argument, if it can be known."""
        if isinstance(node, StringNode):
            return node.value
        if isinstance(node, VariableNode) and context is not None:
            value = self._resolver.resolve(node.path, context)
            if isinstance(value, str):
                return value
        return None

    def _validate_variables(
        self,
        ast: Any,
        context: Mapping[str, Any],
        unit_arguments: set[str],
        report: ValidationReport,
    ) -> None:
        seen: set[str] = set()
        for node in walk(ast):
            if not isinstance(node, VariableNode) or node.path in CONSTANTS:
                continue
            if node.path in seen:
                continue
            seen.add(node.path)

            value = self._resolver.resolve(node.path, context)
            if value is MISSING:
                report.add_error(f"Undefined variable: {node.path}")
            elif value is None:
                report.add_error(f"Variable '{node.path}' is null")
            elif not isinstance(value, (int, float)) and node.path not in unit_arguments:
                report.add_warning(
                    f"Variable '{node.path}' contains non-numeric value: "
                    f"{type(value).__name__}"
                )


def _nesting_depth(formula: str) -> int:
    depth = max_depth = 0
    for char in formula:
        if char == "(":
            depth += 1
            max_depth = max(max_depth, depth)
        elif char == ")":
            depth -= 1
    return max_depth
