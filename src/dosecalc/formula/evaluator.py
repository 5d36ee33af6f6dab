"""Formula evaluator for DoseCalc.

Evaluates parsed formula ASTs against patient contexts. One evaluator core
serves both call sites: strict evaluation inside the formula engine and
tolerant evaluation for one-off calculations. They differ only in what
happens to a variable that is missing.
"""

import math
from collections.abc import Mapping
from enum import Enum
from typing import Any

from dosecalc.core.exceptions import (
    FormulaError,
    FormulaEvaluationError,
    FunctionArgumentError,
    NonNumericValueError,
    UndefinedVariableError,
    UnknownFunctionError,
)
from dosecalc.core.logging import get_logger
from dosecalc.formula.functions import (
    FORMULA_FUNCTIONS,
    ieee_divide,
    ieee_modulo,
    ieee_power,
    suggest_function,
)
from dosecalc.formula.parser import (
    BinaryOpNode,
    FormulaParser,
    FunctionCallNode,
    NumberNode,
    StringNode,
    UnaryOpNode,
    VariableNode,
    get_parser,
)
from dosecalc.formula.resolver import MISSING, VariableResolver

logger = get_logger(__name__)

CONSTANTS: dict[str, float] = {
    "PI": math.pi,
    "E": math.e,
    "Infinity": math.inf,
    "NaN": math.nan,
    "true": 1.0,
    "false": 0.0,
}


class MissingVariablePolicy(str, Enum):
    """What to do with a variable that resolves to nothing (or to null)."""

    SUBSTITUTE_ZERO = "substitute_zero"
    RAISE = "raise"


class EvaluationMode(str, Enum):
    """Public strictness modes of expression evaluation."""

    TOLERANT = "tolerant"
    STRICT = "strict"

    @property
    def missing_variable_policy(self) -> MissingVariablePolicy:
        if self is EvaluationMode.TOLERANT:
            return MissingVariablePolicy.SUBSTITUTE_ZERO
        return MissingVariablePolicy.RAISE


class FormulaEvaluator:
    """
    Evaluates formula ASTs against a variable context.

    Supports the arithmetic operators and the fixed function library.
    Results are always floats.
    """

    def __init__(
        self,
        policy: MissingVariablePolicy = MissingVariablePolicy.RAISE,
        resolver: VariableResolver | None = None,
        parser: FormulaParser | None = None,
    ):
        """
        Initialize evaluator.

        Args:
            policy: Handling of missing variables
            resolver: Resolver used for variable paths
            parser: Parser used by evaluate_expression
        """
        self.policy = policy
        self._resolver = resolver or VariableResolver()
        self._parser = parser

    def evaluate(
        self,
        ast: Any,
        context: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> float:
        """
        Evaluate an AST node to a number.

        Args:
            ast: AST node to evaluate
            context: Variable values
            defaults: Fallback values for paths absent from context

        Returns:
            Numeric result

        Raises:
            FormulaError: On any evaluation problem (missing variables only
                under the RAISE policy)
        """
        try:
            result = self._eval(ast, context or {}, defaults or {})
        except RecursionError as e:
            raise FormulaEvaluationError("", "formula is nested too deeply") from e

        if isinstance(result, (str, list, dict)):
            raise FormulaEvaluationError("", f"result is not a number: {str(result)[:50]!r}")
        return self._to_number(result, "result")

    def evaluate_expression(
        self,
        expression: str,
        context: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> float:
        """Parse and evaluate formula text."""
        parser = self._parser or get_parser()
        return self.evaluate(parser.parse(expression), context, defaults)

    def _eval(self, node: Any, context: Mapping[str, Any], defaults: Mapping[str, Any]) -> Any:
        """Recursively evaluate an AST node."""
        if isinstance(node, NumberNode):
            return node.value

        if isinstance(node, StringNode):
            return node.value

        if isinstance(node, VariableNode):
            return self._eval_variable(node, context, defaults)

        if isinstance(node, FunctionCallNode):
            return self._eval_function(node, context, defaults)

        if isinstance(node, BinaryOpNode):
            return self._eval_binary(node, context, defaults)

        if isinstance(node, UnaryOpNode):
            operand = self._to_number(self._eval(node.operand, context, defaults), "operand")
            return -operand

        raise FormulaEvaluationError("", f"unsupported node {type(node).__name__}")

    def _eval_variable(
        self, node: VariableNode, context: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> Any:
        """Look a variable up; constants cannot be shadowed."""
        if node.path in CONSTANTS:
            return CONSTANTS[node.path]

        value = self._resolver.resolve(node.path, context, defaults)
        if value is MISSING:
            return self._missing(node.path, None)
        if value is None:
            return self._missing(node.path, "is null")
        return value

    def _missing(self, path: str, reason: str | None) -> float:
        if self.policy is MissingVariablePolicy.SUBSTITUTE_ZERO:
            return 0.0
        raise UndefinedVariableError(path, reason)

    def _eval_function(
        self, node: FunctionCallNode, context: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> float:
        """Evaluate a function call."""
        spec = FORMULA_FUNCTIONS.get(node.name)
        if spec is None:
            raise UnknownFunctionError(node.name, suggest_function(node.name))
        if not spec.accepts(len(node.arguments)):
            raise FunctionArgumentError(node.name, spec.describe_arity(), len(node.arguments))

        args = [self._eval(arg, context, defaults) for arg in node.arguments]
        numeric_count = len(args) if spec.numeric_args is None else spec.numeric_args
        for i in range(min(numeric_count, len(args))):
            args[i] = self._to_number(args[i], f"{node.name} argument {i + 1}")

        return spec.func(*args)

    def _eval_binary(
        self, node: BinaryOpNode, context: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> float:
        """Evaluate a binary operation."""
        left = self._to_number(self._eval(node.left, context, defaults), "left operand")
        right = self._to_number(self._eval(node.right, context, defaults), "right operand")
        op = node.operator

        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            return ieee_divide(left, right)
        if op == "%":
            return ieee_modulo(left, right)
        if op == "^":
            return ieee_power(left, right)

        raise FormulaEvaluationError(op, f"unknown operator {op}")

    @staticmethod
    def _to_number(value: Any, label: str) -> float:
        """Coerce an operand to float; booleans count as 1 and 0."""
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        if isinstance(value, (int, float)):
            return float(value)
        raise NonNumericValueError(label, value)


_evaluators = {
    policy: FormulaEvaluator(policy) for policy in MissingVariablePolicy
}


def evaluate(
    expression: str,
    context: Mapping[str, Any] | None = None,
    mode: EvaluationMode | str = EvaluationMode.STRICT,
    defaults: Mapping[str, Any] | None = None,
) -> float:
    """
    Evaluate formula text against a context.

    Strict mode raises on any problem. Tolerant mode substitutes 0 for
    missing variables and returns 0 for anything it cannot evaluate.

    Args:
        expression: Formula text
        context: Variable values
        mode: "strict" or "tolerant"
        defaults: Fallback values

    Returns:
        Numeric result

    Raises:
        FormulaError: In strict mode only
    """
    mode = EvaluationMode(mode)
    evaluator = _evaluators[mode.missing_variable_policy]

    if mode is EvaluationMode.STRICT:
        return evaluator.evaluate_expression(expression, context, defaults)

    if not expression or not expression.strip():
        return 0.0
    try:
        return evaluator.evaluate_expression(expression, context, defaults)
    except FormulaError as e:
        logger.warning(f"Expression evaluation failed, using 0: {expression!r} ({e.message})")
        return 0.0
