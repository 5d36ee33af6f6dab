"""Formula parser for DoseCalc.

Parses formula strings into an AST using Lark parser.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError

from dosecalc.core.config import settings
from dosecalc.core.exceptions import FormulaSyntaxError
from dosecalc.formula.grammar import FORMULA_GRAMMAR


# AST Node types
@dataclass(frozen=True)
class NumberNode:
    value: float


@dataclass(frozen=True)
class StringNode:
    value: str


@dataclass(frozen=True)
class VariableNode:
    path: str


@dataclass(frozen=True)
class FunctionCallNode:
    name: str
    arguments: tuple[Any, ...]


@dataclass(frozen=True)
class BinaryOpNode:
    operator: str
    left: Any
    right: Any


@dataclass(frozen=True)
class UnaryOpNode:
    operator: str
    operand: Any


class FormulaTransformer(Transformer):
    """Transform Lark parse tree into AST nodes."""

    @v_args(inline=True)
    def number(self, token):
        return NumberNode(float(token))

    @v_args(inline=True)
    def string(self, token):
        # Remove quotes
        return StringNode(str(token)[1:-1])

    @v_args(inline=True)
    def variable(self, token):
        return VariableNode(str(token))

    def function_call(self, items):
        name = str(items[0])
        args = tuple(items[1]) if len(items) > 1 and items[1] else ()
        return FunctionCallNode(name, args)

    def arguments(self, items):
        return list(items)

    # Binary operators
    @v_args(inline=True)
    def add(self, left, right):
        return BinaryOpNode("+", left, right)

    @v_args(inline=True)
    def sub(self, left, right):
        return BinaryOpNode("-", left, right)

    @v_args(inline=True)
    def mul(self, left, right):
        return BinaryOpNode("*", left, right)

    @v_args(inline=True)
    def div(self, left, right):
        return BinaryOpNode("/", left, right)

    @v_args(inline=True)
    def mod(self, left, right):
        return BinaryOpNode("%", left, right)

    @v_args(inline=True)
    def pow(self, left, right):
        return BinaryOpNode("^", left, right)

    # Unary operators
    @v_args(inline=True)
    def neg(self, operand):
        return UnaryOpNode("-", operand)


class FormulaParser:
    """
    Parser for DoseCalc formulas.

    Parses formula strings into an immutable AST that can be evaluated.
    Parsed trees are memoised per formula text.
    """

    MAX_CACHED_TREES = 512

    def __init__(self, max_length: int | None = None):
        self._parser = Lark(
            FORMULA_GRAMMAR,
            parser="lalr",
            transformer=FormulaTransformer(),
        )
        self._max_length = max_length or settings.formula_max_length
        self._trees: dict[str, Any] = {}

    def parse(self, formula: str) -> Any:
        """
        Parse a formula string into an AST.

        Args:
            formula: Formula string to parse

        Returns:
            AST root node

        Raises:
            FormulaSyntaxError: If formula syntax is invalid
        """
        cached = self._trees.get(formula)
        if cached is not None:
            return cached

        if not formula or not formula.strip():
            raise FormulaSyntaxError(formula or "", "Formula cannot be empty")
        if len(formula) > self._max_length:
            raise FormulaSyntaxError(
                formula, f"Formula exceeds {self._max_length} characters"
            )

        try:
            tree = self._parser.parse(formula)
        except LarkError as e:
            lines = str(e).strip().splitlines()
            raise FormulaSyntaxError(formula, lines[0] if lines else type(e).__name__) from e

        if len(self._trees) >= self.MAX_CACHED_TREES:
            self._trees.clear()
        self._trees[formula] = tree
        return tree

    def validate(self, formula: str) -> tuple[bool, str | None]:
        """
        Validate formula syntax.

        Args:
            formula: Formula string to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.parse(formula)
            return True, None
        except FormulaSyntaxError as e:
            return False, e.message

    def get_variable_references(self, formula: str) -> list[str]:
        """
        Extract all variable paths from a formula.

        Args:
            formula: Formula string

        Returns:
            Deduplicated list of variable paths, in order of first use
        """
        ast = self.parse(formula)
        variables: dict[str, None] = {}
        for node in walk(ast):
            if isinstance(node, VariableNode):
                variables[node.path] = None
        return list(variables)

    def get_function_calls(self, formula: str) -> list[FunctionCallNode]:
        """Return every function call node in a formula, outermost first."""
        return [node for node in walk(self.parse(formula)) if isinstance(node, FunctionCallNode)]


def walk(node: Any) -> Iterator[Any]:
    """Yield a node and all of its descendants, depth-first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, BinaryOpNode):
            stack.append(current.right)
            stack.append(current.left)
        elif isinstance(current, UnaryOpNode):
            stack.append(current.operand)
        elif isinstance(current, FunctionCallNode):
            stack.extend(reversed(current.arguments))


_parser: FormulaParser | None = None


def get_parser() -> FormulaParser:
    """Lazily build the shared parser; grammar construction is not free."""
    global _parser
    if _parser is None:
        _parser = FormulaParser()
    return _parser
