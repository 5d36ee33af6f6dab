"""Variable resolution for DoseCalc formulas.

Resolves dotted/indexed paths such as ``patient.weight`` or
``data.measurements[0].values[1]`` against nested patient contexts,
extracts variable references from formula text, and deep-merges contexts.
"""

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

# A context value is one of these; nothing else is expected in a context.
ContextValue = Union[
    float, int, str, bool, None, dict[str, "ContextValue"], list["ContextValue"]
]
VariableContext = dict[str, ContextValue]


class _Missing:
    """Sentinel for a path that resolves to nothing.

    ``None`` is a present value (``null``) and must not be confused with
    an absent one.
    """

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

# Function names that look like identifiers but are never variables.
FUNCTION_NAMES = (
    "min",
    "max",
    "round",
    "floor",
    "ceil",
    "abs",
    "sqrt",
    "pow",
    "exp",
    "log",
    "sin",
    "cos",
    "tan",
    "asin",
    "acos",
    "atan",
    "convert",
)

RESERVED_KEYWORDS = frozenset(
    {"true", "false", "null", "undefined", "PI", "E", "Infinity", "NaN"}
)

_FUNCTION_CALL_PATTERN = re.compile(r"\b(?:" + "|".join(FUNCTION_NAMES) + r")\s*\(")
_STRING_LITERAL_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'")
# The lookbehind keeps exponents such as the "e5" of 1e5 out of the match.
_VARIABLE_PATTERN = re.compile(
    r"(?<![\w.])([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*|\[\d+\])*)"
)
_INDEX_SEGMENT = re.compile(r"\[(-?\d+)\]")
_PROPERTY_SEGMENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass(frozen=True)
class PathSegment:
    """One step of a parsed path: a property name or a list index."""

    kind: str  # "property" | "index"
    key: str | int


@dataclass
class VariableValidation:
    """Outcome of checking that a set of paths resolve."""

    is_valid: bool
    missing: list[str] = field(default_factory=list)


def parse_path(path: str) -> list[PathSegment]:
    """
    Split a path into property and index segments.

    Unparseable characters are skipped rather than rejected.

    Args:
        path: Path string such as ``patients[1].weight``

    Returns:
        Ordered list of segments
    """
    segments: list[PathSegment] = []
    pos = 0
    while pos < len(path):
        if path[pos] == ".":
            pos += 1
            continue

        index_match = _INDEX_SEGMENT.match(path, pos)
        if index_match:
            segments.append(PathSegment("index", int(index_match.group(1))))
            pos = index_match.end()
            continue

        prop_match = _PROPERTY_SEGMENT.match(path, pos)
        if prop_match:
            segments.append(PathSegment("property", prop_match.group(0)))
            pos = prop_match.end()
            continue

        pos += 1

    return segments


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


class VariableResolver:
    """
    Resolve variable paths against nested contexts.

    Resolution never raises; anything that cannot be found is ``MISSING``.
    """

    def resolve(
        self,
        path: str,
        context: Mapping[str, Any] | None,
        defaults: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Resolve a path, falling back to defaults when the context lacks it.

        Args:
            path: Dotted/indexed path
            context: Primary context
            defaults: Secondary context consulted only on a miss

        Returns:
            The value found (``None``, ``0`` and ``False`` included) or MISSING
        """
        value = self._resolve_path(path, context)
        if value is not MISSING:
            return value
        return self._resolve_path(path, defaults)

    def extract_variables(self, formula: str) -> list[str]:
        """
        Extract all variable paths referenced by a formula.

        Function names followed by ``(`` and string literals are removed
        first so they are not mistaken for variables. Anything other than a
        string references nothing.

        Args:
            formula: Formula text

        Returns:
            Deduplicated list of variable paths
        """
        if not isinstance(formula, str):
            return []

        stripped = _STRING_LITERAL_PATTERN.sub(" ", formula)
        stripped = _FUNCTION_CALL_PATTERN.sub(" (", stripped)

        variables: dict[str, None] = {}
        for match in _VARIABLE_PATTERN.finditer(stripped):
            variable = match.group(1)
            if variable not in RESERVED_KEYWORDS:
                variables[variable] = None
        return list(variables)

    def validate_variables(
        self,
        variables: Iterable[str],
        context: Mapping[str, Any] | None,
        defaults: Mapping[str, Any] | None = None,
    ) -> VariableValidation:
        """
        Check that every path resolves in the context or defaults.

        Args:
            variables: Paths to check
            context: Primary context
            defaults: Secondary context

        Returns:
            VariableValidation listing the paths that resolved to MISSING
        """
        missing = [
            variable
            for variable in variables
            if self.resolve(variable, context, defaults) is MISSING
        ]
        return VariableValidation(is_valid=not missing, missing=missing)

    def merge_contexts(self, *contexts: Mapping[str, Any] | None) -> VariableContext:
        """
        Deep-merge contexts left to right; later contexts win.

        Lists replace the accumulated value wholesale, nested mappings are
        merged recursively, anything else overwrites. Inputs are not modified.
        """
        result: VariableContext = {}
        for context in contexts:
            if context:
                self._deep_merge(result, context)
        return result

    def _resolve_path(self, path: str, obj: Any) -> Any:
        """Walk one object along the parsed path."""
        segments = parse_path(path)
        if not segments or not isinstance(obj, Mapping):
            return MISSING

        current: Any = obj
        for segment in segments:
            if segment.kind == "property":
                if not isinstance(current, Mapping):
                    return MISSING
                current = current.get(segment.key, MISSING)
                if current is MISSING:
                    return MISSING
            else:
                if not _is_sequence(current):
                    return MISSING
                index = segment.key
                if index < 0 or index >= len(current):
                    return MISSING
                current = current[index]

        return current

    def _deep_merge(self, target: dict[str, Any], source: Mapping[str, Any]) -> None:
        """Merge source into target in place."""
        for key, source_value in source.items():
            if _is_sequence(source_value):
                target[key] = list(source_value)
            elif isinstance(source_value, Mapping):
                existing = target.get(key)
                if not isinstance(existing, dict):
                    existing = {}
                    target[key] = existing
                self._deep_merge(existing, source_value)
            else:
                target[key] = source_value


# Module-level convenience functions sharing one stateless resolver
_resolver = VariableResolver()


def resolve(
    path: str,
    context: Mapping[str, Any] | None,
    defaults: Mapping[str, Any] | None = None,
) -> Any:
    """Resolve a path against a context with defaults."""
    return _resolver.resolve(path, context, defaults)


def extract_variables(formula: str) -> list[str]:
    """Extract variable paths from formula text."""
    return _resolver.extract_variables(formula)


def validate_variables(
    variables: Iterable[str],
    context: Mapping[str, Any] | None,
    defaults: Mapping[str, Any] | None = None,
) -> VariableValidation:
    """Check that all paths resolve."""
    return _resolver.validate_variables(variables, context, defaults)


def merge_contexts(*contexts: Mapping[str, Any] | None) -> VariableContext:
    """Deep-merge contexts, later contexts winning."""
    return _resolver.merge_contexts(*contexts)
