"""Formula engine for DoseCalc.

Entry point for engine calculations: single formulas and batches of named
formulas that may reference each other. Every problem is reported in the
returned CalculationResult; nothing raises across this boundary.
"""

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from dosecalc.cache.calculation_cache import CacheStats, CalculationCache
from dosecalc.core.config import settings
from dosecalc.core.exceptions import CircularDependencyError, FormulaError
from dosecalc.core.logging import LoggerMixin
from dosecalc.formula.dependencies import FormulaDependencyGraph
from dosecalc.formula.evaluator import FormulaEvaluator, MissingVariablePolicy
from dosecalc.formula.resolver import VariableResolver
from dosecalc.formula.validator import FormulaValidator, ValidationReport


class CalculationResult(BaseModel):
    """Outcome of one formula calculation. Immutable once produced."""

    value: Optional[float] = Field(None, description="Numeric result; None on error")
    error: Optional[str] = Field(None, description="Error message; None on success")
    cached: bool = Field(default=False, description="Whether served from the cache")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal findings")

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.error is None


class CalculationOptions(BaseModel):
    """Per-call options of the formula engine."""

    defaults: dict[str, Any] = Field(
        default_factory=dict, description="Fallback values; the context wins"
    )
    skip_validation: bool = Field(default=False, description="Evaluate without validating")
    skip_cache: bool = Field(default=False, description="Neither read nor write the cache")


class FormulaEngine(LoggerMixin):
    """
    Evaluate formulas in strict mode with validation and caching.

    Each engine owns its cache; engines never share results.
    """

    def __init__(
        self,
        cache: Optional[CalculationCache] = None,
        cache_enabled: Optional[bool] = None,
        validator: Optional[FormulaValidator] = None,
        resolver: Optional[VariableResolver] = None,
    ):
        """
        Initialize engine.

        Args:
            cache: Result cache (default: a fresh one sized from settings)
            cache_enabled: Whether to cache at all (default from settings)
            validator: Validator run before evaluation
            resolver: Resolver shared by evaluation and dependency analysis
        """
        self._resolver = resolver or VariableResolver()
        self._evaluator = FormulaEvaluator(MissingVariablePolicy.RAISE, self._resolver)
        self._validator = validator or FormulaValidator(resolver=self._resolver)
        self._cache = cache if cache is not None else CalculationCache()
        self.cache_enabled = (
            settings.formula_cache_enabled if cache_enabled is None else cache_enabled
        )

    async def calculate(
        self,
        expression: str,
        context: Optional[Mapping[str, Any]] = None,
        options: Optional[CalculationOptions] = None,
    ) -> CalculationResult:
        """
        Calculate a single formula.

        Args:
            expression: Formula text
            context: Variable values
            options: Defaults and validation/cache switches

        Returns:
            CalculationResult carrying either a value or an error
        """
        options = options or CalculationOptions()
        effective = self._resolver.merge_contexts(options.defaults, context)
        return self._calculate(expression, effective, options)

    async def calculate_batch(
        self,
        formulas: Mapping[str, str],
        context: Optional[Mapping[str, Any]] = None,
        options: Optional[CalculationOptions] = None,
    ) -> dict[str, CalculationResult]:
        """
        Calculate named formulas that may reference each other by name.

        A reference matching a sibling formula name is a dependency on that
        formula and sees its computed value, shadowing any context key of
        the same name. Other references, including paths such as
        ``patient.weight`` next to a formula named ``patient``, read the
        context only. Formulas are evaluated dependencies first. A failure
        is reported on the formula it happened in and on everything that
        depends on it; independent formulas are unaffected.

        Args:
            formulas: Mapping of formula name to expression
            context: Variable values shared by all formulas
            options: Defaults and validation/cache switches

        Returns:
            Mapping of formula name to result, in the caller's order
        """
        options = options or CalculationOptions()
        base = self._resolver.merge_contexts(options.defaults, context)

        graph = FormulaDependencyGraph.from_formulas(formulas, self._resolver)
        plan = graph.get_evaluation_plan(formulas)

        results: dict[str, CalculationResult] = {}
        computed: dict[str, float] = {}

        for name in plan.order:
            dependencies = graph.get_dependencies(name)
            failed = [dep for dep in formulas if dep in dependencies and not results[dep].ok]
            if failed:
                results[name] = CalculationResult(
                    error=f"Dependency '{failed[0]}' failed: {results[failed[0]].error}"
                )
                continue

            # Siblings are visible only as declared dependencies
            scope = {**base, **{dep: computed[dep] for dep in dependencies}}
            result = self._calculate(formulas[name], scope, options)
            results[name] = result
            if result.ok:
                computed[name] = result.value

        if plan.has_cycle:
            self._report_cycles(graph, plan.unresolved, results)

        return {name: results[name] for name in formulas}

    def validate(
        self, expression: str, context: Optional[Mapping[str, Any]] = None
    ) -> ValidationReport:
        """Validate a formula without evaluating it."""
        return self._validator.validate(expression, context)

    def validate_formulas(self, formulas: Mapping[str, str]) -> ValidationReport:
        """Check a batch of named formulas for circular dependencies."""
        return self._validator.validate_formulas(formulas)

    def clear_cache(self) -> None:
        """Drop every cached result."""
        self._cache.clear()

    def get_cache_size(self) -> int:
        """Number of cached results."""
        return len(self._cache)

    def get_cache_stats(self) -> CacheStats:
        """Cache size and hit/miss counters."""
        return self._cache.stats()

    def _calculate(
        self,
        expression: str,
        effective: Mapping[str, Any],
        options: CalculationOptions,
    ) -> CalculationResult:
        """Calculate against an already merged context."""
        if not isinstance(expression, str):
            return CalculationResult(
                error=f"Formula must be a string, got {type(expression).__name__}"
            )

        key = None
        if self.cache_enabled and not options.skip_cache:
            key = self._cache.generate_cache_key(expression, effective)
            if key is not None:
                hit = self._cache.get(key)
                if hit is not None:
                    return hit.model_copy(update={"cached": True})

        warnings: list[str] = []
        if not options.skip_validation:
            report = self._validator.validate(expression, effective)
            warnings = [issue.message for issue in report.warnings]
            if not report.is_valid:
                return CalculationResult(error=report.first_error, warnings=warnings)

        try:
            value = self._evaluator.evaluate_expression(expression, effective)
        except FormulaError as e:
            return CalculationResult(error=e.message, warnings=warnings)
        except Exception as e:
            self.logger.exception(f"Unexpected error evaluating formula: {expression!r}")
            return CalculationResult(error=f"Formula evaluation failed: {e}", warnings=warnings)

        result = CalculationResult(value=value, warnings=warnings)
        if key is not None:
            self._cache.set(key, result)
        return result

    def _report_cycles(
        self,
        graph: FormulaDependencyGraph,
        unresolved: list[str],
        results: dict[str, CalculationResult],
    ) -> None:
        """Give every formula stuck behind a cycle a circular-dependency error."""
        cycles = graph.find_cycles()
        membership = {name: cycle for cycle in cycles for name in cycle}
        self.logger.warning(
            f"Circular dependencies in batch: {[' -> '.join(cycle) for cycle in cycles]}"
        )

        for name in unresolved:
            if name in membership:
                error = CircularDependencyError(membership[name])
            else:
                upstream = graph.get_transitive_dependencies(name)
                names = [member for member in membership if member in upstream]
                error = CircularDependencyError(names, formula=name)
            results[name] = CalculationResult(error=error.message)
