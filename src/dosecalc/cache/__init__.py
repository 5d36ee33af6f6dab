"""Cache layer for DoseCalc."""

from dosecalc.cache.calculation_cache import CacheStats, CalculationCache

__all__ = ["CacheStats", "CalculationCache"]
