"""
Pytest configuration and fixtures for DoseCalc tests.
"""

from typing import Any

import pytest

from dosecalc.cache.calculation_cache import CalculationCache
from dosecalc.formula.engine import FormulaEngine
from dosecalc.formula.parser import FormulaParser
from dosecalc.formula.resolver import VariableResolver
from dosecalc.formula.validator import FormulaValidator


@pytest.fixture
def patient_context() -> dict[str, Any]:
    """A nested patient context as produced by the document editor."""
    return {
        "patient": {
            "weight": 70,
            "height": 175,
            "age": 45,
            "labs": {"sodium": 140, "potassium": 4.2},
        },
        "values": [10, 20, 30],
        "data": {
            "measurements": [
                {"values": [1.5, 2.5]},
                {"values": [3.5, 4.5]},
            ]
        },
        "dosePerKg": 2.5,
        "allergy": None,
        "isPediatric": False,
    }


@pytest.fixture
def resolver() -> VariableResolver:
    """Create a variable resolver."""
    return VariableResolver()


@pytest.fixture
def parser() -> FormulaParser:
    """Create a formula parser."""
    return FormulaParser()


@pytest.fixture
def validator() -> FormulaValidator:
    """Create a formula validator with default limits."""
    return FormulaValidator(complexity_threshold=50, max_nesting_depth=5)


@pytest.fixture
def engine() -> FormulaEngine:
    """Create a formula engine with its own small cache."""
    return FormulaEngine(cache=CalculationCache(max_size=100), cache_enabled=True)
