"""Unit tests for the direct calculator helpers."""

import math

import pytest

from dosecalc.formula.calculator import (
    Calculator,
    calculate,
    convert_unit,
    format_precision,
    get_value,
)


class TestCalculate:
    """Tests for tolerant one-off calculation."""

    def test_simple(self):
        """Test a simple calculation."""
        assert calculate("weight * 2", {"weight": 70}) == 140

    def test_missing_variable_is_zero(self):
        """Test missing variables count as 0."""
        assert calculate("missing * 10", {}) == 0

    def test_invalid_expression_is_zero(self):
        """Test invalid expressions yield 0."""
        assert calculate("2 + + 3", {}) == 0
        assert calculate("", {}) == 0

    def test_without_context(self):
        """Test calculating without any context."""
        assert calculate("2 ^ 3") == 8

    def test_division_by_zero(self):
        """Test division by zero gives Infinity."""
        assert calculate("10 / 0", {}) == math.inf


class TestGetValue:
    """Tests for top-level value lookup."""

    def test_present(self):
        """Test present values are returned as-is."""
        assert get_value("weight", {"weight": 70}) == 70
        assert get_value("name", {"name": "x"}) == "x"

    def test_absent_and_null(self):
        """Test absent and null values become 0."""
        assert get_value("weight", {}) == 0
        assert get_value("weight", {"weight": None}) == 0

    def test_falsy_kept(self):
        """Test False and 0 are not replaced."""
        assert get_value("flag", {"flag": False}) is False


class TestFormatPrecision:
    """Tests for fixed-point formatting."""

    def test_default_precision(self):
        """Test two decimals by default."""
        assert format_precision(3.14159) == "3.14"
        assert format_precision(2) == "2.00"

    def test_custom_precision(self):
        """Test a custom number of decimals."""
        assert format_precision(3.14159, 4) == "3.1416"
        assert format_precision(2.4, 0) == "2"

    def test_ties_round_away_from_zero(self):
        """Test exact ties round away from zero."""
        assert format_precision(2.5, 0) == "3"
        assert format_precision(-2.5, 0) == "-3"
        assert format_precision(0.125, 2) == "0.13"

    def test_binary_representation_respected(self):
        """Test values just below a tie round down."""
        # 1.005 is stored as 1.00499999999999989...
        assert format_precision(1.005, 2) == "1.00"

    def test_no_scientific_notation(self):
        """Test small and large values stay in fixed-point form."""
        assert format_precision(1e-10, 12) == "0.000000000100"
        assert format_precision(1e20, 1) == "100000000000000000000.0"

    def test_zero(self):
        """Test negative zero formats as zero."""
        assert format_precision(-0.0) == "0.00"

    def test_non_finite(self):
        """Test NaN and infinities."""
        assert format_precision(math.nan) == "NaN"
        assert format_precision(math.inf) == "Infinity"
        assert format_precision(-math.inf) == "-Infinity"

    def test_precision_range(self):
        """Test out-of-range precision is rejected."""
        with pytest.raises(ValueError):
            format_precision(1.0, -1)
        with pytest.raises(ValueError):
            format_precision(1.0, 101)


class TestCalculator:
    """Tests for the value-bound Calculator."""

    def test_bound_values(self):
        """Test helpers use the bound values."""
        calc = Calculator({"weight": 70, "allergy": None})
        assert calc.calculate("weight / 7") == 10
        assert calc.get_value("allergy") == 0
        assert calc.format_precision(calc.calculate("weight / 3")) == "23.33"

    def test_values_copied(self):
        """Test later changes to the source mapping are not seen."""
        values = {"weight": 70}
        calc = Calculator(values)
        values["weight"] = 80
        assert calc.calculate("weight") == 70

    def test_convert_unit_exported(self):
        """Test convert_unit is available from the calculator module."""
        assert convert_unit(1, "kg", "g") == 1000
