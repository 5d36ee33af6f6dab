"""Unit tests for FormulaEvaluator and evaluate()."""

import math

import pytest

from dosecalc.core.exceptions import (
    FormulaEvaluationError,
    FormulaSyntaxError,
    FunctionArgumentError,
    IncompatibleUnitsError,
    NonNumericValueError,
    UndefinedVariableError,
    UnknownFunctionError,
)
from dosecalc.formula.evaluator import (
    EvaluationMode,
    FormulaEvaluator,
    MissingVariablePolicy,
    evaluate,
)


class TestFormulaEvaluator:
    """Tests for FormulaEvaluator class."""

    def test_default_policy_is_raise(self):
        """Test the evaluator is strict unless told otherwise."""
        assert FormulaEvaluator().policy is MissingVariablePolicy.RAISE

    def test_evaluate_number_literal(self, parser):
        """Test evaluating a number literal."""
        assert FormulaEvaluator().evaluate(parser.parse("42")) == 42.0

    def test_arithmetic(self):
        """Test the arithmetic operators."""
        evaluator = FormulaEvaluator()
        assert evaluator.evaluate_expression("2 + 3 * 4") == 14.0
        assert evaluator.evaluate_expression("(2 + 3) * 4") == 20.0
        assert evaluator.evaluate_expression("10 / 4") == 2.5
        assert evaluator.evaluate_expression("10 % 4") == 2.0
        assert evaluator.evaluate_expression("2 ^ 10") == 1024.0

    def test_power_right_associative(self):
        """Test 2^3^2 is 2^9."""
        assert FormulaEvaluator().evaluate_expression("2 ^ 3 ^ 2") == 512.0

    def test_unary_minus_binds_looser_than_power(self):
        """Test -2^2 is -4."""
        assert FormulaEvaluator().evaluate_expression("-2 ^ 2") == -4.0
        assert FormulaEvaluator().evaluate_expression("(-2) ^ 2") == 4.0

    def test_modulo_sign_follows_dividend(self):
        """Test the remainder takes the sign of the dividend."""
        assert FormulaEvaluator().evaluate_expression("-7 % 3") == -1.0

    def test_variables(self, patient_context):
        """Test evaluating with nested variables."""
        evaluator = FormulaEvaluator()
        result = evaluator.evaluate_expression("patient.weight * dosePerKg", patient_context)
        assert result == 175.0
        assert evaluator.evaluate_expression("values[0] + values[2]", patient_context) == 40.0
        assert (
            evaluator.evaluate_expression("data.measurements[1].values[1]", patient_context) == 4.5
        )

    def test_defaults(self):
        """Test defaults are used for variables absent from the context."""
        evaluator = FormulaEvaluator()
        assert evaluator.evaluate_expression("a + b", {"a": 1}, {"a": 100, "b": 2}) == 3.0

    def test_booleans_coerce(self, patient_context):
        """Test booleans count as 1 and 0."""
        evaluator = FormulaEvaluator()
        assert evaluator.evaluate_expression("isPediatric + 1", patient_context) == 1.0
        assert evaluator.evaluate_expression("flag * 5", {"flag": True}) == 5.0

    def test_constants(self):
        """Test the built-in constants."""
        evaluator = FormulaEvaluator()
        assert evaluator.evaluate_expression("PI") == math.pi
        assert evaluator.evaluate_expression("E") == math.e
        assert evaluator.evaluate_expression("Infinity") == math.inf
        assert math.isnan(evaluator.evaluate_expression("NaN"))
        assert evaluator.evaluate_expression("true + true + false") == 2.0

    def test_constants_not_shadowed(self):
        """Test a context key cannot redefine a constant."""
        assert FormulaEvaluator().evaluate_expression("PI", {"PI": 3}) == math.pi

    def test_division_by_zero_is_ieee(self):
        """Test division by zero follows IEEE-754."""
        evaluator = FormulaEvaluator()
        assert evaluator.evaluate_expression("10 / 0") == math.inf
        assert evaluator.evaluate_expression("-10 / 0") == -math.inf
        assert math.isnan(evaluator.evaluate_expression("0 / 0"))
        assert math.isnan(evaluator.evaluate_expression("5 % 0"))

    def test_function_calls(self):
        """Test library functions are callable."""
        evaluator = FormulaEvaluator()
        assert evaluator.evaluate_expression("max(1, 5, 3)") == 5.0
        assert evaluator.evaluate_expression("round(sqrt(16) + 0.5)") == 5.0

    def test_convert_with_string_literals(self):
        """Test convert accepts quoted unit names."""
        assert FormulaEvaluator().evaluate_expression('convert(2, "kg", "g")') == 2000.0

    def test_convert_with_unit_variables(self):
        """Test convert accepts unit names held in variables."""
        context = {"weight_kg": 70, "kg": "kg", "lb": "lb"}
        result = FormulaEvaluator().evaluate_expression("convert(weight_kg, kg, lb)", context)
        assert result == pytest.approx(154.32, abs=0.01)


class TestStrictEvaluation:
    """Tests for the RAISE missing-variable policy."""

    def test_missing_variable_raises(self):
        """Test a missing variable names itself in the error."""
        with pytest.raises(UndefinedVariableError, match="unknownVar") as exc_info:
            evaluate("unknownVar * 2", {})
        assert exc_info.value.variable == "unknownVar"

    def test_null_variable_raises(self, patient_context):
        """Test a null variable raises."""
        with pytest.raises(UndefinedVariableError, match="allergy' is null"):
            evaluate("allergy + 1", patient_context)

    def test_syntax_error_raises(self):
        """Test syntax errors propagate."""
        with pytest.raises(FormulaSyntaxError):
            evaluate("2 + + 3")

    def test_unknown_function_raises_with_suggestion(self):
        """Test unknown functions suggest a close match."""
        with pytest.raises(UnknownFunctionError) as exc_info:
            evaluate("sqr(4)")
        assert exc_info.value.name == "sqr"
        assert exc_info.value.suggestion == "sqrt"
        assert "Did you mean 'sqrt'?" in exc_info.value.message

    def test_dotted_function_name_is_unknown(self):
        """Test calling a property path is not a way into host objects."""
        with pytest.raises(UnknownFunctionError):
            evaluate("weight.__class__()", {"weight": 70})

    def test_wrong_arity_raises(self):
        """Test wrong argument counts raise."""
        with pytest.raises(FunctionArgumentError, match="requires exactly 2"):
            evaluate("pow(2)")
        with pytest.raises(FunctionArgumentError, match="requires exactly 1"):
            evaluate("sqrt(1, 2)")

    def test_non_numeric_operand_raises(self):
        """Test strings cannot take part in arithmetic."""
        with pytest.raises(NonNumericValueError):
            evaluate("name * 2", {"name": "John"})
        with pytest.raises(NonNumericValueError):
            evaluate("values + 1", {"values": [1, 2]})

    def test_string_result_raises(self):
        """Test a formula must produce a number."""
        with pytest.raises(FormulaEvaluationError, match="not a number"):
            evaluate('"kg"')

    def test_incompatible_units_raise(self):
        """Test converting across unit categories raises."""
        with pytest.raises(IncompatibleUnitsError, match="Incompatible"):
            evaluate('convert(70, "kg", "cm")')

    def test_non_string_unit_raises(self):
        """Test units of convert must be unit names."""
        with pytest.raises(FormulaEvaluationError):
            evaluate("convert(1, 2, 3)")

    def test_deep_nesting_is_reported(self):
        """Test exhausting the recursion limit is an evaluation error."""
        formula = "(" * 5000 + "1" + ")" * 5000
        with pytest.raises((FormulaEvaluationError, FormulaSyntaxError)):
            evaluate(formula)


class TestTolerantEvaluation:
    """Tests for the SUBSTITUTE_ZERO missing-variable policy."""

    def test_missing_variable_is_zero(self):
        """Test missing variables evaluate as 0."""
        assert evaluate("missing * 10", {}, mode=EvaluationMode.TOLERANT) == 0.0
        assert evaluate("missing + 3", {}, mode="tolerant") == 3.0

    def test_null_variable_is_zero(self, patient_context):
        """Test null variables evaluate as 0."""
        assert evaluate("allergy + 1", patient_context, mode="tolerant") == 1.0

    def test_errors_become_zero(self):
        """Test anything unevaluable yields 0."""
        assert evaluate("2 + + 3", mode="tolerant") == 0.0
        assert evaluate("nosuch(1)", mode="tolerant") == 0.0
        assert evaluate("name * 2", {"name": "x"}, mode="tolerant") == 0.0

    def test_empty_expression_is_zero(self):
        """Test empty expressions yield 0."""
        assert evaluate("", mode="tolerant") == 0.0
        assert evaluate("   ", mode="tolerant") == 0.0

    def test_failure_logged(self, caplog):
        """Test tolerant fallbacks log a warning."""
        with caplog.at_level("WARNING", logger="dosecalc.formula.evaluator"):
            evaluate("2 + + 3", mode="tolerant")
        assert "Expression evaluation failed" in caplog.text

    def test_division_by_zero_not_masked(self):
        """Test IEEE results are returned, not replaced by 0."""
        assert evaluate("10 / 0", mode="tolerant") == math.inf

    def test_mode_policy_mapping(self):
        """Test each mode maps to its missing-variable policy."""
        assert EvaluationMode.TOLERANT.missing_variable_policy is (
            MissingVariablePolicy.SUBSTITUTE_ZERO
        )
        assert EvaluationMode.STRICT.missing_variable_policy is MissingVariablePolicy.RAISE

    def test_unknown_mode_rejected(self):
        """Test an unknown mode name is a programming error."""
        with pytest.raises(ValueError):
            evaluate("1", mode="lenient")
