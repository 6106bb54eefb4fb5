import pytest

from tabular_analytics.errors import FormulaEvaluationError, FormulaSyntaxError
from tabular_analytics.formula import (
    evaluate,
    execute_formula,
    generate_preview,
    parse_formula,
    validate_formula,
    variables,
)
from tabular_analytics.schemas import Record

COLUMNS = ["price", "quantity"]


class TestParse:
    def test_variables_are_column_references(self):
        formula = parse_formula("price * quantity")
        assert formula.variables == {"price", "quantity"}
        assert variables(formula) is formula.variables

    def test_numbers_are_not_variables(self):
        assert parse_formula("(price + 2.5) / 10").variables == {"price"}

    @pytest.mark.parametrize(
        "expr",
        ["invalid formula (", "", "   ", "price *", "(price + 1", "price + 1)", "price $ 2", "()", "2price"],
    )
    def test_malformed_formulas_raise(self, expr):
        with pytest.raises(FormulaSyntaxError):
            parse_formula(expr)

    def test_function_calls_are_rejected(self):
        with pytest.raises(FormulaSyntaxError):
            parse_formula("sqrt(price)")

    def test_operator_precedence_and_unary_minus(self):
        formula = parse_formula("-price + quantity * 2 - (1 - 3)")
        assert evaluate(formula, {"price": 4, "quantity": 3}) == -4 + 6 + 2


class TestEvaluate:
    def test_numeric_text_is_trimmed(self):
        assert evaluate(parse_formula("a + b"), {"a": " 1.5 ", "b": "2"}) == 3.5

    def test_formatted_text_is_not_coerced(self):
        with pytest.raises(FormulaEvaluationError):
            evaluate(parse_formula("a * 2"), {"a": "$1,000"})

    def test_booleans_are_not_numbers(self):
        with pytest.raises(FormulaEvaluationError):
            evaluate(parse_formula("a + 1"), {"a": True})

    def test_division_by_zero(self):
        with pytest.raises(FormulaEvaluationError):
            evaluate(parse_formula("a / b"), {"a": 1, "b": 0})

    def test_accepts_records(self):
        record = Record(id=1, owner_id=1, dataset_id=1, index=0, fields={"price": 3, "quantity": 4})
        assert evaluate(parse_formula("price * quantity"), record) == 12


def test_execute_formula_continues_past_bad_rows():
    result = execute_formula(
        parse_formula("price * quantity"),
        [{"price": 10, "quantity": 5}, {"price": 20}, {"quantity": 2}],
    )
    assert result.values == [50, None, None]
    assert len(result.errors) == 2
    assert result.errors[0].startswith("Row 2:")
    assert "price" in result.errors[1]


def test_execute_formula_accepts_text():
    assert execute_formula("price - 1", [{"price": 3}]).values == [2]


def test_validate_reports_unknown_columns():
    result = validate_formula("price * volume", COLUMNS)
    assert result.is_valid is False
    assert "Column 'volume' not found in dataset" in result.errors


def test_validate_warns_on_constant_formula():
    result = validate_formula("5 + 3", COLUMNS)
    assert result.is_valid is True
    assert result.errors == []
    assert any("no column references" in w for w in result.warnings)


def test_validate_rejects_constant_division_by_zero():
    result = validate_formula("1 / 0", COLUMNS)
    assert result.is_valid is False
    assert result.errors[0].startswith("Formula evaluation error")


def test_validate_reports_syntax_errors():
    result = validate_formula("price *", COLUMNS)
    assert result.is_valid is False
    assert result.errors


def test_preview_is_capped_at_ten_rows():
    rows = [{"price": i, "quantity": 2} for i in range(15)]
    preview = generate_preview("price * quantity", rows, COLUMNS)
    assert len(preview.preview_values) == 10
    assert preview.preview_values[:3] == [0, 2, 4]
    assert preview.errors == []


def test_preview_respects_custom_limit():
    rows = [{"price": 1, "quantity": 1}] * 5
    assert len(generate_preview("price", rows, COLUMNS, limit=3).preview_values) == 3


def test_preview_skips_evaluation_when_invalid():
    rows = [{"price": 1, "volume": 2}]
    preview = generate_preview("price * volume", rows, COLUMNS)
    assert preview.preview_values == []
    assert "Column 'volume' not found in dataset" in preview.errors
