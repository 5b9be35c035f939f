import pytest

from conftest import make_fact
from financials.core.exceptions import ConfigurationError, FormulaError
from financials.models.metrics import MetricDefinition
from financials.services.metrics import MetricsEngine, actual_facts_for_period, evaluate_formula, load_metric_definitions

PERIOD = "2024-01-01"


@pytest.fixture
def engine():
    return MetricsEngine(
        [
            MetricDefinition(
                id="net_arr_after_churn",
                formula="arr * (1 - churn_rate)",
                inputs=["arr", "churn_rate"],
                unit="currency",
            ),
            MetricDefinition(id="arr_from_mrr", formula="mrr * 12", inputs=["mrr"], unit="currency"),
            MetricDefinition(
                id="runway_months", formula="cash_balance / burn_rate", inputs=["cash_balance", "burn_rate"], unit="months"
            ),
        ]
    )


class TestCompute:
    def test_metric_with_missing_input_is_omitted(self, engine):
        metrics = engine.compute("acme", PERIOD, {"arr": 1200.0})
        assert metrics == []

    def test_computes_all_available_metrics(self, engine):
        metrics = engine.compute("acme", PERIOD, {"arr": 1000.0, "churn_rate": 0.1, "mrr": 50.0})

        by_id = {metric.metric_id: metric for metric in metrics}
        assert set(by_id) == {"net_arr_after_churn", "arr_from_mrr"}
        assert by_id["net_arr_after_churn"].value == pytest.approx(900.0)
        assert by_id["net_arr_after_churn"].inputs == {"arr": 1000.0, "churn_rate": 0.1}
        assert by_id["arr_from_mrr"].value == 600.0
        assert by_id["arr_from_mrr"].unit == "currency"
        assert by_id["arr_from_mrr"].period == PERIOD

    def test_division_by_zero_is_omitted(self, engine):
        metrics = engine.compute("acme", PERIOD, {"cash_balance": 100.0, "burn_rate": 0.0})
        assert metrics == []

    def test_scenario_filtering_uses_actuals_only(self, engine):
        facts = [
            make_fact("mrr", 50.0),
            make_fact("mrr", 80.0, scenario="budget"),
            make_fact("mrr", 70.0, scenario="forecast"),
            make_fact("mrr", 60.0, date="2024-02-01"),
        ]

        actuals = actual_facts_for_period(facts, PERIOD)
        metrics = engine.compute("acme", PERIOD, actuals)

        assert actuals == {"mrr": 50.0}
        assert metrics[0].value == 600.0


class TestFormula:
    def test_evaluates_arithmetic(self):
        assert evaluate_formula("(a - b) / a * 100", {"a": 200.0, "b": 50.0}) == 75.0
        assert evaluate_formula("-a ** 2 % 7", {"a": 3.0}) == pytest.approx(-9.0 % 7)

    @pytest.mark.parametrize(
        "formula",
        [
            "__import__('os').system('true')",
            "a.real",
            "a if a else 0",
            "a > 1",
            "max(a, 1)",
            "[a]",
            "True + a",
        ],
    )
    def test_rejects_non_arithmetic(self, formula):
        with pytest.raises(FormulaError):
            evaluate_formula(formula, {"a": 1.0})

    def test_unknown_name_raises(self):
        with pytest.raises(FormulaError):
            evaluate_formula("a + b", {"a": 1.0})

    def test_non_finite_result_is_none(self):
        assert evaluate_formula("a ** 10000", {"a": 10.0}) is None


class TestDefinitions:
    def test_loads_bundled_definitions(self, metric_definitions):
        ids = {definition.id for definition in metric_definitions}
        assert {"net_arr_after_churn", "runway_months", "gross_margin_pct"} <= ids

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_metric_definitions(tmp_path / "missing.yaml")

    def test_undeclared_input(self, tmp_path):
        path = tmp_path / "metrics.yaml"
        path.write_text("metrics:\n  - id: bad\n    formula: a + b\n    inputs: [a]\n")

        with pytest.raises(ConfigurationError):
            load_metric_definitions(path)

    def test_unsafe_formula(self, tmp_path):
        path = tmp_path / "metrics.yaml"
        path.write_text("metrics:\n  - id: bad\n    formula: open(a)\n    inputs: [a]\n")

        with pytest.raises(ConfigurationError):
            load_metric_definitions(path)
