"""Tests for sensitivity analysis."""

import copy

import pytest

from budget_allocation.models import CategoryConstraint, DebtConstraint
from budget_allocation.sensitivity import SensitivityAnalyzer, SensitivityOptions, classify_sensitivity


@pytest.fixture()
def tight_model(make_model, emergency_goal):
    """Income 2200 against rent 1500; the emergency fund absorbs income changes."""
    return make_model(2200, mandatory=[CategoryConstraint.mandatory("rent", 1500)], goals=[emergency_goal])


@pytest.fixture()
def risky_model(make_model):
    """Thin margin over the hard floors and a large high-interest balance."""
    return make_model(
        2000,
        mandatory=[CategoryConstraint.mandatory("rent", 1750)],
        debts=[DebtConstraint("loan", 100, 40000, 0.18, debt_name="PersonalLoan")],
    )


class TestClassifySensitivity:
    @pytest.mark.parametrize(
        ("current", "higher", "lower", "expected"),
        [(0, 10, 0, "low"), (100, 160, 100, "high"), (100, 130, 100, "medium"), (100, 110, 100, "low")],
    )
    def test_labels(self, current, higher, lower, expected):
        assert classify_sensitivity(current, higher, lower) == expected


class TestIncomeSensitivity:
    def test_monotone_in_income(self, tight_model):
        analysis = SensitivityAnalyzer().analyze(tight_model)
        by_change = {round(s.change_percent): s for s in analysis.income_sensitivity}
        assert sorted(by_change) == [-20, -10, 10, 20]
        assert by_change[20].goal_allocation_delta >= by_change[-20].goal_allocation_delta
        assert by_change[20].flexible_allocation_delta >= by_change[-20].flexible_allocation_delta
        assert by_change[-20].goal_allocation_delta == pytest.approx(-350)
        assert by_change[-20].new_income == pytest.approx(1760)
        assert by_change[-20].affected_goals == ["EmergencyFund"]
        assert by_change[20].affected_goals == []

    def test_infeasible_drop(self, risky_model):
        analysis = SensitivityAnalyzer().analyze(risky_model)
        drop = analysis.income_sensitivity[0]
        assert drop.is_feasible is False
        assert drop.deficit == pytest.approx(250)
        assert "uncovered" in drop.recommendation

    def test_custom_changes(self, tight_model):
        options = SensitivityOptions(income_changes=(-0.5,), analyze_goal_priority=False)
        analysis = SensitivityAnalyzer(options=options).analyze(tight_model)
        assert len(analysis.income_sensitivity) == 1
        assert analysis.income_sensitivity[0].change_percent == pytest.approx(-50)
        assert analysis.income_sensitivity[0].is_feasible is False

    def test_model_not_mutated(self, rich_model):
        snapshot = copy.deepcopy(rich_model)
        SensitivityAnalyzer().analyze(rich_model)
        assert rich_model == snapshot


class TestRateSensitivity:
    def test_rate_shocks(self, basic_model):
        results = SensitivityAnalyzer().analyze_interest_rates(basic_model)
        assert [r.rate_change for r in results] == [0.02, 0.05]
        small, large = results
        assert small.new_rate == pytest.approx(0.20)
        assert small.extra_monthly_interest == pytest.approx(5000 * 0.02 / 12)
        assert large.new_rate == pytest.approx(0.23)
        assert large.new_priority == 1
        assert large.strategy_change_needed is True
        assert large.recommended_action.startswith("Prioritize paying down CreditCard")

    def test_rate_capped_at_one(self, make_model):
        model = make_model(1000, debts=[DebtConstraint("payday", 10, 500, 0.99)])
        results = SensitivityAnalyzer().analyze_interest_rates(model)
        assert results[-1].new_rate == 1.0
        assert results[-1].strategy_change_needed is False

    def test_refinance_advice(self, risky_model):
        options = SensitivityOptions(rate_changes=(0.05,))
        result = SensitivityAnalyzer(options=options).analyze_interest_rates(risky_model)[0]
        assert result.extra_monthly_interest == pytest.approx(40000 * 0.05 / 12)
        assert result.strategy_change_needed is True


class TestGoalPrioritySensitivity:
    def test_skips_emergency_goals(self, rich_model):
        analysis = SensitivityAnalyzer().analyze(rich_model)
        ids = [p.goal_id for p in analysis.goal_priority_sensitivity]
        assert ids == ["house", "trip"]
        assert analysis.goal_priority_sensitivity[0].current_weight == 10
        for result in analysis.goal_priority_sensitivity:
            assert result.sensitivity in ("low", "medium", "high")

    def test_disabled(self, rich_model):
        options = SensitivityOptions(analyze_goal_priority=False)
        analysis = SensitivityAnalyzer(options=options).analyze(rich_model)
        assert analysis.goal_priority_sensitivity == []


class TestSummary:
    def test_high_risk(self, risky_model):
        summary = SensitivityAnalyzer().analyze(risky_model).summary
        assert summary.most_sensitive_to_income is True
        assert summary.high_risk_debts == ["PersonalLoan"]
        assert summary.income_break_even_point == pytest.approx(1850)
        assert summary.risk_score == 7
        assert summary.risk_level == "high"
        assert len(summary.recommendations) == 3

    def test_medium_risk(self, risky_model):
        options = SensitivityOptions(income_changes=(0.1,), analyze_goal_priority=False)
        summary = SensitivityAnalyzer(options=options).analyze(risky_model).summary
        assert summary.most_sensitive_to_income is False
        assert summary.risk_score == 4
        assert summary.risk_level == "medium"

    def test_low_risk(self, basic_model, caplog):
        with caplog.at_level("INFO", logger="budget_allocation.sensitivity"):
            summary = SensitivityAnalyzer().analyze(basic_model).summary
        assert summary.risk_score == 0
        assert summary.risk_level == "low"
        assert summary.high_risk_debts == []
        assert summary.recommendations == []
        assert "risk level low" in caplog.text
