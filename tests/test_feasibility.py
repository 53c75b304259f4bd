"""Tests for feasibility checks and deficit suggestions."""

import copy

import pytest

from budget_allocation.feasibility import (
    INCOME_SUGGESTIONS,
    calculate_surplus,
    check_feasibility,
    hard_floor_total,
    suggestions_for_deficit,
)
from budget_allocation.models import CategoryConstraint, DebtConstraint


class TestCheckFeasibility:
    def test_feasible(self, basic_model):
        assert check_feasibility(basic_model) == (True, 0.0)

    def test_exact_deficit(self, infeasible_model):
        feasible, deficit = check_feasibility(infeasible_model)
        assert feasible is False
        assert deficit == pytest.approx(100.0)

    def test_boundary_is_feasible(self, make_model):
        model = make_model(
            1000,
            mandatory=[CategoryConstraint.mandatory("rent", 800)],
            debts=[DebtConstraint("cc", 200, 1000, 0.1)],
        )
        assert check_feasibility(model) == (True, 0.0)

    def test_flexible_minimums_are_not_floors(self, infeasible_model):
        assert hard_floor_total(infeasible_model) == pytest.approx(1100.0)

    def test_infeasible_logs_warning(self, infeasible_model, caplog):
        with caplog.at_level("WARNING", logger="budget_allocation.feasibility"):
            check_feasibility(infeasible_model)
        assert "exceed income by 100.00" in caplog.text


class TestCalculateSurplus:
    def test_surplus(self, basic_model):
        assert calculate_surplus(basic_model) == pytest.approx(3350.0)

    def test_clamped_at_zero(self, infeasible_model):
        assert calculate_surplus(infeasible_model) == 0.0


class TestSuggestionsForDeficit:
    def test_opens_with_shortfall_and_ends_with_income(self, infeasible_model):
        suggestions = suggestions_for_deficit(infeasible_model, 100.0)
        assert "100.00 short" in suggestions[0]
        assert suggestions[-len(INCOME_SUGGESTIONS):] == INCOME_SUGGESTIONS

    def test_order(self, make_model, category_names):
        model = make_model(
            1000,
            mandatory=[CategoryConstraint.mandatory("rent", 1200)],
            flexible=[
                CategoryConstraint.flexible("groceries", 300, 500, priority=1),
                CategoryConstraint.flexible("dining", 50, 200, priority=3),
            ],
            debts=[
                DebtConstraint("small", 10, 900, 0.22, debt_name="StoreCard"),
                DebtConstraint("big", 10, 9000, 0.24, debt_name="CreditCard"),
                DebtConstraint("car", 10, 9000, 0.05, debt_name="CarLoan"),
            ],
        )
        suggestions = suggestions_for_deficit(model, 230.0, category_names)
        assert suggestions[1] == "Reduce flexible spending on Dining out by up to 200.00"
        assert suggestions[2] == "Reduce flexible spending on Groceries by up to 500.00"
        assert suggestions[3].startswith("Consider consolidating CreditCard (24% interest)")
        assert suggestions[4].startswith("Consider consolidating StoreCard")
        assert not any("CarLoan" in s for s in suggestions)

    def test_model_not_modified(self, infeasible_model):
        snapshot = copy.deepcopy(infeasible_model)
        suggestions_for_deficit(infeasible_model, 100.0)
        assert infeasible_model == snapshot
