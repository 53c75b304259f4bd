"""Tests for the individual allocation strategies."""

import pytest

from budget_allocation.models import CategoryConstraint, DebtConstraint, GoalConstraint, ScenarioParameters
from budget_allocation.solver import (
    GoalKind,
    HeuristicSolver,
    MetaSolver,
    MinmaxSolver,
    PreemptiveSolver,
    SolverError,
    WeightedSolver,
    build_meta_graph,
    build_preemptive_graph,
)
from budget_allocation.solver.weighted import base_weights

ALL_SOLVERS = [PreemptiveSolver, WeightedSolver, MinmaxSolver, MetaSolver, HeuristicSolver]
STRUCTURED_SOLVERS = [PreemptiveSolver, WeightedSolver, MinmaxSolver, MetaSolver]


@pytest.fixture()
def two_goal_model(make_model):
    """Surplus of 1000 against two goals wanting 1000 each."""
    return make_model(
        2000,
        mandatory=[CategoryConstraint.mandatory("rent", 1000)],
        goals=[
            GoalConstraint("house", 1000, 5000, priority_weight=10),
            GoalConstraint("trip", 1000, 5000, priority_weight=30),
        ],
    )


class TestSharedInvariants:
    @pytest.mark.parametrize("solver_cls", ALL_SOLVERS)
    def test_budget_and_bounds(self, solver_cls, rich_model):
        result = solver_cls()(rich_model, ScenarioParameters())
        values = result["variable_values"]
        assert sum(values.values()) <= rich_model.total_income + 0.01
        for debt_id, debt in rich_model.debt_payments.items():
            assert values[debt_id] >= debt.minimum_payment - 1e-6
            assert values[debt_id] <= debt.current_balance + 1e-6
        for goal_id, goal in rich_model.goal_targets.items():
            assert 0 <= values[goal_id] <= goal.remaining_amount + 1e-6
        for category_id, category in rich_model.mandatory_expenses.items():
            assert values[category_id] == pytest.approx(category.minimum)

    @pytest.mark.parametrize("solver_cls", ALL_SOLVERS)
    def test_goals_partitioned(self, solver_cls, rich_model):
        result = solver_cls()(rich_model, ScenarioParameters())
        ids = result["achieved_goals"] + result["partial_goals"] + result["unachieved_goals"]
        assert len(ids) == len(set(ids))
        assert set(ids) == set(result["goal_deviations"])

    @pytest.mark.parametrize("solver_cls", STRUCTURED_SOLVERS)
    def test_floors_above_income_raise(self, solver_cls, infeasible_model):
        with pytest.raises(SolverError, match="exceed budget"):
            solver_cls()(infeasible_model, ScenarioParameters())

    @pytest.mark.parametrize("solver_cls", ALL_SOLVERS)
    def test_deterministic(self, solver_cls, rich_model):
        first = solver_cls()(rich_model, ScenarioParameters())
        second = solver_cls()(rich_model, ScenarioParameters())
        assert first["variable_values"] == pytest.approx(second["variable_values"])
        assert first["achieved_goals"] == second["achieved_goals"]


class TestPreemptiveSolver:
    @pytest.fixture()
    def ranked_model(self, make_model, emergency_goal):
        def build(extra_goals=()):
            return make_model(
                3000,
                mandatory=[CategoryConstraint.mandatory("rent", 1500)],
                debts=[DebtConstraint("cc", 100, 5000, 0.18)],
                goals=[emergency_goal, GoalConstraint("house", 800, 5000, priority_weight=10), *extra_goals],
            )

        return build

    def test_levels(self, basic_model):
        graph = build_preemptive_graph(basic_model, ScenarioParameters())
        levels = {goal.goal_id: goal.priority for goal in graph.goals}
        assert levels == {"mandatory_rent": 1, "debt_min_cc": 2, "goal_ef": 3, "debt_extra_cc": 4}
        assert all(goal.kind is GoalKind.AT_LEAST for goal in graph.goals)

    def test_emergency_ahead_of_urgent_goal(self, make_model, emergency_goal):
        model = make_model(
            2000,
            mandatory=[CategoryConstraint.mandatory("rent", 1500)],
            goals=[emergency_goal, GoalConstraint("medical", 500, 5000, priority_label="critical")],
        )
        result = PreemptiveSolver()(model, ScenarioParameters())
        assert result["variable_values"]["ef"] == pytest.approx(500, abs=0.01)
        assert result["variable_values"]["medical"] == pytest.approx(0, abs=0.01)
        assert "goal_ef" in result["achieved_goals"]
        assert "goal_medical" in result["unachieved_goals"]

    def test_allocation(self, ranked_model):
        result = PreemptiveSolver()(ranked_model(), ScenarioParameters())
        values = result["variable_values"]
        assert values["ef"] == pytest.approx(500, abs=0.01)
        assert values["cc"] == pytest.approx(130, abs=0.01)
        assert values["house"] == pytest.approx(800, abs=0.01)
        assert result["status"] == "Optimal"
        assert result["detail"]["levels"] == 5

    def test_lower_priority_goal_does_not_change_higher_levels(self, ranked_model):
        params = ScenarioParameters()
        without = PreemptiveSolver()(ranked_model(), params)["variable_values"]
        with_trip = PreemptiveSolver()(ranked_model([GoalConstraint("trip", 300, 2000, priority_weight=50)]), params)
        values = with_trip["variable_values"]
        for variable_id in ("rent", "cc", "ef", "house"):
            assert values[variable_id] == pytest.approx(without[variable_id], abs=0.01)
        assert values["trip"] == pytest.approx(70, abs=0.01)

    def test_flexible_minimum_is_soft(self, make_model):
        model = make_model(
            1100,
            mandatory=[CategoryConstraint.mandatory("rent", 1000)],
            flexible=[CategoryConstraint.flexible("dining", 200, 400)],
        )
        result = PreemptiveSolver()(model, ScenarioParameters())
        assert result["variable_values"]["dining"] == pytest.approx(100, abs=0.01)
        assert result["unachieved_goals"] == ["flexible_dining"]

    def test_invalid_tolerance(self):
        with pytest.raises(ValueError, match="positive"):
            PreemptiveSolver(tolerance=0)


class TestWeightedSolver:
    def test_base_weights(self):
        weights = base_weights(ScenarioParameters().surplus_allocation)
        assert weights == pytest.approx(
            {"emergency": 20.0, "debt_extra": 12.0, "high_goal": 6.0, "low_goal": 3.0, "flexible": 1.0}
        )

    def test_heavier_goal_fills_faster(self, two_goal_model):
        result = WeightedSolver()(two_goal_model, ScenarioParameters())
        values = result["variable_values"]
        assert values["house"] == pytest.approx(2000 / 3, abs=0.01)
        assert values["trip"] == pytest.approx(1000 / 3, abs=0.01)
        assert result["detail"]["weighted_deviation"] == pytest.approx(4000, abs=0.1)
        assert "goal_house" in result["partial_goals"]
        assert "goal_trip" in result["unachieved_goals"]
        assert result["status"] == "Converged"

    def test_everything_met_with_enough_income(self, basic_model):
        result = WeightedSolver()(basic_model, ScenarioParameters())
        assert result["unachieved_goals"] == []
        assert result["partial_goals"] == []
        assert result["detail"]["weighted_deviation"] == pytest.approx(0, abs=0.1)

    def test_iteration_cap(self, rich_model):
        result = WeightedSolver(max_iterations=1)(rich_model, ScenarioParameters())
        assert result["iterations"] <= 1

    def test_invalid_iterations(self):
        with pytest.raises(ValueError, match="max_iterations"):
            WeightedSolver(max_iterations=0)


class TestMinmaxSolver:
    def test_equal_goals_share_evenly(self, make_model):
        model = make_model(
            2000,
            mandatory=[CategoryConstraint.mandatory("rent", 1000)],
            goals=[
                GoalConstraint("a", 1000, 5000, priority_weight=20),
                GoalConstraint("b", 1000, 5000, priority_weight=20),
            ],
        )
        result = MinmaxSolver()(model, ScenarioParameters())
        achievements = result["detail"]["achievements"]
        assert achievements["goal_a"] == pytest.approx(50, abs=1)
        assert achievements["goal_b"] == pytest.approx(50, abs=1)
        assert result["detail"]["min_achievement"] == pytest.approx(50, abs=1)
        assert set(result["partial_goals"]) == {"goal_a", "goal_b"}
        assert result["unachieved_goals"] == []

    def test_below_half_is_unachieved(self, make_model):
        model = make_model(
            1980,
            mandatory=[CategoryConstraint.mandatory("rent", 1000)],
            goals=[
                GoalConstraint("a", 1000, 5000, priority_weight=20),
                GoalConstraint("b", 1000, 5000, priority_weight=20),
            ],
        )
        result = MinmaxSolver()(model, ScenarioParameters())
        assert result["detail"]["achievements"]["goal_a"] == pytest.approx(49, abs=0.01)
        assert set(result["unachieved_goals"]) == {"goal_a", "goal_b"}
        assert result["partial_goals"] == []

    def test_lifts_lowest_first(self, two_goal_model):
        result = MinmaxSolver()(two_goal_model, ScenarioParameters())
        values = result["variable_values"]
        assert values["house"] == pytest.approx(values["trip"], abs=0.01)

    def test_balanced_when_all_met(self, basic_model):
        result = MinmaxSolver()(basic_model, ScenarioParameters())
        assert result["detail"]["is_balanced"] is True
        assert result["detail"]["min_achievement"] == pytest.approx(100)

    def test_iteration_cap(self, two_goal_model):
        result = MinmaxSolver(max_iterations=3)(two_goal_model, ScenarioParameters())
        assert result["iterations"] == 3
        assert result["detail"]["min_achievement"] == pytest.approx(15, abs=0.01)

    def test_invalid_increment(self):
        with pytest.raises(ValueError, match="Increment"):
            MinmaxSolver(increment=0)


class TestMetaSolver:
    def test_tiers(self, basic_model):
        graph = build_meta_graph(basic_model, ScenarioParameters())
        goals = {goal.goal_id: goal for goal in graph.goals}
        assert [t.value for t in goals["goal_ef"].tiers] == pytest.approx([250, 500, 600])
        assert [t.reward for t in goals["goal_ef"].tiers] == [6, 12, 18]
        assert [t.value for t in goals["debt_extra_cc"].tiers] == pytest.approx([150, 172.5, 195])
        assert [t.reward for t in goals["debt_extra_cc"].tiers] == [50, 75, 100]

    def test_debt_tiers_capped_at_balance(self, make_model):
        model = make_model(1000, debts=[DebtConstraint("tiny", 150, 160, 0.1)])
        graph = build_meta_graph(model, ScenarioParameters())
        assert [t.value for t in graph.goals[0].tiers] == pytest.approx([150, 160, 160])

    def test_everything_ideal_with_enough_income(self, basic_model):
        result = MetaSolver()(basic_model, ScenarioParameters())
        values = result["variable_values"]
        assert values["cc"] == pytest.approx(195)
        assert values["ef"] == pytest.approx(600)
        assert result["detail"]["reward_ratio"] == pytest.approx(1.0)
        assert result["detail"]["chosen_tiers"]["goal_ef"] == "ideal"
        assert result["status"] == "Optimal"

    def test_scarce_budget_takes_affordable_tier(self, make_model, emergency_goal):
        model = make_model(
            1700,
            mandatory=[CategoryConstraint.mandatory("rent", 1500)],
            goals=[emergency_goal, GoalConstraint("trip", 300, 1000, priority_weight=30)],
        )
        result = MetaSolver()(model, ScenarioParameters())
        assert result["variable_values"]["trip"] == pytest.approx(150)
        assert result["variable_values"]["ef"] == pytest.approx(0)
        assert result["partial_goals"] == ["goal_trip"]
        assert result["unachieved_goals"] == ["goal_ef"]
        assert result["detail"]["reward_ratio"] == pytest.approx(101 / 121)

    def test_invalid_priority_base(self):
        with pytest.raises(ValueError, match="greater than 1"):
            MetaSolver(priority_base=1)


class TestHeuristicSolver:
    @pytest.fixture()
    def bucket_model(self, make_model, emergency_goal):
        return make_model(
            3000,
            mandatory=[CategoryConstraint.mandatory("rent", 1000)],
            flexible=[CategoryConstraint.flexible("dining", 100, 300)],
            debts=[DebtConstraint("debt-a", 100, 5000, 0.25), DebtConstraint("debt-b", 50, 1000, 0.06)],
            goals=[emergency_goal, GoalConstraint("trip", 300, 2000, priority_weight=20)],
        )

    def test_buckets(self, bucket_model):
        result = HeuristicSolver()(bucket_model, ScenarioParameters())
        values = result["variable_values"]
        assert values["rent"] == pytest.approx(1000)
        assert values["ef"] == pytest.approx(740)
        assert values["debt-a"] == pytest.approx(655)
        assert values["debt-b"] == pytest.approx(50)
        assert values["trip"] == pytest.approx(300)
        assert values["dining"] == pytest.approx(200)
        assert result["status"] == "Heuristic"
        assert result["detail"] == {"feasible": True, "deficit": 0.0}

    def test_debt_tie_goes_to_lowest_id(self, make_model):
        model = make_model(
            1000,
            debts=[DebtConstraint("b", 10, 1000, 0.12), DebtConstraint("a", 10, 1000, 0.11)],
        )
        values = HeuristicSolver()(model, ScenarioParameters())["variable_values"]
        assert values["a"] > 10
        assert values["b"] == pytest.approx(10)

    def test_fixed_payment_used(self, make_model):
        model = make_model(1000, debts=[DebtConstraint("car", 100, 9000, 0.05, fixed_payment=250)])
        params = ScenarioParameters()
        values = HeuristicSolver()(model, params)["variable_values"]
        assert values["car"] >= 250

    def test_infeasible(self, infeasible_model, caplog):
        with caplog.at_level("WARNING", logger="budget_allocation.solver.heuristic"):
            result = HeuristicSolver()(infeasible_model, ScenarioParameters())
        assert result["status"] == "Infeasible"
        assert result["detail"]["feasible"] is False
        assert result["detail"]["deficit"] == pytest.approx(100)
        assert result["variable_values"] == {"rent": 900, "dining": 0.0, "loan": 200, "ef": 0.0}
        assert "Hard floors exceed income" in caplog.text
