"""Weighted goal programming.

All goal deviations share one objective, ``sum(deviation * weight)``.
Surplus is spread in rounds, each goal receiving a share proportional to
its unmet need times its weight, so heavier goals fill faster without
strictly starving lighter ones.
"""

import logging

from budget_allocation.models import ConstraintModel, ScenarioParameters, SurplusAllocation
from budget_allocation.solver._common import (
    TOLERANCE,
    build_solver_result,
    build_variables,
    debt_extra_goal_id,
    debt_extra_target,
    debt_minimum_goal_id,
    deviation,
    ensure_floors_fit,
    flexible_goal_id,
    flexible_target,
    goal_contribution_target,
    mandatory_goal_id,
    room,
    savings_goal_id,
)
from budget_allocation.solver._types import Goal, GoalGraph, GoalKind, SolverResult

logger = logging.getLogger(__name__)

WEIGHT_MANDATORY = 10.0
WEIGHT_DEBT_MINIMUM = 8.0
HIGH_PRIORITY_WEIGHT_CUTOFF = 10
DEFAULT_MAX_ITERATIONS = 100


def base_weights(surplus: SurplusAllocation) -> dict[str, float]:
    """Per-bucket weights scaled by the scenario's surplus shares."""
    return {
        "emergency": 5.0 * surplus.emergency_fund_percent * 10,
        "debt_extra": 4.0 * surplus.debt_extra_percent * 10,
        "high_goal": 3.0 * surplus.goals_percent * 10,
        "low_goal": 1.5 * surplus.goals_percent * 10,
        "flexible": 1.0 * surplus.flexible_percent * 10,
    }


def build_weighted_graph(model: ConstraintModel, params: ScenarioParameters) -> GoalGraph:
    """Attach weighted goals to every variable.

    Hard floors carry fixed weights. Extra debt payments scale with the
    interest rate, goals with their bucket (emergency, urgent, other) and
    flexible categories with the flexible share.

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot.
    params : ScenarioParameters
        Scenario knobs.

    Returns
    -------
    GoalGraph
    """
    weights = base_weights(params.surplus_allocation)
    factor = params.goal_contribution_factor
    goals: list[Goal] = []
    for category_id, category in sorted(model.mandatory_expenses.items()):
        goal_id = mandatory_goal_id(category_id)
        goals.append(Goal(goal_id, category_id, GoalKind.AT_LEAST, category.minimum, WEIGHT_MANDATORY))
    for debt_id, debt in sorted(model.debt_payments.items()):
        goal_id = debt_minimum_goal_id(debt_id)
        goals.append(Goal(goal_id, debt_id, GoalKind.AT_LEAST, debt.minimum_payment, WEIGHT_DEBT_MINIMUM))
        target = debt_extra_target(debt, params.surplus_allocation.debt_extra_percent)
        weight = weights["debt_extra"] * debt.interest_rate * 10
        goals.append(Goal(debt_extra_goal_id(debt_id), debt_id, GoalKind.AT_LEAST, target, weight))
    for goal_id, goal in sorted(model.goal_targets.items()):
        if goal.is_emergency:
            weight = weights["emergency"]
        elif goal.priority_weight <= HIGH_PRIORITY_WEIGHT_CUTOFF:
            weight = weights["high_goal"]
        else:
            weight = weights["low_goal"]
        target = goal_contribution_target(goal, factor)
        goals.append(Goal(savings_goal_id(goal_id), goal_id, GoalKind.AT_LEAST, target, weight))
    for category_id, category in sorted(model.flexible_expenses.items()):
        target = flexible_target(category, params.flexible_spending_level)
        goals.append(Goal(flexible_goal_id(category_id), category_id, GoalKind.AT_LEAST, target, weights["flexible"]))
    return GoalGraph(variables=build_variables(model), goals=goals, budget=model.total_income)


class WeightedSolver:
    """Weighted-sum goal programming by proportional rounds.

    Parameters
    ----------
    max_iterations : int
        Cap on distribution rounds.
    tolerance : float
        Amounts below this are treated as zero.
    """

    def __init__(self, max_iterations: int = DEFAULT_MAX_ITERATIONS, tolerance: float = TOLERANCE) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def __call__(self, model: ConstraintModel, params: ScenarioParameters) -> SolverResult:
        """Distribute surplus in proportion to weighted unmet need.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        params : ScenarioParameters
            Scenario knobs.

        Returns
        -------
        SolverResult
            ``detail`` holds ``weighted_deviation`` and ``weighted_target``.

        Raises
        ------
        SolverError
            If hard floors exceed income.
        """
        graph = build_weighted_graph(model, params)
        graph.validate()
        ensure_floors_fit(graph)

        values = {variable_id: variable.lower for variable_id, variable in graph.variables.items()}
        remaining = graph.budget - sum(values.values())
        iterations = 0
        while iterations < self.max_iterations and remaining > self.tolerance:
            iterations += 1
            needs = [(goal, room(goal, graph, values[goal.variable_id])) for goal in graph.goals if goal.weight > 0]
            needs = [(goal, need) for goal, need in needs if need > self.tolerance]
            if not needs:
                break
            total_weighted_need = sum(need * goal.weight for goal, need in needs)
            round_budget = remaining
            distributed = 0.0
            for goal, need in needs:
                share = round_budget * need * goal.weight / total_weighted_need
                amount = min(share, room(goal, graph, values[goal.variable_id]), remaining)
                if amount <= self.tolerance:
                    continue
                values[goal.variable_id] += amount
                remaining -= amount
                distributed += amount
            if distributed <= self.tolerance:
                break

        weighted_deviation = 0.0
        weighted_target = 0.0
        achieved: list[str] = []
        partial: list[str] = []
        unachieved: list[str] = []
        for goal in graph.goals:
            value = values[goal.variable_id]
            gap = deviation(goal, value)
            weighted_deviation += gap * goal.weight
            weighted_target += goal.target * goal.weight
            received = value - graph.variables[goal.variable_id].lower > self.tolerance
            if gap < self.tolerance:
                achieved.append(goal.goal_id)
            elif received and gap < goal.target * 0.5:
                partial.append(goal.goal_id)
            else:
                unachieved.append(goal.goal_id)

        logger.debug("Weighted solve finished after %d rounds, %.2f left", iterations, remaining)
        converged = remaining <= self.tolerance or iterations < self.max_iterations
        return build_solver_result(
            status="Converged" if converged else "Iteration Limit",
            rule="weighted",
            graph=graph,
            values=values,
            achieved=achieved,
            partial=partial,
            unachieved=unachieved,
            iterations=iterations,
            detail={"weighted_deviation": weighted_deviation, "weighted_target": weighted_target},
        )
