"""Preemptive (lexicographic) goal programming.

Goals are ranked into strict priority levels. Each level is a linear program
over the budget the earlier levels left behind: it first minimizes the
level's weighted deviation, then spends as little as possible at that
optimum. The amounts it settles on become lower bounds for every later
level, so no later goal can take money back from an earlier one.
"""

import logging

import pulp as lp

from budget_allocation.models import ConstraintModel, ScenarioParameters
from budget_allocation.solver._common import (
    TOLERANCE,
    build_solver_result,
    build_variables,
    clamp,
    debt_extra_goal_id,
    debt_extra_target,
    debt_minimum_goal_id,
    deviation,
    ensure_floors_fit,
    flexible_goal_id,
    flexible_target,
    goal_contribution_target,
    mandatory_goal_id,
    savings_goal_id,
    split_achieved,
    solve_problem,
)
from budget_allocation.solver._types import Goal, GoalGraph, GoalKind, SolverResult

logger = logging.getLogger(__name__)

LEVEL_MANDATORY = 1
LEVEL_DEBT_MINIMUM = 2
LEVEL_EMERGENCY = 3
LEVEL_DEBT_EXTRA = 4
LEVEL_GOALS = 5
LEVEL_FLEXIBLE = 6


def build_preemptive_graph(model: ConstraintModel, params: ScenarioParameters) -> GoalGraph:
    """Rank every goal into one of six priority levels.

    Levels, in order: mandatory minimums, debt minimums, emergency-fund
    goals, extra debt payments, remaining goals, flexible spending. Within a
    level, debts weigh ``100 - priority`` and goals ``100 - priority_weight``.

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot.
    params : ScenarioParameters
        Contribution factor, flexible level, and debt-extra share.

    Returns
    -------
    GoalGraph
    """
    factor = params.goal_contribution_factor
    goals: list[Goal] = []
    for category_id, category in sorted(model.mandatory_expenses.items()):
        goal_id = mandatory_goal_id(category_id)
        goals.append(Goal(goal_id, category_id, GoalKind.AT_LEAST, category.minimum, 1.0, LEVEL_MANDATORY))
    debts = sorted(model.debt_payments.items())
    for debt_id, debt in debts:
        goal_id = debt_minimum_goal_id(debt_id)
        goals.append(Goal(goal_id, debt_id, GoalKind.AT_LEAST, debt.minimum_payment, 1.0, LEVEL_DEBT_MINIMUM))
    savings = sorted(model.goal_targets.items())
    for goal_id, goal in savings:
        if goal.is_emergency:
            target = goal_contribution_target(goal, factor)
            weight = 100.0 - goal.priority_weight
            goals.append(Goal(savings_goal_id(goal_id), goal_id, GoalKind.AT_LEAST, target, weight, LEVEL_EMERGENCY))
    extra_percent = params.surplus_allocation.debt_extra_percent
    for debt_id, debt in debts:
        target = debt_extra_target(debt, extra_percent)
        weight = 100.0 - debt.priority
        goals.append(Goal(debt_extra_goal_id(debt_id), debt_id, GoalKind.AT_LEAST, target, weight, LEVEL_DEBT_EXTRA))
    for goal_id, goal in savings:
        if not goal.is_emergency:
            target = goal_contribution_target(goal, factor)
            weight = 100.0 - goal.priority_weight
            goals.append(Goal(savings_goal_id(goal_id), goal_id, GoalKind.AT_LEAST, target, weight, LEVEL_GOALS))
    for category_id, category in sorted(model.flexible_expenses.items()):
        target = flexible_target(category, params.flexible_spending_level)
        weight = 100.0 - category.priority
        goal_id = flexible_goal_id(category_id)
        goals.append(Goal(goal_id, category_id, GoalKind.AT_LEAST, target, weight, LEVEL_FLEXIBLE))
    return GoalGraph(variables=build_variables(model), goals=goals, budget=model.total_income)


class PreemptiveSolver:
    """Lexicographic goal programming on PuLP/CBC.

    Parameters
    ----------
    tolerance : float
        Deviation below which a goal counts as achieved.
    """

    def __init__(self, tolerance: float = TOLERANCE) -> None:
        if tolerance <= 0:
            raise ValueError("Tolerance must be positive.")
        self.tolerance = tolerance

    def __call__(self, model: ConstraintModel, params: ScenarioParameters) -> SolverResult:
        """Solve each priority level in turn.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        params : ScenarioParameters
            Scenario knobs.

        Returns
        -------
        SolverResult

        Raises
        ------
        SolverError
            If hard floors exceed income or a level fails to solve.
        """
        graph = build_preemptive_graph(model, params)
        graph.validate()
        ensure_floors_fit(graph)

        values = {variable_id: variable.lower for variable_id, variable in graph.variables.items()}
        levels = sorted({goal.priority for goal in graph.goals})
        level_achieved: dict[int, int] = {}
        for level in levels:
            level_goals = [goal for goal in graph.goals if goal.priority == level]
            self._solve_level(graph, level, level_goals, values)
            level_achieved[level] = sum(
                1 for goal in level_goals if deviation(goal, values[goal.variable_id]) < self.tolerance
            )
            logger.debug("Level %d: %d/%d goals achieved", level, level_achieved[level], len(level_goals))

        achieved, remaining = split_achieved(graph, values, self.tolerance)
        return build_solver_result(
            status="Optimal",
            rule="preemptive",
            graph=graph,
            values=values,
            achieved=achieved,
            partial=[],
            unachieved=[goal.goal_id for goal in remaining],
            iterations=len(levels),
            detail={"levels": len(levels), "level_achieved": level_achieved},
        )

    def _solve_level(self, graph: GoalGraph, level: int, goals: list[Goal], values: dict[str, float]) -> None:
        """Solve one level and freeze its allocations into ``values``."""
        variable_ids = sorted({goal.variable_id for goal in goals})
        spent_elsewhere = sum(value for variable_id, value in values.items() if variable_id not in variable_ids)
        available = graph.budget - spent_elsewhere

        prob = lp.LpProblem(f"Preemptive_Level_{level}", lp.LpMinimize)
        x = {
            variable_id: lp.LpVariable(
                f"x_{index}", lowBound=values[variable_id], upBound=graph.variables[variable_id].upper
            )
            for index, variable_id in enumerate(variable_ids)
        }
        penalties = []
        for index, goal in enumerate(goals):
            under = lp.LpVariable(f"under_{index}", lowBound=0)
            over = lp.LpVariable(f"over_{index}", lowBound=0)
            prob += x[goal.variable_id] + under - over == goal.target
            if goal.kind is GoalKind.AT_LEAST:
                penalties.append(goal.weight * under)
            elif goal.kind is GoalKind.AT_MOST:
                penalties.append(goal.weight * over)
            else:
                penalties.append(goal.weight * (under + over))
        prob += lp.lpSum(x.values()) <= available

        prob.setObjective(lp.lpSum(penalties))
        solve_problem(prob)
        best = lp.value(prob.objective) or 0.0

        # Second stage: spend as little as possible without losing ground.
        prob += lp.lpSum(penalties) <= best + self.tolerance
        prob.setObjective(lp.lpSum(x.values()))
        solve_problem(prob)

        for variable_id, var in x.items():
            values[variable_id] = clamp(var.varValue, graph.variables[variable_id])
