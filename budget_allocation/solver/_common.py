"""Shared utilities for allocation solvers.

Contains goal-graph construction from a constraint model, deviation and
achievement arithmetic, goal classification, and the PuLP solve wrapper.
Every iteration over model collections goes through sorted ids so that
results are reproducible.
"""

import logging

import pulp as lp

from budget_allocation.models import CategoryConstraint, ConstraintModel, DebtConstraint, GoalConstraint
from budget_allocation.solver._types import Goal, GoalGraph, GoalKind, SolverError, SolverResult, Variable, VariableKind

logger = logging.getLogger(__name__)

TOLERANCE = 0.01


def mandatory_goal_id(category_id: str) -> str:
    return f"mandatory_{category_id}"


def flexible_goal_id(category_id: str) -> str:
    return f"flexible_{category_id}"


def debt_minimum_goal_id(debt_id: str) -> str:
    return f"debt_min_{debt_id}"


def debt_extra_goal_id(debt_id: str) -> str:
    return f"debt_extra_{debt_id}"


def savings_goal_id(goal_id: str) -> str:
    return f"goal_{goal_id}"


def build_variables(model: ConstraintModel) -> dict[str, Variable]:
    """Create one bounded variable per category, debt, and goal.

    Mandatory categories are pinned to their amount, debts range from the
    minimum payment to the balance, goals from 0 to the remaining amount, and
    flexible categories from 0 to their maximum (their minimum is a soft
    target, not a floor).

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot.

    Returns
    -------
    dict[str, Variable]
        Variables keyed by item id, in sorted-id order per collection.
    """
    variables: dict[str, Variable] = {}
    for category_id, category in sorted(model.mandatory_expenses.items()):
        variables[category_id] = Variable(category_id, VariableKind.MANDATORY, category.minimum, category.maximum)
    for category_id, category in sorted(model.flexible_expenses.items()):
        variables[category_id] = Variable(category_id, VariableKind.FLEXIBLE, 0.0, category.maximum)
    for debt_id, debt in sorted(model.debt_payments.items()):
        variables[debt_id] = Variable(debt_id, VariableKind.DEBT, debt.minimum_payment, debt.current_balance)
    for goal_id, goal in sorted(model.goal_targets.items()):
        variables[goal_id] = Variable(goal_id, VariableKind.GOAL, 0.0, goal.remaining_amount)
    return variables


def goal_contribution_target(goal: GoalConstraint, factor: float) -> float:
    """Scaled monthly contribution, capped at what the goal still needs."""
    return min(goal.suggested_contribution * factor, goal.remaining_amount)


def debt_extra_target(debt: DebtConstraint, extra_percent: float) -> float:
    """Minimum payment raised by ``extra_percent``, capped at the balance."""
    return min(debt.minimum_payment * (1 + extra_percent), debt.current_balance)


def flexible_target(category: CategoryConstraint, level: float) -> float:
    return category.minimum + category.spread * level


def ensure_floors_fit(graph: GoalGraph) -> None:
    """Raise :class:`SolverError` when the variables' floors alone exceed the budget."""
    floors = graph.floor_total()
    if floors > graph.budget + TOLERANCE:
        raise SolverError(f"Hard floors {floors:.2f} exceed budget {graph.budget:.2f}")


def room(goal: Goal, graph: GoalGraph, value: float) -> float:
    """Amount that can still be added to move ``goal`` toward its target."""
    if goal.kind is GoalKind.AT_MOST:
        return 0.0
    upper = graph.variables[goal.variable_id].upper
    return max(0.0, min(goal.target, upper) - value)


def deviation(goal: Goal, value: float) -> float:
    """Unwanted deviation of ``value`` from the goal's target."""
    if goal.kind is GoalKind.AT_LEAST:
        return max(0.0, goal.target - value)
    if goal.kind is GoalKind.AT_MOST:
        return max(0.0, value - goal.target)
    return abs(goal.target - value)


def achievement(goal: Goal, value: float) -> float:
    """Percentage (0-100) of the goal's target that ``value`` meets."""
    if goal.target <= 0:
        return 100.0
    return max(0.0, 100.0 - deviation(goal, value) / goal.target * 100.0)


def goal_deviations(graph: GoalGraph, values: dict[str, float]) -> dict[str, float]:
    return {goal.goal_id: deviation(goal, values[goal.variable_id]) for goal in graph.goals}


def split_achieved(
    graph: GoalGraph,
    values: dict[str, float],
    tolerance: float = TOLERANCE,
) -> tuple[list[str], list[Goal]]:
    """Separate goals met within ``tolerance`` from the rest.

    Returns
    -------
    tuple[list[str], list[Goal]]
        ``(achieved_ids, remaining_goals)`` in graph order.
    """
    achieved: list[str] = []
    remaining: list[Goal] = []
    for goal in graph.goals:
        if deviation(goal, values[goal.variable_id]) < tolerance:
            achieved.append(goal.goal_id)
        else:
            remaining.append(goal)
    return achieved, remaining


def solve_problem(prob: lp.LpProblem) -> None:
    """Solve ``prob`` with CBC and require an optimal status.

    Raises
    ------
    SolverError
        If CBC raises or terminates with a non-optimal status.
    """
    try:
        prob.solve(lp.PULP_CBC_CMD(msg=False))
    except Exception as exc:
        logger.exception("Error solving %s", prob.name)
        raise SolverError(f"CBC failed on {prob.name}") from exc
    if prob.status != lp.LpStatusOptimal:
        raise SolverError(f"{prob.name} finished with status {lp.LpStatus[prob.status]}")


def clamp(value: float | None, variable: Variable) -> float:
    """Clip a solver value into the variable's bounds, treating ``None`` as the floor."""
    if value is None:
        return variable.lower
    return min(variable.upper, max(variable.lower, value))


def build_solver_result(
    status: str,
    rule: str,
    graph: GoalGraph,
    values: dict[str, float],
    achieved: list[str],
    partial: list[str],
    unachieved: list[str],
    iterations: int,
    detail: dict,
) -> SolverResult:
    """Assemble a ``SolverResult`` from final variable values."""
    return {
        "status": status,
        "variable_values": dict(values),
        "goal_deviations": goal_deviations(graph, values),
        "achieved_goals": achieved,
        "partial_goals": partial,
        "unachieved_goals": unachieved,
        "iterations": iterations,
        "rule": rule,
        "detail": detail,
    }
