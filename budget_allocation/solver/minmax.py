"""Minmax (Chebyshev) goal programming.

Optimizes for balance: each round lifts the goals with the lowest
achievement percentage by a fixed increment, so no single goal is left far
behind the others while budget remains.
"""

import logging

from budget_allocation.models import ConstraintModel, ScenarioParameters
from budget_allocation.solver._common import (
    TOLERANCE,
    achievement,
    build_solver_result,
    ensure_floors_fit,
    room,
    split_achieved,
)
from budget_allocation.solver._types import Goal, GoalGraph, SolverResult
from budget_allocation.solver.weighted import build_weighted_graph

logger = logging.getLogger(__name__)

DEFAULT_INCREMENT = 5.0
DEFAULT_MAX_ITERATIONS = 200
BALANCE_THRESHOLD = 20.0
PARTIAL_ACHIEVEMENT = 50.0


def build_minmax_graph(model: ConstraintModel, params: ScenarioParameters) -> GoalGraph:
    """Same goals as the weighted strategy, each weighted by its own target."""
    graph = build_weighted_graph(model, params)
    graph.goals = [
        Goal(goal.goal_id, goal.variable_id, goal.kind, goal.target, goal.target, goal.priority) for goal in graph.goals
    ]
    return graph


class MinmaxSolver:
    """Chebyshev goal programming by iterative leveling.

    Parameters
    ----------
    increment : float
        Achievement points added to the worst-off goals per round.
    max_iterations : int
        Cap on leveling rounds.
    balance_threshold : float
        Largest achievement spread, in points, still reported as balanced.
    tolerance : float
        Amounts and achievement gaps below this are treated as zero.
    """

    def __init__(
        self,
        increment: float = DEFAULT_INCREMENT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        balance_threshold: float = BALANCE_THRESHOLD,
        tolerance: float = TOLERANCE,
    ) -> None:
        if increment <= 0:
            raise ValueError("Increment must be positive.")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        self.increment = increment
        self.max_iterations = max_iterations
        self.balance_threshold = balance_threshold
        self.tolerance = tolerance

    def __call__(self, model: ConstraintModel, params: ScenarioParameters) -> SolverResult:
        """Raise the lowest-achieving goals until the budget runs out.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        params : ScenarioParameters
            Scenario knobs.

        Returns
        -------
        SolverResult
            ``detail`` holds ``min_achievement``, ``max_achievement``,
            ``is_balanced`` and per-goal ``achievements``.

        Raises
        ------
        SolverError
            If hard floors exceed income.
        """
        graph = build_minmax_graph(model, params)
        graph.validate()
        ensure_floors_fit(graph)

        values = {variable_id: variable.lower for variable_id, variable in graph.variables.items()}
        remaining = graph.budget - sum(values.values())
        iterations = 0
        while iterations < self.max_iterations and remaining > self.tolerance:
            open_goals = [goal for goal in graph.goals if room(goal, graph, values[goal.variable_id]) > self.tolerance]
            if not open_goals:
                break
            iterations += 1
            floor = min(achievement(goal, values[goal.variable_id]) for goal in open_goals)
            level = min(100.0, floor + self.increment)
            requests: dict[str, float] = {}
            for goal in open_goals:
                current = values[goal.variable_id]
                if achievement(goal, current) > floor + self.tolerance:
                    continue
                wanted = goal.target * level / 100.0 - current
                amount = min(wanted, room(goal, graph, current))
                if amount > 0:
                    requests[goal.variable_id] = max(requests.get(goal.variable_id, 0.0), amount)
            needed = sum(requests.values())
            if needed <= 0:
                break
            scale = min(1.0, remaining / needed)
            for variable_id, amount in requests.items():
                values[variable_id] += amount * scale
            remaining -= needed * scale

        achievements = {goal.goal_id: achievement(goal, values[goal.variable_id]) for goal in graph.goals}
        min_achievement = min(achievements.values(), default=100.0)
        max_achievement = max(achievements.values(), default=100.0)
        achieved, rest = split_achieved(graph, values, self.tolerance)
        partial_floor = PARTIAL_ACHIEVEMENT - self.tolerance
        partial = [goal.goal_id for goal in rest if achievements[goal.goal_id] >= partial_floor]
        unachieved = [goal.goal_id for goal in rest if achievements[goal.goal_id] < partial_floor]

        logger.debug("Minmax solve finished after %d rounds, min achievement %.1f", iterations, min_achievement)
        return build_solver_result(
            status="Converged",
            rule="minmax",
            graph=graph,
            values=values,
            achieved=achieved,
            partial=partial,
            unachieved=unachieved,
            iterations=iterations,
            detail={
                "min_achievement": min_achievement,
                "max_achievement": max_achievement,
                "is_balanced": max_achievement - min_achievement <= self.balance_threshold,
                "achievements": achievements,
            },
        )
