"""Meta (multi-choice) goal programming.

Each goal offers discrete achievement tiers, each with a reward. A binary
variable per tier selects at most one tier per goal, and the mixed-integer
program maximizes total reward under the budget. Rewards at a more urgent
priority level are scaled so that they dominate every less urgent level.
"""

import logging

import pulp as lp

from budget_allocation.models import CategoryConstraint, ConstraintModel, GoalConstraint, ScenarioParameters
from budget_allocation.solver._common import (
    build_solver_result,
    build_variables,
    debt_extra_goal_id,
    ensure_floors_fit,
    flexible_goal_id,
    flexible_target,
    goal_contribution_target,
    mandatory_goal_id,
    savings_goal_id,
    solve_problem,
)
from budget_allocation.solver._types import Goal, GoalGraph, GoalKind, SolverResult, Tier

logger = logging.getLogger(__name__)

PRIORITY_MANDATORY = 1
PRIORITY_DEBT = 2
PRIORITY_GOALS = 3
DEFAULT_PRIORITY_BASE = 1000.0

MANDATORY_REWARD = 100.0
DEBT_REWARDS = (50.0, 75.0, 100.0)
GOAL_TIER_SHARES = (0.5, 1.0, 1.2)
EMERGENCY_PROXY_WEIGHT = 6.0


def goal_proxy_weight(goal: GoalConstraint) -> float:
    """Reward multiplier for a savings goal; emergency funds rank highest."""
    if goal.is_emergency:
        return EMERGENCY_PROXY_WEIGHT
    if goal.priority_weight <= 1:
        return 5.0
    if goal.priority_weight <= 10:
        return 3.0
    if goal.priority_weight <= 20:
        return 2.0
    return 1.0


def flexible_proxy_weight(category: CategoryConstraint) -> float:
    return 4.0 if category.priority == 1 else 2.0


def _tiered_goal(goal_id: str, variable_id: str, priority: int, tiers: tuple[Tier, ...]) -> Goal:
    top = tiers[-1]
    return Goal(goal_id, variable_id, GoalKind.AT_LEAST, top.value, top.reward, priority, tiers)


def build_meta_graph(model: ConstraintModel, params: ScenarioParameters) -> GoalGraph:
    """Attach reward tiers to every variable.

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot.
    params : ScenarioParameters
        Scenario knobs. ``debt_extra_percent`` sets the debt tiers and
        ``flexible_spending_level`` the flexible target tier.

    Returns
    -------
    GoalGraph
        Goals whose ``tiers`` run from lowest to highest; ``target`` and
        ``weight`` mirror the top tier.
    """
    factor = params.goal_contribution_factor
    extra_percent = params.surplus_allocation.debt_extra_percent
    goals: list[Goal] = []
    for category_id, category in sorted(model.mandatory_expenses.items()):
        tiers = (Tier("minimum", category.minimum, MANDATORY_REWARD),)
        goals.append(_tiered_goal(mandatory_goal_id(category_id), category_id, PRIORITY_MANDATORY, tiers))
    for debt_id, debt in sorted(model.debt_payments.items()):
        amounts = (
            debt.minimum_payment,
            debt.minimum_payment * (1 + extra_percent / 2),
            debt.minimum_payment * (1 + extra_percent),
        )
        tiers = tuple(
            Tier(name, min(amount, debt.current_balance), reward)
            for name, amount, reward in zip(("minimum", "target", "ideal"), amounts, DEBT_REWARDS)
        )
        goals.append(_tiered_goal(debt_extra_goal_id(debt_id), debt_id, PRIORITY_DEBT, tiers))
    for goal_id, goal in sorted(model.goal_targets.items()):
        base = goal.suggested_contribution * factor
        weight = goal_proxy_weight(goal)
        tiers = tuple(
            Tier(name, min(base * share, goal.remaining_amount), weight * rank)
            for rank, (name, share) in enumerate(zip(("minimum", "target", "ideal"), GOAL_TIER_SHARES), start=1)
        )
        goals.append(_tiered_goal(savings_goal_id(goal_id), goal_id, PRIORITY_GOALS, tiers))
    for category_id, category in sorted(model.flexible_expenses.items()):
        weight = flexible_proxy_weight(category)
        tiers = (
            Tier("minimum", category.minimum, weight),
            Tier("target", flexible_target(category, params.flexible_spending_level), weight * 2),
        )
        goals.append(_tiered_goal(flexible_goal_id(category_id), category_id, PRIORITY_GOALS, tiers))
    return GoalGraph(variables=build_variables(model), goals=goals, budget=model.total_income)


class MetaSolver:
    """Reward-maximizing tier selection on PuLP/CBC.

    Parameters
    ----------
    priority_base : float
        Factor separating consecutive priority levels in the objective.
    """

    def __init__(self, priority_base: float = DEFAULT_PRIORITY_BASE) -> None:
        if priority_base <= 1:
            raise ValueError("Priority base must be greater than 1.")
        self.priority_base = priority_base

    def __call__(self, model: ConstraintModel, params: ScenarioParameters) -> SolverResult:
        """Select one tier per goal to maximize total reward.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        params : ScenarioParameters
            Scenario knobs.

        Returns
        -------
        SolverResult
            ``detail`` holds ``reward``, ``max_reward``, ``reward_ratio`` and
            the chosen tier name per goal (``None`` when no tier was reached).

        Raises
        ------
        SolverError
            If hard floors exceed income or CBC does not reach optimality.
        """
        graph = build_meta_graph(model, params)
        graph.validate()
        ensure_floors_fit(graph)

        prob = lp.LpProblem("Meta_Goal_Programming", lp.LpMaximize)
        x = {
            variable_id: lp.LpVariable(f"x_{index}", lowBound=variable.lower, upBound=variable.upper)
            for index, (variable_id, variable) in enumerate(graph.variables.items())
        }
        lowest_priority = max((goal.priority for goal in graph.goals), default=PRIORITY_MANDATORY)
        selectors: dict[str, list[lp.LpVariable]] = {}
        rewards = []
        for goal_index, goal in enumerate(graph.goals):
            scale = self.priority_base ** (lowest_priority - goal.priority)
            selectors[goal.goal_id] = []
            for tier_index, tier in enumerate(goal.tiers):
                y = lp.LpVariable(f"y_{goal_index}_{tier_index}", cat=lp.LpBinary)
                prob += x[goal.variable_id] >= tier.value * y
                selectors[goal.goal_id].append(y)
                rewards.append(tier.reward * scale * y)
            prob += lp.lpSum(selectors[goal.goal_id]) <= 1
        prob += lp.lpSum(rewards)
        prob += lp.lpSum(x.values()) <= graph.budget

        logger.info("Solving meta goal program with %d goals", len(graph.goals))
        solve_problem(prob)

        chosen: dict[str, str | None] = {}
        values = {variable_id: variable.lower for variable_id, variable in graph.variables.items()}
        reward = 0.0
        max_reward = 0.0
        achieved: list[str] = []
        partial: list[str] = []
        unachieved: list[str] = []
        for goal in graph.goals:
            max_reward += goal.tiers[-1].reward
            picked = next(
                (tier for tier, y in zip(goal.tiers, selectors[goal.goal_id]) if (y.varValue or 0.0) > 0.5), None
            )
            chosen[goal.goal_id] = picked.name if picked else None
            if picked is None:
                unachieved.append(goal.goal_id)
                continue
            reward += picked.reward
            # Tier values sit within the variable's bounds, so this stays within budget.
            values[goal.variable_id] = max(values[goal.variable_id], picked.value)
            if picked is goal.tiers[-1]:
                achieved.append(goal.goal_id)
            else:
                partial.append(goal.goal_id)

        reward_ratio = reward / max_reward if max_reward > 0 else 1.0
        return build_solver_result(
            status=lp.LpStatus[prob.status],
            rule="meta",
            graph=graph,
            values=values,
            achieved=achieved,
            partial=partial,
            unachieved=unachieved,
            iterations=len(graph.goals),
            detail={"reward": reward, "max_reward": max_reward, "reward_ratio": reward_ratio, "chosen_tiers": chosen},
        )
