"""Deterministic fallback allocation.

Phase 1 funds the hard floors. Phase 2 splits the surplus into four buckets
using the scenario's surplus shares, in the same order the preemptive
strategy ranks its levels: emergency goals, extra payment on the most
urgent debt, remaining goals, flexible spending. Money the buckets could
not place is then topped up into goals and flexible categories up to their
targets.
"""

import logging

from budget_allocation.models import ConstraintModel, ScenarioParameters
from budget_allocation.solver._common import (
    TOLERANCE,
    build_variables,
    debt_minimum_goal_id,
    flexible_goal_id,
    flexible_target,
    goal_contribution_target,
    mandatory_goal_id,
    savings_goal_id,
)
from budget_allocation.solver._types import SolverResult

logger = logging.getLogger(__name__)


class HeuristicSolver:
    """Rule-based allocation that never fails.

    Parameters
    ----------
    tolerance : float
        Shortfall below which a target counts as met.
    """

    def __init__(self, tolerance: float = TOLERANCE) -> None:
        self.tolerance = tolerance

    def __call__(self, model: ConstraintModel, params: ScenarioParameters) -> SolverResult:
        """Allocate income by fixed rules.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        params : ScenarioParameters
            Scenario knobs; ``surplus_allocation`` sets the bucket shares.

        Returns
        -------
        SolverResult
            ``status`` is ``"Infeasible"`` when hard floors exceed income; the
            floors are still funded and ``detail["deficit"]`` holds the gap.
        """
        values = {variable_id: 0.0 for variable_id in build_variables(model)}
        for category_id, category in sorted(model.mandatory_expenses.items()):
            values[category_id] = category.minimum
        for debt_id, debt in sorted(model.debt_payments.items()):
            values[debt_id] = max(debt.fixed_payment, debt.minimum_payment)

        surplus = model.total_income - sum(values.values())
        if surplus < 0:
            logger.warning("Hard floors exceed income by %.2f; returning floors only", -surplus)
            return self._result(model, params, values, "Infeasible", {"feasible": False, "deficit": -surplus})

        shares = params.surplus_allocation
        remaining = surplus
        remaining -= self._fund_emergency_goals(model, values, surplus * shares.emergency_fund_percent, remaining)
        remaining -= self._fund_debt_extra(model, values, surplus * shares.debt_extra_percent, remaining)
        remaining -= self._fund_goals(model, params, values, surplus * shares.goals_percent, remaining)
        remaining -= self._fund_flexible(model, params, values, surplus * shares.flexible_percent, remaining)
        remaining -= self._top_up(model, params, values, remaining)
        logger.debug("Heuristic allocation left %.2f unallocated", remaining)

        return self._result(model, params, values, "Heuristic", {"feasible": True, "deficit": 0.0})

    def _fund_emergency_goals(
        self, model: ConstraintModel, values: dict[str, float], pool: float, remaining: float
    ) -> float:
        """Split ``pool`` equally across emergency goals; return the amount spent."""
        emergency = [goal for _, goal in sorted(model.goal_targets.items()) if goal.is_emergency]
        if not emergency or pool <= 0:
            return 0.0
        share = pool / len(emergency)
        spent = 0.0
        for goal in emergency:
            amount = min(share, goal.remaining_amount - values[goal.goal_id], remaining - spent)
            if amount > 0:
                values[goal.goal_id] += amount
                spent += amount
        return spent

    def _fund_debt_extra(
        self, model: ConstraintModel, values: dict[str, float], pool: float, remaining: float
    ) -> float:
        """Put ``pool`` toward the single most urgent debt; ties go to the lowest id."""
        if not model.debt_payments or pool <= 0:
            return 0.0
        debt = min(model.debt_payments.values(), key=lambda d: (d.priority, d.debt_id))
        amount = min(pool, debt.current_balance - values[debt.debt_id], remaining)
        if amount <= 0:
            return 0.0
        values[debt.debt_id] += amount
        return amount

    def _fund_goals(
        self,
        model: ConstraintModel,
        params: ScenarioParameters,
        values: dict[str, float],
        pool: float,
        remaining: float,
    ) -> float:
        """Fund non-emergency goals by ascending priority weight."""
        goals = sorted(
            (goal for goal in model.goal_targets.values() if not goal.is_emergency),
            key=lambda g: (g.priority_weight, g.goal_id),
        )
        spent = 0.0
        for goal in goals:
            wanted = goal_contribution_target(goal, params.goal_contribution_factor) - values[goal.goal_id]
            amount = min(wanted, pool - spent, remaining - spent)
            if amount <= 0:
                continue
            values[goal.goal_id] += amount
            spent += amount
        return spent

    def _fund_flexible(
        self,
        model: ConstraintModel,
        params: ScenarioParameters,
        values: dict[str, float],
        pool: float,
        remaining: float,
    ) -> float:
        categories = sorted(model.flexible_expenses.values(), key=lambda c: (c.priority, c.category_id))
        spent = 0.0
        for category in categories:
            wanted = flexible_target(category, params.flexible_spending_level) - values[category.category_id]
            amount = min(wanted, pool - spent, remaining - spent)
            if amount <= 0:
                continue
            values[category.category_id] += amount
            spent += amount
        return spent

    def _top_up(
        self,
        model: ConstraintModel,
        params: ScenarioParameters,
        values: dict[str, float],
        remaining: float,
    ) -> float:
        """Place leftover money into goals (emergency first), then flexible categories."""
        goals = sorted(model.goal_targets.values(), key=lambda g: (not g.is_emergency, g.priority_weight, g.goal_id))
        targets = [
            (goal.goal_id, goal_contribution_target(goal, params.goal_contribution_factor)) for goal in goals
        ]
        categories = sorted(model.flexible_expenses.values(), key=lambda c: (c.priority, c.category_id))
        targets += [
            (category.category_id, flexible_target(category, params.flexible_spending_level)) for category in categories
        ]
        spent = 0.0
        for variable_id, target in targets:
            amount = min(target - values[variable_id], remaining - spent)
            if amount <= 0:
                continue
            values[variable_id] += amount
            spent += amount
        return spent

    def _result(
        self,
        model: ConstraintModel,
        params: ScenarioParameters,
        values: dict[str, float],
        status: str,
        detail: dict,
    ) -> SolverResult:
        """Classify targets and assemble the ``SolverResult``."""
        targets: list[tuple[str, str, float]] = []
        for category_id, category in sorted(model.mandatory_expenses.items()):
            targets.append((mandatory_goal_id(category_id), category_id, category.minimum))
        for debt_id, debt in sorted(model.debt_payments.items()):
            targets.append((debt_minimum_goal_id(debt_id), debt_id, debt.minimum_payment))
        for goal_id, goal in sorted(model.goal_targets.items()):
            target = goal_contribution_target(goal, params.goal_contribution_factor)
            targets.append((savings_goal_id(goal_id), goal_id, target))
        for category_id, category in sorted(model.flexible_expenses.items()):
            target = flexible_target(category, params.flexible_spending_level)
            targets.append((flexible_goal_id(category_id), category_id, target))

        deviations: dict[str, float] = {}
        achieved: list[str] = []
        partial: list[str] = []
        unachieved: list[str] = []
        for goal_id, variable_id, target in targets:
            gap = max(0.0, target - values[variable_id])
            deviations[goal_id] = gap
            if gap < self.tolerance:
                achieved.append(goal_id)
            elif values[variable_id] > self.tolerance:
                partial.append(goal_id)
            else:
                unachieved.append(goal_id)

        return {
            "status": status,
            "variable_values": values,
            "goal_deviations": deviations,
            "achieved_goals": achieved,
            "partial_goals": partial,
            "unachieved_goals": unachieved,
            "iterations": 1,
            "rule": "heuristic",
            "detail": detail,
        }
