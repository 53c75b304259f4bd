"""Solver facade: strategy selection, fallback, and comparison.

Every strategy returns a native :class:`SolverResult`. The facade maps it
into a common :class:`AllocationResult` through a small per-strategy score
adapter, substitutes the heuristic when a structured strategy raises
:class:`SolverError`, and can run several strategies side by side.
"""

import logging
from collections.abc import Callable, Mapping

from budget_allocation.models import (
    AllocationResult,
    ConstraintModel,
    DebtPayment,
    DualComparison,
    DualResult,
    ScenarioParameters,
    SolverType,
    TripleComparison,
    TripleResult,
)
from budget_allocation.solver._common import TOLERANCE
from budget_allocation.solver._types import AllocationSolver, SolverError, SolverResult
from budget_allocation.solver.heuristic import HeuristicSolver
from budget_allocation.solver.meta import MetaSolver
from budget_allocation.solver.minmax import MinmaxSolver
from budget_allocation.solver.preemptive import PreemptiveSolver
from budget_allocation.solver.weighted import WeightedSolver

logger = logging.getLogger(__name__)

MINMAX_MIN_ACHIEVEMENT = 50.0
MINMAX_ACHIEVED_SLACK = 1


def default_solvers() -> dict[SolverType, AllocationSolver]:
    return {
        SolverType.PREEMPTIVE: PreemptiveSolver(),
        SolverType.WEIGHTED: WeightedSolver(),
        SolverType.MINMAX: MinmaxSolver(),
        SolverType.META: MetaSolver(),
        SolverType.HEURISTIC: HeuristicSolver(),
    }


def _preemptive_score(result: SolverResult) -> float:
    total = len(result["goal_deviations"])
    return 100.0 * len(result["achieved_goals"]) / total if total else 100.0


def _weighted_score(result: SolverResult) -> float:
    target = result["detail"].get("weighted_target", 0.0)
    if target <= 0:
        return 100.0
    return 100.0 * (1.0 - result["detail"]["weighted_deviation"] / target)


def _minmax_score(result: SolverResult) -> float:
    achievements = result["detail"].get("achievements", {})
    return sum(achievements.values()) / len(achievements) if achievements else 100.0


def _meta_score(result: SolverResult) -> float:
    return 100.0 * result["detail"].get("reward_ratio", 0.0)


def _heuristic_score(result: SolverResult) -> float:
    return 100.0 if result["detail"].get("feasible", False) else 0.0


_SCORE_ADAPTERS: dict[SolverType, Callable[[SolverResult], float]] = {
    SolverType.PREEMPTIVE: _preemptive_score,
    SolverType.WEIGHTED: _weighted_score,
    SolverType.MINMAX: _minmax_score,
    SolverType.META: _meta_score,
    SolverType.HEURISTIC: _heuristic_score,
}


def to_allocation_result(model: ConstraintModel, native: SolverResult, solver_type: SolverType) -> AllocationResult:
    """Map a strategy's native result into the common allocation shape.

    Totals and surplus are recomputed from the per-item amounts, and each
    debt's extra payment is clamped at zero.

    Parameters
    ----------
    model : ConstraintModel
        Model the result was solved from.
    native : SolverResult
        Strategy output.
    solver_type : SolverType
        Strategy that produced ``native``.

    Returns
    -------
    AllocationResult
    """
    values = native["variable_values"]
    categories = {category_id: values.get(category_id, 0.0) for category_id in model.categories()}
    debts = {}
    for debt_id, debt in sorted(model.debt_payments.items()):
        total = values.get(debt_id, debt.minimum_payment)
        debts[debt_id] = DebtPayment(
            total_payment=total,
            minimum_payment=debt.minimum_payment,
            extra_payment=max(0.0, total - debt.minimum_payment),
        )
    goals = {goal_id: values.get(goal_id, 0.0) for goal_id in sorted(model.goal_targets)}
    total_allocated = sum(categories.values()) + sum(d.total_payment for d in debts.values()) + sum(goals.values())
    score = min(100.0, max(0.0, _SCORE_ADAPTERS[solver_type](native)))
    detail = {
        **native["detail"],
        "status": native["status"],
        "total_deviation": sum(native["goal_deviations"].values()),
    }
    return AllocationResult(
        category_allocations=categories,
        goal_allocations=goals,
        debt_allocations=debts,
        total_allocated=total_allocated,
        surplus=model.total_income - total_allocated,
        feasibility_score=score,
        solver_type=solver_type,
        achieved_goals=list(native["achieved_goals"]),
        partial_goals=list(native["partial_goals"]),
        unachieved_goals=list(native["unachieved_goals"]),
        iterations=native["iterations"],
        detail=detail,
    )


def compare_dual(preemptive: AllocationResult, weighted: AllocationResult) -> DualComparison:
    """Recommend preemptive or weighted, preferring more goals achieved outright."""
    pre_count = len(preemptive.achieved_goals)
    wtd_count = len(weighted.achieved_goals)
    pre_dev = preemptive.detail.get("total_deviation", 0.0)
    wtd_dev = weighted.detail.get("total_deviation", 0.0)
    if wtd_count > pre_count:
        recommended, reason = SolverType.WEIGHTED, f"Weighted achieves more goals ({wtd_count} vs {pre_count})"
    elif pre_count > wtd_count:
        recommended, reason = SolverType.PREEMPTIVE, f"Preemptive achieves more goals ({pre_count} vs {wtd_count})"
    elif wtd_dev < pre_dev - TOLERANCE:
        recommended = SolverType.WEIGHTED
        reason = f"Both achieve {pre_count} goals; weighted leaves less total shortfall"
    else:
        recommended = SolverType.PREEMPTIVE
        reason = f"Both achieve {pre_count} goals; preemptive keeps strict priority order"
    return DualComparison(
        preemptive_achieved=pre_count,
        weighted_achieved=wtd_count,
        preemptive_deviation=pre_dev,
        weighted_deviation=wtd_dev,
        recommended=recommended,
        reason=reason,
    )


def compare_triple(
    preemptive: AllocationResult,
    weighted: AllocationResult,
    minmax: AllocationResult,
) -> TripleComparison:
    """Recommend one of three strategies.

    The strategy with the most goals achieved outright wins, ties going to
    preemptive, then weighted. Minmax is recommended instead when it is
    balanced, its worst goal reaches at least 50%, and it achieves at most
    one goal fewer than the winner.

    Parameters
    ----------
    preemptive, weighted, minmax : AllocationResult
        Results of the three strategies on the same model.

    Returns
    -------
    TripleComparison
    """
    counts = {
        SolverType.PREEMPTIVE: len(preemptive.achieved_goals),
        SolverType.WEIGHTED: len(weighted.achieved_goals),
        SolverType.MINMAX: len(minmax.achieved_goals),
    }
    best = max(counts, key=lambda solver_type: counts[solver_type])
    min_achievement = minmax.detail.get("min_achievement", 0.0)
    is_balanced = bool(minmax.detail.get("is_balanced", False))

    if (
        best is not SolverType.MINMAX
        and is_balanced
        and min_achievement >= MINMAX_MIN_ACHIEVEMENT
        and counts[SolverType.MINMAX] >= counts[best] - MINMAX_ACHIEVED_SLACK
    ):
        recommended = SolverType.MINMAX
        reason = f"Minmax keeps every goal at {min_achievement:.0f}% or better with a balanced spread"
    else:
        recommended = best
        reason = f"{best.value.capitalize()} achieves the most goals ({counts[best]})"
    return TripleComparison(
        preemptive_achieved=counts[SolverType.PREEMPTIVE],
        weighted_achieved=counts[SolverType.WEIGHTED],
        minmax_achieved=counts[SolverType.MINMAX],
        minmax_min_achievement=min_achievement,
        minmax_is_balanced=is_balanced,
        recommended=recommended,
        reason=reason,
    )


class GoalProgrammingSolver:
    """Run allocation strategies against one model.

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot; never mutated.
    params : ScenarioParameters, optional
        Scenario knobs. Defaults to ``ScenarioParameters()``.
    solvers : Mapping[SolverType, AllocationSolver], optional
        Overrides for individual strategies, merged over
        :func:`default_solvers`.
    """

    def __init__(
        self,
        model: ConstraintModel,
        params: ScenarioParameters | None = None,
        solvers: Mapping[SolverType, AllocationSolver] | None = None,
    ) -> None:
        self.model = model
        self.params = params or ScenarioParameters()
        self.solvers = {**default_solvers(), **(solvers or {})}

    def solve(self, solver_type: SolverType) -> AllocationResult:
        """Run one strategy, falling back to the heuristic if it fails.

        Parameters
        ----------
        solver_type : SolverType
            Strategy to run.

        Returns
        -------
        AllocationResult
            ``solver_type`` is ``HEURISTIC`` and ``detail["fallback_from"]``
            names the requested strategy when the fallback ran.
        """
        fallback_from = None
        try:
            native = self.solvers[solver_type](self.model, self.params)
        except SolverError as exc:
            logger.warning("%s solver failed (%s); falling back to heuristic", solver_type.value, exc)
            fallback_from = solver_type
            solver_type = SolverType.HEURISTIC
            native = self.solvers[SolverType.HEURISTIC](self.model, self.params)

        result = to_allocation_result(self.model, native, solver_type)
        if fallback_from is not None:
            result.detail["fallback_from"] = fallback_from.value
        logger.info(
            "Allocation complete: solver=%s, allocated=%.2f, surplus=%.2f, score=%.1f",
            result.solver_type.value,
            result.total_allocated,
            result.surplus,
            result.feasibility_score,
        )
        return result

    def solve_preemptive(self) -> AllocationResult:
        return self.solve(SolverType.PREEMPTIVE)

    def solve_weighted(self) -> AllocationResult:
        return self.solve(SolverType.WEIGHTED)

    def solve_minmax(self) -> AllocationResult:
        return self.solve(SolverType.MINMAX)

    def solve_meta(self) -> AllocationResult:
        return self.solve(SolverType.META)

    def solve_heuristic(self) -> AllocationResult:
        return self.solve(SolverType.HEURISTIC)

    def solve_dual(self) -> DualResult:
        """Run preemptive and weighted and compare them."""
        preemptive = self.solve_preemptive()
        weighted = self.solve_weighted()
        return DualResult(preemptive=preemptive, weighted=weighted, comparison=compare_dual(preemptive, weighted))

    def solve_triple(self) -> TripleResult:
        """Run preemptive, weighted and minmax and compare them."""
        preemptive = self.solve_preemptive()
        weighted = self.solve_weighted()
        minmax = self.solve_minmax()
        return TripleResult(
            preemptive=preemptive,
            weighted=weighted,
            minmax=minmax,
            comparison=compare_triple(preemptive, weighted, minmax),
        )
