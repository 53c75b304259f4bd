"""Sensitivity analysis over income, interest rates, and goal priorities.

Each sweep perturbs a deep copy of the model, regenerates the balanced
scenario, and compares it with the unperturbed baseline. The caller's model
is never touched.
"""

import logging
from dataclasses import dataclass, field, replace

from budget_allocation.feasibility import check_feasibility, hard_floor_total
from budget_allocation.models import (
    MAX_PRIORITY_WEIGHT,
    MIN_PRIORITY_WEIGHT,
    AllocationScenario,
    ConstraintModel,
)
from budget_allocation.scenarios import ScenarioGenerator

logger = logging.getLogger(__name__)

DEFAULT_INCOME_CHANGES = (-0.20, -0.10, 0.10, 0.20)
DEFAULT_RATE_CHANGES = (0.02, 0.05)
PRIORITY_STEP = 10
AFFECTED_GOAL_RATIO = 0.8
HIGH_RISK_EXTRA_INTEREST = 50.0
REFINANCE_EXTRA_INTEREST = 100.0
HIGH_SENSITIVITY = 0.5
MEDIUM_SENSITIVITY = 0.2
LOW_MARGIN_SHARE = 0.10


@dataclass(frozen=True)
class SensitivityOptions:
    """Which sweeps to run and with what perturbations.

    Parameters
    ----------
    income_changes : tuple[float, ...]
        Relative income changes, e.g. ``-0.1`` for a 10% drop.
    rate_changes : tuple[float, ...]
        Absolute interest-rate shocks, e.g. ``0.02`` for +2 points.
    analyze_goal_priority : bool
        Whether to run the goal-priority sweep.
    """

    income_changes: tuple[float, ...] = DEFAULT_INCOME_CHANGES
    rate_changes: tuple[float, ...] = DEFAULT_RATE_CHANGES
    analyze_goal_priority: bool = True


@dataclass
class IncomeSensitivity:
    change_percent: float
    new_income: float
    is_feasible: bool
    deficit: float
    goal_allocation_delta: float
    flexible_allocation_delta: float
    surplus_delta: float
    debt_extra_delta: float
    affected_goals: list[str]
    recommendation: str


@dataclass
class RateSensitivity:
    debt_id: str
    debt_name: str
    current_rate: float
    new_rate: float
    rate_change: float
    extra_monthly_interest: float
    current_priority: int
    new_priority: int
    strategy_change_needed: bool
    recommended_action: str


@dataclass
class GoalPrioritySensitivity:
    goal_id: str
    goal_name: str
    current_weight: int
    current_allocation: float
    higher_priority_allocation: float
    lower_priority_allocation: float
    sensitivity: str


@dataclass
class SensitivitySummary:
    """Overall risk assessment.

    ``risk_level`` comes from an additive score: +3 when a small income drop
    makes the plan infeasible, +2 for any high-risk debt, +2 when income
    exceeds the hard floors by less than 10%.
    """

    most_sensitive_to_income: bool
    high_risk_debts: list[str]
    most_flexible_goals: list[str]
    income_break_even_point: float
    risk_score: int
    risk_level: str
    recommendations: list[str] = field(default_factory=list)


@dataclass
class SensitivityAnalysis:
    income_sensitivity: list[IncomeSensitivity]
    interest_rate_sensitivity: list[RateSensitivity]
    goal_priority_sensitivity: list[GoalPrioritySensitivity]
    summary: SensitivitySummary


def _flexible_total(scenario: AllocationScenario) -> float:
    return sum(c.amount for c in scenario.category_allocations if c.is_flexible)


def _debt_extra_total(scenario: AllocationScenario) -> float:
    return sum(d.extra_payment for d in scenario.debt_allocations)


def _goal_amounts(scenario: AllocationScenario) -> dict[str, float]:
    return {g.goal_id: g.amount for g in scenario.goal_allocations}


def classify_sensitivity(current: float, higher: float, lower: float) -> str:
    """Label the spread between raised- and lowered-priority allocations."""
    if current <= 0:
        return "low"
    ratio = (higher - lower) / current
    if ratio > HIGH_SENSITIVITY:
        return "high"
    if ratio > MEDIUM_SENSITIVITY:
        return "medium"
    return "low"


class SensitivityAnalyzer:
    """Run perturbation sweeps against the balanced scenario.

    Parameters
    ----------
    generator : ScenarioGenerator, optional
        Generator used for the baseline and every perturbed run.
    options : SensitivityOptions, optional
        Sweep configuration.
    """

    def __init__(
        self,
        generator: ScenarioGenerator | None = None,
        options: SensitivityOptions | None = None,
    ) -> None:
        self.generator = generator or ScenarioGenerator()
        self.options = options or SensitivityOptions()

    def analyze(self, model: ConstraintModel, category_names: dict[str, str] | None = None) -> SensitivityAnalysis:
        """Run every configured sweep and summarize the risk.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot; copied before any perturbation.
        category_names : dict[str, str], optional
            Display names keyed by category id.

        Returns
        -------
        SensitivityAnalysis
        """
        baseline = self.generator.generate_balanced_scenario(model.clone(), category_names)
        income = self.analyze_income(model, baseline, category_names)
        rates = self.analyze_interest_rates(model)
        priorities = (
            self.analyze_goal_priorities(model, baseline, category_names) if self.options.analyze_goal_priority else []
        )
        summary = self.summarize(model, income, rates, priorities)
        logger.info("Sensitivity analysis complete: risk level %s", summary.risk_level)
        return SensitivityAnalysis(income, rates, priorities, summary)

    def analyze_income(
        self,
        model: ConstraintModel,
        baseline: AllocationScenario,
        category_names: dict[str, str] | None = None,
    ) -> list[IncomeSensitivity]:
        """Regenerate the balanced scenario under each income change."""
        baseline_goals = _goal_amounts(baseline)
        results = []
        for change in self.options.income_changes:
            perturbed = model.clone(total_income=max(0.0, model.total_income * (1 + change)))
            feasible, deficit = check_feasibility(perturbed)
            scenario = self.generator.generate_balanced_scenario(perturbed, category_names)
            goals = _goal_amounts(scenario)
            affected = [
                model.goal_targets[goal_id].name
                for goal_id, amount in sorted(baseline_goals.items())
                if amount > 0 and goals.get(goal_id, 0.0) < amount * AFFECTED_GOAL_RATIO
            ]
            goal_delta = scenario.summary.total_goal_contributions - baseline.summary.total_goal_contributions
            results.append(
                IncomeSensitivity(
                    change_percent=change * 100,
                    new_income=perturbed.total_income,
                    is_feasible=feasible,
                    deficit=deficit,
                    goal_allocation_delta=goal_delta,
                    flexible_allocation_delta=_flexible_total(scenario) - _flexible_total(baseline),
                    surplus_delta=scenario.summary.surplus - baseline.summary.surplus,
                    debt_extra_delta=_debt_extra_total(scenario) - _debt_extra_total(baseline),
                    affected_goals=affected,
                    recommendation=self._income_recommendation(change, feasible, deficit, goal_delta, affected),
                )
            )
        return results

    @staticmethod
    def _income_recommendation(
        change: float, feasible: bool, deficit: float, goal_delta: float, affected: list[str]
    ) -> str:
        percent = abs(change) * 100
        if not feasible:
            return (
                f"A {percent:.0f}% income drop leaves {deficit:.2f} of essential costs uncovered; "
                "build an emergency buffer or reduce fixed costs"
            )
        if change < 0:
            message = f"A {percent:.0f}% income drop cuts goal contributions by {max(0.0, -goal_delta):.2f}"
            if affected:
                message += f"; most affected: {', '.join(affected)}"
            return message
        return (
            f"A {percent:.0f}% income rise frees {max(0.0, goal_delta):.2f} more for goals; "
            "consider raising contributions"
        )

    def analyze_interest_rates(self, model: ConstraintModel) -> list[RateSensitivity]:
        """Shock each debt's rate and re-derive its priority."""
        results = []
        for debt_id, debt in sorted(model.debt_payments.items()):
            for change in self.options.rate_changes:
                shocked = replace(debt, interest_rate=min(1.0, debt.interest_rate + change))
                extra_interest = debt.current_balance * (shocked.interest_rate - debt.interest_rate) / 12
                strategy_change = shocked.priority < debt.priority
                if strategy_change:
                    action = f"Prioritize paying down {debt.name}: it would move to a more urgent tier"
                elif extra_interest > REFINANCE_EXTRA_INTEREST:
                    action = f"Consider refinancing {debt.name}: interest would rise by {extra_interest:.2f} a month"
                else:
                    action = "Minimal impact; keep the current plan"
                results.append(
                    RateSensitivity(
                        debt_id=debt_id,
                        debt_name=debt.name,
                        current_rate=debt.interest_rate,
                        new_rate=shocked.interest_rate,
                        rate_change=change,
                        extra_monthly_interest=extra_interest,
                        current_priority=debt.priority,
                        new_priority=shocked.priority,
                        strategy_change_needed=strategy_change,
                        recommended_action=action,
                    )
                )
        return results

    def analyze_goal_priorities(
        self,
        model: ConstraintModel,
        baseline: AllocationScenario,
        category_names: dict[str, str] | None = None,
    ) -> list[GoalPrioritySensitivity]:
        """Raise and lower each non-emergency goal's weight by one step."""
        baseline_goals = _goal_amounts(baseline)
        results = []
        for goal_id, goal in sorted(model.goal_targets.items()):
            if goal.is_emergency:
                continue
            current = baseline_goals.get(goal_id, 0.0)
            raised = max(MIN_PRIORITY_WEIGHT, goal.priority_weight - PRIORITY_STEP)
            lowered = min(MAX_PRIORITY_WEIGHT, goal.priority_weight + PRIORITY_STEP)
            higher = self._goal_amount_at_weight(model, goal_id, raised, category_names)
            lower = self._goal_amount_at_weight(model, goal_id, lowered, category_names)
            results.append(
                GoalPrioritySensitivity(
                    goal_id=goal_id,
                    goal_name=goal.name,
                    current_weight=goal.priority_weight,
                    current_allocation=current,
                    higher_priority_allocation=higher,
                    lower_priority_allocation=lower,
                    sensitivity=classify_sensitivity(current, higher, lower),
                )
            )
        return results

    def _goal_amount_at_weight(
        self,
        model: ConstraintModel,
        goal_id: str,
        weight: int,
        category_names: dict[str, str] | None,
    ) -> float:
        goals = dict(model.goal_targets)
        goals[goal_id] = replace(goals[goal_id], priority_weight=weight)
        scenario = self.generator.generate_balanced_scenario(model.clone(goal_targets=goals), category_names)
        return _goal_amounts(scenario).get(goal_id, 0.0)

    def summarize(
        self,
        model: ConstraintModel,
        income: list[IncomeSensitivity],
        rates: list[RateSensitivity],
        priorities: list[GoalPrioritySensitivity],
    ) -> SensitivitySummary:
        """Score overall risk and collect recommendations.

        Parameters
        ----------
        model : ConstraintModel
            Unperturbed model.
        income, rates, priorities : list
            Results of the three sweeps.

        Returns
        -------
        SensitivitySummary
        """
        break_even = hard_floor_total(model)
        income_sensitive = any(-10.0 - 1e-9 <= s.change_percent < 0 and not s.is_feasible for s in income)

        first_change = self.options.rate_changes[0] if self.options.rate_changes else None
        high_risk_debts = [
            r.debt_name
            for r in rates
            if r.rate_change == first_change and r.extra_monthly_interest > HIGH_RISK_EXTRA_INTEREST
        ]
        flexible_goals = [p.goal_name for p in priorities if p.sensitivity == "high"]
        low_margin = model.total_income - break_even < model.total_income * LOW_MARGIN_SHARE

        score = 0
        recommendations = []
        if income_sensitive:
            score += 3
            recommendations.append("Build an emergency fund covering at least three months of essential costs")
        if high_risk_debts:
            score += 2
            recommendations.append(f"Consider refinancing or fixing the rate on: {', '.join(high_risk_debts)}")
        if low_margin:
            score += 2
            recommendations.append("Income is within 10% of essential obligations; look for ways to cut fixed costs")
        if flexible_goals:
            names = ", ".join(flexible_goals)
            recommendations.append(f"Allocations for {names} depend heavily on priority; review them")

        if score >= 5:
            level = "high"
        elif score >= 3:
            level = "medium"
        else:
            level = "low"
        return SensitivitySummary(
            most_sensitive_to_income=income_sensitive,
            high_risk_debts=high_risk_debts,
            most_flexible_goals=flexible_goals,
            income_break_even_point=break_even,
            risk_score=score,
            risk_level=level,
            recommendations=recommendations,
        )
