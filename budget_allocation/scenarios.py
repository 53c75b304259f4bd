"""Scenario generation.

A scenario is one named preset of solver parameters turned into a complete,
presentation-ready allocation. Presets are plain values passed to the
generator, each carrying the advisory checks that apply to it.
"""

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from budget_allocation.feasibility import check_feasibility, suggestions_for_deficit
from budget_allocation.models import (
    AllocationResult,
    AllocationScenario,
    CategoryAllocation,
    ConstraintModel,
    DebtAllocation,
    DualResult,
    GoalAllocation,
    ScenarioParameters,
    ScenarioSummary,
    ScenarioType,
    ScenarioWarning,
    SolverType,
    SurplusAllocation,
    TripleResult,
    WarningSeverity,
)
from budget_allocation.solver import AllocationSolver, GoalProgrammingSolver

logger = logging.getLogger(__name__)

HIGH_INTEREST_RATE = 0.15
LOW_SAVINGS_RATE = 10.0
LOW_SURPLUS = 100.0

Advisory = Callable[[AllocationScenario, ConstraintModel], list[ScenarioWarning]]


def missing_emergency_fund(scenario: AllocationScenario, model: ConstraintModel) -> list[ScenarioWarning]:
    if any(goal.is_emergency for goal in model.goal_targets.values()):
        return []
    return [
        ScenarioWarning(
            WarningSeverity.WARNING,
            "emergency_fund",
            "No emergency fund goal found",
            ["Create an emergency fund covering three to six months of expenses"],
        )
    ]


def low_savings_rate(scenario: AllocationScenario, model: ConstraintModel) -> list[ScenarioWarning]:
    rate = scenario.summary.savings_rate
    if rate >= LOW_SAVINGS_RATE:
        return []
    return [
        ScenarioWarning(
            WarningSeverity.INFO,
            "savings",
            f"Savings rate is {rate:.1f}%, below the recommended {LOW_SAVINGS_RATE:.0f}%",
            ["Review flexible spending to free up money for savings"],
        )
    ]


def high_interest_debt(scenario: AllocationScenario, model: ConstraintModel) -> list[ScenarioWarning]:
    warnings = []
    for _, debt in sorted(model.debt_payments.items()):
        if debt.interest_rate >= HIGH_INTEREST_RATE:
            warnings.append(
                ScenarioWarning(
                    WarningSeverity.WARNING,
                    "debt",
                    f"{debt.name} carries {debt.interest_rate:.0%} interest",
                    ["Pay above the minimum on this debt first", "Look into consolidating at a lower rate"],
                )
            )
    return warnings


def high_flexible_spending(scenario: AllocationScenario, model: ConstraintModel) -> list[ScenarioWarning]:
    flexible = [c for c in scenario.category_allocations if c.is_flexible and c.amount > c.minimum]
    if not flexible:
        return []
    return [
        ScenarioWarning(
            WarningSeverity.INFO,
            "spending",
            "This plan keeps flexible spending high",
            ["Switch to the balanced plan if you want to save more"],
        )
    ]


def low_surplus(scenario: AllocationScenario, model: ConstraintModel) -> list[ScenarioWarning]:
    if scenario.summary.surplus >= LOW_SURPLUS:
        return []
    return [
        ScenarioWarning(
            WarningSeverity.WARNING,
            "surplus",
            f"Only {scenario.summary.surplus:.2f} remains unallocated",
            ["Keep a small buffer for unexpected expenses"],
        )
    ]


@dataclass(frozen=True)
class ScenarioPreset:
    """A named scenario configuration.

    Parameters
    ----------
    scenario_type : ScenarioType
        Name of the preset.
    description : str
        Short explanation shown with the scenario.
    parameters : ScenarioParameters
        Solver knobs.
    advisories : tuple[Advisory, ...]
        Checks run on feasible scenarios of this preset.
    """

    scenario_type: ScenarioType
    description: str
    parameters: ScenarioParameters
    advisories: tuple[Advisory, ...] = ()


CONSERVATIVE = ScenarioPreset(
    ScenarioType.CONSERVATIVE,
    "Covers essentials and builds safety first, with minimal flexible spending",
    ScenarioParameters(
        goal_contribution_factor=0.7,
        flexible_spending_level=0.0,
        surplus_allocation=SurplusAllocation(0.60, 0.30, 0.05, 0.05),
    ),
    (missing_emergency_fund, low_savings_rate),
)
BALANCED = ScenarioPreset(
    ScenarioType.BALANCED,
    "Balances goals, debt repayment and everyday spending",
    ScenarioParameters(
        goal_contribution_factor=1.0,
        flexible_spending_level=0.5,
        surplus_allocation=SurplusAllocation(0.40, 0.30, 0.20, 0.10),
    ),
    (high_interest_debt,),
)
AGGRESSIVE = ScenarioPreset(
    ScenarioType.AGGRESSIVE,
    "Pushes goal contributions above the suggested amounts",
    ScenarioParameters(
        goal_contribution_factor=1.3,
        flexible_spending_level=1.0,
        surplus_allocation=SurplusAllocation(0.25, 0.25, 0.40, 0.10),
    ),
    (high_flexible_spending, low_surplus),
)
SAFE = ScenarioPreset(
    ScenarioType.SAFE,
    "Covers essentials and builds safety first",
    CONSERVATIVE.parameters,
    CONSERVATIVE.advisories,
)

DEFAULT_PRESETS: tuple[ScenarioPreset, ...] = (CONSERVATIVE, BALANCED, AGGRESSIVE)
SIMPLIFIED_PRESETS: tuple[ScenarioPreset, ...] = (SAFE, BALANCED)


def _increment(amount: float) -> float:
    if amount > 100_000:
        return 100_000.0
    if amount > 10_000:
        return 10_000.0
    return 1.0


def smart_round_up(amount: float) -> float:
    """Round up to a presentation increment.

    Amounts above 100,000 go to the next 100,000, above 10,000 to the next
    10,000, and anything else to the next whole unit. Non-positive amounts
    become 0.
    """
    if amount <= 0:
        return 0.0
    step = _increment(amount)
    return math.ceil(round(amount / step, 9)) * step


class ScenarioGenerator:
    """Build named allocation scenarios from a constraint model.

    Parameters
    ----------
    presets : Sequence[ScenarioPreset]
        Presets to generate, in output order.
    solver_type : SolverType
        Strategy each scenario runs.
    round_amounts : bool
        Round hard amounts (mandatory categories, debt payments) up to a
        presentation increment. Soft amounts are kept to the cent.
    solvers : Mapping[SolverType, AllocationSolver], optional
        Strategy overrides passed to the facade.
    """

    def __init__(
        self,
        presets: Sequence[ScenarioPreset] = DEFAULT_PRESETS,
        solver_type: SolverType = SolverType.META,
        round_amounts: bool = True,
        solvers: Mapping[SolverType, AllocationSolver] | None = None,
    ) -> None:
        if not presets:
            raise ValueError("At least one scenario preset is required.")
        self.presets = tuple(presets)
        self.solver_type = solver_type
        self.round_amounts = round_amounts
        self.solvers = solvers

    @classmethod
    def simplified(cls, **kwargs) -> "ScenarioGenerator":
        """Safe and balanced presets on raw, unrounded solver output."""
        return cls(presets=SIMPLIFIED_PRESETS, round_amounts=False, **kwargs)

    def generate_scenarios(
        self,
        model: ConstraintModel,
        category_names: dict[str, str] | None = None,
    ) -> list[AllocationScenario]:
        """Generate one scenario per preset.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        category_names : dict[str, str], optional
            Display names keyed by category id.

        Returns
        -------
        list[AllocationScenario]
            In preset order. When income cannot cover the hard floors, every
            scenario has ``feasibility_score == 0`` and a critical warning.
        """
        scenarios = [self.generate_scenario(model, preset, category_names) for preset in self.presets]
        logger.info("Generated %d scenarios", len(scenarios))
        return scenarios

    def generate_balanced_scenario(
        self,
        model: ConstraintModel,
        category_names: dict[str, str] | None = None,
    ) -> AllocationScenario:
        return self.generate_scenario(model, self.balanced_preset, category_names)

    @property
    def balanced_preset(self) -> ScenarioPreset:
        """The generator's balanced preset, or the module default if it has none."""
        for preset in self.presets:
            if preset.scenario_type is ScenarioType.BALANCED:
                return preset
        return BALANCED

    def generate_scenario(
        self,
        model: ConstraintModel,
        preset: ScenarioPreset,
        category_names: dict[str, str] | None = None,
    ) -> AllocationScenario:
        """Solve, round, and annotate one preset.

        Parameters
        ----------
        model : ConstraintModel
            Problem snapshot.
        preset : ScenarioPreset
            Preset to apply.
        category_names : dict[str, str], optional
            Display names keyed by category id.

        Returns
        -------
        AllocationScenario
        """
        feasible, deficit = check_feasibility(model)
        solver = GoalProgrammingSolver(model, preset.parameters, self.solvers)
        result = solver.solve(self.solver_type)
        scenario = self._build_scenario(model, preset, result, category_names or {})

        if not feasible:
            scenario.feasibility_score = 0.0
            scenario.warnings.append(
                ScenarioWarning(
                    WarningSeverity.CRITICAL,
                    "income",
                    f"Income is {deficit:.2f} short of mandatory expenses and minimum debt payments",
                    suggestions_for_deficit(model, deficit, category_names),
                )
            )
            logger.warning("Scenario %s is infeasible: deficit %.2f", preset.scenario_type.value, deficit)
            return scenario

        for advisory in preset.advisories:
            scenario.warnings.extend(advisory(scenario, model))
        return scenario

    def generate_scenarios_with_comparison(
        self,
        model: ConstraintModel,
        category_names: dict[str, str] | None = None,
    ) -> tuple[list[AllocationScenario], DualResult]:
        """Scenarios plus a preemptive/weighted comparison under balanced parameters."""
        scenarios = self.generate_scenarios(model, category_names)
        comparison = GoalProgrammingSolver(model, self.balanced_preset.parameters, self.solvers).solve_dual()
        return scenarios, comparison

    def generate_scenarios_with_triple_comparison(
        self,
        model: ConstraintModel,
        category_names: dict[str, str] | None = None,
    ) -> tuple[list[AllocationScenario], TripleResult]:
        """Scenarios plus a preemptive/weighted/minmax comparison under balanced parameters."""
        scenarios = self.generate_scenarios(model, category_names)
        comparison = GoalProgrammingSolver(model, self.balanced_preset.parameters, self.solvers).solve_triple()
        return scenarios, comparison

    def _hard(self, amount: float) -> float:
        return smart_round_up(amount) if self.round_amounts else amount

    def _soft(self, amount: float) -> float:
        return round(amount, 2) if self.round_amounts else amount

    def _build_scenario(
        self,
        model: ConstraintModel,
        preset: ScenarioPreset,
        result: AllocationResult,
        category_names: dict[str, str],
    ) -> AllocationScenario:
        categories = []
        for category_id, category in model.categories().items():
            raw = result.category_allocations.get(category_id, 0.0)
            amount = self._soft(raw) if category.is_flexible else self._hard(raw)
            categories.append(
                CategoryAllocation(
                    category_id=category_id,
                    category_name=category_names.get(category_id, category_id),
                    amount=amount,
                    minimum=category.minimum,
                    maximum=category.maximum,
                    is_flexible=category.is_flexible,
                    priority=category.priority,
                )
            )

        debts = []
        for debt_id, debt in sorted(model.debt_payments.items()):
            payment = result.debt_allocations[debt_id]
            total = max(min(self._hard(payment.total_payment), debt.current_balance), debt.minimum_payment)
            extra = max(0.0, total - debt.minimum_payment)
            debts.append(
                DebtAllocation(
                    debt_id=debt_id,
                    debt_name=debt.name,
                    amount=total,
                    minimum_payment=debt.minimum_payment,
                    extra_payment=extra,
                    interest_rate=debt.interest_rate,
                    interest_savings=extra * debt.interest_rate / 12,
                )
            )

        goals = []
        for goal_id, goal in sorted(model.goal_targets.items()):
            amount = self._soft(result.goal_allocations.get(goal_id, 0.0))
            percentage = amount / goal.suggested_contribution * 100 if goal.suggested_contribution > 0 else 0.0
            goals.append(
                GoalAllocation(
                    goal_id=goal_id,
                    goal_name=goal.name,
                    goal_type=goal.goal_type,
                    amount=amount,
                    suggested_amount=goal.suggested_contribution,
                    priority_weight=goal.priority_weight,
                    percentage_of_target=percentage,
                )
            )

        summary = summarize(model.total_income, categories, debts, goals)
        return AllocationScenario(
            scenario_type=preset.scenario_type,
            description=preset.description,
            category_allocations=categories,
            goal_allocations=goals,
            debt_allocations=debts,
            summary=summary,
            feasibility_score=result.feasibility_score,
            result=result,
        )


def summarize(
    total_income: float,
    categories: list[CategoryAllocation],
    debts: list[DebtAllocation],
    goals: list[GoalAllocation],
) -> ScenarioSummary:
    """Totals by bucket for a set of scenario allocations."""
    mandatory = sum(c.amount for c in categories if not c.is_flexible)
    flexible = sum(c.amount for c in categories if c.is_flexible)
    debt_total = sum(d.amount for d in debts)
    debt_extra = sum(d.extra_payment for d in debts)
    goal_total = sum(g.amount for g in goals)
    savings_rate = (goal_total + debt_extra) / total_income * 100 if total_income > 0 else 0.0
    return ScenarioSummary(
        total_income=total_income,
        mandatory_expenses=mandatory,
        flexible_expenses=flexible,
        total_debt_payments=debt_total,
        total_goal_contributions=goal_total,
        surplus=total_income - mandatory - flexible - debt_total - goal_total,
        savings_rate=savings_rate,
    )
