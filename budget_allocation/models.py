"""Data models for budget allocation.

The :class:`ConstraintModel` is an immutable snapshot of one month's
allocation problem. Solvers turn it into an :class:`AllocationResult`, and
the scenario generator wraps results into :class:`AllocationScenario` values
for presentation.
"""

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

GOAL_TYPE_EMERGENCY = "emergency"

PRIORITY_LABEL_WEIGHTS: dict[str, int] = {
    "critical": 1,
    "high": 10,
    "medium": 20,
    "low": 30,
}
DEFAULT_PRIORITY_WEIGHT = 50
MIN_PRIORITY_WEIGHT = 1
MAX_PRIORITY_WEIGHT = 99

FEASIBLE_SCORE_THRESHOLD = 50.0


class InputValidationError(ValueError):
    """Raised when allocation input violates a field constraint.

    Parameters
    ----------
    field : str
        Name of the offending input field.
    message : str
        Human-readable description of the violation.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class SolverType(str, Enum):
    """Strategy that produced an allocation."""

    PREEMPTIVE = "preemptive"
    WEIGHTED = "weighted"
    MINMAX = "minmax"
    META = "meta"
    HEURISTIC = "heuristic"


class ScenarioType(str, Enum):
    """Named scenario presets."""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    SAFE = "safe"


class WarningSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


def debt_priority(interest_rate: float) -> int:
    """Derive a debt's priority from its annual interest rate.

    Parameters
    ----------
    interest_rate : float
        Annual rate as a decimal (``0.18`` for 18%).

    Returns
    -------
    int
        1 (critical) for rates of 20% and above, 10 (high) from 10%,
        20 (medium) from 5%, otherwise 30 (low).
    """
    if interest_rate >= 0.20:
        return 1
    if interest_rate >= 0.10:
        return 10
    if interest_rate >= 0.05:
        return 20
    return 30


def goal_priority_to_weight(label: str) -> int:
    """Map a priority label such as ``"high"`` to a numeric weight (1 = most urgent)."""
    return PRIORITY_LABEL_WEIGHTS.get(label.strip().lower(), DEFAULT_PRIORITY_WEIGHT)


def _require_id(field_name: str, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(field_name, "identifier is required")


def _require_non_negative(field_name: str, value: float) -> None:
    if value < 0:
        raise InputValidationError(field_name, "must be non-negative")


@dataclass(frozen=True)
class CategoryConstraint:
    """Spending bounds for one budget category.

    Parameters
    ----------
    category_id : str
        Category identifier.
    minimum : float
        Lower bound of the monthly spend.
    maximum : float
        Upper bound of the monthly spend. Equal to ``minimum`` for mandatory
        categories.
    is_flexible : bool
        Whether the range is soft.
    priority : int
        Category priority, 1 being the most important.
    """

    category_id: str
    minimum: float
    maximum: float
    is_flexible: bool = False
    priority: int = 1

    def __post_init__(self) -> None:
        _require_id("category_id", self.category_id)
        _require_non_negative(f"categories[{self.category_id}].minimum", self.minimum)
        if self.minimum > self.maximum:
            raise InputValidationError(f"categories[{self.category_id}].maximum", "must be at least minimum")

    @classmethod
    def mandatory(cls, category_id: str, amount: float, priority: int = 1) -> "CategoryConstraint":
        return cls(category_id, amount, amount, is_flexible=False, priority=priority)

    @classmethod
    def flexible(cls, category_id: str, minimum: float, maximum: float, priority: int = 2) -> "CategoryConstraint":
        return cls(category_id, minimum, maximum, is_flexible=True, priority=priority)

    @property
    def spread(self) -> float:
        return self.maximum - self.minimum


@dataclass(frozen=True)
class DebtConstraint:
    """Payment constraint for one debt.

    ``priority`` is not an input: it is always derived from
    ``interest_rate`` via :func:`debt_priority`, so replacing the rate on a
    copy re-derives it.

    Parameters
    ----------
    debt_id : str
        Debt identifier.
    minimum_payment : float
        Hard monthly floor.
    current_balance : float
        Outstanding balance; upper bound of the monthly payment.
    interest_rate : float
        Annual rate as a decimal between 0 and 1.
    debt_name : str
        Display name.
    fixed_payment : float
        Agreed payment the fallback funds instead of the minimum when positive.
        Must not exceed ``current_balance``.
    """

    debt_id: str
    minimum_payment: float
    current_balance: float
    interest_rate: float
    debt_name: str = ""
    fixed_payment: float = 0.0
    priority: int = field(init=False)

    def __post_init__(self) -> None:
        _require_id("debt_id", self.debt_id)
        prefix = f"debts[{self.debt_id}]"
        _require_non_negative(f"{prefix}.minimum_payment", self.minimum_payment)
        _require_non_negative(f"{prefix}.fixed_payment", self.fixed_payment)
        if self.minimum_payment > self.current_balance:
            raise InputValidationError(f"{prefix}.current_balance", "must be at least the minimum payment")
        if self.fixed_payment > self.current_balance:
            raise InputValidationError(f"{prefix}.fixed_payment", "must not exceed the current balance")
        if not (0 <= self.interest_rate <= 1):
            raise InputValidationError(f"{prefix}.interest_rate", "must be between 0 and 1")
        object.__setattr__(self, "priority", debt_priority(self.interest_rate))

    @property
    def name(self) -> str:
        return self.debt_name or self.debt_id


@dataclass(frozen=True)
class GoalConstraint:
    """Savings target for one goal.

    Parameters
    ----------
    goal_id : str
        Goal identifier.
    suggested_contribution : float
        Monthly contribution the user should make.
    remaining_amount : float
        Amount still needed; upper bound of the monthly contribution.
    goal_name : str
        Display name.
    goal_type : str
        Goal kind, ``"emergency"`` goals rank ahead of others.
    priority_label : str
        Label from the ranking service.
    priority_weight : int, optional
        Numeric weight, 1 (most urgent) to 99. Derived from
        ``priority_label`` when omitted.
    """

    goal_id: str
    suggested_contribution: float
    remaining_amount: float
    goal_name: str = ""
    goal_type: str = "savings"
    priority_label: str = "medium"
    priority_weight: int | None = None

    def __post_init__(self) -> None:
        _require_id("goal_id", self.goal_id)
        prefix = f"goals[{self.goal_id}]"
        _require_non_negative(f"{prefix}.suggested_contribution", self.suggested_contribution)
        _require_non_negative(f"{prefix}.remaining_amount", self.remaining_amount)
        if self.priority_weight is None:
            object.__setattr__(self, "priority_weight", goal_priority_to_weight(self.priority_label))
        elif not (MIN_PRIORITY_WEIGHT <= self.priority_weight <= MAX_PRIORITY_WEIGHT):
            raise InputValidationError(
                f"{prefix}.priority_weight", f"must be between {MIN_PRIORITY_WEIGHT} and {MAX_PRIORITY_WEIGHT}"
            )

    @property
    def is_emergency(self) -> bool:
        return self.goal_type == GOAL_TYPE_EMERGENCY

    @property
    def name(self) -> str:
        return self.goal_name or self.goal_id


@dataclass(frozen=True)
class SurplusAllocation:
    """Shares of the post-floor surplus per bucket. Need not sum to 1."""

    emergency_fund_percent: float = 0.40
    debt_extra_percent: float = 0.30
    goals_percent: float = 0.20
    flexible_percent: float = 0.10

    def __post_init__(self) -> None:
        for name in ("emergency_fund_percent", "debt_extra_percent", "goals_percent", "flexible_percent"):
            if getattr(self, name) < 0:
                raise ValueError("Surplus allocation percentages must be non-negative.")


@dataclass(frozen=True)
class ScenarioParameters:
    """Knobs that distinguish one scenario from another.

    Parameters
    ----------
    goal_contribution_factor : float
        Multiplier on each goal's suggested contribution.
    flexible_spending_level : float
        Fraction (0..1) of a flexible category's range to target above its
        minimum.
    surplus_allocation : SurplusAllocation
        Bucket shares used by the heuristic fallback.
    """

    goal_contribution_factor: float = 1.0
    flexible_spending_level: float = 0.5
    surplus_allocation: SurplusAllocation = field(default_factory=SurplusAllocation)

    def __post_init__(self) -> None:
        if self.goal_contribution_factor < 0:
            raise ValueError("Goal contribution factor must be non-negative.")
        if not (0 <= self.flexible_spending_level <= 1):
            raise ValueError("Flexible spending level must be between 0 and 1.")


@dataclass(frozen=True)
class ConstraintModel:
    """Immutable snapshot of one allocation problem.

    Collections are keyed by item id and every key must match the id of the
    record it maps to. Ids must be unique across all four collections.

    Parameters
    ----------
    total_income : float
        Income available for the period.
    mandatory_expenses : dict[str, CategoryConstraint]
        Hard spending floors.
    flexible_expenses : dict[str, CategoryConstraint]
        Soft spending ranges.
    debt_payments : dict[str, DebtConstraint]
        Debts with their minimum payments.
    goal_targets : dict[str, GoalConstraint]
        Savings goals.
    """

    total_income: float
    mandatory_expenses: dict[str, CategoryConstraint] = field(default_factory=dict)
    flexible_expenses: dict[str, CategoryConstraint] = field(default_factory=dict)
    debt_payments: dict[str, DebtConstraint] = field(default_factory=dict)
    goal_targets: dict[str, GoalConstraint] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require_non_negative("total_income", self.total_income)
        seen: set[str] = set()
        collections: list[tuple[str, dict[str, Any], str]] = [
            ("mandatory_expenses", self.mandatory_expenses, "category_id"),
            ("flexible_expenses", self.flexible_expenses, "category_id"),
            ("debt_payments", self.debt_payments, "debt_id"),
            ("goal_targets", self.goal_targets, "goal_id"),
        ]
        for name, items, id_attr in collections:
            for key, item in items.items():
                if getattr(item, id_attr) != key:
                    raise InputValidationError(f"{name}[{key}]", f"key does not match {id_attr}")
                if key in seen:
                    raise InputValidationError(f"{name}[{key}]", "identifier is not unique")
                seen.add(key)
        for key, category in self.mandatory_expenses.items():
            if category.is_flexible or category.maximum != category.minimum:
                raise InputValidationError(f"mandatory_expenses[{key}]", "must be a fixed, non-flexible amount")
        for key, category in self.flexible_expenses.items():
            if not category.is_flexible:
                raise InputValidationError(f"flexible_expenses[{key}]", "must be flexible")

    def clone(self, **changes: Any) -> "ConstraintModel":
        """Return a deep copy, optionally with some fields replaced.

        Parameters
        ----------
        **changes
            Field values to replace, as for :func:`dataclasses.replace`.

        Returns
        -------
        ConstraintModel
            A copy sharing no mutable state with ``self`` or ``changes``.
        """
        return copy.deepcopy(replace(self, **changes))

    def categories(self) -> dict[str, CategoryConstraint]:
        """Mandatory and flexible categories together, in sorted-id order."""
        merged = {**self.mandatory_expenses, **self.flexible_expenses}
        return dict(sorted(merged.items()))


@dataclass
class DebtPayment:
    total_payment: float
    minimum_payment: float
    extra_payment: float


@dataclass
class AllocationResult:
    """Per-item allocation produced by one solver strategy.

    Parameters
    ----------
    category_allocations : dict[str, float]
        Amount per mandatory or flexible category.
    goal_allocations : dict[str, float]
        Contribution per goal.
    debt_allocations : dict[str, DebtPayment]
        Payment split per debt.
    total_allocated : float
        Sum of all allocations.
    surplus : float
        ``total_income - total_allocated``; negative signals a deficit.
    feasibility_score : float
        0-100 summary of how well goals were met.
    solver_type : SolverType
        Strategy that actually produced the result.
    achieved_goals : list[str]
        Goal-graph ids fully met.
    partial_goals : list[str]
        Goal-graph ids funded short of their target.
    unachieved_goals : list[str]
        Goal-graph ids left unmet.
    iterations : int
        Solver iterations or stages used.
    detail : dict[str, Any]
        Strategy-specific diagnostics.
    """

    category_allocations: dict[str, float]
    goal_allocations: dict[str, float]
    debt_allocations: dict[str, DebtPayment]
    total_allocated: float
    surplus: float
    feasibility_score: float
    solver_type: SolverType
    achieved_goals: list[str] = field(default_factory=list)
    partial_goals: list[str] = field(default_factory=list)
    unachieved_goals: list[str] = field(default_factory=list)
    iterations: int = 0
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def goal_total(self) -> float:
        return sum(self.goal_allocations.values())

    @property
    def debt_extra_total(self) -> float:
        return sum(payment.extra_payment for payment in self.debt_allocations.values())


@dataclass
class ScenarioWarning:
    severity: WarningSeverity
    category: str
    message: str
    suggestions: list[str] = field(default_factory=list)


@dataclass
class CategoryAllocation:
    category_id: str
    category_name: str
    amount: float
    minimum: float
    maximum: float
    is_flexible: bool
    priority: int


@dataclass
class GoalAllocation:
    goal_id: str
    goal_name: str
    goal_type: str
    amount: float
    suggested_amount: float
    priority_weight: int
    percentage_of_target: float


@dataclass
class DebtAllocation:
    debt_id: str
    debt_name: str
    amount: float
    minimum_payment: float
    extra_payment: float
    interest_rate: float
    interest_savings: float


@dataclass
class ScenarioSummary:
    """Income breakdown for one scenario.

    ``savings_rate`` is goal contributions plus extra debt payments as a
    percentage of income.
    """

    total_income: float
    mandatory_expenses: float
    flexible_expenses: float
    total_debt_payments: float
    total_goal_contributions: float
    surplus: float
    savings_rate: float


@dataclass
class AllocationScenario:
    """One named, presentation-ready allocation.

    Parameters
    ----------
    scenario_type : ScenarioType
        Preset that produced the scenario.
    description : str
        Short explanation of the preset.
    category_allocations : list[CategoryAllocation]
        Category amounts after rounding.
    goal_allocations : list[GoalAllocation]
        Goal contributions after rounding.
    debt_allocations : list[DebtAllocation]
        Debt payments after rounding.
    summary : ScenarioSummary
        Totals by bucket.
    feasibility_score : float
        0-100; forced to 0 when income cannot cover the hard floors.
    result : AllocationResult
        Raw solver output the scenario was built from.
    warnings : list[ScenarioWarning]
        Advisory and critical warnings.
    """

    scenario_type: ScenarioType
    description: str
    category_allocations: list[CategoryAllocation]
    goal_allocations: list[GoalAllocation]
    debt_allocations: list[DebtAllocation]
    summary: ScenarioSummary
    feasibility_score: float
    result: AllocationResult
    warnings: list[ScenarioWarning] = field(default_factory=list)

    @property
    def is_feasible(self) -> bool:
        return self.feasibility_score >= FEASIBLE_SCORE_THRESHOLD

    @property
    def has_critical_warning(self) -> bool:
        return any(w.severity is WarningSeverity.CRITICAL for w in self.warnings)


@dataclass
class DualComparison:
    preemptive_achieved: int
    weighted_achieved: int
    preemptive_deviation: float
    weighted_deviation: float
    recommended: SolverType
    reason: str


@dataclass
class DualResult:
    preemptive: AllocationResult
    weighted: AllocationResult
    comparison: DualComparison


@dataclass
class TripleComparison:
    """Outcome of running preemptive, weighted and minmax side by side."""

    preemptive_achieved: int
    weighted_achieved: int
    minmax_achieved: int
    minmax_min_achievement: float
    minmax_is_balanced: bool
    recommended: SolverType
    reason: str


@dataclass
class TripleResult:
    preemptive: AllocationResult
    weighted: AllocationResult
    minmax: AllocationResult
    comparison: TripleComparison
