"""Budget allocation engine.

Splits one month's income across mandatory expenses, debt payments, savings
goals and flexible spending with interchangeable goal-programming
strategies, builds named scenarios, and analyzes their sensitivity.
"""

from budget_allocation.adapter import BudgetAllocationComponent, build_constraint_model, validate_request
from budget_allocation.feasibility import (
    calculate_surplus,
    check_feasibility,
    hard_floor_total,
    suggestions_for_deficit,
)
from budget_allocation.models import (
    AllocationResult,
    AllocationScenario,
    CategoryConstraint,
    ConstraintModel,
    DebtConstraint,
    DebtPayment,
    GoalConstraint,
    InputValidationError,
    ScenarioParameters,
    ScenarioType,
    ScenarioWarning,
    SolverType,
    SurplusAllocation,
    WarningSeverity,
    debt_priority,
    goal_priority_to_weight,
)
from budget_allocation.scenarios import (
    AGGRESSIVE,
    BALANCED,
    CONSERVATIVE,
    DEFAULT_PRESETS,
    SAFE,
    SIMPLIFIED_PRESETS,
    ScenarioGenerator,
    ScenarioPreset,
)
from budget_allocation.sensitivity import SensitivityAnalysis, SensitivityAnalyzer, SensitivityOptions
from budget_allocation.solver import GoalProgrammingSolver, SolverError

__all__ = [
    "AGGRESSIVE",
    "AllocationResult",
    "AllocationScenario",
    "BALANCED",
    "BudgetAllocationComponent",
    "CONSERVATIVE",
    "CategoryConstraint",
    "ConstraintModel",
    "DEFAULT_PRESETS",
    "DebtConstraint",
    "DebtPayment",
    "GoalConstraint",
    "GoalProgrammingSolver",
    "InputValidationError",
    "SAFE",
    "SIMPLIFIED_PRESETS",
    "ScenarioGenerator",
    "ScenarioParameters",
    "ScenarioPreset",
    "ScenarioType",
    "ScenarioWarning",
    "SensitivityAnalysis",
    "SensitivityAnalyzer",
    "SensitivityOptions",
    "SolverError",
    "SolverType",
    "SurplusAllocation",
    "WarningSeverity",
    "build_constraint_model",
    "calculate_surplus",
    "check_feasibility",
    "debt_priority",
    "goal_priority_to_weight",
    "hard_floor_total",
    "suggestions_for_deficit",
    "validate_request",
]
