"""Type definitions for the solver protocol, goal graph, and result contract."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypedDict

from budget_allocation.models import ConstraintModel, ScenarioParameters, SolverType


class SolverError(RuntimeError):
    """Raised when a structured solver cannot produce an allocation."""


class VariableKind(str, Enum):
    MANDATORY = "mandatory"
    FLEXIBLE = "flexible"
    DEBT = "debt"
    GOAL = "goal"


class GoalKind(str, Enum):
    AT_LEAST = "at_least"
    AT_MOST = "at_most"
    EXACTLY = "exactly"


@dataclass(frozen=True)
class Tier:
    """One discrete achievement level of a goal, used by the meta solver."""

    name: str
    value: float
    reward: float


@dataclass(frozen=True)
class Variable:
    """A bounded allocation amount for one category, debt, or goal."""

    variable_id: str
    kind: VariableKind
    lower: float
    upper: float


@dataclass(frozen=True)
class Goal:
    """A target on one variable.

    Parameters
    ----------
    goal_id : str
        Unique id within the graph (e.g. ``"debt_extra_<debt-id>"``).
    variable_id : str
        Variable the goal constrains.
    kind : GoalKind
        Direction of the target.
    target : float
        Target amount.
    weight : float
        Relative importance within its priority level.
    priority : int
        Priority level, 1 being resolved first.
    tiers : tuple[Tier, ...]
        Discrete achievement levels, lowest first. Empty for strategies that
        do not use tiers.
    """

    goal_id: str
    variable_id: str
    kind: GoalKind
    target: float
    weight: float = 1.0
    priority: int = 1
    tiers: tuple[Tier, ...] = ()


@dataclass
class GoalGraph:
    """Variables and goals derived from a constraint model for one strategy."""

    variables: dict[str, Variable]
    goals: list[Goal] = field(default_factory=list)
    budget: float = 0.0

    def validate(self) -> None:
        """Check bounds and goal references.

        Raises
        ------
        SolverError
            If a goal points at an unknown variable, a goal id repeats, or a
            variable's bounds are inverted.
        """
        for variable in self.variables.values():
            if variable.lower > variable.upper:
                raise SolverError(f"Variable {variable.variable_id} has lower bound above upper bound")
        seen: set[str] = set()
        for goal in self.goals:
            if goal.variable_id not in self.variables:
                raise SolverError(f"Goal {goal.goal_id} references unknown variable {goal.variable_id}")
            if goal.goal_id in seen:
                raise SolverError(f"Duplicate goal id {goal.goal_id}")
            seen.add(goal.goal_id)

    def floor_total(self) -> float:
        return sum(v.lower for v in self.variables.values())


class SolverResult(TypedDict):
    """Native output every strategy returns before the facade maps it.

    Parameters
    ----------
    status : str
        Termination status (e.g. ``"Optimal"``, ``"Converged"``).
    variable_values : dict[str, float]
        Allocated amount per variable id.
    goal_deviations : dict[str, float]
        Unwanted deviation per goal id.
    achieved_goals : list[str]
        Goal ids fully met.
    partial_goals : list[str]
        Goal ids funded short of target.
    unachieved_goals : list[str]
        Goal ids left unmet.
    iterations : int
        Iterations or solve stages used.
    rule : str
        Strategy identifier (e.g. ``"preemptive"``).
    detail : dict[str, Any]
        Strategy-specific diagnostics, opaque to the solvers' callers.
    """

    status: str
    variable_values: dict[str, float]
    goal_deviations: dict[str, float]
    achieved_goals: list[str]
    partial_goals: list[str]
    unachieved_goals: list[str]
    iterations: int
    rule: str
    detail: dict[str, Any]


class AllocationSolver(Protocol):
    """Protocol for allocation strategies.

    Implementations build their own goal graph from the model and return a
    :class:`SolverResult`, raising :class:`SolverError` on structural
    failure.
    """

    def __call__(self, model: ConstraintModel, params: ScenarioParameters) -> SolverResult: ...


__all__ = [
    "AllocationSolver",
    "Goal",
    "GoalGraph",
    "GoalKind",
    "SolverError",
    "SolverResult",
    "SolverType",
    "Tier",
    "Variable",
    "VariableKind",
]
