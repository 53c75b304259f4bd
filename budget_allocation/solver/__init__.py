"""Allocation solvers.

Provides the five allocation strategies, the goal-graph types they share,
the ``AllocationSolver`` protocol they all satisfy, and the
``GoalProgrammingSolver`` facade that selects, falls back, and compares.
"""

from budget_allocation.solver._common import TOLERANCE, achievement, build_variables, deviation
from budget_allocation.solver._types import (
    AllocationSolver,
    Goal,
    GoalGraph,
    GoalKind,
    SolverError,
    SolverResult,
    SolverType,
    Tier,
    Variable,
    VariableKind,
)
from budget_allocation.solver.facade import (
    GoalProgrammingSolver,
    compare_dual,
    compare_triple,
    default_solvers,
    to_allocation_result,
)
from budget_allocation.solver.heuristic import HeuristicSolver
from budget_allocation.solver.meta import MetaSolver, build_meta_graph
from budget_allocation.solver.minmax import MinmaxSolver, build_minmax_graph
from budget_allocation.solver.preemptive import PreemptiveSolver, build_preemptive_graph
from budget_allocation.solver.weighted import WeightedSolver, build_weighted_graph

__all__ = [
    "AllocationSolver",
    "Goal",
    "GoalGraph",
    "GoalKind",
    "GoalProgrammingSolver",
    "HeuristicSolver",
    "MetaSolver",
    "MinmaxSolver",
    "PreemptiveSolver",
    "SolverError",
    "SolverResult",
    "SolverType",
    "TOLERANCE",
    "Tier",
    "Variable",
    "VariableKind",
    "WeightedSolver",
    "achievement",
    "build_meta_graph",
    "build_minmax_graph",
    "build_preemptive_graph",
    "build_variables",
    "build_weighted_graph",
    "compare_dual",
    "compare_triple",
    "default_solvers",
    "deviation",
    "to_allocation_result",
]
