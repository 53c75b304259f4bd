"""Allocation component: request dict in, serialized scenarios out."""

import logging
import time
from dataclasses import asdict, fields
from datetime import datetime, timezone
from typing import Any

from budget_allocation.feasibility import check_feasibility, suggestions_for_deficit
from budget_allocation.models import (
    AllocationScenario,
    CategoryConstraint,
    ConstraintModel,
    DebtConstraint,
    GoalConstraint,
    InputValidationError,
    ScenarioWarning,
    WarningSeverity,
)
from budget_allocation.scenarios import ScenarioGenerator
from budget_allocation.sensitivity import SensitivityAnalyzer, SensitivityOptions

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100
DEFAULT_GOAL_MONTHS = 12

_DEBT_FIELD_MAP_IN: dict[str, str] = {
    "name": "debt_name",
    "balance": "current_balance",
}
_GOAL_FIELD_MAP_IN: dict[str, str] = {
    "name": "goal_name",
    "type": "goal_type",
    "priority": "priority_label",
}
_REQUIRED_NUMBERS: dict[str, tuple[str, ...]] = {
    "mandatory_expenses": ("amount",),
    "flexible_expenses": ("min_amount", "max_amount"),
    "debts": ("minimum_payment", "balance", "interest_rate"),
    "goals": ("remaining_amount",),
}
_OPTIONAL_NUMBERS: dict[str, tuple[str, ...]] = {
    "mandatory_expenses": ("priority",),
    "flexible_expenses": ("priority",),
    "debts": ("fixed_payment",),
    "goals": ("suggested_contribution", "auto_contribute_amount", "months_remaining", "priority_weight"),
}
_SENSITIVITY_OPTIONS = {field.name for field in fields(SensitivityOptions)}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def suggested_contribution(goal: dict[str, Any]) -> float:
    """Monthly contribution for a goal snapshot.

    Uses the explicit ``suggested_contribution`` when present, then
    ``auto_contribute_amount``, then the remaining amount spread over
    ``months_remaining``, and finally over twelve months.

    Parameters
    ----------
    goal : dict[str, Any]
        Goal snapshot with at least ``remaining_amount``.

    Returns
    -------
    float
    """
    if goal.get("suggested_contribution"):
        return float(goal["suggested_contribution"])
    if goal.get("auto_contribute_amount"):
        return float(goal["auto_contribute_amount"])
    remaining = float(goal["remaining_amount"])
    months = goal.get("months_remaining")
    if months and months > 0:
        return remaining / months
    return remaining / DEFAULT_GOAL_MONTHS


def validate_request(event: dict[str, Any]) -> None:
    """Reject malformed requests before any model is built.

    Raises
    ------
    InputValidationError
        Naming the first offending field.
    """
    if not event.get("user_id"):
        raise InputValidationError("user_id", "is required")
    year = event.get("year")
    if not isinstance(year, int) or not (MIN_YEAR <= year <= MAX_YEAR):
        raise InputValidationError("year", f"must be between {MIN_YEAR} and {MAX_YEAR}")
    month = event.get("month")
    if not isinstance(month, int) or not (1 <= month <= 12):
        raise InputValidationError("month", "must be between 1 and 12")
    income = event.get("total_income")
    if not _is_number(income) or income <= 0:
        raise InputValidationError("total_income", "must be positive")
    for collection, id_field in (
        ("mandatory_expenses", "category_id"),
        ("flexible_expenses", "category_id"),
        ("debts", "debt_id"),
        ("goals", "goal_id"),
    ):
        for index, item in enumerate(event.get(collection) or []):
            prefix = f"{collection}[{index}]"
            if not isinstance(item, dict):
                raise InputValidationError(prefix, "must be an object")
            if not item.get(id_field):
                raise InputValidationError(f"{prefix}.{id_field}", "identifier is required")
            for name in _REQUIRED_NUMBERS[collection]:
                if not _is_number(item.get(name)):
                    raise InputValidationError(f"{prefix}.{name}", "must be a number")
            for name in _OPTIONAL_NUMBERS[collection]:
                if item.get(name) is not None and not _is_number(item[name]):
                    raise InputValidationError(f"{prefix}.{name}", "must be a number")
    _validate_sensitivity_options(event.get("sensitivity_options") or {})


def _validate_sensitivity_options(options: Any) -> None:
    if not isinstance(options, dict):
        raise InputValidationError("sensitivity_options", "must be an object")
    for key, value in options.items():
        field = f"sensitivity_options.{key}"
        if key not in _SENSITIVITY_OPTIONS:
            raise InputValidationError(field, "unknown option")
        if key == "analyze_goal_priority":
            if not isinstance(value, bool):
                raise InputValidationError(field, "must be a boolean")
        elif not isinstance(value, (list, tuple)) or not all(_is_number(change) for change in value):
            raise InputValidationError(field, "must be a list of numbers")


def build_constraint_model(event: dict[str, Any]) -> tuple[ConstraintModel, dict[str, str]]:
    """Assemble a constraint model and category names from a validated request.

    Parameters
    ----------
    event : dict[str, Any]
        Request with ``total_income`` and optional ``mandatory_expenses``,
        ``flexible_expenses``, ``debts`` and ``goals`` lists.

    Returns
    -------
    tuple[ConstraintModel, dict[str, str]]
        The model and display names keyed by category id.
    """
    names: dict[str, str] = {}
    mandatory = {}
    for item in event.get("mandatory_expenses") or []:
        category = CategoryConstraint.mandatory(item["category_id"], float(item["amount"]), item.get("priority", 1))
        mandatory[category.category_id] = category
        names[category.category_id] = item.get("name", category.category_id)
    flexible = {}
    for item in event.get("flexible_expenses") or []:
        category = CategoryConstraint.flexible(
            item["category_id"], float(item["min_amount"]), float(item["max_amount"]), item.get("priority", 2)
        )
        flexible[category.category_id] = category
        names[category.category_id] = item.get("name", category.category_id)
    debts = {}
    for item in event.get("debts") or []:
        fields = {_DEBT_FIELD_MAP_IN.get(key, key): value for key, value in item.items()}
        debt = DebtConstraint(
            debt_id=fields["debt_id"],
            minimum_payment=float(fields["minimum_payment"]),
            current_balance=float(fields["current_balance"]),
            interest_rate=float(fields["interest_rate"]),
            debt_name=fields.get("debt_name", ""),
            fixed_payment=float(fields.get("fixed_payment", 0.0)),
        )
        debts[debt.debt_id] = debt
    goals = {}
    for item in event.get("goals") or []:
        fields = {_GOAL_FIELD_MAP_IN.get(key, key): value for key, value in item.items()}
        goal = GoalConstraint(
            goal_id=fields["goal_id"],
            suggested_contribution=suggested_contribution(item),
            remaining_amount=float(fields["remaining_amount"]),
            goal_name=fields.get("goal_name", ""),
            goal_type=fields.get("goal_type", "savings"),
            priority_label=fields.get("priority_label", "medium"),
            priority_weight=fields.get("priority_weight"),
        )
        goals[goal.goal_id] = goal
    model = ConstraintModel(
        total_income=float(event["total_income"]),
        mandatory_expenses=mandatory,
        flexible_expenses=flexible,
        debt_payments=debts,
        goal_targets=goals,
    )
    return model, names


def _serialize_scenario(scenario: AllocationScenario) -> dict[str, Any]:
    return {**asdict(scenario), "is_feasible": scenario.is_feasible}


class BudgetAllocationComponent:
    """Validate a request, generate scenarios, and optionally run sensitivity analysis.

    Parameters
    ----------
    generator : ScenarioGenerator, optional
        Scenario generator. Defaults to the three standard presets.
    """

    def __init__(self, generator: ScenarioGenerator | None = None) -> None:
        self.generator = generator or ScenarioGenerator()

    def execute(self, event: dict) -> dict:
        """Run allocation for one request.

        Parameters
        ----------
        event : dict
            Must contain ``user_id``, ``year``, ``month`` and
            ``total_income``; may contain ``mandatory_expenses``,
            ``flexible_expenses``, ``debts``, ``goals``,
            ``use_all_scenarios`` (default ``True``), ``run_sensitivity``
            (default ``False``) and ``sensitivity_options``.

        Returns
        -------
        dict
            ``user_id``, ``period`` (``YYYY-MM``), ``total_income``,
            ``is_feasible``, ``scenarios``, ``global_warnings``,
            ``sensitivity`` and ``metadata``.

        Raises
        ------
        InputValidationError
            If the request is malformed. Nothing is computed in that case.
        """
        started = time.perf_counter()
        validate_request(event)
        model, names = build_constraint_model(event)

        feasible, deficit = check_feasibility(model)
        global_warnings: list[ScenarioWarning] = []
        if not feasible:
            global_warnings.append(
                ScenarioWarning(
                    WarningSeverity.CRITICAL,
                    "income",
                    f"Income is {deficit:.2f} short of mandatory expenses and minimum debt payments",
                    suggestions_for_deficit(model, deficit, names),
                )
            )

        if event.get("use_all_scenarios", True):
            scenarios = self.generator.generate_scenarios(model, names)
        else:
            scenarios = [self.generator.generate_balanced_scenario(model, names)]

        sensitivity = None
        if event.get("run_sensitivity", False):
            raw_options = event.get("sensitivity_options") or {}
            options = SensitivityOptions(
                **{
                    key: tuple(value) if isinstance(value, list) else value
                    for key, value in raw_options.items()
                }
            )
            sensitivity = asdict(SensitivityAnalyzer(self.generator, options).analyze(model, names))

        constraint_count = len(model.mandatory_expenses) + len(model.flexible_expenses) + len(model.debt_payments)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Allocation complete: user=%s, scenarios=%d, feasible=%s, %.0f ms",
            event["user_id"],
            len(scenarios),
            feasible,
            elapsed_ms,
        )
        return {
            "user_id": event["user_id"],
            "period": f"{event['year']:04d}-{event['month']:02d}",
            "total_income": model.total_income,
            "is_feasible": feasible,
            "scenarios": [_serialize_scenario(s) for s in scenarios],
            "global_warnings": [asdict(w) for w in global_warnings],
            "sensitivity": sensitivity,
            "metadata": {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "computation_time_ms": round(elapsed_ms, 3),
                "constraint_count": constraint_count,
                "goal_count": len(model.goal_targets),
                "debt_count": len(model.debt_payments),
            },
        }
