"""Feasibility checks on a constraint model.

A model is feasible when income covers every hard floor: the mandatory
category minimums plus the minimum debt payments. None of these functions
alter the model.
"""

import logging

from budget_allocation.models import ConstraintModel

logger = logging.getLogger(__name__)

HIGH_INTEREST_RATE = 0.15

INCOME_SUGGESTIONS = [
    "Look for additional income such as freelance or part-time work",
    "Sell unused items to cover the short-term gap",
    "Discuss a salary adjustment with your employer",
]


def hard_floor_total(model: ConstraintModel) -> float:
    """Sum of mandatory minimums and minimum debt payments."""
    mandatory = sum(c.minimum for c in model.mandatory_expenses.values())
    debts = sum(d.minimum_payment for d in model.debt_payments.values())
    return mandatory + debts


def check_feasibility(model: ConstraintModel) -> tuple[bool, float]:
    """Decide whether income covers all hard floors.

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot.

    Returns
    -------
    tuple[bool, float]
        ``(is_feasible, deficit)`` where ``deficit`` is the exact shortfall,
        or 0 when feasible.
    """
    shortfall = hard_floor_total(model) - model.total_income
    if shortfall > 0:
        logger.warning("Hard floors exceed income by %.2f", shortfall)
        return False, shortfall
    return True, 0.0


def calculate_surplus(model: ConstraintModel) -> float:
    """Income left after hard floors, clamped at 0."""
    return max(0.0, model.total_income - hard_floor_total(model))


def suggestions_for_deficit(
    model: ConstraintModel,
    deficit: float,
    category_names: dict[str, str] | None = None,
) -> list[str]:
    """Build remediation suggestions for an income shortfall.

    The list opens with the shortfall itself, followed by flexible
    categories to trim (least important first, then largest reducible
    amount), high-interest debts worth consolidating (highest priority first,
    then largest balance) and finally ways to raise income.

    Parameters
    ----------
    model : ConstraintModel
        Problem snapshot.
    deficit : float
        Shortfall reported by :func:`check_feasibility`.
    category_names : dict[str, str], optional
        Display names keyed by category id.

    Returns
    -------
    list[str]
        Ordered, user-facing suggestions.
    """
    names = category_names or {}
    suggestions = [f"Income falls {deficit:.2f} short of mandatory expenses and minimum debt payments"]

    reducible = [c for c in model.flexible_expenses.values() if c.maximum > 0]
    reducible.sort(key=lambda c: (-c.priority, -c.maximum, c.category_id))
    for category in reducible:
        name = names.get(category.category_id, category.category_id)
        suggestions.append(f"Reduce flexible spending on {name} by up to {category.maximum:.2f}")

    expensive = [d for d in model.debt_payments.values() if d.interest_rate >= HIGH_INTEREST_RATE]
    expensive.sort(key=lambda d: (d.priority, -d.current_balance, d.debt_id))
    for debt in expensive:
        suggestions.append(
            f"Consider consolidating {debt.name} ({debt.interest_rate:.0%} interest) to lower the minimum payment"
        )

    suggestions.extend(INCOME_SUGGESTIONS)
    return suggestions
