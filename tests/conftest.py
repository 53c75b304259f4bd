"""Shared fixtures for budget allocation tests."""

import pytest

from budget_allocation.models import CategoryConstraint, ConstraintModel, DebtConstraint, GoalConstraint


def _build(total_income, mandatory=None, flexible=None, debts=None, goals=None):
    return ConstraintModel(
        total_income=total_income,
        mandatory_expenses={c.category_id: c for c in mandatory or []},
        flexible_expenses={c.category_id: c for c in flexible or []},
        debt_payments={d.debt_id: d for d in debts or []},
        goal_targets={g.goal_id: g for g in goals or []},
    )


@pytest.fixture()
def make_model():
    """Factory building a ``ConstraintModel`` from lists of constraint records."""
    return _build


@pytest.fixture()
def emergency_goal():
    return GoalConstraint(
        "ef",
        suggested_contribution=500,
        remaining_amount=10000,
        goal_name="EmergencyFund",
        goal_type="emergency",
        priority_label="high",
    )


@pytest.fixture()
def credit_card():
    return DebtConstraint("cc", minimum_payment=150, current_balance=5000, interest_rate=0.18, debt_name="CreditCard")


@pytest.fixture()
def basic_model(emergency_goal, credit_card):
    """Income 5000, rent 1500, one credit card, one emergency fund."""
    return _build(
        5000,
        mandatory=[CategoryConstraint.mandatory("rent", 1500)],
        debts=[credit_card],
        goals=[emergency_goal],
    )


@pytest.fixture()
def rich_model(emergency_goal, credit_card):
    """Feasible model exercising every kind of constraint."""
    return _build(
        6000,
        mandatory=[
            CategoryConstraint.mandatory("rent", 1800),
            CategoryConstraint.mandatory("utilities", 250, priority=2),
        ],
        flexible=[
            CategoryConstraint.flexible("dining", 100, 400, priority=3),
            CategoryConstraint.flexible("groceries", 400, 700, priority=1),
        ],
        debts=[
            credit_card,
            DebtConstraint("car", minimum_payment=300, current_balance=12000, interest_rate=0.06, debt_name="CarLoan"),
        ],
        goals=[
            emergency_goal,
            GoalConstraint("house", 800, 40000, goal_name="House", priority_weight=10),
            GoalConstraint("trip", 200, 1500, goal_name="Trip", priority_label="low"),
        ],
    )


@pytest.fixture()
def infeasible_model(emergency_goal):
    """Hard floors of 1100 against an income of 1000."""
    return _build(
        1000,
        mandatory=[CategoryConstraint.mandatory("rent", 900)],
        flexible=[CategoryConstraint.flexible("dining", 50, 200, priority=3)],
        debts=[DebtConstraint("loan", minimum_payment=200, current_balance=8000, interest_rate=0.22, debt_name="Loan")],
        goals=[emergency_goal],
    )


@pytest.fixture()
def category_names():
    return {"rent": "Rent", "utilities": "Utilities", "dining": "Dining out", "groceries": "Groceries"}


@pytest.fixture()
def sample_event():
    """Request-shaped event for the allocation component."""
    return {
        "user_id": "user-1",
        "year": 2024,
        "month": 12,
        "total_income": 5000,
        "mandatory_expenses": [{"category_id": "rent", "name": "Rent", "amount": 1500}],
        "flexible_expenses": [],
        "debts": [
            {"debt_id": "cc", "name": "CreditCard", "balance": 5000, "interest_rate": 0.18, "minimum_payment": 150}
        ],
        "goals": [
            {
                "goal_id": "ef",
                "name": "EmergencyFund",
                "type": "emergency",
                "priority": "high",
                "remaining_amount": 10000,
                "suggested_contribution": 500,
            }
        ],
    }
