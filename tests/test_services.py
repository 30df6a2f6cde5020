from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import ExpenseCategory
from periods import resolve_month
from schemas import BudgetIn, ExpenseIn, ProfileIn
from services import (
    BudgetService,
    ExpenseService,
    ProfileService,
    SnapshotService,
    UnknownCategory,
    resolve_category,
)

JANUARY = resolve_month("2026-01")


def test_resolve_category_exact_case_insensitive_and_fuzzy() -> None:
    assert resolve_category("food & dining") == ExpenseCategory.food_dining
    assert resolve_category("  Travel ") == ExpenseCategory.travel
    assert resolve_category("Utilites") == ExpenseCategory.utilities

    with pytest.raises(UnknownCategory):
        resolve_category("Crypto")
    with pytest.raises(UnknownCategory):
        resolve_category("  ")


def test_resolve_month_bounds_and_validation() -> None:
    feb = resolve_month("2028-02")
    assert feb.start == date(2028, 2, 1)
    assert feb.end == date(2028, 2, 29)
    assert resolve_month("2025-12").end == date(2025, 12, 31)
    assert resolve_month(None, today=date(2026, 3, 15)).slug == "2026-03"

    with pytest.raises(ValueError):
        resolve_month("2026-13")
    with pytest.raises(ValueError):
        resolve_month("March")


def test_profile_get_or_create_matches_email_case_insensitive() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        profiles = ProfileService(session)
        first = profiles.get_or_create("Asha@Example.com")
        again = profiles.get_or_create("asha@example.com")
        assert first.user_id == again.user_id

        updated = profiles.upsert(
            first.user_id,
            ProfileIn(display_name="  ", email_notifications=True, currency="usd"),
        )
        assert updated.display_name is None
        assert updated.email_notifications is True
        assert updated.currency == "USD"


def test_snapshot_sums_month_expenses_by_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expenses = ExpenseService(session, user_id=1)
        expenses.create(
            ExpenseIn(date=date(2026, 1, 3), amount_cents=1_250_050, category="Food & Dining")
        )
        expenses.create(
            ExpenseIn(date=date(2026, 1, 20), amount_cents=50_000, category="food & dining")
        )
        expenses.create(
            ExpenseIn(date=date(2026, 1, 31), amount_cents=300_000, category="Travel")
        )
        expenses.create(
            ExpenseIn(date=date(2026, 2, 1), amount_cents=999_999, category="Travel")
        )
        ExpenseService(session, user_id=2).create(
            ExpenseIn(date=date(2026, 1, 5), amount_cents=777, category="Other")
        )

        snapshot = SnapshotService(session, user_id=1).snapshot_for_month(JANUARY)

        assert snapshot.total_spent == Decimal("16000.50")
        assert snapshot.category_spending["Food & Dining"] == Decimal("13000.50")
        assert snapshot.category_spending["Travel"] == Decimal("3000")
        assert snapshot.category_spending["Other"] == Decimal("0")
        assert set(snapshot.category_spending) == {c.value for c in ExpenseCategory}
        assert snapshot.monthly_limit == Decimal("0")
        assert snapshot.category_limits == {}


def test_snapshot_reads_budget_limits_in_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        BudgetService(session, user_id=1).upsert(
            JANUARY,
            BudgetIn(
                monthly_limit_cents=5_000_000,
                category_limits={"travel": 2000, "Food & Dining": "8000", "Other": 0},
            ),
        )

        snapshot = SnapshotService(session, user_id=1).snapshot_for_month(JANUARY)

        assert snapshot.monthly_limit == Decimal("50000")
        assert list(snapshot.category_limits) == ["Travel", "Food & Dining", "Other"]
        assert snapshot.category_limits["Food & Dining"] == "8000"


def test_budget_upsert_replaces_existing_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        budgets = BudgetService(session, user_id=1)
        first = budgets.upsert(JANUARY, BudgetIn(monthly_limit_cents=100))
        second = budgets.upsert(
            JANUARY,
            BudgetIn(monthly_limit_cents=200, category_limits={"Shopping": 50}),
        )

        assert first.id == second.id
        assert budgets.get_for_month(JANUARY).monthly_limit_cents == 200
        assert budgets.get_for_month(JANUARY).category_limits == {"Shopping": 50}


def test_expense_update_and_delete_are_scoped_to_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        mine = ExpenseService(session, user_id=1)
        expense = mine.create(
            ExpenseIn(date=date(2026, 1, 3), amount_cents=100, category="Shopping")
        )

        with pytest.raises(ValueError):
            ExpenseService(session, user_id=2).delete(expense.id)

        updated = mine.update(
            expense.id,
            ExpenseIn(date=date(2026, 1, 4), amount_cents=250, category="Entertainment"),
        )
        assert updated.amount_cents == 250
        assert updated.category == ExpenseCategory.entertainment

        mine.delete(expense.id)
        assert mine.list_for_month(JANUARY) == []
