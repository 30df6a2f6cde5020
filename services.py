from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from config import get_settings
from models import (
    Budget,
    Expense,
    ExpenseCategory,
    NotificationLog,
    NotificationType,
    Profile,
)
from periods import Month, resolve_month
from schemas import BudgetIn, ExpenseIn, ProfileIn

logger = logging.getLogger(__name__)


def cents_to_amount(cents: int) -> Decimal:
    return Decimal(cents) / Decimal(100)


class UnknownCategory(ValueError):
    pass


class AmbiguousCategory(ValueError):
    pass


def resolve_category(name: str) -> ExpenseCategory:
    clean = (name or "").strip()
    if not clean:
        raise UnknownCategory("Category is required")
    input_lower = clean.lower()

    for category in ExpenseCategory:
        if category.value.lower() == input_lower:
            return category

    best_distance: Optional[int] = None
    best: list[ExpenseCategory] = []
    for category in ExpenseCategory:
        dist = int(Levenshtein.distance(input_lower, category.value.lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [category]
        elif dist == best_distance:
            best.append(category)

    if best_distance is not None and best_distance <= 1:
        if len(best) > 1:
            raise AmbiguousCategory(
                f"Category '{clean}' is ambiguous: "
                + ", ".join(c.value for c in best)
            )
        return best[0]
    raise UnknownCategory(f"Unknown category: {clean}")


@dataclass(frozen=True)
class SpendSnapshot:
    total_spent: Decimal = Decimal(0)
    monthly_limit: Decimal = Decimal(0)
    category_spending: dict[str, Decimal] = field(default_factory=dict)
    category_limits: dict[str, object] = field(default_factory=dict)


class NotificationService:
    """Per-user access to ``notification_logs``.

    Rows are only ever appended or bulk-flipped to read; nothing here deletes
    them or marks a single row read.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_unread(
        self, user_id: int, *, limit: Optional[int] = None
    ) -> list[NotificationLog]:
        # Latest N regardless of is_read; callers count unread themselves.
        limit = limit or get_settings().notification_fetch_limit
        stmt = (
            select(NotificationLog)
            .where(NotificationLog.user_id == user_id)
            .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def create(
        self, user_id: int, type: NotificationType, message: str
    ) -> NotificationLog:
        record = NotificationLog(
            user_id=user_id,
            type=NotificationType(type),
            message=message,
            is_read=False,
            created_at=datetime.utcnow(),
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def mark_all_read(self, user_id: int) -> None:
        result = self.session.execute(
            update(NotificationLog)
            .where(
                NotificationLog.user_id == user_id,
                NotificationLog.is_read.is_(False),
            )
            .values(is_read=True)
        )
        self.session.commit()
        logger.info(
            f"notifications_mark_all_read: user_id={user_id} rows={result.rowcount}"
        )


class ProfileService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> Optional[Profile]:
        return self.session.get(Profile, user_id)

    def get_by_email(self, email: str) -> Optional[Profile]:
        stmt = select(Profile).where(func.lower(Profile.email) == email.strip().lower())
        return self.session.scalar(stmt)

    def get_or_create(self, email: str) -> Profile:
        clean_email = email.strip()
        if not clean_email:
            raise ValueError("Email cannot be empty")
        existing = self.get_by_email(clean_email)
        if existing:
            return existing

        profile = Profile(email=clean_email)
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def upsert(self, user_id: int, data: ProfileIn) -> Profile:
        profile = self.get(user_id)
        if not profile:
            raise ValueError("Profile not found")
        display_name = (data.display_name or "").strip()
        profile.display_name = display_name or None
        profile.email_notifications = data.email_notifications
        profile.currency = data.currency.upper()
        self.session.commit()
        self.session.refresh(profile)
        return profile


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise ValueError("Expense not found")
        return expense

    def list_for_month(self, month: Month) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(
                Expense.user_id == self.user_id,
                Expense.date >= month.start,
                Expense.date <= month.end,
            )
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            user_id=self.user_id,
            date=data.date,
            category=resolve_category(data.category),
            amount_cents=data.amount_cents,
            description=(data.description or "").strip() or None,
            payment_method=data.payment_method,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        category = resolve_category(data.category)
        expense.date = data.date
        expense.category = category
        expense.amount_cents = data.amount_cents
        expense.description = (data.description or "").strip() or None
        expense.payment_method = data.payment_method
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get_for_month(self, month: Month) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == self.user_id, Budget.month == month.slug
        )
        return self.session.scalar(stmt)

    def upsert(self, month: Month, data: BudgetIn) -> Budget:
        limits: dict[str, object] = {}
        for name, limit in data.category_limits.items():
            limits[resolve_category(name).value] = limit

        existing = self.get_for_month(month)
        if existing:
            existing.monthly_limit_cents = data.monthly_limit_cents
            existing.category_limits = limits
            self.session.commit()
            self.session.refresh(existing)
            return existing

        budget = Budget(
            user_id=self.user_id,
            month=month.slug,
            monthly_limit_cents=data.monthly_limit_cents,
            category_limits=limits,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget


class SnapshotService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def snapshot_for_month(self, month: Optional[Month] = None) -> SpendSnapshot:
        month = month or resolve_month(None)
        rows = self.session.execute(
            select(Expense.category, func.coalesce(func.sum(Expense.amount_cents), 0))
            .where(
                Expense.user_id == self.user_id,
                Expense.date >= month.start,
                Expense.date <= month.end,
            )
            .group_by(Expense.category)
        ).all()
        by_category = {category: int(total) for category, total in rows}

        category_spending = {
            category.value: cents_to_amount(by_category.get(category, 0))
            for category in ExpenseCategory
        }
        total_cents = sum(by_category.values())

        budget = BudgetService(self.session, self.user_id).get_for_month(month)
        monthly_limit_cents = budget.monthly_limit_cents if budget else 0
        category_limits = dict(budget.category_limits or {}) if budget else {}

        return SpendSnapshot(
            total_spent=cents_to_amount(total_cents),
            monthly_limit=cents_to_amount(monthly_limit_cents),
            category_spending=category_spending,
            category_limits=category_limits,
        )
