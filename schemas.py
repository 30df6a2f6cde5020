from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import ExpenseCategory, NotificationType


class SessionIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")


class ProfileIn(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    email_notifications: bool = False
    currency: str = Field(default="INR", min_length=3, max_length=3)


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    email: str
    display_name: Optional[str]
    email_notifications: bool
    currency: str


class ExpenseIn(BaseModel):
    date: date
    amount_cents: int = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=200)
    payment_method: Optional[str] = Field(default=None, max_length=40)


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: date
    amount_cents: int
    category: ExpenseCategory
    description: Optional[str]
    payment_method: Optional[str]


class BudgetIn(BaseModel):
    monthly_limit_cents: int = Field(default=0, ge=0)
    # values are kept as entered; blank or non-numeric limits mean "no limit"
    category_limits: dict[str, object] = Field(default_factory=dict)


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    message: str
    is_read: bool
    created_at: datetime


class SnapshotOut(BaseModel):
    month: str
    total_spent: Decimal
    monthly_limit: Decimal
    category_spending: dict[str, Decimal]
    category_limits: dict[str, object]


class BudgetAlertEmailIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    message: str = ""
    budget_info: Optional[str] = Field(default=None, alias="budgetInfo")
