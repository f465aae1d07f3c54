from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from decimal import Decimal

from records import PaymentStatus

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ============== Users ==============
class UserBase(SQLModel):
    name: str

class User(UserBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)

# ============== Groups ==============
class GroupBase(SQLModel):
    name: str

class Group(GroupBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    created_by: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow)

class GroupMember(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="group.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    joined_at: datetime = Field(default_factory=utcnow)

# ============== Expenses ==============
class ExpenseBase(SQLModel):
    group_id: Optional[int] = Field(default=None, foreign_key="group.id", index=True)  # NULL for direct expenses
    description: Optional[str] = None
    currency: str = Field(min_length=3, max_length=3)
    amount: Decimal = Field(max_digits=14, decimal_places=4)

class Expense(ExpenseBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    payer_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)

# ============== Splits ==============
class SplitBase(SQLModel):
    user_id: int = Field(foreign_key="user.id", index=True)
    owed_amount: Decimal = Field(max_digits=14, decimal_places=4)

class Split(SplitBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    expense_id: int = Field(foreign_key="expense.id", index=True)

# ============== Payments (settle-up transfers between users) ==============
class PaymentBase(SQLModel):
    to_user_id: int = Field(foreign_key="user.id", index=True)
    currency: str = Field(min_length=3, max_length=3)
    amount: Decimal = Field(max_digits=14, decimal_places=4)
    group_id: Optional[int] = Field(default=None, foreign_key="group.id", index=True)
    note: Optional[str] = None

class Payment(PaymentBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    from_user_id: int = Field(foreign_key="user.id", index=True)
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
