"""
repository.py - SQLModel-backed sources for the settlement engine

Reads Expense/Split/Payment rows through one request-scoped Session and
turns them into the immutable records the engine computes over. Amounts are
converted from stored decimals to integer minor units here; a stored value
that cannot be represented exactly is reported as a DataIntegrityError.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlmodel import Session, select, or_, col

import money
from errors import DataIntegrityError
from models import Expense, Split, Payment, GroupMember, User
from records import ExpenseRecord, SplitRecord, PaymentRecord, PaymentStatus

logger = logging.getLogger(__name__)


def _minor(amount, currency, what) -> int:
    try:
        return money.to_minor(amount, currency)
    except (ValueError, TypeError) as exc:
        raise DataIntegrityError(f"{what}: {exc}") from exc


class SqlLedgerRepository:
    def __init__(self, session: Session):
        self.session = session

    # ---------- membership ----------
    def is_member(self, group_id: int, user_id: int) -> bool:
        row = self.session.exec(
            select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        ).first()
        return row is not None

    def group_member_ids(self, group_id: int) -> List[int]:
        rows = self.session.exec(
            select(GroupMember.user_id).where(GroupMember.group_id == group_id).order_by(GroupMember.id)
        ).all()
        return list(rows)

    # ---------- users ----------
    def user_names(self, user_ids) -> Dict[int, str]:
        ids = list(user_ids)
        if not ids:
            return {}
        rows = self.session.exec(select(User).where(col(User.id).in_(ids))).all()
        return {u.id: u.name for u in rows}

    # ---------- expenses ----------
    def _to_records(self, expenses: List[Expense]) -> List[ExpenseRecord]:
        if not expenses:
            return []
        ids = [e.id for e in expenses]
        splits_by_expense = defaultdict(list)
        for s in self.session.exec(select(Split).where(col(Split.expense_id).in_(ids)).order_by(Split.id)).all():
            splits_by_expense[s.expense_id].append(s)

        records = []
        for e in expenses:
            splits = tuple(
                SplitRecord(s.user_id, _minor(s.owed_amount, e.currency, f"Split {s.id} of expense {e.id}"))
                for s in splits_by_expense[e.id]
            )
            records.append(ExpenseRecord(
                id=e.id,
                payer_id=e.payer_id,
                currency=e.currency,
                amount=_minor(e.amount, e.currency, f"Expense {e.id}"),
                splits=splits,
                group_id=e.group_id,
            ))
        return records

    def expenses_for_group(self, group_id: int) -> List[ExpenseRecord]:
        expenses = self.session.exec(select(Expense).where(Expense.group_id == group_id).order_by(Expense.id)).all()
        return self._to_records(list(expenses))

    def expenses_for_user(self, user_id: int) -> List[ExpenseRecord]:
        in_split = select(Split.expense_id).where(Split.user_id == user_id)
        expenses = self.session.exec(
            select(Expense)
            .where(or_(Expense.payer_id == user_id, col(Expense.id).in_(in_split)))
            .order_by(Expense.id)
        ).all()
        return self._to_records(list(expenses))

    # ---------- payments ----------
    @staticmethod
    def _payment_record(p: Payment) -> PaymentRecord:
        return PaymentRecord(
            id=p.id,
            from_user_id=p.from_user_id,
            to_user_id=p.to_user_id,
            currency=p.currency,
            amount=_minor(p.amount, p.currency, f"Payment {p.id}"),
            status=PaymentStatus(p.status),
            group_id=p.group_id,
        )

    def payments_for_group(self, group_id: int, status: Optional[PaymentStatus] = None) -> List[PaymentRecord]:
        stmt = select(Payment).where(Payment.group_id == group_id)
        if status is not None:
            stmt = stmt.where(Payment.status == status)
        return [self._payment_record(p) for p in self.session.exec(stmt.order_by(Payment.id)).all()]

    def payments_for_user(self, user_id: int, status: Optional[PaymentStatus] = None) -> List[PaymentRecord]:
        stmt = select(Payment).where(or_(Payment.from_user_id == user_id, Payment.to_user_id == user_id))
        if status is not None:
            stmt = stmt.where(Payment.status == status)
        return [self._payment_record(p) for p in self.session.exec(stmt.order_by(Payment.id)).all()]
