"""
payments.py - payment lifecycle

A payment is recorded PENDING by the payer and resolved exactly once by the
payee: CONFIRMED (it now counts toward balances) or REJECTED. Both outcomes
are terminal.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlmodel import Session, select, or_, col

import money
from errors import PaymentNotAllowed, PaymentNotFound, PaymentStateError
from models import Payment, User, utcnow
from records import PaymentStatus
from repository import SqlLedgerRepository

logger = logging.getLogger(__name__)


def record_payment(
    session: Session,
    from_user_id: int,
    to_user_id: int,
    amount: Decimal,
    currency: str,
    group_id: Optional[int] = None,
    note: Optional[str] = None,
) -> Payment:
    if from_user_id == to_user_id:
        raise ValueError("Cannot make a payment to yourself")
    minor = money.to_minor(amount, currency)
    if minor <= 0:
        raise ValueError("Payment amount must be positive")
    for uid in (from_user_id, to_user_id):
        if session.get(User, uid) is None:
            raise ValueError(f"Unknown user {uid}")
    if group_id is not None:
        repo = SqlLedgerRepository(session)
        if not (repo.is_member(group_id, from_user_id) and repo.is_member(group_id, to_user_id)):
            raise PaymentNotAllowed("Both users must be members of the group")

    payment = Payment(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=money.to_decimal(minor, currency),
        currency=currency,
        group_id=group_id,
        note=note,
    )
    session.add(payment)
    session.commit()
    session.refresh(payment)
    logger.info("Recorded payment %s: %s -> %s %s %s", payment.id, from_user_id, to_user_id, amount, currency)
    return payment


def _resolve(session: Session, payment_id: int, user_id: int, status: PaymentStatus) -> Payment:
    # row lock so two concurrent resolutions cannot both see PENDING
    payment = session.exec(select(Payment).where(Payment.id == payment_id).with_for_update()).first()
    if payment is None:
        raise PaymentNotFound(f"Payment {payment_id} not found")
    if payment.to_user_id != user_id:
        raise PaymentNotAllowed("Only the recipient can confirm or reject a payment")
    if payment.status != PaymentStatus.PENDING:
        raise PaymentStateError(f"Payment cannot be resolved - current status: {PaymentStatus(payment.status).value}")

    payment.status = status
    payment.resolved_at = utcnow()
    session.add(payment)
    session.commit()
    session.refresh(payment)
    logger.info("Payment %s %s by user %s", payment_id, status.value, user_id)
    return payment


def confirm_payment(session: Session, payment_id: int, user_id: int) -> Payment:
    return _resolve(session, payment_id, user_id, PaymentStatus.CONFIRMED)


def reject_payment(session: Session, payment_id: int, user_id: int) -> Payment:
    return _resolve(session, payment_id, user_id, PaymentStatus.REJECTED)


def get_payment(session: Session, payment_id: int, user_id: int) -> Payment:
    payment = session.get(Payment, payment_id)
    if payment is None:
        raise PaymentNotFound(f"Payment {payment_id} not found")
    # only the two parties may see a payment
    if user_id not in (payment.from_user_id, payment.to_user_id):
        raise PaymentNotAllowed("Access denied")
    return payment


def list_payments(
    session: Session,
    user_id: int,
    status: Optional[PaymentStatus] = None,
    group_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Payment]:
    """Payments the user sent or received, newest first."""
    stmt = select(Payment).where(or_(Payment.from_user_id == user_id, Payment.to_user_id == user_id))
    if status is not None:
        stmt = stmt.where(Payment.status == status)
    if group_id is not None:
        stmt = stmt.where(Payment.group_id == group_id)
    stmt = stmt.order_by(col(Payment.created_at).desc(), col(Payment.id).desc()).offset(offset).limit(limit)
    return list(session.exec(stmt).all())
