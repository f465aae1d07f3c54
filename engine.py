"""
engine.py - Settlement Engine facade

Wires the extractor, aggregator and simplifier from compute.py behind the
three read-only queries callers use. Each query fetches its records once from
the injected sources and computes over that fixed set; nothing is cached or
stored between calls.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Protocol

import compute
import money
from errors import AccessDenied
from records import (
    CounterpartyBalance,
    CurrencyTotals,
    ExpenseRecord,
    GroupBalanceReport,
    GroupId,
    GroupNetPosition,
    GroupPairBalance,
    PaymentRecord,
    PaymentStatus,
    Settlement,
    UserBalanceReport,
    UserId,
)

logger = logging.getLogger(__name__)


class ExpenseSource(Protocol):
    def expenses_for_group(self, group_id: GroupId) -> List[ExpenseRecord]:
        ...

    def expenses_for_user(self, user_id: UserId) -> List[ExpenseRecord]:
        """Every expense the user paid for or has a split in, group or direct."""
        ...


class PaymentSource(Protocol):
    def payments_for_group(self, group_id: GroupId, status: Optional[PaymentStatus] = None) -> List[PaymentRecord]:
        ...

    def payments_for_user(self, user_id: UserId, status: Optional[PaymentStatus] = None) -> List[PaymentRecord]:
        ...


class MembershipCheck(Protocol):
    def is_member(self, group_id: GroupId, user_id: UserId) -> bool:
        ...


class UserDirectory(Protocol):
    def user_names(self, user_ids) -> Dict[UserId, str]:
        """Display names for the ids that exist; unknown ids are left out."""
        ...


class SettlementEngine:
    def __init__(self, expenses: ExpenseSource, payments: PaymentSource, membership: MembershipCheck,
                 users: Optional[UserDirectory] = None):
        self._expenses = expenses
        self._payments = payments
        self._membership = membership
        self._users = users

    def _names(self, user_ids) -> Dict[UserId, str]:
        ids = set(user_ids)
        if self._users is None or not ids:
            return {}
        return self._users.user_names(ids)

    def _require_member(self, group_id: GroupId, user_id: UserId) -> None:
        if not self._membership.is_member(group_id, user_id):
            logger.info("Denied group %s query for non-member %s", group_id, user_id)
            raise AccessDenied(group_id, user_id)

    def _group_balances(self, group_id: GroupId):
        expenses = self._expenses.expenses_for_group(group_id)
        payments = self._payments.payments_for_group(group_id, PaymentStatus.CONFIRMED)
        entries = compute.extract_ledger_entries(expenses, payments)
        logger.debug(
            "Group %s: %d expenses, %d confirmed payments, %d ledger entries",
            group_id, len(expenses), len(payments), len(entries),
        )
        return compute.pair_balances(entries)

    def get_user_balances(self, user_id: UserId) -> UserBalanceReport:
        """
        Who owes this user, and whom this user owes, per counterparty and
        currency, across every group and direct expense. Positive amounts
        are owed to the user.
        """
        expenses = self._expenses.expenses_for_user(user_id)
        payments = self._payments.payments_for_user(user_id, PaymentStatus.CONFIRMED)
        entries = compute.extract_ledger_entries(expenses, payments)

        # minor units: (currency, counterparty) -> signed amount from user's view
        mine: Dict[tuple, int] = {}
        for pb in compute.pair_balances(entries):
            if pb.user_a == user_id:
                mine[(pb.currency, pb.user_b)] = pb.net_amount
            elif pb.user_b == user_id:
                mine[(pb.currency, pb.user_a)] = -pb.net_amount

        ordered = sorted(mine.items(), key=lambda kv: (kv[0][0], -abs(kv[1]), kv[0][1]))
        names = self._names(other for (_, other) in mine)
        balances = [
            CounterpartyBalance(other, money.to_decimal(amt, currency), currency, names.get(other))
            for (currency, other), amt in ordered
        ]

        owed = defaultdict(int)
        owe = defaultdict(int)
        for (currency, _), amt in mine.items():
            if amt > 0:
                owed[currency] += amt
            else:
                owe[currency] -= amt
        totals = [
            CurrencyTotals(
                currency=c,
                total_owed=money.to_decimal(owed[c], c),
                total_owe=money.to_decimal(owe[c], c),
                net_balance=money.to_decimal(owed[c] - owe[c], c),
            )
            for c in sorted(set(owed) | set(owe))
        ]
        return UserBalanceReport(balances=balances, totals=totals)

    def get_group_balances(self, group_id: GroupId, requesting_user_id: UserId) -> GroupBalanceReport:
        self._require_member(group_id, requesting_user_id)
        pairs = self._group_balances(group_id)
        names = self._names(u for pb in pairs for u in (pb.user_a, pb.user_b))
        balances = [
            GroupPairBalance(
                pb.user_a, pb.user_b, money.to_decimal(pb.net_amount, pb.currency), pb.currency,
                names.get(pb.user_a), names.get(pb.user_b),
            )
            for pb in pairs
        ]
        positions = [
            GroupNetPosition(pos.user_id, money.to_decimal(pos.net_amount, pos.currency), pos.currency,
                             names.get(pos.user_id))
            for pos in compute.net_positions(pairs)
            if pos.net_amount != 0
        ]
        return GroupBalanceReport(balances=balances, positions=positions)

    def simplify_debts(self, group_id: GroupId, requesting_user_id: UserId) -> List[Settlement]:
        self._require_member(group_id, requesting_user_id)
        positions = compute.net_positions(self._group_balances(group_id))
        debts = compute.simplify_debts(positions)
        logger.debug("Group %s simplified to %d transfers", group_id, len(debts))
        names = self._names(u for d in debts for u in (d.from_user_id, d.to_user_id))
        return [
            Settlement(d.from_user_id, d.to_user_id, money.to_decimal(d.amount, d.currency), d.currency,
                       names.get(d.from_user_id), names.get(d.to_user_id))
            for d in debts
        ]
