"""
records.py - immutable value types flowing through the settlement engine

Inputs (ExpenseRecord, SplitRecord, PaymentRecord) are built by a repository
from whatever storage backs it. Derived values (LedgerEntry, PairBalance,
NetPosition, SimplifiedDebt) are produced per query and never mutated.
Money inside the engine is always an int count of minor units; the *View
types at the bottom carry Decimal amounts for callers.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple, Union

UserId = Union[int, str]
GroupId = Union[int, str]


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


# ============== Inputs ==============
@dataclass(frozen=True)
class SplitRecord:
    user_id: UserId
    owed_amount: int


@dataclass(frozen=True)
class ExpenseRecord:
    id: Union[int, str]
    payer_id: UserId
    currency: str
    amount: int
    splits: Tuple[SplitRecord, ...] = ()
    group_id: Optional[GroupId] = None


@dataclass(frozen=True)
class PaymentRecord:
    id: Union[int, str]
    from_user_id: UserId
    to_user_id: UserId
    currency: str
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    group_id: Optional[GroupId] = None


# ============== Derived ==============
@dataclass(frozen=True)
class LedgerEntry:
    """debtor owes creditor `amount` minor units"""
    debtor_id: UserId
    creditor_id: UserId
    currency: str
    amount: int


@dataclass(frozen=True)
class PairBalance:
    """
    Canonical orientation: user_a < user_b.
    net_amount > 0 -> user_b owes user_a; net_amount < 0 -> user_a owes user_b.
    """
    user_a: UserId
    user_b: UserId
    currency: str
    net_amount: int

    def reversed(self) -> "PairBalance":
        return PairBalance(self.user_b, self.user_a, self.currency, -self.net_amount)


@dataclass(frozen=True)
class NetPosition:
    user_id: UserId
    currency: str
    net_amount: int


@dataclass(frozen=True)
class SimplifiedDebt:
    from_user_id: UserId
    to_user_id: UserId
    currency: str
    amount: int


# ============== Views (Decimal amounts) ==============
@dataclass(frozen=True)
class CounterpartyBalance:
    # positive: user_id owes the requester; negative: the requester owes user_id
    user_id: UserId
    amount: Decimal
    currency: str
    user_name: Optional[str] = None


@dataclass(frozen=True)
class CurrencyTotals:
    currency: str
    total_owed: Decimal
    total_owe: Decimal
    net_balance: Decimal


@dataclass(frozen=True)
class UserBalanceReport:
    balances: List[CounterpartyBalance] = field(default_factory=list)
    totals: List[CurrencyTotals] = field(default_factory=list)


@dataclass(frozen=True)
class GroupPairBalance:
    # positive: counterparty_id owes user_id
    user_id: UserId
    counterparty_id: UserId
    amount: Decimal
    currency: str
    user_name: Optional[str] = None
    counterparty_name: Optional[str] = None


@dataclass(frozen=True)
class GroupNetPosition:
    user_id: UserId
    amount: Decimal
    currency: str
    user_name: Optional[str] = None


@dataclass(frozen=True)
class GroupBalanceReport:
    balances: List[GroupPairBalance] = field(default_factory=list)
    positions: List[GroupNetPosition] = field(default_factory=list)


@dataclass(frozen=True)
class Settlement:
    from_user_id: UserId
    to_user_id: UserId
    amount: Decimal
    currency: str
    from_user_name: Optional[str] = None
    to_user_name: Optional[str] = None
