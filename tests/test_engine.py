from decimal import Decimal

import pytest

from engine import SettlementEngine
from errors import AccessDenied, DataIntegrityError
from records import (
    CounterpartyBalance,
    CurrencyTotals,
    ExpenseRecord,
    GroupNetPosition,
    GroupPairBalance,
    PaymentRecord,
    PaymentStatus,
    Settlement,
    SplitRecord,
)


class InMemoryLedger:
    """Expense source, payment source and membership check over plain lists."""

    def __init__(self, members=None):
        self.expenses = []
        self.payments = []
        self.members = members or {}

    def add_expense(self, payer, currency, splits, group_id="trip"):
        self.expenses.append(ExpenseRecord(
            id=len(self.expenses) + 1,
            payer_id=payer,
            currency=currency,
            amount=sum(splits.values()),
            splits=tuple(SplitRecord(u, amt) for u, amt in splits.items()),
            group_id=group_id,
        ))

    def add_payment(self, frm, to, currency, amount, status=PaymentStatus.CONFIRMED, group_id="trip"):
        self.payments.append(PaymentRecord(len(self.payments) + 1, frm, to, currency, amount, status, group_id))

    def expenses_for_group(self, group_id):
        return [e for e in self.expenses if e.group_id == group_id]

    def expenses_for_user(self, user_id):
        return [e for e in self.expenses if e.payer_id == user_id or any(s.user_id == user_id for s in e.splits)]

    def payments_for_group(self, group_id, status=None):
        return [p for p in self.payments if p.group_id == group_id and (status is None or p.status == status)]

    def payments_for_user(self, user_id, status=None):
        return [
            p for p in self.payments
            if user_id in (p.from_user_id, p.to_user_id) and (status is None or p.status == status)
        ]

    def is_member(self, group_id, user_id):
        return user_id in self.members.get(group_id, set())


@pytest.fixture
def ledger():
    return InMemoryLedger(members={"trip": {"A", "B", "C"}})


@pytest.fixture
def settlement(ledger):
    return SettlementEngine(ledger, ledger, ledger)


def test_even_three_way_split(ledger, settlement):
    ledger.add_expense("A", "USD", {"A": 3000, "B": 3000, "C": 3000})

    report = settlement.get_group_balances("trip", "B")
    assert report.balances == [
        GroupPairBalance("A", "B", Decimal("30.00"), "USD"),
        GroupPairBalance("A", "C", Decimal("30.00"), "USD"),
    ]
    assert report.positions == [
        GroupNetPosition("A", Decimal("60.00"), "USD"),
        GroupNetPosition("B", Decimal("-30.00"), "USD"),
        GroupNetPosition("C", Decimal("-30.00"), "USD"),
    ]
    assert settlement.simplify_debts("trip", "A") == [
        Settlement("B", "A", Decimal("30.00"), "USD"),
        Settlement("C", "A", Decimal("30.00"), "USD"),
    ]


def test_confirmed_payment_clears_payer(ledger, settlement):
    ledger.add_expense("A", "USD", {"A": 3000, "B": 3000, "C": 3000})
    ledger.add_payment("B", "A", "USD", 3000)

    positions = settlement.get_group_balances("trip", "A").positions
    assert [(p.user_id, p.amount) for p in positions] == [("A", Decimal("30.00")), ("C", Decimal("-30.00"))]
    assert settlement.simplify_debts("trip", "A") == [Settlement("C", "A", Decimal("30.00"), "USD")]


def test_pending_and_rejected_payments_ignored(ledger, settlement):
    ledger.add_expense("A", "USD", {"A": 3000, "B": 3000})
    ledger.add_payment("B", "A", "USD", 3000, PaymentStatus.PENDING)
    ledger.add_payment("B", "A", "USD", 3000, PaymentStatus.REJECTED)
    assert settlement.simplify_debts("trip", "B") == [Settlement("B", "A", Decimal("30.00"), "USD")]


def test_cycle_nets_to_nothing(ledger, settlement):
    ledger.add_expense("B", "USD", {"A": 1000})  # A owes B
    ledger.add_expense("C", "USD", {"B": 1000})  # B owes C
    ledger.add_expense("A", "USD", {"C": 1000})  # C owes A

    report = settlement.get_group_balances("trip", "A")
    assert len(report.balances) == 3
    assert report.positions == []
    assert settlement.simplify_debts("trip", "A") == []


def test_currencies_simplified_independently(ledger, settlement):
    ledger.add_expense("A", "USD", {"B": 1000})
    ledger.add_expense("B", "JPY", {"A": 500})
    assert settlement.simplify_debts("trip", "C") == [
        Settlement("A", "B", Decimal("500"), "JPY"),
        Settlement("B", "A", Decimal("10.00"), "USD"),
    ]


def test_non_member_denied(ledger, settlement):
    ledger.add_expense("A", "USD", {"B": 1000})
    with pytest.raises(AccessDenied):
        settlement.get_group_balances("trip", "Z")
    with pytest.raises(AccessDenied):
        settlement.simplify_debts("trip", "Z")
    with pytest.raises(AccessDenied):
        settlement.simplify_debts("unknown-group", "A")


def test_empty_group_is_empty_result(settlement):
    report = settlement.get_group_balances("trip", "A")
    assert report.balances == [] and report.positions == []
    assert settlement.simplify_debts("trip", "A") == []


def test_simplify_is_idempotent(ledger, settlement):
    ledger.add_expense("A", "USD", {"B": 2500, "C": 2500, "A": 2500})
    ledger.add_expense("C", "USD", {"A": 1234, "B": 4321})
    ledger.add_payment("B", "C", "USD", 1000)
    assert settlement.simplify_debts("trip", "A") == settlement.simplify_debts("trip", "A")


def test_integrity_error_propagates(ledger, settlement):
    ledger.expenses.append(ExpenseRecord(99, "A", "USD", 0, (SplitRecord("B", -100), SplitRecord("A", 100)), "trip"))
    with pytest.raises(DataIntegrityError):
        settlement.simplify_debts("trip", "A")


def test_user_balances_span_groups_and_direct_expenses(ledger, settlement):
    ledger.add_expense("A", "USD", {"A": 3000, "B": 3000, "C": 3000})
    ledger.add_expense("D", "USD", {"A": 1500, "D": 1500}, group_id="flat")
    ledger.add_expense("B", "EUR", {"A": 700}, group_id=None)
    ledger.add_payment("C", "A", "USD", 1000, group_id=None)

    report = settlement.get_user_balances("A")
    assert report.balances == [
        CounterpartyBalance("B", Decimal("-7.00"), "EUR"),
        CounterpartyBalance("B", Decimal("30.00"), "USD"),
        CounterpartyBalance("C", Decimal("20.00"), "USD"),
        CounterpartyBalance("D", Decimal("-15.00"), "USD"),
    ]
    assert report.totals == [
        CurrencyTotals("EUR", Decimal("0.00"), Decimal("7.00"), Decimal("-7.00")),
        CurrencyTotals("USD", Decimal("50.00"), Decimal("15.00"), Decimal("35.00")),
    ]


def test_user_balances_only_show_own_pairs(ledger, settlement):
    ledger.add_expense("A", "USD", {"B": 3000, "C": 3000})
    report = settlement.get_user_balances("B")
    assert report.balances == [CounterpartyBalance("A", Decimal("-30.00"), "USD")]


def test_user_balances_omit_settled_counterparties(ledger, settlement):
    ledger.add_expense("A", "USD", {"B": 3000})
    ledger.add_payment("B", "A", "USD", 3000)
    report = settlement.get_user_balances("A")
    assert report.balances == []
    assert report.totals == []


def test_unknown_user_has_no_balances(settlement):
    report = settlement.get_user_balances("nobody")
    assert report.balances == [] and report.totals == []


class NameBook:
    def __init__(self, names):
        self.names = names
        self.asked = []

    def user_names(self, user_ids):
        self.asked.append(set(user_ids))
        return {u: self.names[u] for u in user_ids if u in self.names}


def test_results_carry_user_names(ledger):
    book = NameBook({"A": "Alice", "B": "Bob"})
    named = SettlementEngine(ledger, ledger, ledger, users=book)
    ledger.add_expense("A", "USD", {"A": 1000, "B": 1000, "C": 1000})

    assert named.simplify_debts("trip", "A") == [
        Settlement("B", "A", Decimal("10.00"), "USD", "Bob", "Alice"),
        # unknown ids keep an empty name rather than failing the query
        Settlement("C", "A", Decimal("10.00"), "USD", None, "Alice"),
    ]
    report = named.get_group_balances("trip", "C")
    assert report.balances[0] == GroupPairBalance("A", "B", Decimal("10.00"), "USD", "Alice", "Bob")
    assert report.positions[0] == GroupNetPosition("A", Decimal("20.00"), "USD", "Alice")
    assert named.get_user_balances("B").balances == [CounterpartyBalance("A", Decimal("-10.00"), "USD", "Alice")]


def test_name_lookup_skipped_when_nothing_to_name(ledger):
    book = NameBook({})
    named = SettlementEngine(ledger, ledger, ledger, users=book)
    assert named.simplify_debts("trip", "A") == []
    assert named.get_user_balances("A").balances == []
    assert book.asked == []
