import heapq
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

import money
from errors import DataIntegrityError
from records import (
    ExpenseRecord,
    LedgerEntry,
    NetPosition,
    PairBalance,
    PaymentRecord,
    PaymentStatus,
    SimplifiedDebt,
    UserId,
)

logger = logging.getLogger(__name__)

Pair = Tuple[UserId, UserId]


def compute_shares(total_amount: int, split_rows: List[dict], group_member_ids: List[UserId]) -> Dict[UserId, int]:
    """
    Work out each participant's owed amount, in minor units, for a new expense.

    split_rows: list of {user_id, owed_amount (int minor units or None)}
    If split_rows is empty -> split equally across group_member_ids
    If split_rows provided and owed_amount present -> use owed_amount values (must sum to total)
    If split_rows provided but no owed_amounts -> split equally among those participants
    Equal splits put the leftover minor units on the last participant.
    """
    if split_rows:
        ids = [r["user_id"] for r in split_rows]
        if len(set(ids)) != len(ids):
            raise ValueError("A participant appears more than once in the split.")
        if any(r.get("owed_amount") is not None for r in split_rows):
            shares = {}
            for r in split_rows:
                amt = r.get("owed_amount")
                if amt is None:
                    raise ValueError("Some splits have no owed_amount while others do - inconsistent.")
                if amt < 0:
                    raise ValueError("Owed amounts cannot be negative.")
                shares[r["user_id"]] = amt
            ssum = sum(shares.values())
            if ssum != total_amount:
                raise ValueError(f"Sum of owed amounts ({ssum}) != total ({total_amount}).")
            return shares
        return _equal_shares(total_amount, ids)
    if not group_member_ids:
        raise ValueError("No participants to split among.")
    return _equal_shares(total_amount, list(group_member_ids))


def _equal_shares(total_amount: int, ids: List[UserId]) -> Dict[UserId, int]:
    per = total_amount // len(ids)
    shares = {uid: per for uid in ids}
    shares[ids[-1]] += total_amount - per * len(ids)
    return shares


# ========== Ledger Entry Extractor ==========
def _check_currency(currency, what: str) -> None:
    if not money.is_valid_currency(currency):
        raise DataIntegrityError(f"{what} has malformed currency {currency!r}")


def extract_ledger_entries(expenses: Iterable[ExpenseRecord], payments: Iterable[PaymentRecord]) -> List[LedgerEntry]:
    """
    One entry per non-payer split (participant owes payer) and one per
    CONFIRMED payment (a payment A->B is recorded as "B owes A", cancelling
    what A owed B once aggregated).
    """
    entries = []
    for exp in expenses:
        _check_currency(exp.currency, f"Expense {exp.id}")
        split_sum = 0
        for split in exp.splits:
            if split.owed_amount < 0:
                raise DataIntegrityError(
                    f"Expense {exp.id} has negative split {split.owed_amount} for user {split.user_id}"
                )
            split_sum += split.owed_amount
            if split.user_id == exp.payer_id:
                continue
            entries.append(LedgerEntry(split.user_id, exp.payer_id, exp.currency, split.owed_amount))
        if split_sum != exp.amount:
            logger.warning("Expense %s splits sum to %s, expected %s", exp.id, split_sum, exp.amount)

    for p in payments:
        if p.status != PaymentStatus.CONFIRMED:
            continue
        _check_currency(p.currency, f"Payment {p.id}")
        if p.amount < 0:
            raise DataIntegrityError(f"Payment {p.id} has negative amount {p.amount}")
        entries.append(LedgerEntry(p.to_user_id, p.from_user_id, p.currency, p.amount))
    return entries


# ========== Balance Aggregator ==========
def canonical_pair(a: UserId, b: UserId) -> Pair:
    return (a, b) if a < b else (b, a)


def aggregate_balances(entries: Iterable[LedgerEntry]) -> Dict[str, Dict[Pair, int]]:
    """
    Fold entries into currency -> {(smaller id, larger id): signed net}.
    A positive net means the larger id owes the smaller one.
    """
    acc: Dict[str, Dict[Pair, int]] = defaultdict(lambda: defaultdict(int))
    for e in entries:
        if e.debtor_id == e.creditor_id:
            logger.debug("Dropping self entry for user %s (%s %s)", e.debtor_id, e.amount, e.currency)
            continue
        pair = canonical_pair(e.debtor_id, e.creditor_id)
        if e.debtor_id == pair[0]:
            acc[e.currency][pair] -= e.amount
        else:
            acc[e.currency][pair] += e.amount
    return acc


def pair_balances(entries: Iterable[LedgerEntry]) -> List[PairBalance]:
    acc = aggregate_balances(entries)
    out = []
    for currency in sorted(acc):
        for (a, b), net in sorted(acc[currency].items()):
            if net != 0:
                out.append(PairBalance(a, b, currency, net))
    return out


def net_positions(balances: Iterable[PairBalance]) -> List[NetPosition]:
    net: Dict[str, Dict[UserId, int]] = defaultdict(lambda: defaultdict(int))
    for pb in balances:
        net[pb.currency][pb.user_a] += pb.net_amount
        net[pb.currency][pb.user_b] -= pb.net_amount
    return [
        NetPosition(uid, currency, amt)
        for currency in sorted(net)
        for uid, amt in sorted(net[currency].items())
    ]


def positions_by_currency(positions: Iterable[NetPosition]) -> Dict[str, Dict[UserId, int]]:
    out: Dict[str, Dict[UserId, int]] = defaultdict(dict)
    for pos in positions:
        out[pos.currency][pos.user_id] = out[pos.currency].get(pos.user_id, 0) + pos.net_amount
    return out


def check_conservation(currency: str, net: Dict[UserId, int]) -> None:
    total = sum(net.values())
    if total != 0:
        raise DataIntegrityError(f"Net positions in {currency} sum to {total}, expected 0")


# ========== Debt Simplifier ==========
def simplify_currency(currency: str, net: Dict[UserId, int]) -> List[SimplifiedDebt]:
    """
    Greedy largest-first matching over one currency's net positions
    (user -> signed minor units, positive = is owed money).
    Ties on magnitude go to the smaller user id, on both sides.
    """
    nonzero = {u: amt for u, amt in net.items() if amt != 0}
    if len(nonzero) == 1:
        (uid, amt), = nonzero.items()
        raise DataIntegrityError(f"User {uid} is the only nonzero position in {currency} ({amt})")
    check_conservation(currency, nonzero)

    # max-heaps via negated magnitude
    debtors = [(amt, u) for u, amt in nonzero.items() if amt < 0]
    creditors = [(-amt, u) for u, amt in nonzero.items() if amt > 0]
    heapq.heapify(debtors)
    heapq.heapify(creditors)

    settlements = []
    while debtors and creditors:
        d_neg, d_uid = heapq.heappop(debtors)
        c_neg, c_uid = heapq.heappop(creditors)
        transfer = min(-d_neg, -c_neg)
        settlements.append(SimplifiedDebt(d_uid, c_uid, currency, transfer))
        if -d_neg > transfer:
            heapq.heappush(debtors, (d_neg + transfer, d_uid))
        if -c_neg > transfer:
            heapq.heappush(creditors, (c_neg + transfer, c_uid))

    if debtors or creditors:
        raise DataIntegrityError(f"Unbalanced positions left after simplifying {currency}")
    return settlements


def simplify_debts(positions: Iterable[NetPosition], currency: Optional[str] = None) -> List[SimplifiedDebt]:
    by_currency = positions_by_currency(positions)
    currencies = [currency] if currency is not None else sorted(by_currency)
    settlements = []
    for cur in currencies:
        settlements.extend(simplify_currency(cur, by_currency.get(cur, {})))
    return settlements
