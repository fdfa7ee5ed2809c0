"""Helpers for separating real spending from money moving between own accounts."""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .models import Transaction

FLOW_EXPENSE = 'expense'
FLOW_INCOME = 'income'
FLOW_INTERNAL_TRANSFER = 'internal_transfer'
FLOW_CASH_WITHDRAWAL = 'cash_withdrawal'
FLOW_NEUTRAL = 'neutral'

# Both count as "internal transfer" for totals
TRANSFER_FLOWS = {FLOW_INTERNAL_TRANSFER, FLOW_CASH_WITHDRAWAL}

CASH_KEYWORDS = ('банкомат', 'atm', 'cash', 'готівка')

INTERNAL_TRANSFER_KEYWORDS = (
    'з білої картки',
    'на білу картку',
    'власні кошти',
    'між картками',
    'f2f',
)

SAVINGS_KEYWORDS = (
    'накопичення',
    'депозит',
    'відкриття депозиту',
    'поповнення депозиту',
    'часткове зняття банки',
    'зняття банки',
    '«оренда»',
    'поповнення «оренда»',
)


def _matches(description: str, keywords: Iterable[str]) -> bool:
    text = (description or '').lower()
    return any(keyword in text for keyword in keywords)


def is_cash_withdrawal(tx: Transaction) -> bool:
    return _matches(tx.description, CASH_KEYWORDS)


def _has_mirrored_amount(tx: Transaction, same_day: Sequence[Transaction]) -> bool:
    booked_on = tx.booked_on
    return any(
        other.id != tx.id and other.amount == -tx.amount and other.booked_on == booked_on
        for other in same_day
    )


@dataclass(frozen=True)
class TransferRule:
    """One way of recognising an internal transfer. Checked in list order."""
    label: str
    predicate: Callable[[Transaction, Sequence[Transaction]], bool]


TRANSFER_RULES: List[TransferRule] = [
    TransferRule('internal_keyword', lambda tx, _: _matches(tx.description, INTERNAL_TRANSFER_KEYWORDS)),
    TransferRule('savings_keyword', lambda tx, _: _matches(tx.description, SAVINGS_KEYWORDS)),
    TransferRule('cash_withdrawal', lambda tx, _: is_cash_withdrawal(tx)),
    TransferRule('paired_amount', _has_mirrored_amount),
]


def transfer_reason(
    tx: Transaction,
    same_day: Sequence[Transaction] = (),
    included_ids: Iterable[str] = (),
) -> Optional[str]:
    """Label of the first transfer rule matching ``tx``, or None.

    Transactions the user has explicitly included never count as transfers.
    """
    if tx.id in set(included_ids):
        return None
    for rule in TRANSFER_RULES:
        if rule.predicate(tx, same_day):
            return rule.label
    return None


def is_internal_transfer(
    tx: Transaction,
    same_day: Sequence[Transaction] = (),
    included_ids: Iterable[str] = (),
) -> bool:
    return transfer_reason(tx, same_day, included_ids) is not None


def is_expense(
    tx: Transaction,
    same_day: Sequence[Transaction] = (),
    included_ids: Iterable[str] = (),
) -> bool:
    return tx.amount < 0 and not is_internal_transfer(tx, same_day, included_ids)


def is_income(
    tx: Transaction,
    same_day: Sequence[Transaction] = (),
    included_ids: Iterable[str] = (),
) -> bool:
    return tx.amount > 0 and not is_internal_transfer(tx, same_day, included_ids)


def classify(
    tx: Transaction,
    same_day: Sequence[Transaction] = (),
    included_ids: Iterable[str] = (),
) -> str:
    """Exactly one flow label per transaction.

    Zero-amount lines (holds, card checks) are ``neutral``; everything else
    is an expense, an income, or one of the transfer variants.
    """
    if tx.amount == 0:
        return FLOW_NEUTRAL
    reason = transfer_reason(tx, same_day, included_ids)
    if reason == 'cash_withdrawal':
        return FLOW_CASH_WITHDRAWAL
    if reason is not None:
        return FLOW_INTERNAL_TRANSFER
    return FLOW_EXPENSE if tx.amount < 0 else FLOW_INCOME


def is_auto_excluded(tx: Transaction, same_day: Sequence[Transaction] = ()) -> bool:
    """Whether a debit is dropped from spending without any user action.

    These are the transactions a user may want to force back in through
    ``included_ids``.
    """
    return tx.amount < 0 and is_internal_transfer(tx, same_day)


class TransactionClassifier:
    """Classifies a batch of transactions against their same-day neighbours.

    Transactions are indexed by booking date once, so the pairing rule only
    scans candidates from the same day.
    """

    def __init__(self, transactions: Iterable[Transaction], included_ids: Iterable[str] = ()):
        self.transactions: List[Transaction] = list(transactions)
        self.included_ids = frozenset(str(i) for i in included_ids)
        self._by_date: Dict[date, List[Transaction]] = defaultdict(list)
        for tx in self.transactions:
            self._by_date[tx.booked_on].append(tx)

    def same_day(self, tx: Transaction) -> List[Transaction]:
        return self._by_date.get(tx.booked_on, [])

    def flow(self, tx: Transaction) -> str:
        return classify(tx, self.same_day(tx), self.included_ids)

    def is_expense(self, tx: Transaction) -> bool:
        return self.flow(tx) == FLOW_EXPENSE

    def is_income(self, tx: Transaction) -> bool:
        return self.flow(tx) == FLOW_INCOME

    def is_internal_transfer(self, tx: Transaction) -> bool:
        return self.flow(tx) in TRANSFER_FLOWS

    def expenses(self, excluded_ids: Iterable[str] = ()) -> List[Transaction]:
        excluded = set(excluded_ids)
        return [tx for tx in self.transactions if tx.id not in excluded and self.is_expense(tx)]

    def incomes(self) -> List[Transaction]:
        return [tx for tx in self.transactions if self.is_income(tx)]


def _keyword_mask(descriptions: pd.Series, keywords: Iterable[str]) -> pd.Series:
    pattern = '|'.join(re.escape(keyword) for keyword in keywords)
    return descriptions.str.contains(pattern, regex=True)


def annotate_flows(df: pd.DataFrame, included_ids: Iterable[str] = ()) -> pd.DataFrame:
    """Return a copy of ``df`` with a ``Flow Category`` column.

    ``df`` needs ``id``, ``Transaction Date``, ``Description`` and
    ``Amount`` columns (see :func:`budget_planner.models.transactions_to_frame`).
    Labels match :func:`classify` row for row.
    """
    working = df.copy()
    if working.empty:
        working['Flow Category'] = pd.Series(dtype=object)
        return working

    working['Amount'] = pd.to_numeric(working['Amount'], errors='coerce').fillna(0)
    descriptions = working['Description'].fillna('').astype(str).str.lower()

    internal = _keyword_mask(descriptions, INTERNAL_TRANSFER_KEYWORDS)
    savings = _keyword_mask(descriptions, SAVINGS_KEYWORDS)
    cash = _keyword_mask(descriptions, CASH_KEYWORDS)

    mirror = working[['id', 'Transaction Date']].copy()
    mirror['__mirror__'] = -working['Amount']
    candidates = mirror.merge(
        working[['id', 'Transaction Date', 'Amount']],
        left_on=['Transaction Date', '__mirror__'],
        right_on=['Transaction Date', 'Amount'],
        suffixes=('', '_pair'),
        how='inner',
    )
    candidates = candidates[candidates['id'] != candidates['id_pair']]
    paired = working['id'].isin(set(candidates['id']))

    included = working['id'].astype(str).isin(set(str(i) for i in included_ids))
    keyword_transfer = (internal | savings) & ~included
    cash_transfer = cash & ~internal & ~savings & ~included
    paired_transfer = paired & ~internal & ~savings & ~cash & ~included

    working['Flow Category'] = np.select(
        [
            working['Amount'] == 0,
            keyword_transfer | paired_transfer,
            cash_transfer,
            working['Amount'] < 0,
        ],
        [FLOW_NEUTRAL, FLOW_INTERNAL_TRANSFER, FLOW_CASH_WITHDRAWAL, FLOW_EXPENSE],
        default=FLOW_INCOME,
    )
    return working
