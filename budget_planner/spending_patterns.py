"""Descriptive summary of how spending is spread over the week and month."""

from __future__ import annotations

from typing import Iterable, Sequence

import pandas as pd

from .models import SpendingPattern, Transaction, transactions_to_frame
from .transfer_utils import FLOW_EXPENSE, annotate_flows


def expense_frame(
    transactions: Sequence[Transaction],
    included_ids: Iterable[str] = (),
    excluded_ids: Iterable[str] = (),
) -> pd.DataFrame:
    """Rows of ``transactions`` that count as real spending."""
    df = annotate_flows(transactions_to_frame(transactions), included_ids)
    if df.empty:
        return df
    excluded = set(excluded_ids)
    mask = (df['Flow Category'] == FLOW_EXPENSE) & ~df['id'].isin(excluded)
    return df[mask]


def daily_expense_totals(
    transactions: Sequence[Transaction],
    included_ids: Iterable[str] = (),
    excluded_ids: Iterable[str] = (),
) -> pd.Series:
    """Absolute spend per calendar date, indexed by ``Transaction Date``."""
    expenses = expense_frame(transactions, included_ids, excluded_ids)
    if expenses.empty:
        return pd.Series(dtype=float)
    return expenses['Amount'].abs().groupby(expenses['Transaction Date']).sum().sort_index()


def analyze_spending_pattern(
    transactions: Sequence[Transaction],
    included_ids: Iterable[str] = (),
    excluded_ids: Iterable[str] = (),
) -> SpendingPattern:
    """Summarise expense history into weekday/weekend averages and
    day-of-month multipliers.

    Only dates with at least one expense are observed. A multiplier is the
    mean total on that day of the month divided by the mean total over all
    observed dates; days never observed keep the neutral 1.0.
    """
    totals = daily_expense_totals(transactions, included_ids, excluded_ids)
    pattern = SpendingPattern()
    if totals.empty:
        return pattern

    index = pd.DatetimeIndex(totals.index)
    weekend = index.dayofweek >= 5
    if (~weekend).any():
        pattern.weekday_avg = float(totals[~weekend].mean())
    if weekend.any():
        pattern.weekend_avg = float(totals[weekend].mean())

    overall = float(totals.mean())
    if overall > 0:
        by_day = totals.groupby(index.day).mean()
        for day, mean in by_day.items():
            pattern.day_of_month_multipliers[int(day) - 1] = float(mean) / overall
    return pattern
