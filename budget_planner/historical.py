"""Read-only summary of a financial month that has already ended."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .models import DailyBudget, MonthBudget, PersistedDailyBudget, Transaction, budget_status
from .transfer_utils import TransactionClassifier


def calculate_historical_month_summary(
    transactions: Sequence[Transaction],
    excluded_ids: Iterable[str],
    month_start: date,
    month_end: date,
    stored_budgets: Optional[Sequence[PersistedDailyBudget]] = None,
    included_ids: Iterable[str] = (),
) -> MonthBudget:
    """Rebuild a past month from its transactions and any stored day limits.

    Days with a stored (non-zero) limit show it; the rest show the month's
    average daily spend. The total budget is the sum of stored limits, or
    the amount spent when nothing was stored. Nothing is persisted.
    """
    stored_budgets = stored_budgets or []
    days: List[date] = [ts.date() for ts in pd.date_range(month_start, month_end, freq='D')]

    classifier = TransactionClassifier(transactions, included_ids)
    in_month = [tx for tx in classifier.expenses(excluded_ids) if month_start <= tx.booked_on <= month_end]

    by_day: Dict[date, List[Transaction]] = defaultdict(list)
    for tx in in_month:
        by_day[tx.booked_on].append(tx)

    total_spent = sum(abs(tx.amount) for tx in in_month)
    daily_average = int(round(total_spent / len(days))) if days else 0

    stored_by_date = {record.date: record for record in stored_budgets}
    total_budget = sum(record.limit for record in stored_budgets) if stored_budgets else total_spent

    daily_limits = []
    for day in days:
        stored = stored_by_date.get(day)
        limit = stored.limit if stored is not None and stored.limit else daily_average
        spent = sum(abs(tx.amount) for tx in by_day.get(day, []))
        daily_limits.append(DailyBudget(
            date=day,
            limit=limit,
            spent=spent,
            remaining=limit - spent,
            status=budget_status(spent, limit),
            transactions=by_day.get(day, []),
        ))

    return MonthBudget(
        total_budget=total_budget,
        total_spent=total_spent,
        total_remaining=total_budget - total_spent,
        days_remaining=0,
        daily_limits=daily_limits,
        daily_average=daily_average,
        is_historical=True,
        source='history',
    )
