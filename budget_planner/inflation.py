"""Burn-rate forecast: how long the current balance lasts.

The confidence score is an inverse coefficient of variation of expense
amounts, clamped to [0.3, 0.95]. It says how regular spending has been and
is not a statistical confidence interval.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import require_finite
from .models import InflationPrediction, ProjectionPoint, Transaction
from .transfer_utils import TransactionClassifier

SECONDS_PER_DAY = 86400
DEFAULT_OBSERVED_DAYS = 30
DAYS_PER_MONTH = 30
PROJECTION_MONTHS = 12
MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95


def observed_days(transactions: Sequence[Transaction]) -> int:
    """Whole days between the oldest and newest transaction, at least 1."""
    if not transactions:
        return DEFAULT_OBSERVED_DAYS
    times = [tx.time for tx in transactions]
    return (max(times) - min(times)) // SECONDS_PER_DAY or 1


def spending_confidence(expense_amounts: Sequence[int]) -> float:
    amounts = np.abs(np.asarray(expense_amounts, dtype=float))
    if amounts.size == 0 or amounts.mean() == 0:
        return MAX_CONFIDENCE
    ratio = 1 - amounts.std() / amounts.mean()
    return float(np.clip(ratio, MIN_CONFIDENCE, MAX_CONFIDENCE))


def predict_inflation(
    transactions: Sequence[Transaction],
    current_balance: int,
    included_ids: Iterable[str] = (),
    today: Optional[date] = None,
) -> InflationPrediction:
    """Forecast balance depletion from the full transaction history.

    Each projected point is clamped at zero on its own, so the series is
    ``max(0, balance - burn * i)`` rather than a path that stops at zero.
    """
    current_balance = int(round(require_finite('current_balance', current_balance)))
    classifier = TransactionClassifier(transactions, included_ids)
    expenses = classifier.expenses()
    incomes = classifier.incomes()

    total_expenses = sum(abs(tx.amount) for tx in expenses)
    total_income = sum(tx.amount for tx in incomes)
    daily_burn = (total_expenses - total_income) / observed_days(classifier.transactions)
    monthly_burn = daily_burn * DAYS_PER_MONTH

    if monthly_burn > 0:
        months_until_zero = round(current_balance / monthly_burn, 1)
    else:
        months_until_zero = math.inf

    start = pd.Timestamp(today or date.today())
    projection = [
        ProjectionPoint(
            month=(start + pd.DateOffset(months=i)).strftime('%b %Y'),
            balance=max(0, int(round(current_balance - monthly_burn * i))),
        )
        for i in range(PROJECTION_MONTHS)
    ]

    return InflationPrediction(
        current_balance=current_balance,
        predicted_balance=max(0, int(round(current_balance - monthly_burn * PROJECTION_MONTHS))),
        monthly_burn_rate=int(round(monthly_burn)),
        months_until_zero=months_until_zero,
        yearly_projection=projection,
        confidence=spending_confidence([tx.amount for tx in expenses]),
    )
