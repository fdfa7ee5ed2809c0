"""Statistics for the spending overview: categories, trends and burn rate."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .categories import Category, resolve_category
from .models import STATUS_OVER, STATUS_UNDER, STATUS_WARNING, Transaction
from .spending_patterns import expense_frame

CATEGORY_COLUMNS = ['key', 'name', 'icon', 'color', 'total', 'count']

# Monday first, matching date.weekday()
DAY_NAMES = ['Понеділок', 'Вівторок', 'Середа', 'Четвер', "П'ятниця", 'Субота', 'Неділя']

TREND_UP = 'up'
TREND_DOWN = 'down'
TREND_STABLE = 'stable'


@dataclass
class CategoryBudget:
    key: str
    name: str
    icon: str
    color: str
    spent: float
    budget: float
    percentage: float
    status: str


@dataclass
class TopCategory:
    key: str
    name: str
    icon: str
    color: str
    amount: float
    percentage: float
    position: int


@dataclass
class PeriodComparison:
    change: float
    direction: str
    is_increase: bool


@dataclass
class BurnRate:
    daily_limit: float
    actual_daily_spent: float
    burn_rate: float
    projected_month_end: int
    days_remaining: int
    trend: str
    status: str


@dataclass
class DayOfWeekStat:
    day_name: str
    day_index: int
    total_amount: float
    day_count: int
    average_amount: float
    percentage_of_total: float
    is_highest: bool = False
    is_lowest: bool = False


def category_spending(
    transactions: Sequence[Transaction],
    overrides: Optional[Mapping[str, str]] = None,
    excluded_ids: Iterable[str] = (),
    included_ids: Iterable[str] = (),
    custom_categories: Optional[Mapping[str, Category]] = None,
) -> pd.DataFrame:
    """Expense totals per category, largest first."""
    expenses = expense_frame(transactions, included_ids, excluded_ids)
    if expenses.empty:
        return pd.DataFrame(columns=CATEGORY_COLUMNS)

    by_id = {tx.id: tx for tx in transactions}
    infos = [resolve_category(by_id[tx_id], overrides, custom_categories) for tx_id in expenses['id']]
    frame = pd.DataFrame({
        'key': [info.key for info in infos],
        'name': [info.name for info in infos],
        'icon': [info.icon for info in infos],
        'color': [info.color for info in infos],
        'amount': expenses['Amount'].abs().to_numpy(),
    })
    summary = frame.groupby(['key', 'name', 'icon', 'color'], as_index=False).agg(
        total=('amount', 'sum'),
        count=('amount', 'size'),
    )
    return summary.sort_values(['total', 'key'], ascending=[False, True]).reset_index(drop=True)[CATEGORY_COLUMNS]


def _status_for(percentage: float, warning_threshold: float) -> str:
    if percentage >= 100:
        return STATUS_OVER
    if percentage >= warning_threshold:
        return STATUS_WARNING
    return STATUS_UNDER


def calculate_category_budgets(
    categories: pd.DataFrame,
    total_budget: float,
    custom_budgets: Optional[Mapping[str, float]] = None,
    warning_threshold: float = 80,
) -> List[CategoryBudget]:
    """Budget per category: a share of ``total_budget`` proportional to its
    spend, unless ``custom_budgets`` sets one explicitly."""
    custom_budgets = custom_budgets or {}
    grand_total = float(categories['total'].sum()) if not categories.empty else 0.0
    result = []
    for row in categories.itertuples(index=False):
        auto_budget = total_budget * (row.total / grand_total) if grand_total > 0 else 0.0
        budget = custom_budgets.get(row.key, auto_budget)
        percentage = row.total / budget * 100 if budget > 0 else 0.0
        result.append(CategoryBudget(
            key=row.key,
            name=row.name,
            icon=row.icon,
            color=row.color,
            spent=float(row.total),
            budget=float(budget),
            percentage=round(percentage, 1),
            status=_status_for(percentage, warning_threshold),
        ))
    return result


def top_categories(categories: pd.DataFrame, total_expenses: float, limit: int = 3) -> List[TopCategory]:
    ranked = categories.sort_values('total', ascending=False, kind='stable').head(limit)
    return [
        TopCategory(
            key=row.key,
            name=row.name,
            icon=row.icon,
            color=row.color,
            amount=float(row.total),
            percentage=round(row.total / total_expenses * 100, 1) if total_expenses > 0 else 0.0,
            position=position,
        )
        for position, row in enumerate(ranked.itertuples(index=False), start=1)
    ]


def compare_periods(current: float, previous: float) -> PeriodComparison:
    """Relative change from ``previous`` to ``current``; under 1% is stable."""
    if previous == 0:
        return PeriodComparison(0.0, TREND_STABLE, False)
    change = (current - previous) / previous * 100
    is_increase = change > 0
    if abs(change) < 1:
        direction = TREND_STABLE
    else:
        direction = TREND_UP if is_increase else TREND_DOWN
    return PeriodComparison(round(change, 1), direction, is_increase)


def calculate_burn_rate(
    total_spent: float,
    days_in_month: int,
    current_day: int,
    total_budget: float,
    recent_daily_spend: Sequence[float] = (),
) -> BurnRate:
    """How fast the month's budget is being used up.

    ``current_day`` is the 1-based position of today in the financial month;
    ``recent_daily_spend`` is the last few days' totals, oldest first.
    """
    days_remaining = days_in_month - current_day
    daily_limit = total_budget / days_in_month if days_in_month > 0 else 0.0
    actual_daily_spent = total_spent / current_day if current_day > 0 else 0.0
    burn_rate = actual_daily_spent / daily_limit * 100 if daily_limit > 0 else 0.0

    recent = list(recent_daily_spend)
    recent_average = sum(recent) / len(recent) if recent else actual_daily_spent
    projected_month_end = recent_average * days_in_month

    trend = 'stable'
    if len(recent) >= 2:
        delta = recent[-1] - recent[0]
        if delta > 50:
            trend = 'accelerating'
        elif delta < -50:
            trend = 'decelerating'

    if burn_rate > 120 or projected_month_end > total_budget * 1.2:
        status = 'critical'
    elif burn_rate > 100 or projected_month_end > total_budget:
        status = 'warning'
    else:
        status = 'healthy'

    return BurnRate(
        daily_limit=daily_limit,
        actual_daily_spent=actual_daily_spent,
        burn_rate=round(burn_rate, 1),
        projected_month_end=int(round(projected_month_end)),
        days_remaining=days_remaining,
        trend=trend,
        status=status,
    )


def analyze_day_of_week(daily_spends: Mapping[date, float], total_spent: float) -> List[DayOfWeekStat]:
    """Totals per weekday from per-date totals (see ``daily_expense_totals``)."""
    frame = pd.DataFrame(
        [{'weekday': pd.Timestamp(day).dayofweek, 'amount': float(amount)} for day, amount in daily_spends.items()],
        columns=['weekday', 'amount'],
    )
    grouped = frame.groupby('weekday')['amount'].agg(['sum', 'count']).reindex(range(7), fill_value=0)

    stats = []
    for index, name in enumerate(DAY_NAMES):
        total = float(grouped.loc[index, 'sum'])
        days = int(grouped.loc[index, 'count'])
        stats.append(DayOfWeekStat(
            day_name=name,
            day_index=index,
            total_amount=total,
            day_count=days,
            average_amount=total / days if days else 0.0,
            percentage_of_total=round(total / total_spent * 100, 1) if total_spent > 0 else 0.0,
        ))

    highest = max(stat.total_amount for stat in stats)
    lowest = min(stat.total_amount for stat in stats)
    for stat in stats:
        stat.is_highest = stat.total_amount == highest and highest > 0
        stat.is_lowest = stat.total_amount == lowest and lowest > 0
    return stats
