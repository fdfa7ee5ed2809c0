"""Budget distribution for a financial month.

The distributor splits what is left of a monthly budget across the days
that have not happened yet, keeps the limits already recorded for elapsed
days, and reconciles every day against classified spending.

Future-day limits come from one of two strategies behind the same
interface:

* :class:`ExternalWeighting` asks the weighting service for per-day limits,
  with a confidence and reasoning for each day.
* :class:`LocalWeighting` derives weights from the historical
  :class:`~budget_planner.models.SpendingPattern` and normalises them so the
  limits add up to the remaining budget exactly.

The local allocation is always computed; external limits replace it day by
day when the service answers, and any failure of the service leaves the
local allocation in place.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Union

import numpy as np

from . import config
from .errors import ExternalServiceUnavailable, PersistenceError, require_finite
from .financial_calendar import financial_month_days
from .history_store import DailyBudgetStore
from .models import (
    BudgetContext,
    DailyBudget,
    MonthBudget,
    PersistedDailyBudget,
    SpendingPattern,
    Transaction,
    budget_status,
)
from .spending_patterns import analyze_spending_pattern
from .transfer_utils import TransactionClassifier
from .weighting_client import WeightingRequest, WeightingServiceClient, recent_sample

logger = logging.getLogger(__name__)

SOURCE_EXTERNAL = 'external'
SOURCE_LOCAL = 'local'

MIN_DAY_WEIGHT = 0.3
MAX_DAY_WEIGHT = 3.0
WEEKEND_BOOST = 1.2


@dataclass(frozen=True)
class DayAllocation:
    date: date
    limit: int
    confidence: Optional[float] = None
    reasoning: Optional[str] = None


@dataclass
class Distribution:
    """Future-day limits produced by one weighting strategy."""
    source: str
    allocations: List[DayAllocation] = field(default_factory=list)

    def by_date(self) -> Dict[date, DayAllocation]:
        return {allocation.date: allocation for allocation in self.allocations}


@dataclass
class AllocationPlan:
    """Everything a weighting strategy may look at."""
    remaining_budget: int
    total_budget: int
    future_days: List[date]
    pattern: SpendingPattern
    month_start: date
    month_end: date
    financial_month_start: int
    history: List[Transaction] = field(default_factory=list)
    user_id: Optional[str] = None


class WeightingStrategy(Protocol):
    def allocate(self, plan: AllocationPlan) -> Distribution: ...


def largest_remainder_round(values: Sequence[float], total: int) -> List[int]:
    """Round ``values`` to integers that add up to ``total``.

    Every value is floored, then the units still missing go to the largest
    fractional parts (earliest index first on ties).
    """
    raw = np.asarray(values, dtype=float)
    if raw.size == 0:
        return []
    floors = np.floor(raw)
    shortfall = int(round(total - floors.sum()))
    shortfall = max(0, min(shortfall, raw.size))
    order = np.argsort(-(raw - floors), kind='stable')
    result = floors.astype(int)
    result[order[:shortfall]] += 1
    return [int(value) for value in result]


class LocalWeighting:
    """Pattern-based weights normalised over the future days."""

    def day_weight(self, day: date, pattern: SpendingPattern) -> float:
        weight = pattern.multiplier_for(day)
        if day.weekday() >= 5 and pattern.weekend_avg > pattern.weekday_avg:
            weight *= WEEKEND_BOOST
        return float(np.clip(weight, MIN_DAY_WEIGHT, MAX_DAY_WEIGHT))

    def allocate(self, plan: AllocationPlan) -> Distribution:
        if not plan.future_days:
            return Distribution(SOURCE_LOCAL)
        weights = np.array([self.day_weight(day, plan.pattern) for day in plan.future_days])
        shares = weights / weights.sum() * plan.remaining_budget
        limits = largest_remainder_round(shares, plan.remaining_budget)
        return Distribution(
            SOURCE_LOCAL,
            [DayAllocation(day, limit) for day, limit in zip(plan.future_days, limits)],
        )


class ExternalWeighting:
    """Limits from the weighting service.

    Raises :class:`ExternalServiceUnavailable` when the service cannot be
    used; the caller decides what to fall back to.
    """

    def __init__(self, client: WeightingServiceClient, sample_size: int = config.WEIGHTING_SAMPLE_SIZE):
        self.client = client
        self.sample_size = sample_size

    def allocate(self, plan: AllocationPlan) -> Distribution:
        request = WeightingRequest(
            remaining_budget=plan.remaining_budget,
            total_budget=plan.total_budget,
            month_start=plan.month_start,
            month_end=plan.month_end,
            financial_month_start=plan.financial_month_start,
            transactions=recent_sample(plan.history, self.sample_size),
            user_id=plan.user_id,
        )
        limits = self.client.fetch_daily_limits(request)
        return Distribution(
            SOURCE_EXTERNAL,
            [DayAllocation(item.date, item.limit, item.confidence, item.reasoning) for item in limits],
        )


def _format_uah(amount: float) -> str:
    return f"{amount / 100:.0f}"


def generate_recommendation(
    total_budget: int,
    total_spent: int,
    days_remaining: int,
    pattern: SpendingPattern,
) -> str:
    """Short advice string, picked by fixed priority."""
    if total_budget > 0:
        percent_spent = total_spent / total_budget * 100
    else:
        percent_spent = 100.0 if total_spent > 0 else 0.0
    remaining = total_budget - total_spent
    daily_budget = remaining / days_remaining if days_remaining > 0 else remaining

    if percent_spent > 80 and days_remaining > 7:
        return (
            f"⚠️ Ви витратили {percent_spent:.0f}% бюджету. "
            f"Рекомендований денний ліміт: {_format_uah(daily_budget)} грн"
        )
    if pattern.weekday_avg > 0 and pattern.weekend_avg > pattern.weekday_avg * 1.5:
        increase = (pattern.weekend_avg / pattern.weekday_avg - 1) * 100
        return f"📊 Ваші витрати у вихідні на {increase:.0f}% вищі. Плануйте бюджет відповідно."
    if days_remaining <= 3 and total_spent < total_budget * 0.7:
        return f"✅ Відмінно! У вас залишилось {_format_uah(remaining)} грн на {days_remaining} дні."
    return f"💡 Денний ліміт: {_format_uah(daily_budget)} грн. Тримайтесь плану!"


class BudgetDistributor:
    """Computes a :class:`MonthBudget` for the financial month containing a date.

    ``store`` keeps elapsed days stable between calls; without one (or
    without a ``user_id`` in the context) past days show the baseline
    limit. ``weighting`` is the external strategy; leave it ``None`` to use
    only the local one.
    """

    def __init__(
        self,
        store: Optional[DailyBudgetStore] = None,
        weighting: Optional[WeightingStrategy] = None,
        local: Optional[LocalWeighting] = None,
    ):
        self.store = store
        self.weighting = weighting
        self.local = local or LocalWeighting()

    def distribute(
        self,
        total_budget: int,
        current_date: Union[date, datetime],
        past_transactions: Sequence[Transaction],
        current_month_transactions: Sequence[Transaction],
        current_balance: Optional[int] = None,
        context: Optional[BudgetContext] = None,
    ) -> MonthBudget:
        context = context or BudgetContext()
        total_budget = int(round(require_finite('total_budget', total_budget)))
        if current_balance is not None:
            current_balance = int(round(require_finite('current_balance', current_balance)))

        today = current_date.date() if isinstance(current_date, datetime) else current_date
        days = financial_month_days(today, context.financial_month_start_day)
        month_start, month_end = days[0], days[-1]
        past_days = [day for day in days if day < today]
        future_days = [day for day in days if day >= today]

        month_transactions = [
            tx for tx in current_month_transactions if month_start <= tx.booked_on <= month_end
        ]
        classifier = TransactionClassifier(month_transactions, context.included_ids)
        spent_by_day: Dict[date, int] = defaultdict(int)
        for tx in classifier.expenses(context.excluded_ids):
            spent_by_day[tx.booked_on] += abs(tx.amount)
        transactions_by_day: Dict[date, List[Transaction]] = defaultdict(list)
        for tx in month_transactions:
            transactions_by_day[tx.booked_on].append(tx)

        total_spent = sum(spent_by_day.values())
        # Negative when overspent; the deficit is spread over the future days
        remaining_budget = total_budget - total_spent

        pattern = analyze_spending_pattern(past_transactions, context.included_ids, context.excluded_ids)
        plan = AllocationPlan(
            remaining_budget=remaining_budget,
            total_budget=total_budget,
            future_days=future_days,
            pattern=pattern,
            month_start=month_start,
            month_end=month_end,
            financial_month_start=context.financial_month_start_day,
            history=list(past_transactions) + month_transactions,
            user_id=context.user_id,
        )
        allocations, source = self._allocate_future(plan, context)

        persisted = self._load_history(context, past_days)
        baseline = int(round(total_budget / len(days)))

        daily_limits: List[DailyBudget] = []
        for day in days:
            if day in allocations:
                allocation = allocations[day]
                limit, confidence, reasoning = allocation.limit, allocation.confidence, allocation.reasoning
            elif day in persisted:
                limit, confidence, reasoning = persisted[day].limit, None, None
            else:
                limit, confidence, reasoning = baseline, None, None
            spent = spent_by_day.get(day, 0)
            daily_limits.append(DailyBudget(
                date=day,
                limit=limit,
                spent=spent,
                remaining=limit - spent,
                status=budget_status(spent, limit),
                transactions=transactions_by_day.get(day, []),
                confidence=confidence,
                reasoning=reasoning,
            ))

        self._persist(context, daily_limits, today, persisted, current_balance)

        return MonthBudget(
            total_budget=total_budget,
            total_spent=total_spent,
            total_remaining=remaining_budget,
            days_remaining=len(future_days),
            daily_limits=daily_limits,
            recommendation=generate_recommendation(total_budget, total_spent, len(future_days), pattern),
            current_balance=current_balance,
            source=source,
        )

    def _allocate_future(self, plan: AllocationPlan, context: BudgetContext):
        allocations = self.local.allocate(plan).by_date()
        if not (context.use_external_weighting and self.weighting and plan.future_days):
            return allocations, SOURCE_LOCAL

        try:
            external = self.weighting.allocate(plan)
        except ExternalServiceUnavailable as e:
            logger.warning("Weighting service unavailable, using local weights: %s", e)
            return allocations, SOURCE_LOCAL
        except Exception:
            logger.warning("Weighting strategy failed, using local weights", exc_info=True)
            return allocations, SOURCE_LOCAL

        overlay = {day: item for day, item in external.by_date().items() if day in allocations}
        if not overlay:
            logger.warning("Weighting service returned no limits for the remaining days, using local weights")
            return allocations, SOURCE_LOCAL
        missing = len(allocations) - len(overlay)
        if missing:
            logger.info("Weighting service skipped %d day(s); local limits kept for them", missing)
        allocations.update(overlay)
        return allocations, external.source

    def _load_history(self, context: BudgetContext, past_days: List[date]) -> Dict[date, PersistedDailyBudget]:
        if not (self.store and context.user_id and past_days):
            return {}
        if context.skip_historical_limits:
            logger.info("Recomputing historical limits for %s", context.user_id)
            return {}
        try:
            records = self.store.list(context.user_id, past_days[0], past_days[-1])
        except PersistenceError as e:
            logger.warning("Could not read daily budget history, using baseline limits: %s", e)
            return {}
        return {record.date: record for record in records}

    def _persist(
        self,
        context: BudgetContext,
        daily_limits: Iterable[DailyBudget],
        today: date,
        persisted: Dict[date, PersistedDailyBudget],
        current_balance: Optional[int],
    ) -> None:
        if not (self.store and context.user_id):
            return
        records: List[PersistedDailyBudget] = []
        for entry in daily_limits:
            if entry.date > today:
                continue
            if entry.date in persisted:
                balance = persisted[entry.date].balance
            elif current_balance is not None:
                balance = current_balance
            else:
                balance = entry.limit
            records.append(PersistedDailyBudget(context.user_id, entry.date, entry.limit, entry.spent, balance))
        # Single transaction: all elapsed days or none
        try:
            self.store.upsert_many(records)
        except PersistenceError as e:
            logger.warning("Could not store daily budgets for %s: %s", context.user_id, e)
            return
        logger.debug("Stored %d daily budgets for %s", len(records), context.user_id)


def distribute_budget(
    total_budget: int,
    current_date: Union[date, datetime],
    past_transactions: Sequence[Transaction],
    current_month_transactions: Sequence[Transaction],
    excluded_ids: Iterable[str] = (),
    current_balance: Optional[int] = None,
    user_id: Optional[str] = None,
    use_external_weighting: bool = True,
    financial_month_start_day: int = config.DEFAULT_FINANCIAL_MONTH_START,
    skip_historical_limits: bool = False,
    included_ids: Iterable[str] = (),
    store: Optional[DailyBudgetStore] = None,
    weighting: Optional[WeightingStrategy] = None,
) -> MonthBudget:
    """Flat-argument entry point around :class:`BudgetDistributor`.

    When ``weighting`` is not given and external weighting is requested,
    the service configured through ``BUDGET_PLANNER_WEIGHTING_URL`` is used
    if there is one.

    Example:
        >>> budget = distribute_budget(1_000_000, date(2024, 4, 1), [], [])
        >>> budget.days_remaining
        30
    """
    context = BudgetContext(
        user_id=user_id,
        excluded_ids=frozenset(excluded_ids),
        included_ids=frozenset(included_ids),
        financial_month_start_day=financial_month_start_day,
        use_external_weighting=use_external_weighting,
        skip_historical_limits=skip_historical_limits,
    )
    client = None
    if weighting is None and use_external_weighting:
        client = WeightingServiceClient.from_config()
        if client is not None:
            weighting = ExternalWeighting(client)
    try:
        distributor = BudgetDistributor(store=store, weighting=weighting)
        return distributor.distribute(
            total_budget,
            current_date,
            past_transactions,
            current_month_transactions,
            current_balance=current_balance,
            context=context,
        )
    finally:
        if client is not None:
            client.close()
