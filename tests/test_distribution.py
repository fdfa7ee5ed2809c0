from __future__ import annotations

import calendar
import logging
from datetime import date, datetime

import httpx
import pytest

from budget_planner import config
from budget_planner.distribution import (
    BudgetDistributor,
    Distribution,
    DayAllocation,
    ExternalWeighting,
    LocalWeighting,
    distribute_budget,
    generate_recommendation,
    largest_remainder_round,
)
from budget_planner.errors import ExternalServiceUnavailable, PersistenceError, ValidationError
from budget_planner.history_store import SQLiteDailyBudgetStore
from budget_planner.models import (
    STATUS_OVER,
    STATUS_UNDER,
    STATUS_WARNING,
    BudgetContext,
    PersistedDailyBudget,
    SpendingPattern,
    Transaction,
)
from budget_planner.weighting_client import WeightingServiceClient


def _tx(tx_id: str, day: date, amount: int, description: str = 'Shop', hour: int = 12) -> Transaction:
    ts = calendar.timegm(datetime(day.year, day.month, day.day, hour).timetuple())
    return Transaction(id=tx_id, time=ts, description=description, mcc=5411, amount=amount)


class _MemoryStore:
    def __init__(self):
        self.records = {}
        self.batches = 0

    def upsert(self, user_id, day, limit, spent, balance):
        self.records[(user_id, day)] = PersistedDailyBudget(user_id, day, limit, spent, balance)

    def upsert_many(self, records):
        self.batches += 1
        for record in records:
            self.records[(record.user_id, record.date)] = record

    def list(self, user_id, from_date, to_date):
        return sorted(
            (r for (uid, d), r in self.records.items() if uid == user_id and from_date <= d <= to_date),
            key=lambda r: r.date,
        )

    def get(self, user_id, day):
        return self.records.get((user_id, day))


class _BrokenStore:
    def upsert(self, *args):
        raise PersistenceError("disk full")

    def upsert_many(self, *args):
        raise PersistenceError("disk full")

    def list(self, *args):
        raise PersistenceError("disk gone")

    def get(self, *args):
        raise PersistenceError("disk gone")


class _FixedWeighting:
    def __init__(self, limit: int, confidence: float = 0.9):
        self.limit = limit
        self.confidence = confidence
        self.calls = 0

    def allocate(self, plan):
        self.calls += 1
        return Distribution('external', [
            DayAllocation(day, self.limit, self.confidence, 'steady') for day in plan.future_days
        ])


class _FailingWeighting:
    def allocate(self, plan):
        raise ExternalServiceUnavailable("service down")


class _CrashingWeighting:
    def allocate(self, plan):
        raise RuntimeError("unexpected payload")


def _future_sum(budget, today: date) -> int:
    return sum(day.limit for day in budget.daily_limits if day.date >= today)


def test_fresh_month_splits_budget_evenly() -> None:
    budget = BudgetDistributor().distribute(10000, date(2024, 4, 1), [], [], current_balance=10000)

    assert budget.days_remaining == 30
    assert len(budget.daily_limits) == 30
    assert budget.daily_limits[0].date == date(2024, 4, 1)
    assert budget.daily_limits[-1].date == date(2024, 4, 30)
    assert all(day.limit in (333, 334) for day in budget.daily_limits)
    assert all(day.status == STATUS_UNDER for day in budget.daily_limits)
    assert sum(day.limit for day in budget.daily_limits) == 10000
    assert budget.total_remaining == 10000
    assert budget.current_balance == 10000
    assert budget.source == 'local'


def test_paired_transfer_does_not_count_as_spending() -> None:
    today = date(2024, 4, 10)
    transactions = [
        _tx('out', today, -5000, 'Переказ', hour=9),
        _tx('in', today, 5000, 'Переказ', hour=10),
    ]
    budget = BudgetDistributor().distribute(10000, today, [], transactions)
    assert budget.total_spent == 0
    assert budget.day(today).spent == 0
    assert len(budget.day(today).transactions) == 2


def test_external_limits_do_not_change_total_remaining() -> None:
    weighting = _FixedWeighting(300)
    budget = BudgetDistributor(weighting=weighting).distribute(10000, date(2024, 4, 1), [], [])

    assert weighting.calls == 1
    assert sum(day.limit for day in budget.daily_limits) == 9000
    assert budget.total_remaining == 10000
    assert budget.source == 'external'
    assert budget.daily_limits[0].confidence == 0.9
    assert budget.daily_limits[0].reasoning == 'steady'


def test_external_failure_falls_back_to_local(caplog) -> None:
    caplog.set_level(logging.WARNING, logger='budget_planner.distribution')
    budget = BudgetDistributor(weighting=_FailingWeighting()).distribute(10000, date(2024, 4, 1), [], [])

    assert budget.source == 'local'
    assert sum(day.limit for day in budget.daily_limits) == 10000
    assert all(day.confidence is None for day in budget.daily_limits)
    assert 'service down' in caplog.text


def test_http_error_from_service_falls_back_to_local() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(502))
    client = WeightingServiceClient('http://weights.test', client=httpx.Client(transport=transport))
    distributor = BudgetDistributor(weighting=ExternalWeighting(client))

    budget = distributor.distribute(10000, date(2024, 4, 1), [], [])
    assert budget.source == 'local'
    assert budget.total_remaining == 10000


def test_unexpected_strategy_error_falls_back_to_local(caplog) -> None:
    caplog.set_level(logging.WARNING, logger='budget_planner.distribution')
    budget = BudgetDistributor(weighting=_CrashingWeighting()).distribute(10000, date(2024, 4, 1), [], [])

    assert budget.source == 'local'
    assert len(budget.daily_limits) == 30
    assert sum(day.limit for day in budget.daily_limits) == 10000
    assert 'unexpected payload' in caplog.text


def test_malformed_service_url_falls_back_to_local(monkeypatch) -> None:
    monkeypatch.setattr(config, 'WEIGHTING_SERVICE_URL', 'http://[::1/')
    budget = distribute_budget(10000, date(2024, 4, 1), [], [], use_external_weighting=True)

    assert budget.source == 'local'
    assert budget.days_remaining == 30
    assert sum(day.limit for day in budget.daily_limits) == 10000


def test_external_partial_answer_keeps_local_for_missing_days() -> None:
    class _Partial:
        def allocate(self, plan):
            return Distribution('external', [DayAllocation(plan.future_days[0], 1, 0.5, 'first only')])

    budget = BudgetDistributor(weighting=_Partial()).distribute(10000, date(2024, 4, 1), [], [])
    assert budget.daily_limits[0].limit == 1
    assert budget.daily_limits[1].limit in (333, 334)
    assert budget.source == 'external'


def test_external_weighting_can_be_disabled() -> None:
    weighting = _FixedWeighting(300)
    context = BudgetContext(use_external_weighting=False)
    budget = BudgetDistributor(weighting=weighting).distribute(10000, date(2024, 4, 1), [], [], context=context)
    assert weighting.calls == 0
    assert budget.source == 'local'


@pytest.mark.parametrize("remaining", [1, 29, 999, 10000, 123457])
@pytest.mark.parametrize("today", [date(2024, 4, 1), date(2024, 4, 17), date(2024, 4, 30)])
def test_local_limits_sum_to_remaining_budget(remaining: int, today: date) -> None:
    history = [
        _tx(f'h{i}', date(2024, 3, 1 + i % 28), -(100 + (i * 37) % 900))
        for i in range(60)
    ]
    budget = BudgetDistributor().distribute(remaining, today, history, [])
    assert _future_sum(budget, today) == remaining


def test_overspend_propagates_negative_limits() -> None:
    today = date(2024, 4, 20)
    transactions = [_tx('big', date(2024, 4, 5), -15000)]
    budget = BudgetDistributor().distribute(10000, today, [], transactions)

    assert budget.total_spent == 15000
    assert budget.total_remaining == -5000
    assert _future_sum(budget, today) == -5000
    future = [day for day in budget.daily_limits if day.date >= today]
    assert all(day.limit < 0 for day in future)
    assert all(day.status == STATUS_OVER for day in future)
    assert budget.day(date(2024, 4, 5)).status == STATUS_OVER


def test_exclusions_and_inclusions() -> None:
    today = date(2024, 4, 10)
    transactions = [
        _tx('food', today, -2000),
        _tx('gift', today, -3000),
        _tx('atm', today, -4000, 'Банкомат'),
    ]
    context = BudgetContext(excluded_ids=['gift'], included_ids=['atm'])
    budget = BudgetDistributor().distribute(10000, today, [], transactions, context=context)
    assert budget.total_spent == 6000


def test_transactions_outside_month_are_ignored() -> None:
    transactions = [_tx('march', date(2024, 3, 31), -2000), _tx('april', date(2024, 4, 2), -1000)]
    budget = BudgetDistributor().distribute(10000, date(2024, 4, 10), [], transactions)
    assert budget.total_spent == 1000


def test_day_status_thresholds() -> None:
    today = date(2024, 4, 1)
    transactions = [_tx('a', today, -300)]
    budget = BudgetDistributor().distribute(10000, today, [], transactions)
    first = budget.day(today)
    # remaining 9700 over 30 days
    assert first.limit in (323, 324)
    assert first.status == STATUS_WARNING
    assert first.remaining == first.limit - 300


def test_past_days_keep_persisted_limits(tmp_path) -> None:
    store = SQLiteDailyBudgetStore(tmp_path / 'history.db')
    distributor = BudgetDistributor(store=store)
    context = BudgetContext(user_id='u1')

    first = distributor.distribute(10000, date(2024, 4, 10), [], [], current_balance=8000, context=context)
    assert first.day(date(2024, 4, 9)).limit == 333
    assert first.day(date(2024, 4, 10)).limit == 477
    persisted = store.list('u1', date(2024, 4, 1), date(2024, 4, 30))
    assert [r.date for r in persisted] == [date(2024, 4, d) for d in range(1, 11)]
    assert all(r.balance == 8000 for r in persisted)

    again = distributor.distribute(10000, date(2024, 4, 10), [], [], current_balance=7000, context=context)
    assert [d.limit for d in again.daily_limits] == [d.limit for d in first.daily_limits]
    assert store.get('u1', date(2024, 4, 3)).balance == 8000

    later = distributor.distribute(20000, date(2024, 4, 12), [], [], context=context)
    assert later.day(date(2024, 4, 3)).limit == 333
    assert later.day(date(2024, 4, 10)).limit == 477
    assert later.day(date(2024, 4, 11)).limit == 667


def test_skip_historical_limits_recomputes_past_days() -> None:
    store = _MemoryStore()
    store.upsert('u1', date(2024, 4, 3), 50, 0, 0)
    distributor = BudgetDistributor(store=store)

    kept = distributor.distribute(10000, date(2024, 4, 10), [], [], context=BudgetContext(user_id='u1'))
    assert kept.day(date(2024, 4, 3)).limit == 50

    context = BudgetContext(user_id='u1', skip_historical_limits=True)
    recomputed = distributor.distribute(10000, date(2024, 4, 10), [], [], context=context)
    assert recomputed.day(date(2024, 4, 3)).limit == 333
    assert store.get('u1', date(2024, 4, 3)).limit == 333


def test_store_failures_are_logged_not_raised(caplog) -> None:
    caplog.set_level(logging.WARNING, logger='budget_planner.distribution')
    distributor = BudgetDistributor(store=_BrokenStore())
    budget = distributor.distribute(10000, date(2024, 4, 10), [], [], context=BudgetContext(user_id='u1'))

    assert len(budget.daily_limits) == 30
    assert budget.day(date(2024, 4, 1)).limit == 333
    assert 'disk gone' in caplog.text
    assert 'disk full' in caplog.text


def test_without_user_nothing_is_persisted() -> None:
    store = _MemoryStore()
    BudgetDistributor(store=store).distribute(10000, date(2024, 4, 10), [], [])
    assert store.records == {}


@pytest.mark.parametrize("bad", [-1, float('nan'), float('inf'), '100'])
def test_invalid_budget_is_rejected(bad) -> None:
    with pytest.raises(ValidationError):
        BudgetDistributor().distribute(bad, date(2024, 4, 1), [], [])


def test_invalid_balance_is_rejected() -> None:
    with pytest.raises(ValidationError):
        BudgetDistributor().distribute(10000, date(2024, 4, 1), [], [], current_balance=float('nan'))


def test_local_weights_are_clamped_and_boost_weekends() -> None:
    multipliers = [1.0] * 31
    multipliers[5] = 10.0
    multipliers[6] = 0.01
    pattern = SpendingPattern(weekday_avg=100, weekend_avg=200, day_of_month_multipliers=multipliers)
    local = LocalWeighting()

    assert local.day_weight(date(2024, 4, 6), pattern) == 3.0
    assert local.day_weight(date(2024, 4, 7), pattern) == pytest.approx(0.3)
    assert local.day_weight(date(2024, 4, 13), pattern) == pytest.approx(1.2)
    assert local.day_weight(date(2024, 4, 10), pattern) == 1.0


def test_largest_remainder_round() -> None:
    assert largest_remainder_round([1.5, 1.5, 1.0], 4) == [2, 1, 1]
    assert largest_remainder_round([3.3, 3.3, 3.4], 10) == [3, 3, 4]
    assert largest_remainder_round([-1.5, -1.5], -3) == [-1, -2]
    assert largest_remainder_round([], 0) == []


@pytest.mark.parametrize(
    "total, spent, days, pattern, prefix",
    [
        (10000, 8500, 10, SpendingPattern(), '⚠️'),
        (10000, 1000, 10, SpendingPattern(weekday_avg=100, weekend_avg=200), '📊'),
        (10000, 1000, 2, SpendingPattern(), '✅'),
        (10000, 5000, 10, SpendingPattern(), '💡'),
        (0, 0, 0, SpendingPattern(), '💡'),
    ],
)
def test_recommendation_priority(total, spent, days, pattern, prefix) -> None:
    assert generate_recommendation(total, spent, days, pattern).startswith(prefix)


def test_distribute_budget_flat_signature(tmp_path) -> None:
    store = SQLiteDailyBudgetStore(tmp_path / 'history.db')
    budget = distribute_budget(
        10000,
        date(2024, 4, 10),
        [],
        [_tx('a', date(2024, 4, 2), -1000), _tx('b', date(2024, 4, 3), -500)],
        excluded_ids=['b'],
        current_balance=9000,
        user_id='u1',
        use_external_weighting=False,
        financial_month_start_day=1,
        included_ids=[],
        store=store,
    )
    assert budget.total_spent == 1000
    assert budget.total_remaining == 9000
    assert store.get('u1', date(2024, 4, 2)).spent == 1000


def test_month_starting_on_25th_spans_calendar_months() -> None:
    store = _MemoryStore()
    today = date(2024, 4, 3)
    transactions = [
        _tx('before', date(2024, 3, 24), -2000),
        _tx('inside', date(2024, 3, 26), -1000),
        _tx('today', today, -500),
    ]
    context = BudgetContext(user_id='u1', financial_month_start_day=25)
    budget = BudgetDistributor(store=store).distribute(10000, today, [], transactions, context=context)

    assert len(budget.daily_limits) == 31
    assert budget.daily_limits[0].date == date(2024, 3, 25)
    assert budget.daily_limits[-1].date == date(2024, 4, 24)
    assert budget.days_remaining == 22
    assert budget.total_spent == 1500
    assert budget.day(date(2024, 3, 24)) is None
    assert budget.day(date(2024, 3, 26)).limit == 323
    assert _future_sum(budget, today) == 8500

    persisted = store.list('u1', date(2024, 3, 1), date(2024, 4, 30))
    assert [r.date for r in persisted][0] == date(2024, 3, 25)
    assert [r.date for r in persisted][-1] == today
    assert len(persisted) == 10
    assert store.get('u1', date(2024, 3, 26)).spent == 1000
    assert store.batches == 1


def test_month_starting_on_31st_clamps_in_february() -> None:
    today = date(2025, 3, 5)
    transactions = [
        _tx('before', date(2025, 2, 27), -2000),
        _tx('first-day', date(2025, 2, 28), -700),
        _tx('next-month', date(2025, 3, 31), -900),
    ]
    context = BudgetContext(financial_month_start_day=31)
    budget = BudgetDistributor().distribute(10000, today, [], transactions, context=context)

    assert len(budget.daily_limits) == 31
    assert budget.daily_limits[0].date == date(2025, 2, 28)
    assert budget.daily_limits[-1].date == date(2025, 3, 30)
    assert budget.days_remaining == 26
    assert budget.total_spent == 700
    assert _future_sum(budget, today) == 9300

    following = BudgetDistributor().distribute(10000, date(2025, 3, 31), [], transactions, context=context)
    assert len(following.daily_limits) == 30
    assert following.daily_limits[0].date == date(2025, 3, 31)
    assert following.daily_limits[-1].date == date(2025, 4, 29)
    assert following.days_remaining == 30
    assert following.total_spent == 900


def test_elapsed_days_are_stored_in_one_batch(tmp_path) -> None:
    store = SQLiteDailyBudgetStore(tmp_path / 'history.db')
    calls = []
    original = store.upsert_many

    def counting(records):
        calls.append(len(records))
        original(records)

    store.upsert_many = counting
    BudgetDistributor(store=store).distribute(10000, date(2024, 4, 10), [], [], context=BudgetContext(user_id='u1'))

    assert calls == [10]
    assert len(store.list('u1', date(2024, 4, 1), date(2024, 4, 30))) == 10
