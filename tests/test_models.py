from __future__ import annotations

import calendar
import logging
from datetime import date, datetime

import pytest

from budget_planner import config
from budget_planner.errors import ValidationError
from budget_planner.logging_config import setup_logging
from budget_planner.models import (
    STATUS_OVER,
    STATUS_UNDER,
    STATUS_WARNING,
    BudgetContext,
    DailyBudget,
    MonthBudget,
    Transaction,
    budget_status,
    transaction_date,
    transactions_to_frame,
)


@pytest.mark.parametrize(
    "spent, limit, expected",
    [
        (0, 100, STATUS_UNDER),
        (79, 100, STATUS_UNDER),
        (80, 100, STATUS_WARNING),
        (99, 100, STATUS_WARNING),
        (100, 100, STATUS_OVER),
        (0, 0, STATUS_UNDER),
        (1, 0, STATUS_OVER),
        (0, -10, STATUS_OVER),
    ],
)
def test_budget_status(spent, limit, expected) -> None:
    assert budget_status(spent, limit) == expected


def test_transaction_round_trips_statement_shape() -> None:
    payload = {
        'id': 'abc',
        'time': 1704888000,
        'description': 'АТБ',
        'mcc': 5411,
        'amount': -12050,
        'balance': 900000,
        'cashbackAmount': 120,
        'currencyCode': 980,
    }
    tx = Transaction.from_dict(payload)
    assert tx.amount == -12050
    assert tx.cashback_amount == 120
    assert tx.to_dict() == payload


def test_transaction_is_immutable() -> None:
    tx = Transaction(id='a', time=0, amount=-1)
    with pytest.raises(AttributeError):
        tx.amount = 5  # type: ignore[misc]


def test_booking_date_uses_configured_timezone(monkeypatch) -> None:
    late_evening_utc = calendar.timegm(datetime(2024, 1, 10, 23, 30).timetuple())
    monkeypatch.setattr(config, 'TIMEZONE', 'UTC')
    assert Transaction(id='a', time=late_evening_utc).booked_on == date(2024, 1, 10)
    monkeypatch.setattr(config, 'TIMEZONE', 'Europe/Kyiv')
    assert Transaction(id='a', time=late_evening_utc).booked_on == date(2024, 1, 11)
    assert transaction_date(late_evening_utc, tz='UTC') == date(2024, 1, 10)


def test_context_freezes_id_collections() -> None:
    context = BudgetContext(excluded_ids=['a', 'b'], included_ids=('c',))
    assert context.excluded_ids == frozenset({'a', 'b'})
    assert 'c' in context.included_ids


@pytest.mark.parametrize("start_day", [0, 32])
def test_context_rejects_bad_start_day(start_day: int) -> None:
    with pytest.raises(ValidationError):
        BudgetContext(financial_month_start_day=start_day)


def test_month_budget_to_dict() -> None:
    tx = Transaction(id='t', time=0, amount=-10)
    day = DailyBudget(date(2024, 4, 1), 100, 10, 90, STATUS_UNDER, [tx], confidence=0.5)
    budget = MonthBudget(100, 10, 90, 1, [day], recommendation='ok')
    payload = budget.to_dict()
    assert payload['totalRemaining'] == 90
    assert payload['dailyLimits'][0] == {
        'date': '2024-04-01',
        'limit': 100,
        'spent': 10,
        'remaining': 90,
        'status': STATUS_UNDER,
        'transactions': ['t'],
        'confidence': 0.5,
    }
    assert budget.day(date(2024, 4, 1)) is day
    assert budget.day(date(2024, 4, 2)) is None


def test_transactions_to_frame_columns() -> None:
    df = transactions_to_frame([Transaction(id='a', time=1704888000, description='x', mcc=1, amount=-5)])
    assert list(df.columns) == ['id', 'Timestamp', 'Transaction Date', 'Description', 'MCC', 'Amount']
    assert df.loc[0, 'Amount'] == -5
    assert transactions_to_frame([]).empty


def test_setup_logging_installs_single_handler() -> None:
    root = logging.getLogger()
    saved = root.handlers[:]
    saved_level = root.level
    try:
        setup_logging('DEBUG')
        setup_logging('INFO')
        assert len(root.handlers) == 1
        assert root.level == logging.INFO
        assert logging.getLogger('httpx').level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved:
            root.addHandler(handler)
        root.setLevel(saved_level)
