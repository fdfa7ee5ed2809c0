from __future__ import annotations

import pytest

from budget_planner.currency import (
    CurrencyRate,
    convert_to_base,
    currency_symbol,
    normalize_transactions,
)
from budget_planner.models import Transaction


def _rates():
    return [
        CurrencyRate.from_dict({'currencyCodeA': 840, 'currencyCodeB': 980, 'date': 1, 'rateBuy': 41.0, 'rateSell': 41.5}),
        CurrencyRate.from_dict({'currencyCodeA': 985, 'currencyCodeB': 980, 'date': 1, 'rateCross': 10.2}),
        CurrencyRate.from_dict({'currencyCodeA': 978, 'currencyCodeB': 840, 'date': 1, 'rateBuy': 1.08}),
        CurrencyRate(826, 980, 1, rate_buy=52.0),
    ]


@pytest.mark.parametrize(
    "code, symbol",
    [(980, '₴'), (840, '$'), (978, '€'), (826, '£'), (985, 'zł'), (None, '₴'), (392, '₴')],
)
def test_currency_symbol(code, symbol) -> None:
    assert currency_symbol(code) == symbol


def test_convert_prefers_cross_then_sell_then_buy() -> None:
    rates = _rates()
    assert convert_to_base(-1000, 985, rates) == -10200
    assert convert_to_base(-1000, 840, rates) == -41500
    assert convert_to_base(-1000, 826, rates) == -52000


def test_convert_passes_through_when_no_rate() -> None:
    rates = _rates()
    assert convert_to_base(-1000, 980, rates) == -1000
    assert convert_to_base(-1000, None, rates) == -1000
    # only a EUR/USD pair is known, not EUR/UAH
    assert convert_to_base(-1000, 978, rates) == -1000


def test_normalize_transactions() -> None:
    transactions = [
        Transaction(id='uah', time=1, amount=-500),
        Transaction(id='usd', time=2, amount=-200, cashback_amount=2, currency_code=840),
    ]
    normalized = normalize_transactions(transactions, _rates())
    assert normalized[0] is transactions[0]
    assert normalized[1].amount == -8300
    assert normalized[1].cashback_amount == 83
    assert normalized[1].id == 'usd'
