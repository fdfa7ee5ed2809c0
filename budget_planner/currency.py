"""Currency symbols and conversion of foreign-currency transactions to UAH."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import Transaction

BASE_CURRENCY = 980  # UAH, ISO 4217 numeric

CURRENCY_SYMBOLS: Dict[int, str] = {
    980: '₴',
    840: '$',
    978: '€',
    826: '£',
    985: 'zł',
}


def currency_symbol(code: Optional[int]) -> str:
    if not code:
        return CURRENCY_SYMBOLS[BASE_CURRENCY]
    return CURRENCY_SYMBOLS.get(code, CURRENCY_SYMBOLS[BASE_CURRENCY])


@dataclass(frozen=True)
class CurrencyRate:
    """One row of the bank's public rate table (currency A priced in B)."""
    currency_code_a: int
    currency_code_b: int
    date: int
    rate_buy: Optional[float] = None
    rate_sell: Optional[float] = None
    rate_cross: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CurrencyRate':
        return cls(
            currency_code_a=int(data['currencyCodeA']),
            currency_code_b=int(data['currencyCodeB']),
            date=int(data.get('date') or 0),
            rate_buy=data.get('rateBuy'),
            rate_sell=data.get('rateSell'),
            rate_cross=data.get('rateCross'),
        )

    @property
    def effective_rate(self) -> float:
        # Cross rate first, then the bank's sell rate, then its buy rate
        return self.rate_cross or self.rate_sell or self.rate_buy or 1.0


def find_rate(currency_code: int, rates: Iterable[CurrencyRate]) -> Optional[CurrencyRate]:
    for rate in rates:
        if rate.currency_code_a == currency_code and rate.currency_code_b == BASE_CURRENCY:
            return rate
    return None


def convert_to_base(amount: int, currency_code: Optional[int], rates: Sequence[CurrencyRate]) -> int:
    """Amount in UAH minor units.

    Amounts already in UAH, or in a currency without a known rate, are
    returned unchanged.
    """
    if not currency_code or currency_code == BASE_CURRENCY:
        return amount
    rate = find_rate(currency_code, rates)
    if rate is None:
        return amount
    return int(round(amount * rate.effective_rate))


def normalize_transactions(
    transactions: Iterable[Transaction],
    rates: Sequence[CurrencyRate],
) -> List[Transaction]:
    """Copies of ``transactions`` with every amount expressed in UAH."""
    result = []
    for tx in transactions:
        if not tx.currency_code or tx.currency_code == BASE_CURRENCY:
            result.append(tx)
            continue
        result.append(replace(
            tx,
            amount=convert_to_base(tx.amount, tx.currency_code, rates),
            cashback_amount=convert_to_base(tx.cashback_amount, tx.currency_code, rates),
        ))
    return result
