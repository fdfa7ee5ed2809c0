"""Core records shared by the calendar, classifier, distributor and predictor.

Amounts are integers in minor currency units (kopecks, cents). Debits are
negative. Classification is always derived from a :class:`Transaction`, it
is never stored on one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo

import pandas as pd

from . import config
from .errors import require_start_day

STATUS_UNDER = 'under'
STATUS_WARNING = 'warning'
STATUS_OVER = 'over'

WARNING_THRESHOLD = 0.8
OVER_THRESHOLD = 1.0

FRAME_COLUMNS = ['id', 'Timestamp', 'Transaction Date', 'Description', 'MCC', 'Amount']


@lru_cache(maxsize=None)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def transaction_date(timestamp: int, tz: Optional[str] = None) -> date:
    """Calendar date of a unix timestamp in the configured timezone."""
    return datetime.fromtimestamp(timestamp, tz=_zone(tz or config.TIMEZONE)).date()


@dataclass(frozen=True)
class Transaction:
    """A single statement line as delivered by the bank."""
    id: str
    time: int
    description: str = ''
    mcc: int = 0
    amount: int = 0
    balance: int = 0
    cashback_amount: int = 0
    currency_code: Optional[int] = None
    category_override: Optional[str] = None
    comment: Optional[str] = None

    @property
    def booked_on(self) -> date:
        return transaction_date(self.time)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Transaction':
        """Build a transaction from the provider's camelCase statement shape."""
        currency = data.get('currencyCode')
        return cls(
            id=str(data['id']),
            time=int(data['time']),
            description=str(data.get('description') or ''),
            mcc=int(data.get('mcc') or 0),
            amount=int(data['amount']),
            balance=int(data.get('balance') or 0),
            cashback_amount=int(data.get('cashbackAmount') or 0),
            currency_code=int(currency) if currency is not None else None,
            category_override=data.get('category'),
            comment=data.get('comment'),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'id': self.id,
            'time': self.time,
            'description': self.description,
            'mcc': self.mcc,
            'amount': self.amount,
            'balance': self.balance,
            'cashbackAmount': self.cashback_amount,
        }
        if self.currency_code is not None:
            payload['currencyCode'] = self.currency_code
        if self.comment:
            payload['comment'] = self.comment
        return payload


@dataclass
class DailyBudget:
    date: date
    limit: int
    spent: int
    remaining: int
    status: str
    transactions: List[Transaction] = field(default_factory=list)
    confidence: Optional[float] = None
    reasoning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'date': self.date.isoformat(),
            'limit': self.limit,
            'spent': self.spent,
            'remaining': self.remaining,
            'status': self.status,
            'transactions': [tx.id for tx in self.transactions],
        }
        if self.confidence is not None:
            payload['confidence'] = self.confidence
        if self.reasoning is not None:
            payload['reasoning'] = self.reasoning
        return payload


@dataclass
class MonthBudget:
    total_budget: int
    total_spent: int
    total_remaining: int
    days_remaining: int
    daily_limits: List[DailyBudget]
    recommendation: Optional[str] = None
    current_balance: Optional[int] = None
    daily_average: Optional[int] = None
    is_historical: bool = False
    source: str = 'local'

    def day(self, value: date) -> Optional[DailyBudget]:
        for entry in self.daily_limits:
            if entry.date == value:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalBudget': self.total_budget,
            'totalSpent': self.total_spent,
            'totalRemaining': self.total_remaining,
            'daysRemaining': self.days_remaining,
            'dailyLimits': [entry.to_dict() for entry in self.daily_limits],
            'recommendation': self.recommendation,
            'currentBalance': self.current_balance,
            'dailyAverage': self.daily_average,
            'isHistorical': self.is_historical,
            'source': self.source,
        }


@dataclass
class SpendingPattern:
    weekday_avg: float = 0.0
    weekend_avg: float = 0.0
    day_of_month_multipliers: List[float] = field(default_factory=lambda: [1.0] * 31)

    def multiplier_for(self, value: date) -> float:
        return self.day_of_month_multipliers[value.day - 1]


@dataclass(frozen=True)
class PersistedDailyBudget:
    user_id: str
    date: date
    limit: int
    spent: int
    balance: int


@dataclass(frozen=True)
class ProjectionPoint:
    month: str
    balance: int


@dataclass
class InflationPrediction:
    current_balance: int
    predicted_balance: int
    monthly_burn_rate: int
    months_until_zero: float
    yearly_projection: List[ProjectionPoint]
    confidence: float


@dataclass(frozen=True)
class BudgetContext:
    """Per-request settings threaded through every distribution call."""
    user_id: Optional[str] = None
    excluded_ids: FrozenSet[str] = frozenset()
    included_ids: FrozenSet[str] = frozenset()
    financial_month_start_day: int = 1
    use_external_weighting: bool = True
    skip_historical_limits: bool = False
    category_overrides: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Callers hand over lists; freeze them so lookups are O(1)
        object.__setattr__(self, 'excluded_ids', frozenset(str(i) for i in self.excluded_ids))
        object.__setattr__(self, 'included_ids', frozenset(str(i) for i in self.included_ids))
        require_start_day(self.financial_month_start_day)


def budget_status(spent: float, limit: float) -> str:
    """Map spending against a limit to under / warning / over."""
    if limit <= 0:
        # A zero limit with nothing spent is still on track
        return STATUS_OVER if spent > 0 or limit < 0 else STATUS_UNDER
    if spent >= limit * OVER_THRESHOLD:
        return STATUS_OVER
    if spent >= limit * WARNING_THRESHOLD:
        return STATUS_WARNING
    return STATUS_UNDER


def transactions_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Tabular view of transactions for the pandas-based analytics."""
    rows = [
        {
            'id': tx.id,
            'Timestamp': tx.time,
            'Transaction Date': pd.Timestamp(tx.booked_on),
            'Description': tx.description,
            'MCC': tx.mcc,
            'Amount': tx.amount,
        }
        for tx in transactions
    ]
    if not rows:
        return pd.DataFrame(columns=FRAME_COLUMNS)
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)
