"""HTTP client for the external daily-budget weighting service.

The service receives the remaining budget, the month window and a sample of
recent transactions and answers with one limit per future day::

    {"dailyBudgets": [{"date": "2024-03-14", "limit": 41250,
                       "confidence": 0.82, "reasoning": "..."}]}

Every failure (transport error, timeout, non-2xx status, malformed body)
is raised as :class:`ExternalServiceUnavailable`. Nothing is retried.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import httpx

from . import config
from .errors import ExternalServiceUnavailable
from .models import Transaction

logger = logging.getLogger(__name__)


def recent_sample(transactions: Sequence[Transaction], size: int) -> List[Transaction]:
    """The ``size`` most recent transactions, oldest first."""
    if size <= 0:
        return []
    return sorted(transactions, key=lambda tx: tx.time)[-size:]


@dataclass
class WeightingRequest:
    remaining_budget: int
    total_budget: int
    month_start: date
    month_end: date
    financial_month_start: int
    transactions: List[Transaction] = field(default_factory=list)
    user_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'remainingBudget': self.remaining_budget,
            'totalBudget': self.total_budget,
            'transactions': [tx.to_dict() for tx in self.transactions],
            'monthStart': self.month_start.isoformat(),
            'monthEnd': self.month_end.isoformat(),
            'financialMonthStart': self.financial_month_start,
        }
        if self.user_id:
            payload['userId'] = self.user_id
        return payload


@dataclass(frozen=True)
class ExternalDayLimit:
    date: date
    limit: int
    confidence: Optional[float] = None
    reasoning: Optional[str] = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_entry(entry: Any) -> ExternalDayLimit:
    if not isinstance(entry, dict):
        raise ExternalServiceUnavailable(f"daily budget entry is not an object: {entry!r}")
    try:
        day = date.fromisoformat(str(entry['date'])[:10])
    except (KeyError, ValueError) as e:
        raise ExternalServiceUnavailable(f"daily budget entry has no valid date: {entry!r}") from e

    limit = entry.get('limit')
    if not _is_number(limit) or limit < 0:
        raise ExternalServiceUnavailable(f"invalid limit for {day}: {limit!r}")

    confidence = entry.get('confidence')
    if confidence is not None and (not _is_number(confidence) or not 0 <= confidence <= 1):
        raise ExternalServiceUnavailable(f"invalid confidence for {day}: {confidence!r}")

    reasoning = entry.get('reasoning')
    if reasoning is not None and not isinstance(reasoning, str):
        raise ExternalServiceUnavailable(f"invalid reasoning for {day}: {reasoning!r}")

    return ExternalDayLimit(
        date=day,
        limit=int(round(limit)),
        confidence=float(confidence) if confidence is not None else None,
        reasoning=reasoning,
    )


def parse_daily_limits(body: Any) -> List[ExternalDayLimit]:
    """Validate a service response body and return its entries."""
    if not isinstance(body, dict) or not isinstance(body.get('dailyBudgets'), list):
        raise ExternalServiceUnavailable("response has no 'dailyBudgets' list")
    return [_parse_entry(entry) for entry in body['dailyBudgets']]


class WeightingServiceClient:
    """Synchronous client with a bounded timeout.

    Pass ``client`` to reuse a configured ``httpx.Client`` (tests use one
    backed by ``httpx.MockTransport``); otherwise one is created and owned
    by this instance.
    """

    def __init__(
        self,
        url: str,
        timeout: float = config.WEIGHTING_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls) -> Optional['WeightingServiceClient']:
        url = config.get_weighting_service_url()
        if not url:
            return None
        return cls(url)

    def fetch_daily_limits(self, request: WeightingRequest) -> List[ExternalDayLimit]:
        try:
            response = self._client.post(self.url, json=request.to_payload(), timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceUnavailable(f"weighting service timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceUnavailable(
                f"weighting service returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceUnavailable(f"weighting service error: {type(e).__name__}: {e}") from e
        except httpx.InvalidURL as e:
            raise ExternalServiceUnavailable(f"weighting service URL is invalid: {e}") from e
        except ValueError as e:
            raise ExternalServiceUnavailable(f"weighting service returned invalid JSON: {e}") from e

        limits = parse_daily_limits(body)
        logger.debug("Weighting service returned %d daily limits", len(limits))
        return limits

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> 'WeightingServiceClient':
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
