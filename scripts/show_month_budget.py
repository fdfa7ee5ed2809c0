#!/usr/bin/env python3
"""Print daily limits and the burn-rate forecast for a statement export."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from budget_planner import config
from budget_planner.distribution import BudgetDistributor, ExternalWeighting
from budget_planner.financial_calendar import financial_month_start
from budget_planner.history_store import SQLiteDailyBudgetStore
from budget_planner.inflation import predict_inflation
from budget_planner.logging_config import setup_logging
from budget_planner.models import BudgetContext, Transaction
from budget_planner.weighting_client import WeightingServiceClient


def load_statement(path: Path) -> List[Transaction]:
    with path.open('r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('transactions', [])
    return [Transaction.from_dict(item) for item in data]


def main(args: argparse.Namespace) -> None:
    transactions = load_statement(Path(args.statement))
    today = date.fromisoformat(args.date) if args.date else date.today()
    start_day = args.start_day
    month_start = financial_month_start(today, start_day).date()

    current = [tx for tx in transactions if tx.booked_on >= month_start]
    past = [tx for tx in transactions if tx.booked_on < month_start]
    balance = args.balance
    if balance is None and transactions:
        balance = max(transactions, key=lambda tx: tx.time).balance

    if args.user:
        config.ensure_data_directories()
    client = WeightingServiceClient.from_config() if not args.local_only else None
    distributor = BudgetDistributor(
        store=SQLiteDailyBudgetStore() if args.user else None,
        weighting=ExternalWeighting(client) if client else None,
    )
    context = BudgetContext(
        user_id=args.user,
        excluded_ids=args.exclude,
        included_ids=args.include,
        financial_month_start_day=start_day,
        use_external_weighting=not args.local_only,
    )
    try:
        budget = distributor.distribute(args.budget, today, past, current, current_balance=balance, context=context)
    finally:
        if client is not None:
            client.close()

    print(f"Budget: {args.budget / 100:.2f}  spent: {budget.total_spent / 100:.2f}  "
          f"remaining: {budget.total_remaining / 100:.2f}  ({budget.source})")
    print(f"Days remaining: {budget.days_remaining}")
    for day in budget.daily_limits:
        marker = '>' if day.date == today else ' '
        print(f"{marker} {day.date.isoformat()}  limit {day.limit / 100:>9.2f}  "
              f"spent {day.spent / 100:>9.2f}  {day.status}")
    if budget.recommendation:
        print(f"\n{budget.recommendation}")

    if balance is not None:
        prediction = predict_inflation(transactions, balance, included_ids=args.include, today=today)
        print(f"\nMonthly burn: {prediction.monthly_burn_rate / 100:.2f}  "
              f"months until zero: {prediction.months_until_zero}  "
              f"confidence: {prediction.confidence:.2f}")
        for point in prediction.yearly_projection:
            print(f"  {point.month}: {point.balance / 100:.2f}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show the daily budget for the current financial month.')
    parser.add_argument('statement', help='JSON file with a list of statement transactions')
    parser.add_argument('--budget', type=int, required=True, help='Monthly budget in minor units')
    parser.add_argument('--balance', type=int, default=None, help='Current balance in minor units')
    parser.add_argument('--date', default=None, help='Reference date (YYYY-MM-DD), defaults to today')
    parser.add_argument('--start-day', type=int, default=config.DEFAULT_FINANCIAL_MONTH_START,
                        help='Day of month the financial month starts on')
    parser.add_argument('--user', default=None, help='User id; enables the daily budget history')
    parser.add_argument('--exclude', nargs='*', default=[], help='Transaction ids to leave out')
    parser.add_argument('--include', nargs='*', default=[], help='Transaction ids to always count')
    parser.add_argument('--local-only', action='store_true', help='Skip the weighting service')
    setup_logging()
    main(parser.parse_args())
