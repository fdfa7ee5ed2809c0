"""Top-level package for the budget planner.

The primary modules are:

* ``financial_calendar`` – month boundaries for a configurable start day
* ``transfer_utils`` – expense / income / internal transfer classification
* ``categories`` – spending category resolution
* ``spending_patterns`` – weekday/weekend and day-of-month summaries
* ``distribution`` – the daily budget distributor
* ``inflation`` – burn-rate forecast of the current balance

A month's budget can be computed from the command line with:

```bash
python scripts/show_month_budget.py statement.json --budget 2500000
```
"""

from .distribution import BudgetDistributor, distribute_budget  # noqa: F401
from .inflation import predict_inflation  # noqa: F401
from .models import BudgetContext, MonthBudget, Transaction  # noqa: F401

__all__ = [
    "BudgetContext",
    "BudgetDistributor",
    "MonthBudget",
    "Transaction",
    "distribute_budget",
    "predict_inflation",
]
