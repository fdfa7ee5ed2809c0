"""Configuration management for the budget planner.

This module centralizes all configuration values including paths,
defaults, and environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

# Base project root - assumes this file is in budget_planner/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("BUDGET_PLANNER_DATA_DIR", _PROJECT_ROOT / "data"))

# Persisted daily budget history
DB_PATH = Path(
    os.getenv("BUDGET_PLANNER_DB_PATH", DATA_DIR / "daily_budgets.db")
).resolve()

# External weighting service. Unset means the local fallback is always used.
WEIGHTING_SERVICE_URL: Optional[str] = os.getenv("BUDGET_PLANNER_WEIGHTING_URL") or None
WEIGHTING_TIMEOUT_SECONDS = float(os.getenv("BUDGET_PLANNER_WEIGHTING_TIMEOUT", "5.0"))
# How many recent transactions are sent along with a weighting request
WEIGHTING_SAMPLE_SIZE = int(os.getenv("BUDGET_PLANNER_WEIGHTING_SAMPLE", "90"))

# Day of month on which a financial month begins (1-31)
DEFAULT_FINANCIAL_MONTH_START = int(os.getenv("BUDGET_PLANNER_MONTH_START", "1"))

# Timezone used to turn transaction timestamps into calendar dates
TIMEZONE = os.getenv("BUDGET_PLANNER_TZ", "UTC")

LOG_LEVEL = os.getenv("BUDGET_PLANNER_LOG_LEVEL", "INFO").upper()


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)


def get_db_path() -> str:
    """Get the history database path as a string."""
    return str(DB_PATH)


def get_weighting_service_url() -> Optional[str]:
    """Get the weighting service endpoint, or None when it is not configured."""
    return WEIGHTING_SERVICE_URL
