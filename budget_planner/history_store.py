"""Durable per-day budget history.

Once a day has elapsed its limit is written here and treated as the truth
for that day. Writes are upserts keyed on ``(user_id, date)``; concurrent
writers resolve as last-writer-wins.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Union

from . import config
from .errors import PersistenceError
from .models import PersistedDailyBudget

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS daily_budgets (
    user_id TEXT NOT NULL,
    date TEXT NOT NULL,
    limit_amount INTEGER NOT NULL,
    spent INTEGER NOT NULL,
    balance INTEGER NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (user_id, date)
);
"""

UPSERT_SQL = """
INSERT INTO daily_budgets (user_id, date, limit_amount, spent, balance, updated_at)
VALUES (?, ?, ?, ?, ?, datetime('now'))
ON CONFLICT(user_id, date) DO UPDATE SET
    limit_amount = excluded.limit_amount,
    spent = excluded.spent,
    balance = excluded.balance,
    updated_at = excluded.updated_at
"""


class DailyBudgetStore(Protocol):
    def upsert(self, user_id: str, day: date, limit: int, spent: int, balance: int) -> None: ...

    def upsert_many(self, records: List[PersistedDailyBudget]) -> None: ...

    def list(self, user_id: str, from_date: date, to_date: date) -> List[PersistedDailyBudget]: ...

    def get(self, user_id: str, day: date) -> Optional[PersistedDailyBudget]: ...


def _row_to_record(row: sqlite3.Row) -> PersistedDailyBudget:
    return PersistedDailyBudget(
        user_id=row['user_id'],
        date=date.fromisoformat(row['date']),
        limit=int(row['limit_amount']),
        spent=int(row['spent']),
        balance=int(row['balance']),
    )


class SQLiteDailyBudgetStore:
    """:class:`DailyBudgetStore` backed by a sqlite file.

    Dates are stored as ISO ``YYYY-MM-DD`` strings, which makes equality and
    range queries independent of time of day.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path is not None else Path(config.get_db_path())
        self._initialized = False

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"cannot open daily budget store at {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            if not self._initialized:
                conn.executescript(SCHEMA_SQL)
                self._initialized = True
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"daily budget store error: {e}") from e
        finally:
            conn.close()

    def upsert(self, user_id: str, day: date, limit: int, spent: int, balance: int) -> None:
        with self.connect() as conn:
            conn.execute(UPSERT_SQL, (user_id, day.isoformat(), int(limit), int(spent), int(balance)))

    def upsert_many(self, records: List[PersistedDailyBudget]) -> None:
        if not records:
            return
        rows = [
            (r.user_id, r.date.isoformat(), int(r.limit), int(r.spent), int(r.balance))
            for r in records
        ]
        with self.connect() as conn:
            conn.executemany(UPSERT_SQL, rows)
        logger.debug("Stored %d daily budgets", len(rows))

    def list(self, user_id: str, from_date: date, to_date: date) -> List[PersistedDailyBudget]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT user_id, date, limit_amount, spent, balance FROM daily_budgets "
                "WHERE user_id = ? AND date >= ? AND date <= ? ORDER BY date ASC",
                (user_id, from_date.isoformat(), to_date.isoformat()),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get(self, user_id: str, day: date) -> Optional[PersistedDailyBudget]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT user_id, date, limit_amount, spent, balance FROM daily_budgets "
                "WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def delete_after(self, user_id: str, day: date) -> int:
        """Drop records later than ``day``; returns how many were removed."""
        with self.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM daily_budgets WHERE user_id = ? AND date > ?",
                (user_id, day.isoformat()),
            )
            return cursor.rowcount
