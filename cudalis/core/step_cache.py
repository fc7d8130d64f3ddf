"""Step cache ledger backed by SQLite.

Records which plan steps the backend has applied successfully, keyed by
plan_id and step index. This is the resumable plan state: a retry of the
same plan reads it back to skip confirmed steps.

Design:
- One row per (plan_id, step_index); re-confirming replaces the row.
- WAL journal mode so concurrent builds can share one file.
- A fresh connection per call; no connection is shared across threads.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from cudalis.models.plan import BuildStep
from cudalis.models.results import PlanState


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_STEPS = """
CREATE TABLE IF NOT EXISTS confirmed_steps (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    plan_id         TEXT NOT NULL,
    step_index      INTEGER NOT NULL,
    step_kind       TEXT NOT NULL,
    cache_key       TEXT NOT NULL,
    confirmed_utc   TEXT NOT NULL,
    UNIQUE (plan_id, step_index)
);
"""

_CREATE_IDX_KEY = """
CREATE INDEX IF NOT EXISTS idx_cache_key ON confirmed_steps(cache_key);
"""


class StepCache:
    """Persistent record of cache-confirmed build steps.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_STEPS)
            conn.execute(_CREATE_IDX_KEY)
            conn.commit()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def confirm(self, plan_id: str, step: BuildStep, cache_key: str) -> None:
        """Record that ``step`` of ``plan_id`` is applied under ``cache_key``."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO confirmed_steps
                    (plan_id, step_index, step_kind, cache_key, confirmed_utc)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    plan_id,
                    step.index,
                    step.kind.value,
                    cache_key,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()

    def forget_key(self, cache_key: str) -> None:
        """Drop every confirmation under ``cache_key``, across all plans.

        Used when the backend no longer has the layer.
        """
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM confirmed_steps WHERE cache_key = ?", (cache_key,)
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def plan_state(self, plan_id: str) -> PlanState:
        """Return the confirmed steps recorded for a plan."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT step_index, cache_key FROM confirmed_steps "
                "WHERE plan_id = ? ORDER BY step_index",
                (plan_id,),
            ).fetchall()
        return PlanState(plan_id=plan_id, confirmed={idx: key for idx, key in rows})

    def is_confirmed(self, cache_key: str) -> bool:
        """True when any plan has confirmed a step under ``cache_key``."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM confirmed_steps WHERE cache_key = ? LIMIT 1",
                (cache_key,),
            ).fetchone()
        return row is not None
