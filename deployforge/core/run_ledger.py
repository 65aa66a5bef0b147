"""Append-only, hash-chained Run Ledger backed by SQLite.

Design:
- Append-only: only ``append()`` writes; no update, no delete.
- Hash-chained per run: each entry includes SHA-256 of the previous entry.
- Appends are serialized with a lock: actions of one run-order group
  transition concurrently, and reading the chain head then inserting must
  be atomic.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from deployforge.core.hasher import compute_entry_hash
from deployforge.models.ledger import LedgerEntry, LedgerScope


_CREATE_LEDGER = """
CREATE TABLE IF NOT EXISTS run_ledger (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id              TEXT NOT NULL UNIQUE,
    run_id                TEXT NOT NULL,
    scope                 TEXT NOT NULL,
    stage_name            TEXT NOT NULL DEFAULT '',
    action_name           TEXT NOT NULL DEFAULT '',
    state_transition      TEXT NOT NULL,
    timestamp_utc         TEXT NOT NULL,
    details_json          TEXT NOT NULL DEFAULT '{}',
    previous_entry_hash   TEXT NOT NULL DEFAULT '',
    entry_hash            TEXT NOT NULL UNIQUE
);
"""

_CREATE_IDX_RUN = """
CREATE INDEX IF NOT EXISTS idx_run_id ON run_ledger(run_id, id);
"""


class LedgerIntegrityError(RuntimeError):
    """Raised when the hash chain is broken."""


class RunLedger:
    """Append-only, hash-chained Run Ledger.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_LEDGER)
            conn.execute(_CREATE_IDX_RUN)
            conn.commit()

    @property
    def path(self) -> Path:
        return self._db_path

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Append an entry, linking it to the run's previous entry.

        Returns the sealed entry with ``previous_entry_hash`` and
        ``entry_hash`` set.
        """
        with self._lock:
            previous_hash = self._get_latest_hash(entry.run_id)

            entry_dict = entry.model_dump(mode="json")
            entry_dict["previous_entry_hash"] = previous_hash
            entry_dict["entry_hash"] = ""
            entry_hash = compute_entry_hash(entry_dict)

            sealed = entry.model_copy(
                update={
                    "previous_entry_hash": previous_hash,
                    "entry_hash": entry_hash,
                }
            )
            self._insert(sealed)
        return sealed

    def _insert(self, entry: LedgerEntry) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO run_ledger
                    (entry_id, run_id, scope, stage_name, action_name,
                     state_transition, timestamp_utc, details_json,
                     previous_entry_hash, entry_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.entry_id,
                    entry.run_id,
                    entry.scope.value,
                    entry.stage_name,
                    entry.action_name,
                    entry.state_transition,
                    entry.timestamp_utc.isoformat(),
                    json.dumps(entry.details, sort_keys=True),
                    entry.previous_entry_hash,
                    entry.entry_hash,
                ),
            )
            conn.commit()

    def _get_latest_hash(self, run_id: str) -> str:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT entry_hash FROM run_ledger WHERE run_id = ? ORDER BY id DESC LIMIT 1",
                (run_id,),
            ).fetchone()
        return row[0] if row else ""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        """Return all entries for a run, in append order."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT entry_id, run_id, scope, stage_name, action_name,
                       state_transition, timestamp_utc, details_json,
                       previous_entry_hash, entry_hash
                FROM run_ledger WHERE run_id = ? ORDER BY id
                """,
                (run_id,),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def list_runs(self) -> list[str]:
        """Run ids in order of their first entry."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT run_id FROM run_ledger GROUP BY run_id ORDER BY MIN(id)"
            ).fetchall()
        return [row[0] for row in rows]

    @staticmethod
    def _row_to_entry(row: tuple) -> LedgerEntry:
        return LedgerEntry(
            entry_id=row[0],
            run_id=row[1],
            scope=LedgerScope(row[2]),
            stage_name=row[3],
            action_name=row[4],
            state_transition=row[5],
            timestamp_utc=datetime.fromisoformat(row[6]),
            details=json.loads(row[7]),
            previous_entry_hash=row[8],
            entry_hash=row[9],
        )

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def verify_chain(self, run_id: str) -> bool:
        """Recompute every entry hash and check the links.

        Raises ``LedgerIntegrityError`` on the first broken link.
        Returns True if the chain is intact.
        """
        previous = ""
        for entry in self.get_run_entries(run_id):
            if entry.previous_entry_hash != previous:
                raise LedgerIntegrityError(
                    f"Entry {entry.entry_id} links to {entry.previous_entry_hash[:12]!r}, "
                    f"expected {previous[:12]!r}"
                )
            entry_dict = entry.model_dump(mode="json")
            entry_dict["entry_hash"] = ""
            if compute_entry_hash(entry_dict) != entry.entry_hash:
                raise LedgerIntegrityError(
                    f"Entry {entry.entry_id} ({entry.scope.value} "
                    f"{entry.stage_name}/{entry.action_name}) has been modified"
                )
            previous = entry.entry_hash
        return True
