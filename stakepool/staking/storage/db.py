# MIT License
# Copyright (c) 2025 Hashborn

import sqlite3
import threading
from typing import Optional, Tuple, Dict, Sequence

class StorageConflict(Exception):
    """A versioned write lost a race (record created or updated concurrently)."""
    pass

# (key, value, expected_version). expected_version 0 means "must not exist yet".
StateWrite = Tuple[str, str, int]
# (hash, op_type, caller, data, applied_at)
OperationRow = Tuple[str, str, str, str, int]

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: versioned Key-Value store for pools, stakes, token accounts
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    version INTEGER NOT NULL
                )
            ''')
            # Journal of applied signed operations
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS operations (
                    hash TEXT PRIMARY KEY,
                    op_type TEXT,
                    caller TEXT,
                    data TEXT,
                    applied_at INTEGER
                )
            ''')
            self.cursor.execute('CREATE INDEX IF NOT EXISTS idx_operations_caller ON operations (caller)')
            self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        record = self.get_record(key)
        return record[0] if record else None

    def get_record(self, key: str) -> Optional[Tuple[str, int]]:
        """Returns (value, version) or None."""
        with self._lock:
            self.cursor.execute('SELECT value, version FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return (row[0], row[1]) if row else None

    def get_state_by_prefix(self, prefix: str) -> Dict[str, Tuple[str, int]]:
        """Returns {key: (value, version)} for all keys starting with prefix."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            self.cursor.execute(
                "SELECT key, value, version FROM state WHERE key LIKE ? ESCAPE '\\'",
                (f"{escaped}%",)
            )
            return {row[0]: (row[1], row[2]) for row in self.cursor.fetchall()}

    def commit(self, writes: Sequence[StateWrite], operations: Sequence[OperationRow] = ()):
        """
        Applies all writes in one transaction.

        Every write is checked against its expected version: 0 inserts and
        fails if the key exists, N updates only if the stored version is
        still N (and bumps it to N+1). Any failure rolls back everything.
        """
        with self._lock:
            cur = self.conn.cursor()
            try:
                for key, value, expected_version in writes:
                    if expected_version == 0:
                        try:
                            cur.execute(
                                'INSERT INTO state (key, value, version) VALUES (?, ?, 1)',
                                (key, value)
                            )
                        except sqlite3.IntegrityError as e:
                            raise StorageConflict(f"{key} already exists") from e
                    else:
                        cur.execute(
                            'UPDATE state SET value = ?, version = version + 1 WHERE key = ? AND version = ?',
                            (value, key, expected_version)
                        )
                        if cur.rowcount != 1:
                            raise StorageConflict(f"{key} changed since version {expected_version}")

                for row in operations:
                    try:
                        cur.execute(
                            'INSERT INTO operations (hash, op_type, caller, data, applied_at) VALUES (?, ?, ?, ?, ?)',
                            row
                        )
                    except sqlite3.IntegrityError as e:
                        raise StorageConflict(f"operation {row[0]} already applied") from e

                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    # --- Operation journal ---
    def get_operation(self, op_hash: str) -> Optional[OperationRow]:
        with self._lock:
            self.cursor.execute(
                'SELECT hash, op_type, caller, data, applied_at FROM operations WHERE hash = ?',
                (op_hash,)
            )
            row = self.cursor.fetchone()
            return tuple(row) if row else None
