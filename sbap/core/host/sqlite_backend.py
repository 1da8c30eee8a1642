import sqlite3
from pathlib import Path
from typing import List, Optional

from sbap.core.host.storage import KVBackend
from sbap.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteBackend(KVBackend):
    """
    SQLite backend for persistent contract storage.

    Provides:
    1. Bucketed key-value store (one bucket per contract, one for the chain).
    2. Nested savepoints, so a handler's writes can be undone without
       touching writes that committed before it.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._depth = 0

        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: transactions are driven by explicit SAVEPOINTs
        self._conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")

        self._init_schema()
        logger.debug(f"SQLite backend opened at {self.db_path}")

    def _init_schema(self):
        """Initialize database schema."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                bucket TEXT NOT NULL,
                key TEXT NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (bucket, key)
            )
        """)

    # =========================================================================
    # Key-Value Operations
    # =========================================================================

    def get(self, bucket: str, key: str) -> Optional[bytes]:
        cursor = self._conn.execute(
            "SELECT value FROM kv_store WHERE bucket = ? AND key = ?", (bucket, key)
        )
        row = cursor.fetchone()
        return bytes(row["value"]) if row else None

    def set(self, bucket: str, key: str, value: bytes) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO kv_store (bucket, key, value) VALUES (?, ?, ?)",
            (bucket, key, value),
        )

    def remove(self, bucket: str, key: str) -> None:
        self._conn.execute("DELETE FROM kv_store WHERE bucket = ? AND key = ?", (bucket, key))

    def keys(self, bucket: str, prefix: str = "") -> List[str]:
        cursor = self._conn.execute(
            "SELECT key FROM kv_store WHERE bucket = ? AND substr(key, 1, ?) = ? ORDER BY key",
            (bucket, len(prefix), prefix),
        )
        return [row["key"] for row in cursor]

    # =========================================================================
    # Savepoints
    # =========================================================================

    def begin(self) -> None:
        self._conn.execute(f"SAVEPOINT sp_{self._depth}")
        self._depth += 1

    def commit(self) -> None:
        self._depth -= 1
        self._conn.execute(f"RELEASE SAVEPOINT sp_{self._depth}")

    def rollback(self) -> None:
        self._depth -= 1
        self._conn.execute(f"ROLLBACK TO SAVEPOINT sp_{self._depth}")
        self._conn.execute(f"RELEASE SAVEPOINT sp_{self._depth}")

    @property
    def depth(self) -> int:
        return self._depth

    def close(self) -> None:
        if self._depth:
            logger.warning(f"Closing {self.db_path} with {self._depth} open savepoint(s)")
        self._conn.close()
