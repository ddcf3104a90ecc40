"""
SqlTable - durable bucket storage in a SQLite database.

Buckets, points and index parameters live in ordinary tables, so an index
survives the process and can be inspected with any SQLite client, e.g.

    SELECT table_id, hash_key, COUNT(*) FROM lsh_buckets GROUP BY 1, 2;
"""

import logging
import pickle
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import numpy as np

from lshindex.errors import BackendFault, BucketNotFound, InvalidParameter
from lshindex.hash.families import Signature
from lshindex.table.base import HashTables

logger = logging.getLogger(__name__)


def signature_key(signature: Signature) -> str:
    """Text form of a signature used as the bucket key column."""
    return ",".join(str(h) for h in signature)


class SqlTable(HashTables):
    """
    Hash tables persisted in SQLite.

    Writes are collected in one transaction per index operation and made
    durable by commit(). Reopening an existing file keeps its points; the
    stored n_hash_tables and dim must match the ones given here.

    Example:
        >>> with SqlTable(n_hash_tables=4, dim=3, db_path="lsh.db") as tables:
        ...     idx = tables.store_point(np.array([1, 2, 3], dtype=np.float32))
        ...     tables.put((1, 0, 1), idx, table_id=0)
        ...     tables.commit()
    """

    def __init__(self, n_hash_tables: int, dim: int, db_path: str = "lsh_index.db"):
        super().__init__(n_hash_tables, dim)
        self.db_path = db_path
        self._local = threading.local()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn"):
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
        return self._local.conn

    @contextmanager
    def _cursor(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor; SQLite errors surface as BackendFault."""
        try:
            yield self._get_conn().cursor()
        except sqlite3.Error as e:
            logger.error("SQLite %s failed on %s: %s", operation, self.db_path, e)
            self._rollback()
            raise BackendFault(f"SQLite {operation} failed: {e}") from e

    def _rollback(self) -> None:
        """Drop the writes of a failed operation and resync the point count."""
        conn = self._get_conn()
        try:
            conn.rollback()
            row = conn.execute("SELECT COUNT(*) AS count FROM points").fetchone()
            self._n_points = row["count"]
        except sqlite3.Error as e:
            logger.error("SQLite rollback failed on %s: %s", self.db_path, e)

    def _init_db(self) -> None:
        """Initialize database schema and check it against our parameters."""
        with self._cursor("init") as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS points (
                    id INTEGER PRIMARY KEY,
                    vector BLOB NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS lsh_buckets (
                    table_id INTEGER NOT NULL,
                    hash_key TEXT NOT NULL,
                    point_id INTEGER NOT NULL,
                    PRIMARY KEY (table_id, hash_key, point_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value BLOB
                )
            """)

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_lsh_lookup ON lsh_buckets (table_id, hash_key)"
            )

            cursor.execute("SELECT COUNT(*) AS count FROM points")
            self._n_points = cursor.fetchone()["count"]

        for key, value in (("n_hash_tables", self.n_hash_tables), ("dim", self.dim)):
            stored = self.get_metadata(key)
            if stored is None:
                self.set_metadata(key, value)
            elif stored != value:
                self.close()
                raise InvalidParameter(
                    f"{self.db_path} was created with {key}={stored}, got {value}"
                )
        self.commit()

    @property
    def n_points(self) -> int:
        return self._n_points

    def store_point(self, vector: np.ndarray) -> int:
        idx = self._n_points
        with self._cursor("store_point") as cursor:
            cursor.execute(
                "INSERT INTO points (id, vector) VALUES (?, ?)",
                (idx, pickle.dumps(np.asarray(vector, dtype=np.float32))),
            )
        self._n_points += 1
        return idx

    def put(self, signature: Signature, idx: int, table_id: int) -> None:
        self._check_table(table_id)
        with self._cursor("put") as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO lsh_buckets (table_id, hash_key, point_id) VALUES (?, ?, ?)",
                (table_id, signature_key(signature), idx),
            )

    def query_bucket(self, signature: Signature, table_id: int) -> set[int]:
        self._check_table(table_id)
        with self._cursor("query_bucket") as cursor:
            cursor.execute(
                "SELECT point_id FROM lsh_buckets WHERE table_id = ? AND hash_key = ?",
                (table_id, signature_key(signature)),
            )
            bucket = set(row["point_id"] for row in cursor.fetchall())
        if not bucket:
            raise BucketNotFound(f"No bucket {signature} in table {table_id}")
        return bucket

    def delete(self, signature: Signature, vector: np.ndarray, table_id: int) -> None:
        self._check_table(table_id)
        key = signature_key(signature)
        with self._cursor("delete") as cursor:
            cursor.execute(
                "SELECT b.point_id, p.vector FROM lsh_buckets b "
                "JOIN points p ON p.id = b.point_id "
                "WHERE b.table_id = ? AND b.hash_key = ?",
                (table_id, key),
            )
            matches = [
                row["point_id"]
                for row in cursor.fetchall()
                if np.array_equal(pickle.loads(row["vector"]), vector)
            ]
            cursor.executemany(
                "DELETE FROM lsh_buckets WHERE table_id = ? AND hash_key = ? AND point_id = ?",
                [(table_id, key, idx) for idx in matches],
            )

    def index_to_point(self, idx: int) -> np.ndarray:
        with self._cursor("index_to_point") as cursor:
            cursor.execute("SELECT vector FROM points WHERE id = ?", (idx,))
            row = cursor.fetchone()
        if row is None:
            raise InvalidParameter(f"Point index {idx} out of range")
        return pickle.loads(row["vector"])

    def describe(self) -> str:
        with self._cursor("describe") as cursor:
            cursor.execute(
                "SELECT table_id, COUNT(*) AS size FROM lsh_buckets "
                "GROUP BY table_id, hash_key"
            )
            bucket_sizes: list[list[int]] = [[] for _ in range(self.n_hash_tables)]
            for row in cursor.fetchall():
                bucket_sizes[row["table_id"]].append(row["size"])
        return f"{self.db_path}\n" + self._describe_lines(bucket_sizes)

    def set_metadata(self, key: str, value: Any) -> None:
        with self._cursor("set_metadata") as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, pickle.dumps(value)),
            )

    def get_metadata(self, key: str) -> Optional[Any]:
        with self._cursor("get_metadata") as cursor:
            cursor.execute("SELECT value FROM metadata WHERE key = ?", (key,))
            row = cursor.fetchone()
        if row is None:
            return None
        return pickle.loads(row["value"])

    def commit(self) -> None:
        with self._cursor("commit"):
            self._get_conn().commit()

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "conn"):
            self._local.conn.close()
            delattr(self._local, "conn")

    def __enter__(self) -> "SqlTable":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
