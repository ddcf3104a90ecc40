"""
MemoryTable - in-process bucket storage.

One dict of signature -> set of point indices per hash table, plus a shared
float32 matrix holding every stored point.
"""

from typing import Any, Optional

import numpy as np

from lshindex.errors import BucketNotFound, InvalidParameter
from lshindex.hash.families import Signature
from lshindex.table.base import HashTables

INITIAL_CAPACITY = 16


class MemoryTable(HashTables):
    """
    Hash tables kept in memory.

    Fast and simple, gone when the process exits. Points live in a
    pre-allocated matrix that grows geometrically; increase_storage()
    reserves room ahead of a batch insert.
    """

    def __init__(self, n_hash_tables: int, dim: int):
        super().__init__(n_hash_tables, dim)
        self.hash_tables: list[dict[Signature, set[int]]] = [
            {} for _ in range(n_hash_tables)
        ]
        self._points = np.empty((INITIAL_CAPACITY, dim), dtype=np.float32)
        self._n_points = 0
        self._metadata: dict[str, Any] = {}

    @property
    def n_points(self) -> int:
        return self._n_points

    @property
    def capacity(self) -> int:
        return self._points.shape[0]

    def _reserve(self, needed: int) -> None:
        if needed <= self.capacity:
            return
        new_capacity = max(needed, 2 * self.capacity)
        points = np.empty((new_capacity, self.dim), dtype=np.float32)
        points[: self._n_points] = self._points[: self._n_points]
        self._points = points

    def increase_storage(self, n: int) -> None:
        self._reserve(self._n_points + n)

    def store_point(self, vector: np.ndarray) -> int:
        self._reserve(self._n_points + 1)
        idx = self._n_points
        self._points[idx] = vector
        self._n_points += 1
        return idx

    def put(self, signature: Signature, idx: int, table_id: int) -> None:
        self._check_table(table_id)
        self.hash_tables[table_id].setdefault(signature, set()).add(idx)

    def query_bucket(self, signature: Signature, table_id: int) -> set[int]:
        self._check_table(table_id)
        bucket = self.hash_tables[table_id].get(signature)
        if bucket is None:
            raise BucketNotFound(f"No bucket {signature} in table {table_id}")
        return set(bucket)

    def delete(self, signature: Signature, vector: np.ndarray, table_id: int) -> None:
        self._check_table(table_id)
        table = self.hash_tables[table_id]
        bucket = table.get(signature)
        if bucket is None:
            return
        for idx in [i for i in bucket if np.array_equal(self._points[i], vector)]:
            bucket.discard(idx)
        if not bucket:
            del table[signature]

    def index_to_point(self, idx: int) -> np.ndarray:
        if not 0 <= idx < self._n_points:
            raise InvalidParameter(f"Point index {idx} out of range")
        return self._points[idx].copy()

    def describe(self) -> str:
        return self._describe_lines(
            [[len(b) for b in table.values()] for table in self.hash_tables]
        )

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def get_metadata(self, key: str) -> Optional[Any]:
        return self._metadata.get(key)
