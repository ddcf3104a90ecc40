"""
Storage contract shared by every hash table backend.

A backend holds ``n_hash_tables`` logical tables, each mapping a signature to
a bucket of point indices, plus one global point store that every bucket
refers into.
"""

from typing import Any, Optional

import numpy as np

from lshindex.errors import InvalidParameter
from lshindex.hash.families import Signature


class HashTables:
    """
    Base class for storage backends.

    API:
    - store_point(v) -> int             append to the global point store
    - put(signature, idx, table_id)     add idx to a bucket (idempotent)
    - query_bucket(signature, table_id) bucket members, or BucketNotFound
    - delete(signature, v, table_id)    drop v from a bucket (no-op if absent)
    - increase_storage(n)               capacity hint before a batch
    - index_to_point(idx) -> vector
    - describe() -> str
    """

    def __init__(self, n_hash_tables: int, dim: int):
        if n_hash_tables <= 0:
            raise InvalidParameter(f"n_hash_tables must be positive, got {n_hash_tables}")
        if dim <= 0:
            raise InvalidParameter(f"dim must be positive, got {dim}")
        self.n_hash_tables = n_hash_tables
        self.dim = dim

    def _check_table(self, table_id: int) -> None:
        if not 0 <= table_id < self.n_hash_tables:
            raise InvalidParameter(
                f"table_id {table_id} out of range for {self.n_hash_tables} hash tables"
            )

    @property
    def n_points(self) -> int:
        """Number of slots in the global point store, deleted points included."""
        raise NotImplementedError

    def store_point(self, vector: np.ndarray) -> int:
        raise NotImplementedError

    def put(self, signature: Signature, idx: int, table_id: int) -> None:
        raise NotImplementedError

    def query_bucket(self, signature: Signature, table_id: int) -> set[int]:
        raise NotImplementedError

    def delete(self, signature: Signature, vector: np.ndarray, table_id: int) -> None:
        raise NotImplementedError

    def increase_storage(self, n: int) -> None:
        """Reserve room for ``n`` more points. A no-op unless overridden."""

    def index_to_point(self, idx: int) -> np.ndarray:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def set_metadata(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def get_metadata(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def commit(self) -> None:
        """Make the writes of the current operation durable."""

    def close(self) -> None:
        """Release backend resources."""

    def _describe_lines(self, bucket_sizes: list[list[int]]) -> str:
        """Format per-table bucket statistics."""
        lines = [
            f"{type(self).__name__}: {self.n_hash_tables} hash tables, "
            f"{self.n_points} points, dim {self.dim}"
        ]
        for table_id, sizes in enumerate(bucket_sizes):
            if sizes:
                lines.append(
                    f"  table {table_id}: {len(sizes)} buckets, "
                    f"sizes min {min(sizes)} / mean {np.mean(sizes):.2f} / max {max(sizes)}"
                )
            else:
                lines.append(f"  table {table_id}: empty")
        return "\n".join(lines)
