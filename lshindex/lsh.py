"""
LSH - approximate nearest neighbour index over several hash tables.

Each of the ``n_hash_tables`` tables has its own hasher. Storing a vector
appends it once to the global point store and files its index in one bucket
per table; querying returns the union of the query's buckets over all tables.
"""

import logging
from typing import Any, Callable, Iterable, Optional

import numpy as np

from lshindex.errors import BackendFault, BucketNotFound, InvalidParameter, Unbound
from lshindex.hash.families import MIPS, L2, SignRandomProjections, VecHash
from lshindex.table.base import HashTables
from lshindex.table.memory import MemoryTable
from lshindex.table.sqlite import SqlTable
from lshindex.utils import as_datapoint, sample_seeds

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "sqlite")


class LSH:
    """
    Locality-sensitive hashing index.

    Build it in three steps: structural parameters, an optional seed, then
    exactly one hash family. The family call samples one hasher seed per
    table from the index seed (in table order) and allocates the tables.

    API:
    - seed(value), then one of l2(r), srp(), mips(r, U, m)
    - store_vec(v), store_vecs(vs)
    - query_bucket(v) -> list of vectors, query_bucket_idx(v) -> list of indices
    - delete_vec(v)
    - describe() -> str

    Not thread-safe: callers sharing an index must serialise writes.

    Example:
        >>> lsh = LSH(n_projections=5, n_hash_tables=10, dim=3).seed(1).srp()
        >>> lsh.store_vecs([[2, 3, 4], [-1, -1, 1]])
        >>> lsh.query_bucket([-1, -1, 1])
    """

    def __init__(
        self,
        n_projections: int,
        n_hash_tables: int,
        dim: int,
        backend: str = "memory",
        db_path: str = "lsh_index.db",
    ):
        """
        Initialize an unbound LSH index.

        Args:
            n_projections: Signature length. Higher = fewer, purer buckets.
            n_hash_tables: Number of tables. Higher = better recall, more space.
            dim: Dimension of the data points.
            backend: "memory" or "sqlite".
            db_path: Path to the SQLite database file (sqlite backend only).
        """
        for name, value in (
            ("n_projections", n_projections),
            ("n_hash_tables", n_hash_tables),
            ("dim", dim),
        ):
            if not isinstance(value, (int, np.integer)) or value <= 0:
                raise InvalidParameter(f"{name} must be a positive integer, got {value}")
        if backend not in BACKENDS:
            raise InvalidParameter(f"Unknown backend {backend!r}, expected one of {BACKENDS}")

        self.n_projections = int(n_projections)
        self.n_hash_tables = int(n_hash_tables)
        self.dim = int(dim)
        self.backend = backend
        self.db_path = db_path
        self._seed = 0

        self.family: Optional[str] = None
        self.hashers: list[VecHash] = []
        self.hash_tables: Optional[HashTables] = None

    # Construction

    def seed(self, seed: int) -> "LSH":
        """
        Set the index seed. 0 means random; any other value is reproducible.

        Must be called before the hash family is selected.
        """
        if self.is_bound:
            raise InvalidParameter("seed() must be called before selecting a hash family")
        if not isinstance(seed, (int, np.integer)) or seed < 0:
            raise InvalidParameter(f"Seed must be a non-negative integer, got {seed}")
        self._seed = int(seed)
        return self

    def srp(self) -> "LSH":
        """Bind to sign random projections (cosine similarity)."""
        return self._bind(
            "srp", lambda seed: SignRandomProjections(self.n_projections, self.dim, seed)
        )

    def l2(self, r: float) -> "LSH":
        """
        Bind to the euclidean family h(v) = floor((a·v + b) / r).

        Args:
            r: Bucket width.
        """
        return self._bind("l2", lambda seed: L2(self.dim, r, self.n_projections, seed))

    def mips(self, r: float, U: float, m: int) -> "LSH":
        """
        Bind to asymmetric maximum inner product hashing.

        Args:
            r: Bucket width of the underlying L2 hash.
            U: Norm bound for stored vectors after rescaling, in (0, 1).
            m: Number of terms appended by the asymmetric transforms.
        """
        return self._bind(
            "mips", lambda seed: MIPS(self.dim, r, U, m, self.n_projections, seed)
        )

    def _bind(self, family: str, make_hasher: Callable[[int], VecHash]) -> "LSH":
        if self.is_bound:
            raise InvalidParameter(f"Index is already bound to the {self.family} family")

        hashers = [make_hasher(seed) for seed in sample_seeds(self._seed, self.n_hash_tables)]
        hash_tables = self._create_tables()
        try:
            self._check_stored_config(hash_tables, hashers[0].params())
        except InvalidParameter:
            hash_tables.close()
            raise

        max_norm = hash_tables.get_metadata("mips_max_norm")
        if max_norm is not None:
            for hasher in hashers:
                if isinstance(hasher, MIPS):
                    hasher.set_max_norm(max_norm)

        self.family = family
        self.hashers = hashers
        self.hash_tables = hash_tables
        logger.debug(
            "Bound LSH to %s: %d tables, %d projections, dim %d, %s backend",
            family, self.n_hash_tables, self.n_projections, self.dim, self.backend,
        )
        return self

    def _create_tables(self) -> HashTables:
        if self.backend == "sqlite":
            return SqlTable(self.n_hash_tables, self.dim, db_path=self.db_path)
        return MemoryTable(self.n_hash_tables, self.dim)

    def _check_stored_config(self, hash_tables: HashTables, params: dict[str, Any]) -> None:
        """
        Record the hasher configuration, or check it against an existing store.

        Points in an existing store are only reachable with the same family,
        parameters and a fixed seed.
        """
        stored = hash_tables.get_metadata("hasher")
        if stored is None:
            hash_tables.set_metadata("hasher", params)
            hash_tables.set_metadata("seed", self._seed)
            hash_tables.commit()
            return

        if stored != params:
            raise InvalidParameter(f"Storage was built with hasher {stored}, got {params}")
        if not hash_tables.n_points:
            hash_tables.set_metadata("seed", self._seed)
            hash_tables.commit()
        elif self._seed == 0 or hash_tables.get_metadata("seed") != self._seed:
            raise InvalidParameter(
                "Storage already holds points; reopen it with the seed it was built with"
            )

    @property
    def is_bound(self) -> bool:
        return self.hash_tables is not None

    def _require_bound(self) -> HashTables:
        if self.hash_tables is None:
            raise Unbound("Select a hash family (l2, srp or mips) before using the index")
        return self.hash_tables

    # Storage

    def _fit(self, hash_tables: HashTables, points: list[np.ndarray]) -> list[MIPS]:
        """
        Fix the MIPS norm bound from the first non-zero data stored in the index.

        Returns:
            The hashers fitted by this call.
        """
        unfitted = [h for h in self.hashers if isinstance(h, MIPS) and not h.is_fitted]
        if not unfitted:
            return []
        max_norm = float(max(np.linalg.norm(p) for p in points))
        if max_norm == 0:
            return []
        hash_tables.set_metadata("mips_max_norm", max_norm)
        for hasher in unfitted:
            hasher.set_max_norm(max_norm)
        logger.debug("MIPS norm bound fixed at %.6g", max_norm)
        return unfitted

    def _write(self, hash_tables: HashTables, points: list[np.ndarray]) -> list[int]:
        """Fit, store and commit ``points`` as one transaction."""
        fitted = self._fit(hash_tables, points)
        try:
            indices = [self._store(hash_tables, point) for point in points]
            hash_tables.commit()
        except BackendFault:
            # The backend rolled the norm bound back with the points.
            for hasher in fitted:
                hasher.max_norm = None
            raise
        return indices

    def _store(self, hash_tables: HashTables, v: np.ndarray) -> int:
        signatures = [hasher.hash_for_storage(v) for hasher in self.hashers]
        idx = hash_tables.store_point(v)
        for table_id, signature in enumerate(signatures):
            hash_tables.put(signature, idx, table_id)
        return idx

    def store_vec(self, v: Any) -> int:
        """
        Store a single vector in every hash table.

        Returns:
            The vector's index in the global point store.
        """
        hash_tables = self._require_bound()
        point = as_datapoint(v, self.dim)
        return self._write(hash_tables, [point])[0]

    def store_vecs(self, vs: Iterable[Any]) -> list[int]:
        """
        Store several vectors, growing the storage once up front.

        Indices are assigned in input order. The whole batch is validated
        before anything is stored.

        Returns:
            The global point store indices, one per input vector.
        """
        hash_tables = self._require_bound()
        points = [as_datapoint(v, self.dim) for v in vs]
        if not points:
            return []

        hash_tables.increase_storage(len(points))
        indices = self._write(hash_tables, points)
        logger.debug("Stored %d vectors (%d points total)", len(points), hash_tables.n_points)
        return indices

    # Queries

    def query_bucket_idx(self, v: Any) -> list[int]:
        """
        Global indices of every point sharing a bucket with ``v`` in any table.

        Returns:
            Sorted list of point indices; empty if nothing collides.
        """
        hash_tables = self._require_bound()
        point = as_datapoint(v, self.dim)

        bucket_union: set[int] = set()
        for table_id, hasher in enumerate(self.hashers):
            signature = hasher.hash_for_query(point)
            try:
                bucket = hash_tables.query_bucket(signature, table_id)
            except BucketNotFound:
                continue
            bucket_union |= bucket
        return sorted(bucket_union)

    def query_bucket(self, v: Any) -> list[np.ndarray]:
        """
        Candidate neighbours of ``v``: the union of its buckets over all tables.

        Returns:
            List of float32 vectors, in the order of query_bucket_idx().
        """
        hash_tables = self._require_bound()
        return [hash_tables.index_to_point(idx) for idx in self.query_bucket_idx(v)]

    # Deletion

    def delete_vec(self, v: Any) -> None:
        """
        Remove every copy of ``v`` from the buckets it can be found in.

        The bucket is located with the query hash, as a query for ``v``
        would. For MIPS the storage-side bucket is cleared as well. The point
        store is not shrunk: deleted slots stay allocated but unreferenced.
        """
        hash_tables = self._require_bound()
        point = as_datapoint(v, self.dim)

        for table_id, hasher in enumerate(self.hashers):
            signature = hasher.hash_for_query(point)
            hash_tables.delete(signature, point, table_id)
            if isinstance(hasher, MIPS) and (hasher.is_fitted or not np.any(point)):
                stored_signature = hasher.hash_for_storage(point)
                if stored_signature != signature:
                    hash_tables.delete(stored_signature, point, table_id)
        hash_tables.commit()
        logger.debug("Deleted vector from %d hash tables", self.n_hash_tables)

    # Diagnostics and lifecycle

    def describe(self) -> str:
        """Human-readable summary of the index and its bucket occupancy."""
        hash_tables = self._require_bound()
        summary = (
            f"LSH[{self.family}] n_projections={self.n_projections} seed={self._seed}\n"
            + hash_tables.describe()
        )
        logger.info(summary)
        return summary

    @property
    def n_points(self) -> int:
        """Number of vectors ever stored, deleted ones included."""
        return self._require_bound().n_points

    def close(self) -> None:
        """Release the storage backend."""
        if self.hash_tables is not None:
            self.hash_tables.close()

    def __enter__(self) -> "LSH":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


class LshMem(LSH):
    """LSH index with in-memory hash tables."""

    def __init__(self, n_projections: int, n_hash_tables: int, dim: int):
        super().__init__(n_projections, n_hash_tables, dim, backend="memory")


class LshSql(LSH):
    """LSH index persisted in a SQLite database."""

    def __init__(
        self,
        n_projections: int,
        n_hash_tables: int,
        dim: int,
        db_path: str = "lsh_index.db",
    ):
        super().__init__(n_projections, n_hash_tables, dim, backend="sqlite", db_path=db_path)
