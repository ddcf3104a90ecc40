"""
Hash families for LSH.

Each hasher turns a vector into a signature: a tuple of integers, one per
random projection. Two vectors with equal signatures share a bucket.

- SignRandomProjections: sign of random Gaussian projections (cosine).
- L2: floor((a·v + b) / r), the p-stable scheme of Datar et al. (euclidean).
- MIPS: asymmetric transform of Shrivastava & Li on top of L2 (inner product).

Vectors are stored and queried through two entry points, hash_for_storage and
hash_for_query. They are the same function for the symmetric families and
differ for MIPS.
"""

import logging
from typing import Any

import numpy as np

from lshindex.errors import InvalidParameter
from lshindex.utils import as_datapoint, check_positive, create_rng

logger = logging.getLogger(__name__)

Signature = tuple[int, ...]


class VecHash:
    """
    Base class for a single hasher (one per hash table).

    Subclasses implement _hash_storage / _hash_query on validated float32
    vectors; the public entry points take care of the validation.
    """

    name = "base"

    def __init__(self, dim: int, n_projections: int, seed: int):
        if not isinstance(dim, (int, np.integer)) or dim <= 0:
            raise InvalidParameter(f"dim must be a positive integer, got {dim}")
        if not isinstance(n_projections, (int, np.integer)) or n_projections <= 0:
            raise InvalidParameter(
                f"n_projections must be a positive integer, got {n_projections}"
            )
        self.dim = int(dim)
        self.n_projections = int(n_projections)
        self.seed = seed
        self._rng = create_rng(seed)

    def hash_for_storage(self, vector: Any) -> Signature:
        """Signature used when inserting ``vector``."""
        return self._hash_storage(as_datapoint(vector, self.dim))

    def hash_for_query(self, vector: Any) -> Signature:
        """Signature used when probing for neighbours of ``vector``."""
        return self._hash_query(as_datapoint(vector, self.dim))

    def _hash_storage(self, v: np.ndarray) -> Signature:
        raise NotImplementedError

    def _hash_query(self, v: np.ndarray) -> Signature:
        raise NotImplementedError

    def params(self) -> dict[str, Any]:
        """Family parameters, as written to the storage metadata."""
        return {"family": self.name, "dim": self.dim, "n_projections": self.n_projections}


class SignRandomProjections(VecHash):
    """
    Random hyperplane hashing for cosine similarity.

    hash = sign(random_projection @ vector), one bit per projection.
    """

    name = "srp"

    def __init__(self, n_projections: int, dim: int, seed: int):
        super().__init__(dim, n_projections, seed)
        self.hyperplanes = self._rng.standard_normal(
            size=(self.n_projections, self.dim)
        ).astype(np.float32)

    def _hash_storage(self, v: np.ndarray) -> Signature:
        projection = self.hyperplanes @ v
        return tuple(int(b) for b in (projection > 0))

    _hash_query = _hash_storage


class L2(VecHash):
    """
    Euclidean LSH.

    See paragraph 3.2 of "Locality-Sensitive Hashing Scheme Based on p-Stable
    Distributions" (Datar et al.):

        h(v) = floor((a·v + b) / r)

    with a ~ N(0, I) and b ~ U[0, r).
    """

    name = "l2"

    def __init__(self, dim: int, r: float, n_projections: int, seed: int):
        super().__init__(dim, n_projections, seed)
        check_positive("r", r)
        self.r = float(r)
        self.a = self._rng.standard_normal(
            size=(self.n_projections, self.dim)
        ).astype(np.float32)
        self.b = self._rng.uniform(0.0, self.r, size=self.n_projections).astype(np.float32)

    def _hash_storage(self, v: np.ndarray) -> Signature:
        h = np.floor((self.a @ v + self.b) / self.r).astype(np.int64)
        return tuple(int(x) for x in h)

    _hash_query = _hash_storage

    def params(self) -> dict[str, Any]:
        return {**super().params(), "r": self.r}


class MIPS(VecHash):
    """
    Asymmetric LSH for maximum inner product search.

    From "Asymmetric LSH (ALSH) for Sublinear Time Maximum Inner Product
    Search" (Shrivastava & Li). Stored vectors are rescaled so every norm is
    at most U < 1 and padded with increasing powers of their squared norm;
    queries are normalised and padded with 1/2:

        P(x) = [x', ||x'||^2, ||x'||^4, ..., ||x'||^(2^m)],  x' = x * U / M
        Q(q) = [q / ||q||, 1/2, ..., 1/2]

    Both are then hashed with an L2 hasher of dimension dim + m, which makes
    collision probability grow with q·x.

    M, the largest norm in the data, is fixed once with fit(). Zero vectors
    need no bound: P(0) is the zero embedding whatever M is, so they hash
    without fitting and M comes from the first non-zero data.
    """

    name = "mips"

    def __init__(
        self,
        dim: int,
        r: float,
        U: float,
        m: int,
        n_projections: int,
        seed: int,
    ):
        super().__init__(dim, n_projections, seed)
        if U is None or not 0.0 < U < 1.0:
            raise InvalidParameter(f"U must lie in (0, 1), got {U}")
        if not isinstance(m, (int, np.integer)) or m < 1:
            raise InvalidParameter(f"m must be a positive integer, got {m}")
        check_positive("r", r)
        self.U = float(U)
        self.m = int(m)
        self.r = float(r)
        self.max_norm = None
        # The inner L2 hasher works on the transformed (dim + m) space and
        # takes its seed from this hasher's stream.
        inner_seed = int(self._rng.integers(1, 2**63))
        self.hasher = L2(self.dim + self.m, r, self.n_projections, inner_seed)

    @property
    def is_fitted(self) -> bool:
        return self.max_norm is not None

    def fit(self, vectors: Any) -> None:
        """
        Fix M as the largest L2 norm in ``vectors``.

        Only the first call with a non-zero vector counts; all-zero data
        leaves the hasher unfitted.
        """
        if self.is_fitted:
            return
        data = np.asarray(vectors, dtype=np.float32)
        if data.ndim == 1:
            data = data.reshape(1, -1)
        if data.ndim != 2 or data.shape[0] == 0:
            raise InvalidParameter(f"Cannot fit MIPS on data of shape {data.shape}")
        for row in data:
            as_datapoint(row, self.dim)
        max_norm = float(np.linalg.norm(data, axis=1).max())
        if max_norm == 0:
            return
        self.set_max_norm(max_norm)
        logger.debug("MIPS hasher fitted with max norm %.6g", self.max_norm)

    def set_max_norm(self, max_norm: float) -> None:
        """Fix M directly, e.g. from a bound recorded in storage."""
        if not max_norm > 0:
            raise InvalidParameter(
                "MIPS needs at least one non-zero vector to fix its norm bound"
            )
        self.max_norm = float(max_norm)

    def transform_put(self, v: np.ndarray) -> np.ndarray:
        """P(x): rescale below U and append the norm powers."""
        if not np.any(v):
            return np.zeros(self.dim + self.m, dtype=np.float32)
        scaled = v * (self.U / self.max_norm)
        norm_sq = float(np.dot(scaled, scaled))
        # Vectors longer than the fitted M are clamped onto the U-sphere.
        if norm_sq > self.U**2:
            scaled = scaled * (self.U / np.sqrt(norm_sq))
            norm_sq = self.U**2
        powers = [norm_sq ** (2**i) for i in range(self.m)]
        return np.concatenate([scaled, np.asarray(powers, dtype=np.float32)]).astype(np.float32)

    def transform_query(self, v: np.ndarray) -> np.ndarray:
        """Q(q): normalise to unit length and append m halves."""
        norm = np.linalg.norm(v)
        normalized = v if norm == 0 else v / norm
        halves = np.full(self.m, 0.5, dtype=np.float32)
        return np.concatenate([normalized, halves]).astype(np.float32)

    def _hash_storage(self, v: np.ndarray) -> Signature:
        if not self.is_fitted and np.any(v):
            self.fit(v)
        return self.hasher.hash_for_query(self.transform_put(v))

    def _hash_query(self, v: np.ndarray) -> Signature:
        return self.hasher.hash_for_query(self.transform_query(v))

    def params(self) -> dict[str, Any]:
        return {**super().params(), "r": self.r, "U": self.U, "m": self.m}
