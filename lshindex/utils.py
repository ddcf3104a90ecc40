"""
Small helpers shared by the hash families, storage tables and the index.
"""

from typing import Any

import numpy as np

from lshindex.errors import DimensionMismatch, InvalidParameter

# Sub-seeds are drawn from [1, MAX_SEED) so none of them means "random".
MAX_SEED = 2**63


def create_rng(seed: int) -> np.random.Generator:
    """
    Create the random generator for a seed.

    A seed of 0 uses fresh OS entropy; any other value gives a fully
    reproducible stream.
    """
    if seed < 0:
        raise InvalidParameter(f"Seed must be non-negative, got {seed}")
    if seed == 0:
        return np.random.default_rng()
    return np.random.default_rng(seed)


def sample_seeds(seed: int, n: int) -> list[int]:
    """
    Draw ``n`` hasher seeds from the stream of ``seed``, in table order.

    The order is part of the construction contract: table ``i`` always gets
    the ``i``-th draw, so an index is reproducible from its single seed.
    """
    rng = create_rng(seed)
    return [int(rng.integers(1, MAX_SEED)) for _ in range(n)]


def as_datapoint(vector: Any, dim: int) -> np.ndarray:
    """Convert ``vector`` to a 1-D float32 array of length ``dim``."""
    v = np.asarray(vector, dtype=np.float32)
    if v.ndim != 1:
        raise DimensionMismatch(
            dim, None, f"Vector must be 1D, got shape {v.shape}"
        )
    if v.shape[0] != dim:
        raise DimensionMismatch(dim, v.shape[0])
    return v


def check_positive(name: str, value: Any) -> None:
    """Raise InvalidParameter unless ``value`` is strictly positive."""
    if value is None or not value > 0:
        raise InvalidParameter(f"{name} must be positive, got {value}")
