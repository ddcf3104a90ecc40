"""
Constructor-per-family classes around the LSH index.

These mirror the flat interface exposed to other hosts: every argument is a
plain number or a list of floats, every result is a plain list. Errors are
the lshindex exception types unchanged.

The classes are durable by default: the index lives in the SQLite file at
``db_path`` and is picked up again when a class is built on the same file
with the same parameters and seed. Pass ``backend="memory"`` for a
throwaway index.

Example:
    >>> lsh = LshSrp(n_projections=5, n_hash_tables=10, dim=3, seed=1, db_path="srp.db")
    >>> lsh.store_vecs([[2, 3, 4], [-1, -1, 1]])
    >>> lsh.query_bucket([-1, -1, 1])
"""

from typing import Sequence

from lshindex.lsh import LSH


class Base:
    """Shared forwarding methods. Subclasses bind ``self.lsh`` to a family."""

    lsh: LSH

    def store_vec(self, v: Sequence[float]) -> None:
        self.lsh.store_vec(v)

    def store_vecs(self, vs: Sequence[Sequence[float]]) -> None:
        self.lsh.store_vecs(vs)

    def query_bucket(self, v: Sequence[float]) -> list[list[float]]:
        return [point.tolist() for point in self.lsh.query_bucket(v)]

    def query_bucket_idx(self, v: Sequence[float]) -> list[int]:
        return self.lsh.query_bucket_idx(v)

    def delete_vec(self, v: Sequence[float]) -> None:
        self.lsh.delete_vec(v)

    def describe(self) -> str:
        return self.lsh.describe()

    def close(self) -> None:
        self.lsh.close()


class LshL2(Base):
    """Euclidean LSH with bucket width ``r``."""

    def __init__(
        self,
        n_projections: int,
        n_hash_tables: int,
        dim: int,
        r: float,
        seed: int = 0,
        backend: str = "sqlite",
        db_path: str = "lsh_index.db",
    ):
        self.lsh = LSH(
            n_projections, n_hash_tables, dim, backend=backend, db_path=db_path
        ).seed(seed).l2(r)


class LshMips(Base):
    """Maximum inner product LSH; ``U`` in (0, 1), ``m`` extra transform terms."""

    def __init__(
        self,
        n_projections: int,
        n_hash_tables: int,
        dim: int,
        r: float,
        U: float,
        m: int,
        seed: int = 0,
        backend: str = "sqlite",
        db_path: str = "lsh_index.db",
    ):
        self.lsh = LSH(
            n_projections, n_hash_tables, dim, backend=backend, db_path=db_path
        ).seed(seed).mips(r, U, m)


class LshSrp(Base):
    """Sign random projections LSH (cosine similarity)."""

    def __init__(
        self,
        n_projections: int,
        n_hash_tables: int,
        dim: int,
        seed: int = 0,
        backend: str = "sqlite",
        db_path: str = "lsh_index.db",
    ):
        self.lsh = LSH(
            n_projections, n_hash_tables, dim, backend=backend, db_path=db_path
        ).seed(seed).srp()
