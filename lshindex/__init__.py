"""
lshindex - approximate nearest neighbour search with locality-sensitive hashing.

lshindex stores float vectors in several hash tables, each keyed by an
independent hash (euclidean L2, sign random projections or asymmetric MIPS),
and answers queries with the union of the matching buckets. Tables live in
memory or in a SQLite database.
"""

from lshindex.__version__ import __version__
from lshindex.bindings import LshL2, LshMips, LshSrp
from lshindex.errors import (
    BackendFault,
    BucketNotFound,
    DimensionMismatch,
    InvalidParameter,
    LshError,
    Unbound,
)
from lshindex.hash import MIPS, L2, SignRandomProjections
from lshindex.lsh import LSH, LshMem, LshSql
from lshindex.table import MemoryTable, SqlTable

__all__ = [
    "LSH",
    "LshMem",
    "LshSql",
    "LshL2",
    "LshMips",
    "LshSrp",
    "L2",
    "MIPS",
    "SignRandomProjections",
    "MemoryTable",
    "SqlTable",
    "LshError",
    "InvalidParameter",
    "DimensionMismatch",
    "BucketNotFound",
    "BackendFault",
    "Unbound",
    "__version__",
]
