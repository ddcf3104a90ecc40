"""
Hash families: euclidean (L2), cosine (sign random projections) and
maximum inner product (MIPS).
"""

from lshindex.hash.families import MIPS, L2, Signature, SignRandomProjections, VecHash

__all__ = ["L2", "MIPS", "Signature", "SignRandomProjections", "VecHash"]
