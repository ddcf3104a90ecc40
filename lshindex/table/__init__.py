"""
Storage backends for the hash tables.

MemoryTable keeps everything in process; SqlTable persists buckets and
points in SQLite so the index survives restarts and can be inspected.
"""

from lshindex.table.base import HashTables
from lshindex.table.memory import MemoryTable
from lshindex.table.sqlite import SqlTable

__all__ = ["HashTables", "MemoryTable", "SqlTable"]
