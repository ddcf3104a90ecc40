"""
Error types raised by lshindex.

Every failure the index can report is a subclass of LshError, so callers
(and the binding layer) can catch one type. Each kind also inherits from the
closest builtin exception so plain ``except ValueError`` keeps working.
"""

from typing import Optional


class LshError(Exception):
    """Base class for all lshindex errors."""


class InvalidParameter(LshError, ValueError):
    """Bad construction argument: zero dimension, non-positive width, bad MIPS bounds, ..."""


class DimensionMismatch(LshError, ValueError):
    """A vector's length does not match the configured dimension."""

    def __init__(self, expected: int, actual: Optional[int], message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        if message is None:
            message = f"Vector dimension {actual} does not match index dimension {expected}"
        super().__init__(message)


class BucketNotFound(LshError, KeyError):
    """No bucket exists for a signature in a table. Absorbed by the index."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class BackendFault(LshError, RuntimeError):
    """A storage operation failed unexpectedly."""


class Unbound(LshError, RuntimeError):
    """An operation was attempted before a hash family was selected."""
