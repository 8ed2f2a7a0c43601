"""
GTG error types.

Both are ``ValueError`` subclasses so callers that already guard against bad
input with ``except ValueError`` keep working.
"""


class InvalidGridShape(ValueError):
    """Grid is not a non-empty, rectangular 2D array."""


class ShapeMismatch(ValueError):
    """Two grids that must be aligned cell-by-cell have different shapes."""
