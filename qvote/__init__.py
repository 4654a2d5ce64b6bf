"""qvote package - anonymous quadratic voting

`steps` holds the protocol operations, `helpers` the hashing, masking,
encoding and audit primitives they are built from.
"""

from . import helpers, steps

__all__ = ["helpers", "steps"]
