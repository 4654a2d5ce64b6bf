"""Error kinds raised by the quadratic voting core.

All of them derive from `QVoteError`, itself a `ValueError`, so callers that
only care about "bad input" can keep catching `ValueError`.
"""

from typing import Iterable


class QVoteError(ValueError):
    """Base class for every protocol failure."""


class OverspentError(QVoteError):
    """A vote costs more quadratic credits than the budget allows."""

    def __init__(self, cost: int, budget: int):
        super().__init__(f"vote costs {cost} credits, budget is {budget}")
        self.cost = cost
        self.budget = budget


class ForeignOptionError(QVoteError):
    """A vote references options that are not part of the poll."""

    def __init__(self, options: Iterable[str]):
        self.options = sorted(options)
        super().__init__(f"options not in poll: {', '.join(self.options)}")


class NegativeCountError(QVoteError):
    """A vote gives an option a count below zero."""

    def __init__(self, options: Iterable[str]):
        self.options = sorted(options)
        super().__init__(f"negative vote counts for: {', '.join(self.options)}")


class EmptyBatchError(QVoteError):
    """Nothing to sum: either no votes or a poll without options."""


class DecodeError(QVoteError):
    """A recovered slot value is not a valid ballot encoding."""


class CollisionError(QVoteError):
    """The number of recovered ballots does not match the signatures."""

    def __init__(self, recovered: int, signatures: int):
        super().__init__(
            f"recovered {recovered} ballots but {signatures} signatures were cast; "
            "re-run the poll with more slots or fresh keys"
        )
        self.recovered = recovered
        self.signatures = signatures


class TurnOrderError(QVoteError):
    """A hand-off was not built on the latest published poll state."""
