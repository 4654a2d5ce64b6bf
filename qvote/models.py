"""Data model for polls and the anonymizing ballot box.

Everything here is immutable: a party that takes its turn receives one
AnonymizingPoll and hands back a new one, never a mutated original.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Tuple

Option = str
Vote = Dict[Option, int]
Result = Dict[Option, int]
Key = int


@dataclass(frozen=True)
class Poll:
    """Ordered (option, description) pairs

    Attributes
    - entries: tuple of (option, description); options are unique
    """

    entries: Tuple[Tuple[Option, str], ...]

    @property
    def options(self) -> Tuple[Option, ...]:
        return tuple(option for option, _ in self.entries)


def make_poll(pairs: Iterable[Tuple[str, str]]) -> Poll:
    """Build a Poll, interning option names.

    Duplicate options raise ValueError.
    """

    entries = tuple((sys.intern(str(option)), str(description)) for option, description in pairs)
    names = [option for option, _ in entries]
    if len(set(names)) != len(names):
        raise ValueError("poll options must be unique")
    return Poll(entries=entries)


@dataclass(frozen=True)
class BallotBox:
    """Shared anonymizing state

    Attributes
    - insurance: hash commitments, newest first
    - signatures: per-voter pseudonymous markers in randomized order
    - holder: the VoteHolder, a fixed-length sequence of masked integers
    """

    insurance: Tuple[str, ...] = ()
    signatures: Tuple[str, ...] = ()
    holder: Tuple[int, ...] = ()


@dataclass(frozen=True)
class AnonymizingPoll:
    poll: Poll
    box: BallotBox = field(default_factory=BallotBox)

    def to_dict(self) -> Dict[str, Any]:
        # slot values are arbitrary precision; strings keep them intact for
        # JSON consumers that only have doubles
        return {
            "poll": [[option, description] for option, description in self.poll.entries],
            "insurance": list(self.box.insurance),
            "signatures": list(self.box.signatures),
            "holder": [str(value) for value in self.box.holder],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnonymizingPoll":
        if not isinstance(data, dict):
            raise ValueError("anonymizing poll must be a JSON object")
        try:
            poll = make_poll((option, description) for option, description in data["poll"])
            box = BallotBox(
                insurance=tuple(str(item) for item in data["insurance"]),
                signatures=tuple(str(item) for item in data["signatures"]),
                holder=tuple(int(value) for value in data["holder"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed anonymizing poll: {e}") from None
        return cls(poll=poll, box=box)


@dataclass(frozen=True)
class Receipt:
    """What a voter keeps to prove their vote later

    Attributes
    - signature: the marker the voter inserted into the signature list
    - vote: the vote as cast
    - state_digest: digest of the poll state the voter received
    - secret: voter-chosen secret mixed into the commitment
    """

    signature: str
    vote: Vote
    state_digest: str
    secret: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "vote": dict(self.vote),
            "state_digest": self.state_digest,
            "secret": self.secret,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        if not isinstance(data, dict):
            raise ValueError("receipt must be a JSON object")
        try:
            vote = {str(option): int(count) for option, count in data["vote"].items()}
            return cls(
                signature=str(data["signature"]),
                vote=vote,
                state_digest=str(data["state_digest"]),
                secret=str(data["secret"]),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"malformed receipt: {e}") from None


def published_tuple(
    insurance: Iterable[str], signatures: Iterable[str], result: Result
) -> Dict[str, Any]:
    """JSON form of the published (insurance, signatures, result) artifact."""

    return {
        "insurance": list(insurance),
        "signatures": list(signatures),
        "result": dict(result),
    }
