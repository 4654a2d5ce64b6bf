"""Helper utilities for the anonymous quadratic voting protocol.

This module contains the building blocks that `steps.py` composes:
- hashing: SHA-256 over a canonical "|"-joined rendering of the inputs
- masking: key-derived noise chains that are added to and later subtracted
  from the VoteHolder
- encoding: the versioned vote <-> integer contract
- audit: Insurance commitments and receipt verification
"""

from itertools import islice
from typing import Dict, Iterator, List, Sequence, Tuple, TypeVar
import hashlib
import json
import secrets

from .errors import DecodeError
from .models import AnonymizingPoll, Key, Option, Poll, Receipt, Vote

T = TypeVar("T")

KEY_BITS = 256


## --- hashing helpers ------------------------------------------------------


def _digest(*elements) -> bytes:
    h = hashlib.sha256()
    for e in elements:
        h.update(str(e).encode("utf-8"))
        h.update(b"|")
    return h.digest()


def H_int(*elements) -> int:
    return int.from_bytes(_digest(*elements), "big")


def H_hex(*elements) -> str:
    return _digest(*elements).hex()


## --- mask generator ---------------------------------------------------------


def new_key() -> Key:
    """Fresh private key from the system entropy source."""

    return secrets.randbits(KEY_BITS)


def derive_chain(key: Key) -> Iterator[int]:
    """Infinite noise chain for `key`.

    The first value is H(key), every following value is H(key + previous).
    Calling this again with the same key restarts the same sequence.
    """

    value = H_int(key)
    while True:
        yield value
        value = H_int(key + value)


def take_chain(key: Key, n: int) -> List[int]:
    return list(islice(derive_chain(key), n))


def mask_holder(holder: Sequence[int], key: Key) -> Tuple[int, ...]:
    """Add the chain of `key` to every slot (no modulus, exact integers)."""

    return tuple(slot + noise for slot, noise in zip(holder, derive_chain(key)))


def unmask_holder(holder: Sequence[int], key: Key) -> Tuple[int, ...]:
    return tuple(slot - noise for slot, noise in zip(holder, derive_chain(key)))


def insert_at(seq: Sequence[T], index: int, item: T) -> Tuple[T, ...]:
    """Return a copy of `seq` with `item` placed at position `index`."""

    if not 0 <= index <= len(seq):
        raise IndexError(f"insert position {index} outside 0..{len(seq)}")
    return tuple(seq[:index]) + (item,) + tuple(seq[index:])


## --- ballot encoding --------------------------------------------------------

# Layout (big-endian): version byte, then per option in sorted order a
# 1-byte name length, the UTF-8 name and a COUNT_WIDTH-byte unsigned count.
# The leading version byte keeps every encoding non-zero.
ENCODING_VERSION = 1
COUNT_WIDTH = 4
_MAX_NAME = 255
_MAX_COUNT = 2 ** (8 * COUNT_WIDTH) - 1


def encode_vote(vote: Vote) -> int:
    """Serialize a vote into a single positive integer."""

    out = bytearray([ENCODING_VERSION])
    for option in sorted(vote):
        count = vote[option]
        name = option.encode("utf-8")
        if not 0 < len(name) <= _MAX_NAME:
            raise ValueError(f"option name {option!r} must be 1..{_MAX_NAME} bytes")
        if not 0 <= count <= _MAX_COUNT:
            raise ValueError(f"count for {option!r} out of range: {count}")
        out.append(len(name))
        out += name
        out += count.to_bytes(COUNT_WIDTH, "big")
    return int.from_bytes(bytes(out), "big")


def vote_template(poll: Poll) -> Vote:
    """Zero vote over every poll option; fixes the decoded vote's shape."""

    return {option: 0 for option in poll.options}


def decode_vote(poll: Poll, value: int) -> Vote:
    """Inverse of `encode_vote`, ordered by the poll's option list.

    Options missing from the poll are kept (after the known ones) so that
    validation, not decoding, reports them.
    """

    if not isinstance(value, int) or value <= 0:
        raise DecodeError(f"slot value {value!r} is not a positive integer")
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    if raw[0] != ENCODING_VERSION:
        raise DecodeError(f"unknown encoding version {raw[0]}")

    entries: Dict[Option, int] = {}
    pos = 1
    while pos < len(raw):
        size = raw[pos]
        pos += 1
        end = pos + size + COUNT_WIDTH
        if size == 0 or end > len(raw):
            raise DecodeError("truncated ballot encoding")
        try:
            option = raw[pos:pos + size].decode("utf-8")
        except UnicodeDecodeError:
            raise DecodeError("option name is not valid UTF-8") from None
        if option in entries:
            raise DecodeError(f"option {option!r} encoded twice")
        entries[option] = int.from_bytes(raw[pos + size:end], "big")
        pos = end

    template = vote_template(poll)
    vote = {option: entries[option] for option in template if option in entries}
    for option, count in entries.items():
        if option not in template:
            vote[option] = count
    return vote


## --- audit commitments ------------------------------------------------------


def canonical_json(data) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def state_digest(anon: AnonymizingPoll) -> str:
    """SHA-256 hex digest of the canonical JSON form of a poll state."""

    return hashlib.sha256(canonical_json(anon.to_dict()).encode("utf-8")).hexdigest()


def vote_digest(vote: Vote) -> str:
    return H_hex(encode_vote(vote))


def new_secret(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def new_signature(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def make_insurance(secret: str, signature: str, digest: str, vote: Vote) -> str:
    """Commitment binding a voter's vote to the state they received."""

    return H_hex(secret, signature, digest, vote_digest(vote))


def verify_receipt(insurance: Sequence[str], receipt: Receipt) -> bool:
    """True when the receipt's commitment appears in the published list."""

    try:
        expected = make_insurance(
            receipt.secret, receipt.signature, receipt.state_digest, receipt.vote
        )
    except ValueError:
        return False
    return expected in insurance
