"""Protocol steps for direct and anonymous quadratic voting.

This module provides:
- validation: is_overspent, has_foreign_option, validate
- tallying: sum_votes (the plain per-option sum) and tally (validate + sum)
- anonymization: start (pollmaker init), cast / cast_with_receipt (one voter
  turn) and tally_anon (pollmaker unmask, collision check, decode, tally)

Each anonymization step takes the previous AnonymizingPoll and returns a new
one. Keys come back separately and must reach the pollmaker on a channel the
poll itself does not travel on.
"""

from typing import List, Optional, Sequence, Tuple
import logging
import secrets

from . import helpers
from .config import load_config
from .errors import (
    CollisionError,
    EmptyBatchError,
    ForeignOptionError,
    NegativeCountError,
    OverspentError,
)
from .models import AnonymizingPoll, BallotBox, Key, Poll, Receipt, Result, Vote

log = logging.getLogger(__name__)


## --- validation -------------------------------------------------------------


def vote_cost(vote: Vote) -> int:
    return sum(count * count for count in vote.values())


def is_overspent(vote: Vote, budget: Optional[int] = None) -> bool:
    if budget is None:
        budget = load_config().credit_budget
    return vote_cost(vote) > budget


def has_foreign_option(poll: Poll, vote: Vote) -> bool:
    options = set(poll.options)
    return any(option not in options for option in vote)


def validate(poll: Poll, vote: Vote, budget: Optional[int] = None) -> Vote:
    """Return `vote` unchanged if it fits the budget and the poll.

    Raises NegativeCountError, OverspentError or ForeignOptionError otherwise.
    """

    negative = [option for option, count in vote.items() if count < 0]
    if negative:
        raise NegativeCountError(negative)
    if budget is None:
        budget = load_config().credit_budget
    if is_overspent(vote, budget):
        raise OverspentError(vote_cost(vote), budget)
    if has_foreign_option(poll, vote):
        options = set(poll.options)
        raise ForeignOptionError(o for o in vote if o not in options)
    return vote


## --- tallying ---------------------------------------------------------------


def sum_votes(poll: Poll, votes: Sequence[Vote]) -> Result:
    """Per-option totals in poll order; options absent from a vote count as 0."""

    if not votes:
        raise EmptyBatchError("no votes to sum")
    if not poll.options:
        raise EmptyBatchError("poll has no options")
    return {option: sum(vote.get(option, 0) for vote in votes) for option in poll.options}


def tally(poll: Poll, votes: Sequence[Vote], budget: Optional[int] = None) -> Result:
    """Validate every vote in order (fail-fast), then sum them."""

    for vote in votes:
        validate(poll, vote, budget)
    return sum_votes(poll, votes)


## --- anonymization ----------------------------------------------------------


def start(
    poll: Poll, slot_count: Optional[int] = None, key: Optional[Key] = None
) -> Tuple[AnonymizingPoll, Key]:
    """Pollmaker init: fill a fresh VoteHolder with noise from a private key.

    Returns (anonymizing_poll, pollmaker_key). The key never travels with
    the poll.
    """

    if slot_count is None:
        slot_count = load_config().slot_count
    if slot_count < 1:
        raise ValueError("slot_count must be positive")
    if key is None:
        key = helpers.new_key()
    holder = tuple(helpers.take_chain(key, slot_count))
    log.info("poll started with %d options and %d slots", len(poll.options), slot_count)
    return AnonymizingPoll(poll=poll, box=BallotBox(holder=holder)), key


def cast_with_receipt(
    current: AnonymizingPoll,
    vote: Vote,
    signature: Optional[str] = None,
    key: Optional[Key] = None,
    slot_index: Optional[int] = None,
    secret: Optional[str] = None,
    budget: Optional[int] = None,
) -> Tuple[AnonymizingPoll, Key, Receipt]:
    """One voter turn.

    Args
    - current: the poll state handed over by the previous party
    - vote: this voter's vote; validated before anything is computed
    - signature, key, slot_index, secret: optional fixed values (for
      testing); drawn from the entropy source when None

    Returns (next_state, voter_key, receipt). On a validation error nothing
    is returned, so no partial state leaves the turn.
    """

    validate(current.poll, vote, budget)

    box = current.box
    slots = len(box.holder)
    if slots == 0:
        raise ValueError("poll has not been started")
    if signature is None:
        signature = helpers.new_signature()
    if secret is None:
        secret = helpers.new_secret()
    if key is None:
        key = helpers.new_key()
    if slot_index is None:
        slot_index = helpers.H_int(secrets.token_hex(32)) % slots
    if not 0 <= slot_index < slots:
        raise IndexError(f"slot index {slot_index} outside 0..{slots - 1}")

    digest = helpers.state_digest(current)
    insurance = helpers.make_insurance(secret, signature, digest, vote)
    v_atom = helpers.encode_vote(vote)

    holder = list(helpers.mask_holder(box.holder, key))
    holder[slot_index] += v_atom

    position = secrets.randbelow(len(box.signatures) + 1)
    new_box = BallotBox(
        insurance=(insurance,) + box.insurance,
        signatures=helpers.insert_at(box.signatures, position, signature),
        holder=tuple(holder),
    )
    log.info("turn cast; %d signatures collected", len(new_box.signatures))
    receipt = Receipt(signature=signature, vote=dict(vote), state_digest=digest, secret=secret)
    return AnonymizingPoll(poll=current.poll, box=new_box), key, receipt


def cast(
    current: AnonymizingPoll,
    vote: Vote,
    signature: Optional[str] = None,
    key: Optional[Key] = None,
    slot_index: Optional[int] = None,
    secret: Optional[str] = None,
    budget: Optional[int] = None,
) -> Tuple[AnonymizingPoll, Key]:
    nxt, voter_key, _ = cast_with_receipt(
        current, vote, signature, key, slot_index, secret, budget
    )
    return nxt, voter_key


def unmask_all(holder: Sequence[int], keys: Sequence[Key]) -> Tuple[int, ...]:
    """Strip the noise of every key; order does not matter."""

    for key in keys:
        holder = helpers.unmask_holder(holder, key)
    return tuple(holder)


def tally_anon(
    final: AnonymizingPoll,
    pollmaker_key: Key,
    voter_keys: Sequence[Key],
    budget: Optional[int] = None,
) -> Tuple[List[str], List[str], Result]:
    """Pollmaker tally: unmask, check for collisions, decode and tally.

    Returns (insurance, signatures, result) for publication.
    """

    box = final.box
    residue = unmask_all(box.holder, [pollmaker_key, *voter_keys])
    candidates = [value for value in residue if value != 0]
    log.debug("%d non-zero slots after unmasking %d keys", len(candidates), len(voter_keys) + 1)

    if len(candidates) != len(box.signatures):
        log.warning(
            "collision detected: %d ballots for %d signatures",
            len(candidates),
            len(box.signatures),
        )
        raise CollisionError(len(candidates), len(box.signatures))

    votes = [helpers.decode_vote(final.poll, value) for value in candidates]
    result = tally(final.poll, votes, budget)
    log.info("tally published for %d ballots", len(votes))
    return list(box.insurance), list(box.signatures), result
