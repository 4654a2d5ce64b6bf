import pytest

from qvote import helpers, steps
from qvote.errors import (
    CollisionError,
    DecodeError,
    ForeignOptionError,
    NegativeCountError,
    OverspentError,
)
from qvote.models import AnonymizingPoll, BallotBox

SLOTS = 64


def run_round(poll, votes, indices):
    anon, pollmaker_key = steps.start(poll, slot_count=SLOTS)
    keys = []
    for vote, index in zip(votes, indices):
        anon, key = steps.cast(anon, vote, slot_index=index, budget=100)
        keys.append(key)
    return anon, pollmaker_key, keys


def test_start_fills_holder_with_key_noise(poll):
    anon, key = steps.start(poll, slot_count=SLOTS)
    assert len(anon.box.holder) == SLOTS
    assert anon.box.insurance == () and anon.box.signatures == ()
    assert steps.unmask_all(anon.box.holder, [key]) == (0,) * SLOTS


def test_end_to_end_matches_direct_tally(poll, sample_votes):
    anon, pm_key, keys = run_round(poll, sample_votes, [3, 17, 40])
    insurance, signatures, result = steps.tally_anon(anon, pm_key, keys, budget=100)
    assert result == steps.tally(poll, sample_votes, budget=100)
    assert result == {"red": 11, "blue": 3, "green": 8, "purple": 13, "orange": 12}
    assert len(insurance) == 3
    assert len(signatures) == 3


def test_key_order_does_not_matter(poll, sample_votes):
    anon, pm_key, keys = run_round(poll, sample_votes, [0, 1, 2])
    _, _, forward = steps.tally_anon(anon, pm_key, keys, budget=100)
    _, _, backward = steps.tally_anon(anon, pm_key, list(reversed(keys)), budget=100)
    assert forward == backward


def test_same_slot_raises_collision(poll, sample_votes):
    anon, pm_key, keys = run_round(poll, sample_votes[:2], [5, 5])
    with pytest.raises(CollisionError) as exc:
        steps.tally_anon(anon, pm_key, keys, budget=100)
    assert exc.value.recovered == 1
    assert exc.value.signatures == 2


def test_missing_key_is_not_silent(poll, sample_votes):
    anon, pm_key, keys = run_round(poll, sample_votes, [1, 2, 3])
    with pytest.raises((CollisionError, DecodeError)):
        steps.tally_anon(anon, pm_key, keys[:2], budget=100)


def test_signature_count_tracks_turns(poll):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    for turn in range(1, 6):
        anon, _ = steps.cast(anon, {"red": 1}, signature=f"sig-{turn}")
        assert len(anon.box.signatures) == turn
        assert len(anon.box.insurance) == turn
    assert sorted(anon.box.signatures) == [f"sig-{n}" for n in range(1, 6)]


def test_insurance_is_prepended(poll):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    anon, _ = steps.cast(anon, {"red": 1}, slot_index=0)
    first = anon.box.insurance[0]
    anon, _ = steps.cast(anon, {"red": 1}, slot_index=1)
    assert anon.box.insurance[1] == first


def test_cast_does_not_touch_previous_state(poll):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    before = anon.box.holder
    nxt, _ = steps.cast(anon, {"blue": 2}, slot_index=0)
    assert anon.box.holder == before
    assert anon.box.signatures == ()
    assert nxt is not anon


def test_invalid_vote_aborts_turn(poll):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    with pytest.raises(OverspentError):
        steps.cast(anon, {"red": 11}, budget=100)
    with pytest.raises(ForeignOptionError):
        steps.cast(anon, {"yellow": 1}, budget=100)
    assert anon.box.signatures == ()


def test_cast_rejects_unstarted_poll(poll):
    with pytest.raises(ValueError):
        steps.cast(AnonymizingPoll(poll=poll), {"red": 1})


def test_slot_index_out_of_range(poll):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    with pytest.raises(IndexError):
        steps.cast(anon, {"red": 1}, slot_index=SLOTS)


def test_garbled_slot_surfaces_decode_error(poll):
    anon, pm_key = steps.start(poll, slot_count=4, key=11)
    holder = list(anon.box.holder)
    holder[2] += 0xFF  # not a valid version byte
    tampered = AnonymizingPoll(
        poll=poll, box=BallotBox(signatures=("x",), holder=tuple(holder))
    )
    with pytest.raises(DecodeError):
        steps.tally_anon(tampered, pm_key, [])


def test_overspent_recovery_is_rejected(poll):
    anon, pm_key = steps.start(poll, slot_count=4, key=11)
    holder = list(anon.box.holder)
    holder[1] += helpers.encode_vote({"red": 20})
    tampered = AnonymizingPoll(
        poll=poll, box=BallotBox(signatures=("x",), holder=tuple(holder))
    )
    with pytest.raises(OverspentError):
        steps.tally_anon(tampered, pm_key, [], budget=100)


def test_receipt_verifies_against_published_insurance(poll, sample_votes):
    anon, pm_key = steps.start(poll, slot_count=SLOTS)
    receipts, keys = [], []
    for index, vote in enumerate(sample_votes):
        anon, key, receipt = steps.cast_with_receipt(anon, vote, slot_index=index * 7, budget=100)
        keys.append(key)
        receipts.append(receipt)
    insurance, _, _ = steps.tally_anon(anon, pm_key, keys, budget=100)
    for receipt in receipts:
        assert helpers.verify_receipt(insurance, receipt)
    assert receipts[0].signature in anon.box.signatures


def test_signature_goes_where_the_draw_says(poll, monkeypatch):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    anon, _ = steps.cast(anon, {"red": 1}, signature="first", slot_index=0)
    anon, _ = steps.cast(anon, {"red": 1}, signature="second", slot_index=1)

    monkeypatch.setattr(steps.secrets, "randbelow", lambda n: 0)
    anon, _ = steps.cast(anon, {"red": 1}, signature="newest", slot_index=2)
    assert anon.box.signatures[0] == "newest"
    assert len(anon.box.signatures) == 3


def test_signature_position_drawn_over_every_gap(poll, monkeypatch):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    for turn in range(3):
        anon, _ = steps.cast(anon, {"red": 1}, signature=f"sig-{turn}", slot_index=turn)

    bounds = []

    def draw(n):
        bounds.append(n)
        return n - 1

    monkeypatch.setattr(steps.secrets, "randbelow", draw)
    anon, _ = steps.cast(anon, {"red": 1}, signature="last", slot_index=3)
    assert bounds == [4]
    assert anon.box.signatures[-1] == "last"


def test_negative_vote_aborts_turn(poll):
    anon, _ = steps.start(poll, slot_count=SLOTS)
    with pytest.raises(NegativeCountError):
        steps.cast(anon, {"red": -3}, budget=100)
