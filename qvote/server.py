"""Minimal Flask transport for one anonymous poll.

The server plays the pollmaker and relays the poll between voters.

Endpoints:
- POST /init -> start a poll {"options": [[option, description], ...]}
- GET /poll -> current poll state and its digest
- POST /handoff -> submit the next state {"parent": digest, "poll": {...}}
- POST /keys -> submit a voter key {"key": "..."} (separate from the poll)
- POST /tally -> unmask and publish {"insurance", "signatures", "result"}
- POST /audit -> check a revealed receipt {"receipt": {...}}
"""

from typing import Any, Dict
import logging
import threading

from flask import Flask, jsonify, request

from . import helpers, steps
from .errors import CollisionError, QVoteError, TurnOrderError
from .models import AnonymizingPoll, Receipt, make_poll, published_tuple

log = logging.getLogger(__name__)

app = Flask(__name__)

# In-memory state for a single poll round, guarded by _LOCK
_LOCK = threading.Lock()
_STATE: Dict[str, Any] = {
    "poll": None,
    # pollmaker key stays here and is never returned by any endpoint
    "pollmaker_key": None,
    "voter_keys": set(),
    "published": None,
}


def reset_state():
    with _LOCK:
        _STATE.update(poll=None, pollmaker_key=None, voter_keys=set(), published=None)


def _error(e: Exception, status: int):
    return jsonify({"error": str(e), "kind": type(e).__name__}), status


@app.route("/init", methods=["POST"])
def init_poll():
    data = request.get_json(silent=True) or {}
    options = data.get("options")
    if not isinstance(options, list) or not options:
        return jsonify({"error": "missing options"}), 400
    if not all(isinstance(entry, list) and len(entry) == 2 for entry in options):
        return jsonify({"error": "each option must be an [option, description] pair"}), 400
    try:
        poll = make_poll((option, description) for option, description in options)
    except (TypeError, ValueError) as e:
        return _error(e, 400)
    slot_count = data.get("slot_count")
    if slot_count is not None and (
        isinstance(slot_count, bool) or not isinstance(slot_count, int) or slot_count < 1
    ):
        return jsonify({"error": "slot_count must be a positive integer"}), 400
    with _LOCK:
        if _STATE["poll"] is not None:
            return jsonify({"error": "already initialized"}), 400
        anon, key = steps.start(poll, slot_count=slot_count)
        _STATE.update(poll=anon, pollmaker_key=key, voter_keys=set(), published=None)
    return jsonify({"status": "initialized", "digest": helpers.state_digest(anon)})


@app.route("/poll", methods=["GET"])
def current_poll():
    anon = _STATE["poll"]
    if anon is None:
        return jsonify({"error": "not initialized"}), 404
    return jsonify({"poll": anon.to_dict(), "digest": helpers.state_digest(anon)})


@app.route("/handoff", methods=["POST"])
def handoff():
    data = request.get_json(silent=True) or {}
    try:
        nxt = AnonymizingPoll.from_dict(data.get("poll"))
    except ValueError as e:
        return _error(e, 400)

    # check-and-store is one step; a second hand-off from the same parent gets 409
    with _LOCK:
        current = _STATE["poll"]
        if current is None:
            return jsonify({"error": "not initialized"}), 404
        if _STATE["published"] is not None:
            return jsonify({"error": "poll already tallied"}), 409
        if data.get("parent") != helpers.state_digest(current):
            return _error(TurnOrderError("hand-off is not based on the current poll state"), 409)
        if nxt.poll != current.poll or len(nxt.box.holder) != len(current.box.holder):
            return _error(TurnOrderError("hand-off changes the poll or the slot count"), 409)
        if len(nxt.box.signatures) != len(current.box.signatures) + 1:
            return _error(TurnOrderError("hand-off must add exactly one signature"), 409)
        _STATE["poll"] = nxt

    log.info("accepted hand-off %d", len(nxt.box.signatures))
    return jsonify({"status": "accepted", "digest": helpers.state_digest(nxt)}), 201


@app.route("/keys", methods=["POST"])
def submit_key():
    data = request.get_json(silent=True) or {}
    try:
        key = int(data.get("key"))
    except (TypeError, ValueError):
        return jsonify({"error": "missing or invalid 'key'"}), 400
    with _LOCK:
        if _STATE["poll"] is None:
            return jsonify({"error": "not initialized"}), 404
        if _STATE["published"] is not None:
            return jsonify({"error": "poll already tallied"}), 409
        if key in _STATE["voter_keys"]:
            return jsonify({"status": "already stored"}), 200
        _STATE["voter_keys"].add(key)
    return jsonify({"status": "stored"}), 201


@app.route("/tally", methods=["POST"])
def compute_tally():
    with _LOCK:
        anon = _STATE["poll"]
        if anon is None:
            return jsonify({"error": "not initialized"}), 404
        if _STATE["published"] is None:
            try:
                insurance, signatures, result = steps.tally_anon(
                    anon, _STATE["pollmaker_key"], sorted(_STATE["voter_keys"])
                )
            except CollisionError as e:
                return _error(e, 409)
            except QVoteError as e:
                return _error(e, 400)
            _STATE["published"] = published_tuple(insurance, signatures, result)
        published = _STATE["published"]
    return jsonify(published)


@app.route("/audit", methods=["POST"])
def audit_receipt():
    published = _STATE["published"]
    if published is None:
        return jsonify({"error": "no published tally"}), 404
    data = request.get_json(silent=True) or {}
    try:
        receipt = Receipt.from_dict(data.get("receipt"))
    except ValueError as e:
        return _error(e, 400)
    ok = helpers.verify_receipt(published["insurance"], receipt)
    return jsonify({"ok": ok})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True)
