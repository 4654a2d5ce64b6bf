"""Small CLI for taking part in a poll run by the qvote Flask server.

Usage examples:
    python cli.py init --option red=Red --option blue=Blue
    python cli.py cast --vote red=3 --vote blue=4 --receipt-out me.json
    python cli.py tally
    python cli.py audit --receipt me.json
"""

import argparse
import json
import logging
from typing import Dict, List, Tuple

import requests

from qvote import steps
from qvote.config import load_config
from qvote.errors import QVoteError
from qvote.models import AnonymizingPoll, Receipt

log = logging.getLogger(__name__)

BASE = load_config().server_url


def _pairs(items: List[str]) -> List[Tuple[str, str]]:
    out = []
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {item!r}")
        out.append((name, value))
    return out


def parse_vote(items: List[str]) -> Dict[str, int]:
    vote = {}
    for name, value in _pairs(items):
        try:
            vote[name] = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"vote count for {name!r} must be an integer") from None
    return vote


def init(options: List[str], slot_count=None):
    body = {"options": [list(pair) for pair in _pairs(options)]}
    if slot_count is not None:
        body["slot_count"] = slot_count
    r = requests.post(f"{BASE}/init", json=body, timeout=2)
    print(r.json())


def cast(vote: Dict[str, int], signature=None, receipt_out=None):
    r = requests.get(f"{BASE}/poll", timeout=2)
    r.raise_for_status()
    data = r.json()
    current = AnonymizingPoll.from_dict(data["poll"])

    nxt, key, receipt = steps.cast_with_receipt(current, vote, signature=signature)

    r = requests.post(
        f"{BASE}/handoff", json={"parent": data["digest"], "poll": nxt.to_dict()}, timeout=10
    )
    r.raise_for_status()
    # the key goes out only after the poll has moved on
    r = requests.post(f"{BASE}/keys", json={"key": str(key)}, timeout=2)
    r.raise_for_status()
    log.info("turn complete")

    if receipt_out:
        with open(receipt_out, "w", encoding="utf-8") as f:
            json.dump(receipt.to_dict(), f)
    else:
        print(json.dumps(receipt.to_dict()))


def tally():
    r = requests.post(f"{BASE}/tally", timeout=30)
    print(r.json())


def audit(receipt_path: str):
    with open(receipt_path, encoding="utf-8") as f:
        receipt = Receipt.from_dict(json.load(f))
    r = requests.post(f"{BASE}/audit", json={"receipt": receipt.to_dict()}, timeout=2)
    print(r.json())


def main(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd")
    i = sub.add_parser("init")
    i.add_argument("--option", action="append", required=True, help="OPTION=description")
    i.add_argument("--slot-count", type=int)
    c = sub.add_parser("cast")
    c.add_argument("--vote", action="append", default=[], help="OPTION=count")
    c.add_argument("--signature")
    c.add_argument("--receipt-out")
    sub.add_parser("tally")
    a = sub.add_parser("audit")
    a.add_argument("--receipt", required=True)
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.cmd == "init":
            init(args.option, args.slot_count)
        elif args.cmd == "cast":
            cast(parse_vote(args.vote), args.signature, args.receipt_out)
        elif args.cmd == "tally":
            tally()
        elif args.cmd == "audit":
            audit(args.receipt)
        else:
            p.print_help()
    except (argparse.ArgumentTypeError, QVoteError) as e:
        p.error(str(e))


if __name__ == "__main__":
    main()
