import os
import sys

import pytest


# Ensure the repository root is on sys.path so `qvote` and `cli` import
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from qvote.models import make_poll  # noqa: E402


@pytest.fixture
def poll():
    return make_poll(
        [
            ("red", "Red"),
            ("blue", "Blue"),
            ("green", "Green"),
            ("purple", "Purple"),
            ("orange", "Orange"),
        ]
    )


@pytest.fixture
def sample_votes():
    return [
        {"red": 0, "blue": 1, "green": 4, "purple": 9, "orange": 0},
        {"red": 2, "blue": 1, "green": 4, "purple": 3, "orange": 8},
        {"red": 9, "blue": 1, "green": 0, "purple": 1, "orange": 4},
    ]
